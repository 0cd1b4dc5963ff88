"""
storage/db.py

SQLite entity store for the medledger access-control ledger.

Schema
------
patients            - one row per patient identity
providers           - provider profiles keyed by sequential provider_id
provider_wallets    - secondary index wallet -> provider_id (unique)
access_permissions  - one row per (patient, provider) identity pair
medical_records     - immutable records keyed by sequential record_id
counters            - next_record_id, next_provider_id, total_records,
                      last_height (highest clock height written)
meta                - write-once settings fixed at first start (owner)
events              - append-only log of successful mutations

The store holds no business rules.  Every helper accepts an optional
``_conn`` so it can participate in a transaction opened with
:meth:`LedgerStore.transaction`; without one it opens (and closes) its own
autocommitting connection.

Usage
-----
    store = LedgerStore(path)
    store.init_db()                    # idempotent
    with store.transaction() as conn:  # BEGIN IMMEDIATE ... COMMIT/ROLLBACK
        store.put_patient(row, _conn=conn)
"""

import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Database location
# ---------------------------------------------------------------------------

_PROJECT_ROOT = Path(__file__).resolve().parents[1]
_ENV_DB_PATH = "LEDGER_DB_PATH"


def default_db_path() -> Path:
    """Return the path from ``LEDGER_DB_PATH`` or ``<project>/data/medledger.db``."""
    raw = os.environ.get(_ENV_DB_PATH)
    if raw:
        return Path(raw)
    return _PROJECT_ROOT / "data" / "medledger.db"


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_DDL = """
CREATE TABLE IF NOT EXISTS patients (
    identity       TEXT    PRIMARY KEY,
    name           TEXT    NOT NULL,
    date_of_birth  INTEGER NOT NULL,
    blood_type     TEXT    NOT NULL,
    allergies      TEXT    NOT NULL,
    registered_at  INTEGER NOT NULL,
    last_updated   INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS providers (
    provider_id     INTEGER PRIMARY KEY,
    wallet          TEXT    NOT NULL,
    name            TEXT    NOT NULL,
    specialization  TEXT    NOT NULL,
    license_number  TEXT    NOT NULL,
    verified        INTEGER NOT NULL DEFAULT 0,
    active          INTEGER NOT NULL DEFAULT 1,
    joined_at       INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS provider_wallets (
    wallet       TEXT    PRIMARY KEY,
    provider_id  INTEGER NOT NULL REFERENCES providers(provider_id)
);

CREATE TABLE IF NOT EXISTS access_permissions (
    patient       TEXT    NOT NULL,
    provider      TEXT    NOT NULL,
    granted       INTEGER NOT NULL,
    granted_at    INTEGER NOT NULL,
    expiry        INTEGER,                     -- NULL means no expiry
    access_level  INTEGER NOT NULL,
    PRIMARY KEY (patient, provider)
);

CREATE TABLE IF NOT EXISTS medical_records (
    record_id     INTEGER PRIMARY KEY,
    patient       TEXT    NOT NULL,
    provider      TEXT    NOT NULL,
    record_type   TEXT    NOT NULL,
    record_hash   TEXT    NOT NULL,
    diagnosis     TEXT    NOT NULL,
    prescription  TEXT    NOT NULL,
    created_at    INTEGER NOT NULL,
    encrypted     INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS counters (
    name   TEXT    PRIMARY KEY,
    value  INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS meta (
    name   TEXT    PRIMARY KEY,
    value  TEXT    NOT NULL
);

CREATE TABLE IF NOT EXISTS events (
    id      INTEGER PRIMARY KEY AUTOINCREMENT,
    name    TEXT    NOT NULL,
    actor   TEXT    NOT NULL,
    height  INTEGER NOT NULL,
    fields  TEXT    NOT NULL               -- JSON object
);
"""

# Initial values; INSERT OR IGNORE keeps existing counters on re-init.
COUNTER_DEFAULTS = {
    "next_record_id": 1,
    "next_provider_id": 1,
    "total_records": 0,
    "last_height": 0,
}


class LedgerStore:
    """Keyed tables, counters and event log on top of one SQLite file."""

    def __init__(self, path: Path | str | None = None):
        self.path = Path(path) if path is not None else default_db_path()

    # -----------------------------------------------------------------
    # Connections
    # -----------------------------------------------------------------

    def _connect(self) -> sqlite3.Connection:
        """
        Open (or create) the SQLite database and return a connection.

        The connection runs in autocommit mode (``isolation_level=None``);
        transactions are opened explicitly by :meth:`transaction`.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.path), isolation_level=None, timeout=30.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON;")
        return conn

    @contextmanager
    def _using(self, _conn: sqlite3.Connection | None) -> Iterator[sqlite3.Connection]:
        if _conn is not None:
            yield _conn
            return
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Run the enclosed block as one write transaction.

        ``BEGIN IMMEDIATE`` takes SQLite's write lock up front, so concurrent
        callers are serialized.  Any exception rolls back every write made
        through the yielded connection and is re-raised unchanged.
        """
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                logger.debug("Transaction rolled back on %s", self.path)
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    def init_db(self) -> None:
        """
        Create all tables and seed the counters if they do not exist yet.

        Safe to call multiple times (idempotent).
        """
        conn = self._connect()
        try:
            conn.executescript(_DDL)
            for name, value in COUNTER_DEFAULTS.items():
                conn.execute(
                    "INSERT OR IGNORE INTO counters (name, value) VALUES (?, ?)",
                    (name, value),
                )
        finally:
            conn.close()
        logger.info("Ledger store initialised at %s", self.path)

    # -----------------------------------------------------------------
    # Patients
    # -----------------------------------------------------------------

    def get_patient(
        self, identity: str, *, _conn: sqlite3.Connection | None = None
    ) -> dict[str, Any] | None:
        with self._using(_conn) as conn:
            row = conn.execute(
                "SELECT * FROM patients WHERE identity = ?", (identity,)
            ).fetchone()
        return dict(row) if row else None

    def put_patient(
        self, row: dict[str, Any], *, _conn: sqlite3.Connection | None = None
    ) -> None:
        """Insert or overwrite the patient row keyed by ``row['identity']``."""
        with self._using(_conn) as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO patients
                    (identity, name, date_of_birth, blood_type, allergies,
                     registered_at, last_updated)
                VALUES (:identity, :name, :date_of_birth, :blood_type, :allergies,
                        :registered_at, :last_updated)
                """,
                row,
            )
        logger.debug("Stored patient %s", row["identity"])

    # -----------------------------------------------------------------
    # Providers and the wallet index
    # -----------------------------------------------------------------

    def get_provider(
        self, provider_id: int, *, _conn: sqlite3.Connection | None = None
    ) -> dict[str, Any] | None:
        with self._using(_conn) as conn:
            row = conn.execute(
                "SELECT * FROM providers WHERE provider_id = ?", (provider_id,)
            ).fetchone()
        return dict(row) if row else None

    def put_provider(
        self, row: dict[str, Any], *, _conn: sqlite3.Connection | None = None
    ) -> None:
        """Insert or overwrite the provider row keyed by ``row['provider_id']``."""
        with self._using(_conn) as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO providers
                    (provider_id, wallet, name, specialization, license_number,
                     verified, active, joined_at)
                VALUES (:provider_id, :wallet, :name, :specialization, :license_number,
                        :verified, :active, :joined_at)
                """,
                row,
            )
        logger.debug("Stored provider id=%d", row["provider_id"])

    def get_provider_id_by_wallet(
        self, wallet: str, *, _conn: sqlite3.Connection | None = None
    ) -> int | None:
        with self._using(_conn) as conn:
            row = conn.execute(
                "SELECT provider_id FROM provider_wallets WHERE wallet = ?", (wallet,)
            ).fetchone()
        return row["provider_id"] if row else None

    def put_wallet_index(
        self, wallet: str, provider_id: int, *, _conn: sqlite3.Connection | None = None
    ) -> None:
        with self._using(_conn) as conn:
            conn.execute(
                "INSERT INTO provider_wallets (wallet, provider_id) VALUES (?, ?)",
                (wallet, provider_id),
            )

    # -----------------------------------------------------------------
    # Access permissions
    # -----------------------------------------------------------------

    def get_permission(
        self, patient: str, provider: str, *, _conn: sqlite3.Connection | None = None
    ) -> dict[str, Any] | None:
        with self._using(_conn) as conn:
            row = conn.execute(
                """
                SELECT * FROM access_permissions
                WHERE patient = ? AND provider = ?
                """,
                (patient, provider),
            ).fetchone()
        return dict(row) if row else None

    def put_permission(
        self, row: dict[str, Any], *, _conn: sqlite3.Connection | None = None
    ) -> None:
        """Overwrite the whole permission row for ``(patient, provider)``."""
        with self._using(_conn) as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO access_permissions
                    (patient, provider, granted, granted_at, expiry, access_level)
                VALUES (:patient, :provider, :granted, :granted_at, :expiry, :access_level)
                """,
                row,
            )
        logger.debug(
            "Stored permission patient=%s provider=%s granted=%s",
            row["patient"], row["provider"], row["granted"],
        )

    # -----------------------------------------------------------------
    # Medical records
    # -----------------------------------------------------------------

    def get_record(
        self, record_id: int, *, _conn: sqlite3.Connection | None = None
    ) -> dict[str, Any] | None:
        with self._using(_conn) as conn:
            row = conn.execute(
                "SELECT * FROM medical_records WHERE record_id = ?", (record_id,)
            ).fetchone()
        return dict(row) if row else None

    def insert_record(
        self, row: dict[str, Any], *, _conn: sqlite3.Connection | None = None
    ) -> None:
        """Insert a new record.  Records are never replaced."""
        with self._using(_conn) as conn:
            conn.execute(
                """
                INSERT INTO medical_records
                    (record_id, patient, provider, record_type, record_hash,
                     diagnosis, prescription, created_at, encrypted)
                VALUES (:record_id, :patient, :provider, :record_type, :record_hash,
                        :diagnosis, :prescription, :created_at, :encrypted)
                """,
                row,
            )
        logger.debug("Inserted record id=%d", row["record_id"])

    # -----------------------------------------------------------------
    # Counters
    # -----------------------------------------------------------------

    def get_counter(self, name: str, *, _conn: sqlite3.Connection | None = None) -> int:
        with self._using(_conn) as conn:
            row = conn.execute(
                "SELECT value FROM counters WHERE name = ?", (name,)
            ).fetchone()
        if row is None:
            raise KeyError(f"Unknown counter '{name}'")
        return row["value"]

    def set_counter(
        self, name: str, value: int, *, _conn: sqlite3.Connection | None = None
    ) -> None:
        with self._using(_conn) as conn:
            conn.execute("UPDATE counters SET value = ? WHERE name = ?", (value, name))

    # -----------------------------------------------------------------
    # Write-once settings
    # -----------------------------------------------------------------

    def get_meta(self, name: str, *, _conn: sqlite3.Connection | None = None) -> str | None:
        with self._using(_conn) as conn:
            row = conn.execute("SELECT value FROM meta WHERE name = ?", (name,)).fetchone()
        return row["value"] if row else None

    def claim_meta(self, name: str, value: str) -> str:
        """
        Store *value* under *name* unless a value is already stored.

        Returns:
            The value held by the store afterwards (the first one ever written).
        """
        with self.transaction() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO meta (name, value) VALUES (?, ?)", (name, value)
            )
            return self.get_meta(name, _conn=conn)

    # -----------------------------------------------------------------
    # Event log
    # -----------------------------------------------------------------

    def append_event(
        self,
        name: str,
        actor: str,
        height: int,
        fields: dict[str, Any],
        *,
        _conn: sqlite3.Connection | None = None,
    ) -> None:
        """
        Append an entry to the append-only event log.

        Args:
            name:    Short kebab-case label, e.g. ``'access-granted'``.
            actor:   Identity that performed the mutation.
            height:  Clock height at which it happened.
            fields:  Key fields of the mutated row (JSON-serialisable).
            _conn:   Optional existing connection to reuse.
        """
        with self._using(_conn) as conn:
            conn.execute(
                "INSERT INTO events (name, actor, height, fields) VALUES (?, ?, ?, ?)",
                (name, actor, height, json.dumps(fields, sort_keys=True)),
            )
        logger.debug("Event: %s actor=%s height=%d", name, actor, height)

    def list_events(self, *, _conn: sqlite3.Connection | None = None) -> list[dict[str, Any]]:
        """Return every event, oldest first, with ``fields`` decoded."""
        with self._using(_conn) as conn:
            rows = conn.execute("SELECT * FROM events ORDER BY id ASC").fetchall()
        events = []
        for r in rows:
            event = dict(r)
            event["fields"] = json.loads(event["fields"])
            events.append(event)
        return events
