"""
ledger/permissions.py

Permission engine: the rows that say which provider may act for a patient.

There is exactly one row per (patient, provider) pair and three distinct ways
of writing it:

- grant_access           overwrites the whole row (granted, level, expiry)
- revoke_access          overwrites the whole row with the canonical denied
                         state, whether or not a row existed before
- update_access_expiry   replaces only the expiry of an existing row

Validity (``is_access_valid``) is the expiry-aware check: a row is valid while
``granted`` is set and the clock has not passed ``expiry``.  The expiry height
itself is still valid.
"""

import logging
import sqlite3

from ledger.errors import InvalidAccessLevel, NotFound
from storage.db import LedgerStore
from storage.models import GRANTABLE_LEVELS, AccessLevel, AccessPermission

logger = logging.getLogger(__name__)


def _validate_level(access_level: int) -> AccessLevel:
    if isinstance(access_level, bool) or access_level not in GRANTABLE_LEVELS:
        raise InvalidAccessLevel(
            f"access_level must be one of {[int(lvl) for lvl in GRANTABLE_LEVELS]}, "
            f"got {access_level!r}"
        )
    return AccessLevel(access_level)


def grant_access(
    store: LedgerStore,
    caller: str,
    provider: str,
    access_level: int,
    expiry: int | None = None,
    *,
    now: int,
    _conn: sqlite3.Connection,
) -> AccessPermission:
    """
    Grant *provider* access to the caller's records.

    Any previous row for the pair is replaced, so re-granting is not an error.

    Raises:
        NotFound:           If *caller* is not a registered patient.
        InvalidAccessLevel: If *access_level* is not 1, 2 or 3.
    """
    if store.get_patient(caller, _conn=_conn) is None:
        raise NotFound(f"Patient '{caller}' is not registered.")
    level = _validate_level(access_level)

    permission = AccessPermission(
        patient=caller,
        provider=provider,
        granted=True,
        granted_at=now,
        expiry=expiry,
        access_level=level,
    )
    store.put_permission(permission.model_dump(), _conn=_conn)
    store.append_event(
        "access-granted",
        caller,
        now,
        {
            "patient": caller,
            "provider": provider,
            "access_level": int(level),
            "expiry": expiry,
        },
        _conn=_conn,
    )
    logger.info(
        "Patient '%s' granted '%s' level=%d expiry=%s",
        caller, provider, level, expiry,
    )
    return permission


def revoke_access(
    store: LedgerStore,
    caller: str,
    provider: str,
    *,
    now: int,
    _conn: sqlite3.Connection,
) -> AccessPermission:
    """
    Write the denied row for (*caller*, *provider*).

    Never fails: a revoke without a preceding grant still stores the row.
    """
    permission = AccessPermission(
        patient=caller,
        provider=provider,
        granted=False,
        granted_at=now,
        expiry=None,
        access_level=AccessLevel.none,
    )
    store.put_permission(permission.model_dump(), _conn=_conn)
    store.append_event(
        "access-revoked",
        caller,
        now,
        {"patient": caller, "provider": provider},
        _conn=_conn,
    )
    logger.info("Patient '%s' revoked '%s'", caller, provider)
    return permission


def update_access_expiry(
    store: LedgerStore,
    caller: str,
    provider: str,
    new_expiry: int | None = None,
    *,
    now: int,
    _conn: sqlite3.Connection,
) -> AccessPermission:
    """
    Replace the expiry on an existing row, keeping every other field.

    Raises:
        NotFound: If no row exists for (*caller*, *provider*).
    """
    row = store.get_permission(caller, provider, _conn=_conn)
    if row is None:
        raise NotFound(f"No permission from '{caller}' to '{provider}'.")

    permission = AccessPermission(**row).model_copy(update={"expiry": new_expiry})
    store.put_permission(permission.model_dump(), _conn=_conn)
    store.append_event(
        "access-expiry-updated",
        caller,
        now,
        {"patient": caller, "provider": provider, "expiry": new_expiry},
        _conn=_conn,
    )
    logger.info("Patient '%s' set expiry for '%s' to %s", caller, provider, new_expiry)
    return permission


def check_access(
    store: LedgerStore,
    patient: str,
    provider: str,
    *,
    _conn: sqlite3.Connection | None = None,
) -> AccessPermission | None:
    """Return the raw permission row, without interpreting it."""
    row = store.get_permission(patient, provider, _conn=_conn)
    return AccessPermission(**row) if row else None


def is_access_valid(
    store: LedgerStore,
    patient: str,
    provider: str,
    *,
    now: int,
    _conn: sqlite3.Connection | None = None,
) -> bool:
    """True iff a row exists, is granted, and *now* <= expiry (when set)."""
    permission = check_access(store, patient, provider, _conn=_conn)
    if permission is None or not permission.granted:
        return False
    return permission.expiry is None or now <= permission.expiry
