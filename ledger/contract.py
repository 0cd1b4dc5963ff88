"""
ledger/contract.py

Public operation surface of the medical records access ledger.

Responsibilities
----------------
- Holding the fixed owner identity, the entity store and the logical clock.
- Running every mutating operation as one store transaction: the clock is
  read once, the component function does its checks and writes, and any
  error rolls back every write (the event row included).
- Keeping the clock and the owner tied to the store: the owner is written
  once at first start, and every mutation records its height so a reopened
  ledger never resumes below it.
- Returning typed models from the read operations.

The caller identity is always the first argument of a mutating operation; it
is assumed to be authenticated by whatever layer sits in front of this one.
Reads apply no access control.
"""

import logging
from typing import Any, Callable, TypeVar

from ledger import admin, permissions, records, registry, settings
from ledger.clock import InvalidClockHeight, LogicalClock
from ledger.errors import LedgerError, OwnerOnly
from storage.db import LedgerStore
from storage.models import AccessPermission, MedicalRecord, Patient, Provider

logger = logging.getLogger(__name__)

T = TypeVar("T")


class HealthcareLedger:
    """Patients, providers, permissions and records behind one owner identity."""

    def __init__(self, store: LedgerStore, owner: str, clock: LogicalClock | None = None):
        if not owner:
            raise ValueError("owner identity must be a non-empty string")
        self._store = store
        self._store.init_db()

        stored_owner = self._store.claim_meta("owner", owner)
        if stored_owner != owner:
            raise OwnerOnly(
                f"Store at {store.path} is owned by '{stored_owner}', not '{owner}'."
            )
        self._owner = owner

        last_height = self._store.get_counter("last_height")
        if clock is None:
            clock = LogicalClock(last_height)
        elif clock.now() < last_height:
            raise InvalidClockHeight(
                f"Clock at {clock.now()} is behind the stored height {last_height}"
            )
        self.clock = clock
        logger.info("Ledger ready (owner=%s, height=%d)", owner, self.clock.now())

    @classmethod
    def from_env(cls) -> "HealthcareLedger":
        """
        Build a ledger from ``LEDGER_DB_PATH``, ``LEDGER_OWNER`` and
        ``LEDGER_START_HEIGHT``.  The clock starts at the start height or at
        the highest height already stored, whichever is later.
        """
        store = LedgerStore()
        store.init_db()
        height = max(settings.get_start_height(), store.get_counter("last_height"))
        return cls(store, owner=settings.get_owner(), clock=LogicalClock(height))

    @property
    def owner(self) -> str:
        return self._owner

    @property
    def store(self) -> LedgerStore:
        return self._store

    def _run(self, operation: str, caller: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        now = self.clock.now()
        try:
            with self._store.transaction() as conn:
                last_height = self._store.get_counter("last_height", _conn=conn)
                if now < last_height:
                    raise InvalidClockHeight(
                        f"{operation} at height {now} is behind the stored height {last_height}"
                    )
                result = fn(self._store, *args, now=now, _conn=conn, **kwargs)
                self._store.set_counter("last_height", now, _conn=conn)
                return result
        except LedgerError as exc:
            logger.warning(
                "%s by '%s' rejected (%s, code=%d): %s",
                operation, caller, type(exc).__name__, exc.code, exc,
            )
            raise

    # -----------------------------------------------------------------
    # Identity registry
    # -----------------------------------------------------------------

    def register_patient(
        self, caller: str, name: str, date_of_birth: int, blood_type: str, allergies: str
    ) -> Patient:
        return self._run(
            "register_patient", caller, registry.register_patient,
            caller, name, date_of_birth, blood_type, allergies,
        )

    def update_patient_info(self, caller: str, blood_type: str, allergies: str) -> Patient:
        return self._run(
            "update_patient_info", caller, registry.update_patient_info,
            caller, blood_type, allergies,
        )

    def register_provider(
        self, caller: str, name: str, specialization: str, license_number: str
    ) -> int:
        return self._run(
            "register_provider", caller, registry.register_provider,
            caller, name, specialization, license_number,
        )

    # -----------------------------------------------------------------
    # Permission engine
    # -----------------------------------------------------------------

    def grant_access(
        self, caller: str, provider: str, access_level: int, expiry: int | None = None
    ) -> AccessPermission:
        return self._run(
            "grant_access", caller, permissions.grant_access,
            caller, provider, access_level, expiry,
        )

    def revoke_access(self, caller: str, provider: str) -> AccessPermission:
        return self._run(
            "revoke_access", caller, permissions.revoke_access, caller, provider
        )

    def update_access_expiry(
        self, caller: str, provider: str, new_expiry: int | None = None
    ) -> AccessPermission:
        return self._run(
            "update_access_expiry", caller, permissions.update_access_expiry,
            caller, provider, new_expiry,
        )

    # -----------------------------------------------------------------
    # Record ledger
    # -----------------------------------------------------------------

    def add_medical_record(
        self,
        caller: str,
        patient: str,
        record_type: str,
        record_hash: str,
        diagnosis: str,
        prescription: str,
    ) -> int:
        return self._run(
            "add_medical_record", caller, records.add_medical_record,
            caller, patient, record_type, record_hash, diagnosis, prescription,
        )

    # -----------------------------------------------------------------
    # Admin authority
    # -----------------------------------------------------------------

    def verify_provider(self, caller: str, provider_id: int) -> Provider:
        return self._run(
            "verify_provider", caller, admin.verify_provider,
            self._owner, caller, provider_id,
        )

    def deactivate_provider(self, caller: str, provider_id: int) -> Provider:
        return self._run(
            "deactivate_provider", caller, admin.deactivate_provider,
            self._owner, caller, provider_id,
        )

    # -----------------------------------------------------------------
    # Reads (no access enforcement)
    # -----------------------------------------------------------------

    def get_patient(self, identity: str) -> Patient | None:
        row = self._store.get_patient(identity)
        return Patient(**row) if row else None

    def get_provider(self, provider_id: int) -> Provider | None:
        row = self._store.get_provider(provider_id)
        return Provider(**row) if row else None

    def get_provider_by_wallet(self, wallet: str) -> int | None:
        return registry.lookup_provider_id(self._store, wallet)

    def get_record(self, record_id: int) -> MedicalRecord | None:
        return records.get_record(self._store, record_id)

    def check_access(self, patient: str, provider: str) -> AccessPermission | None:
        return permissions.check_access(self._store, patient, provider)

    def is_access_valid(self, patient: str, provider: str) -> bool:
        return permissions.is_access_valid(
            self._store, patient, provider, now=self.clock.now()
        )

    def get_patient_record_count(self, patient: str) -> int:
        return records.get_patient_record_count(self._store, patient)

    def get_total_records(self) -> int:
        return self._store.get_counter("total_records")

    def get_block_height(self) -> int:
        return self.clock.now()
