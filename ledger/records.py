"""
ledger/records.py

Record ledger: append-only medical records authored by providers.

A provider may add a record for a patient while the patient's permission row
for that provider has ``granted`` set.  The write gate looks at the raw flag
only and does not consult expiry, so a granted row whose expiry has passed
still authorises writes until the patient revokes it.

Record ids come from the ``next_record_id`` counter and ``total_records``
counts every record ever written.  Both change in the same transaction as the
insert.
"""

import logging
import sqlite3

from ledger.errors import AccessDenied
from storage.db import LedgerStore
from storage.models import MedicalRecord

logger = logging.getLogger(__name__)


def add_medical_record(
    store: LedgerStore,
    caller: str,
    patient: str,
    record_type: str,
    record_hash: str,
    diagnosis: str,
    prescription: str,
    *,
    now: int,
    _conn: sqlite3.Connection,
) -> int:
    """
    Append a record for *patient* authored by *caller* and return its id.

    Raises:
        AccessDenied: If there is no permission row for (*patient*, *caller*)
            or its ``granted`` flag is false.
    """
    permission = store.get_permission(patient, caller, _conn=_conn)
    if permission is None or not permission["granted"]:
        raise AccessDenied(f"'{caller}' holds no granted permission for '{patient}'.")

    record_id = store.get_counter("next_record_id", _conn=_conn)
    record = MedicalRecord(
        record_id=record_id,
        patient=patient,
        provider=caller,
        record_type=record_type,
        record_hash=record_hash,
        diagnosis=diagnosis,
        prescription=prescription,
        created_at=now,
        encrypted=True,
    )
    store.insert_record(record.model_dump(), _conn=_conn)
    store.set_counter("next_record_id", record_id + 1, _conn=_conn)
    total = store.get_counter("total_records", _conn=_conn)
    store.set_counter("total_records", total + 1, _conn=_conn)
    store.append_event(
        "record-added",
        caller,
        now,
        {"record_id": record_id, "patient": patient, "provider": caller},
        _conn=_conn,
    )
    logger.info("Provider '%s' added record id=%d for '%s'", caller, record_id, patient)
    return record_id


def get_record(store: LedgerStore, record_id: int) -> MedicalRecord | None:
    """Return the record with *record_id*.  No access control is applied."""
    row = store.get_record(record_id)
    return MedicalRecord(**row) if row else None


def get_patient_record_count(store: LedgerStore, patient: str) -> int:
    """
    Return the ledger-wide record total.

    *patient* is accepted for call compatibility but does not narrow the
    count; records are not indexed per patient.
    """
    return store.get_counter("total_records")
