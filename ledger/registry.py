"""
ledger/registry.py

Identity registry: patient profiles and provider registration.

Patients are keyed by their own identity.  Providers get a sequential id and
the wallet -> provider_id index guarantees one provider per wallet.

Every function here runs inside the caller's transaction (``_conn``) and
receives the clock height as ``now`` so a single operation sees one value.
"""

import logging
import sqlite3

from ledger.errors import AlreadyExists, NotFound
from storage.db import LedgerStore
from storage.models import Patient, Provider

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Patients
# ---------------------------------------------------------------------------


def register_patient(
    store: LedgerStore,
    caller: str,
    name: str,
    date_of_birth: int,
    blood_type: str,
    allergies: str,
    *,
    now: int,
    _conn: sqlite3.Connection,
) -> Patient:
    """
    Create the patient profile for *caller*.

    Raises:
        AlreadyExists: If *caller* is already a registered patient.
    """
    if store.get_patient(caller, _conn=_conn) is not None:
        raise AlreadyExists(f"Patient '{caller}' is already registered.")

    patient = Patient(
        identity=caller,
        name=name,
        date_of_birth=date_of_birth,
        blood_type=blood_type,
        allergies=allergies,
        registered_at=now,
        last_updated=now,
    )
    store.put_patient(patient.model_dump(), _conn=_conn)
    store.append_event(
        "patient-registered", caller, now, {"patient": caller}, _conn=_conn
    )
    logger.info("Registered patient '%s' at height %d", caller, now)
    return patient


def update_patient_info(
    store: LedgerStore,
    caller: str,
    blood_type: str,
    allergies: str,
    *,
    now: int,
    _conn: sqlite3.Connection,
) -> Patient:
    """
    Replace blood type and allergies on the caller's own profile.

    Name, date of birth and registered_at are preserved.

    Raises:
        NotFound: If *caller* is not a registered patient.
    """
    row = store.get_patient(caller, _conn=_conn)
    if row is None:
        raise NotFound(f"Patient '{caller}' is not registered.")

    patient = Patient(**row).model_copy(
        update={"blood_type": blood_type, "allergies": allergies, "last_updated": now}
    )
    store.put_patient(patient.model_dump(), _conn=_conn)
    store.append_event("patient-updated", caller, now, {"patient": caller}, _conn=_conn)
    logger.info("Updated patient '%s' at height %d", caller, now)
    return patient


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


def register_provider(
    store: LedgerStore,
    caller: str,
    name: str,
    specialization: str,
    license_number: str,
    *,
    now: int,
    _conn: sqlite3.Connection,
) -> int:
    """
    Register *caller* as a provider and return the new provider id.

    New providers start unverified and active.

    Raises:
        AlreadyExists: If *caller*'s wallet already maps to a provider id.
    """
    if store.get_provider_id_by_wallet(caller, _conn=_conn) is not None:
        raise AlreadyExists(f"Wallet '{caller}' is already registered as a provider.")

    provider_id = store.get_counter("next_provider_id", _conn=_conn)
    provider = Provider(
        provider_id=provider_id,
        wallet=caller,
        name=name,
        specialization=specialization,
        license_number=license_number,
        verified=False,
        active=True,
        joined_at=now,
    )
    store.put_provider(provider.model_dump(), _conn=_conn)
    store.put_wallet_index(caller, provider_id, _conn=_conn)
    store.set_counter("next_provider_id", provider_id + 1, _conn=_conn)
    store.append_event(
        "provider-registered",
        caller,
        now,
        {"provider_id": provider_id, "wallet": caller},
        _conn=_conn,
    )
    logger.info("Registered provider id=%d for wallet '%s'", provider_id, caller)
    return provider_id


def lookup_provider_id(store: LedgerStore, wallet: str) -> int | None:
    """Return the provider id registered for *wallet*, or ``None``."""
    return store.get_provider_id_by_wallet(wallet)
