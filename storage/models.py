"""
storage/models.py

Pydantic v2 data models for the medledger entity store.

These models describe the rows flowing between the store (db.py) and the
ledger components.  They are NOT ORM models; persistence is handled entirely
by db.py, which hands back plain dicts that are validated into these types.

All timestamps are logical clock heights (integers), not wall-clock times.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class AccessLevel(IntEnum):
    """Tier attached to a permission row."""
    none = 0    # revoked
    basic = 1
    full = 2
    admin = 3


GRANTABLE_LEVELS = (AccessLevel.basic, AccessLevel.full, AccessLevel.admin)


# ---------------------------------------------------------------------------
# Domain models
# ---------------------------------------------------------------------------


class Patient(BaseModel):
    """A patient identity as stored in the patients table."""
    identity: str
    name: str
    date_of_birth: int = Field(description="Clock timestamp of the date of birth.")
    blood_type: str
    allergies: str
    registered_at: int
    last_updated: int


class Provider(BaseModel):
    """A registered healthcare provider."""
    provider_id: int
    wallet: str
    name: str
    specialization: str
    license_number: str
    verified: bool = False
    active: bool = True
    joined_at: int


class AccessPermission(BaseModel):
    """
    The single permission row for a (patient, provider) pair.

    A revoked row keeps its place in the table with ``granted=False``,
    no expiry and ``access_level=0``.
    """
    patient: str
    provider: str
    granted: bool
    granted_at: int
    expiry: int | None = None
    access_level: AccessLevel = AccessLevel.none

    class Config:
        use_enum_values = True


class MedicalRecord(BaseModel):
    """An immutable medical record entry."""
    record_id: int
    patient: str
    provider: str = Field(description="Identity of the authoring provider.")
    record_type: str
    record_hash: str = Field(
        description="Opaque reference to the encrypted off-ledger payload."
    )
    diagnosis: str
    prescription: str
    created_at: int
    encrypted: bool = True


class LedgerEvent(BaseModel):
    """One row of the append-only event log."""
    id: int
    name: str
    actor: str
    height: int
    fields: dict[str, Any] = Field(default_factory=dict)
