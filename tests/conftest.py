import pytest

from ledger.clock import LogicalClock
from ledger.contract import HealthcareLedger
from storage.db import LedgerStore

OWNER = "SP-OWNER"
PATIENT = "SP-PATIENT-1"
OTHER_PATIENT = "SP-PATIENT-2"
PROVIDER = "SP-PROVIDER-1"
OTHER_PROVIDER = "SP-PROVIDER-2"


@pytest.fixture
def store(tmp_path):
    s = LedgerStore(tmp_path / "ledger.db")
    s.init_db()
    return s


@pytest.fixture
def ledger(store):
    return HealthcareLedger(store, owner=OWNER, clock=LogicalClock(100))


@pytest.fixture
def patient(ledger):
    ledger.register_patient(PATIENT, "Ada Patient", 19900101, "O+", "penicillin")
    return PATIENT


@pytest.fixture
def provider(ledger):
    ledger.register_provider(PROVIDER, "Dr. Quinn", "cardiology", "LIC-001")
    return PROVIDER
