import pytest

from conftest import OWNER
from ledger.clock import InvalidClockHeight, LogicalClock
from ledger.contract import HealthcareLedger
from ledger.errors import AccessDenied, AlreadyExists, OwnerOnly
from storage.db import LedgerStore

P = "SP-PATIENT-P"
Q = "SP-PROVIDER-Q"


def test_end_to_end_lifecycle(ledger):
    """Register, verify, grant, write, expire, write again, revoke, denied."""
    ledger.register_patient(P, "Pat", 19850505, "A+", "none")
    assert ledger.register_provider(Q, "Dr. Q", "neurology", "LIC-Q") == 1
    ledger.verify_provider(OWNER, 1)

    expiry = ledger.get_block_height() + 10
    ledger.grant_access(P, Q, 2, expiry=expiry)
    assert ledger.is_access_valid(P, Q) is True

    assert ledger.add_medical_record(Q, P, "visit", "Qm1", "migraine", "rest") == 1
    assert ledger.get_total_records() == 1

    ledger.clock.advance_to(expiry + 1)
    assert ledger.is_access_valid(P, Q) is False
    assert ledger.add_medical_record(Q, P, "visit", "Qm2", "migraine", "rest") == 2

    ledger.revoke_access(P, Q)
    with pytest.raises(AccessDenied):
        ledger.add_medical_record(Q, P, "visit", "Qm3", "migraine", "rest")
    assert ledger.get_total_records() == 2
    assert ledger.get_patient_record_count(P) == 2


def test_events_follow_successful_mutations(ledger, store):
    """Each successful mutation appends exactly one event; failures append none."""
    ledger.register_patient(P, "Pat", 1, "A+", "")
    with pytest.raises(AlreadyExists):
        ledger.register_patient(P, "Pat", 1, "A+", "")
    ledger.register_provider(Q, "Dr. Q", "gp", "L")
    ledger.grant_access(P, Q, 1, expiry=500)
    ledger.update_access_expiry(P, Q, 600)
    ledger.add_medical_record(Q, P, "lab", "Qm", "d", "p")
    ledger.update_patient_info(P, "B+", "dust")
    ledger.verify_provider(OWNER, 1)
    ledger.deactivate_provider(OWNER, 1)
    ledger.revoke_access(P, Q)
    with pytest.raises(AccessDenied):
        ledger.add_medical_record(Q, P, "lab", "Qm", "d", "p")

    events = store.list_events()
    assert [e["name"] for e in events] == [
        "patient-registered",
        "provider-registered",
        "access-granted",
        "access-expiry-updated",
        "record-added",
        "patient-updated",
        "provider-verified",
        "provider-deactivated",
        "access-revoked",
    ]
    assert events[1]["fields"] == {"provider_id": 1, "wallet": Q}
    assert events[2]["fields"] == {
        "patient": P, "provider": Q, "access_level": 1, "expiry": 500,
    }
    assert events[4]["fields"] == {"record_id": 1, "patient": P, "provider": Q}
    assert events[4]["actor"] == Q
    assert all(e["height"] == 100 for e in events)


def test_state_survives_reopening(tmp_path):
    """Counters and rows persist in the SQLite file across ledger instances."""
    path = tmp_path / "persist.db"
    first = HealthcareLedger(LedgerStore(path), owner=OWNER, clock=LogicalClock(1))
    first.register_patient(P, "Pat", 1, "A+", "")
    first.grant_access(P, Q, 1)
    first.add_medical_record(Q, P, "lab", "Qm", "d", "p")

    second = HealthcareLedger(LedgerStore(path), owner=OWNER, clock=LogicalClock(2))
    assert second.get_patient(P).name == "Pat"
    assert second.add_medical_record(Q, P, "lab", "Qm", "d", "p") == 2
    assert second.get_total_records() == 2


def test_reopened_ledger_resumes_clock(tmp_path):
    """A reopened ledger starts at the last written height, so expired rows stay expired."""
    path = tmp_path / "persist.db"
    first = HealthcareLedger(LedgerStore(path), owner=OWNER, clock=LogicalClock(200))
    first.register_patient(P, "Pat", 1, "A+", "")
    first.grant_access(P, Q, 2, expiry=150)
    first.add_medical_record(Q, P, "lab", "Qm", "d", "p")
    assert first.is_access_valid(P, Q) is False

    second = HealthcareLedger(LedgerStore(path), owner=OWNER)
    assert second.get_block_height() == 200
    assert second.is_access_valid(P, Q) is False
    record_id = second.add_medical_record(Q, P, "lab", "Qm2", "d", "p")
    assert second.get_record(record_id).created_at >= second.get_record(1).created_at
    assert second.check_access(P, Q).granted_at == 200


def test_reopen_with_earlier_clock_rejected(tmp_path):
    path = tmp_path / "persist.db"
    first = HealthcareLedger(LedgerStore(path), owner=OWNER, clock=LogicalClock(200))
    first.register_patient(P, "Pat", 1, "A+", "")
    with pytest.raises(InvalidClockHeight):
        HealthcareLedger(LedgerStore(path), owner=OWNER, clock=LogicalClock(0))


def test_stale_instance_cannot_write_behind_stored_height(tmp_path):
    """A second instance that moved ahead blocks writes from one left behind."""
    path = tmp_path / "persist.db"
    behind = HealthcareLedger(LedgerStore(path), owner=OWNER, clock=LogicalClock(10))
    ahead = HealthcareLedger(LedgerStore(path), owner=OWNER, clock=LogicalClock(50))
    ahead.register_patient(P, "Pat", 1, "A+", "")
    with pytest.raises(InvalidClockHeight):
        behind.grant_access(P, Q, 1)
    assert behind.check_access(P, Q) is None


def test_owner_is_fixed_at_first_start(tmp_path):
    """Reopening the store under another owner is refused."""
    path = tmp_path / "persist.db"
    first = HealthcareLedger(LedgerStore(path), owner=OWNER)
    first.register_provider(Q, "Dr. Q", "gp", "L")
    with pytest.raises(OwnerOnly):
        HealthcareLedger(LedgerStore(path), owner="SP-MALLORY")

    again = HealthcareLedger(LedgerStore(path), owner=OWNER)
    assert again.owner == OWNER
    assert again.verify_provider(OWNER, 1).verified is True


def test_owner_is_required(store):
    with pytest.raises(ValueError):
        HealthcareLedger(store, owner="")
