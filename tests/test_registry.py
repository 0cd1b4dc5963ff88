import pytest

from conftest import OTHER_PROVIDER, PATIENT, PROVIDER
from ledger.errors import AlreadyExists, NotFound


def test_register_patient_stores_profile(ledger):
    """Registration stamps registered_at and last_updated with the clock."""
    patient = ledger.register_patient(PATIENT, "Ada", 19900101, "A-", "none")
    stored = ledger.get_patient(PATIENT)
    assert stored == patient
    assert stored.registered_at == 100
    assert stored.last_updated == 100


def test_duplicate_patient_rejected_and_unchanged(ledger, patient):
    """A second registration fails and the first profile is kept."""
    before = ledger.get_patient(patient)
    ledger.clock.advance(3)
    with pytest.raises(AlreadyExists):
        ledger.register_patient(patient, "Impostor", 20000101, "B+", "latex")
    assert ledger.get_patient(patient) == before


def test_get_patient_absent(ledger):
    assert ledger.get_patient("nobody") is None


def test_update_patient_info(ledger, patient):
    """Only blood type, allergies and last_updated change."""
    ledger.clock.advance(10)
    updated = ledger.update_patient_info(patient, "AB+", "peanuts")
    assert updated.blood_type == "AB+"
    assert updated.allergies == "peanuts"
    assert updated.last_updated == 110
    assert updated.registered_at == 100
    assert updated.name == "Ada Patient"
    assert ledger.get_patient(patient) == updated


def test_update_patient_info_requires_registration(ledger):
    with pytest.raises(NotFound):
        ledger.update_patient_info("nobody", "O-", "")


def test_register_provider_assigns_sequential_ids(ledger):
    """Provider ids start at 1 and increase by one."""
    assert ledger.register_provider(PROVIDER, "Dr. Q", "cardiology", "L1") == 1
    assert ledger.register_provider(OTHER_PROVIDER, "Dr. R", "oncology", "L2") == 2


def test_new_provider_defaults(ledger, provider):
    stored = ledger.get_provider(1)
    assert stored.wallet == provider
    assert stored.verified is False
    assert stored.active is True
    assert stored.joined_at == 100
    assert stored.specialization == "cardiology"


def test_duplicate_provider_wallet_rejected(ledger, provider):
    """One provider per wallet; a failed registration burns no id."""
    with pytest.raises(AlreadyExists):
        ledger.register_provider(provider, "Again", "x", "y")
    assert ledger.register_provider(OTHER_PROVIDER, "Dr. R", "oncology", "L2") == 2


def test_get_provider_by_wallet(ledger, provider):
    assert ledger.get_provider_by_wallet(provider) == 1
    assert ledger.get_provider_by_wallet("unknown") is None
    assert ledger.get_provider(99) is None


def test_patient_and_provider_are_independent(ledger):
    """The same identity may be both a patient and a provider."""
    ledger.register_patient("SP-BOTH", "Both", 1, "O+", "")
    assert ledger.register_provider("SP-BOTH", "Dr. Both", "gp", "L9") == 1
