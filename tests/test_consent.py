from datetime import datetime, timedelta, timezone

import pytest

from conftest import USER
from therapy_booking.core.exceptions import ValidationError
from therapy_booking.models import ConsentRecord
from therapy_booking.services.consent.consent_service import ConsentService

ACKS = ["confidentiality", "not_emergency_service", "cancellation_policy"]


def test_record_consent_normalizes_and_stores(db):
    record = ConsentService.record_consent(
        db, " Asha@Example.com ", "individual", "v2", ACKS,
        actor=USER, ip_address="203.0.113.9", user_agent="Mozilla/5.0",
    )

    assert record.email == "asha@example.com"
    assert record.acknowledgments == ACKS
    assert record.user_id == USER.user_id
    assert record.ip_address == "203.0.113.9"
    assert record.consented_at is not None


@pytest.mark.parametrize("email, session_type, version, acks", [
    ("", "individual", "v1", ACKS),
    ("a@b.co", "group", "v1", ACKS),
    ("a@b.co", "individual", "", ACKS),
    ("a@b.co", "individual", "v1", []),
    ("a@b.co", "individual", "v1", ["  "]),
])
def test_invalid_consent_is_rejected(db, email, session_type, version, acks):
    with pytest.raises(ValidationError):
        ConsentService.record_consent(db, email, session_type, version, acks)
    assert db.query(ConsentRecord).count() == 0


def test_new_version_is_a_new_row(db):
    first = ConsentService.record_consent(db, "a@b.co", "couples", "v1", ACKS)
    second = ConsentService.record_consent(db, "a@b.co", "couples", "v2", ACKS)

    assert first.id != second.id
    assert db.query(ConsentRecord).count() == 2
    db.refresh(first)
    assert first.consent_version == "v1"


def test_has_consent_is_per_session_type(db):
    ConsentService.record_consent(db, "a@b.co", "individual", "v1", ACKS)

    assert ConsentService.has_consent(db, "A@B.co", "individual")
    assert not ConsentService.has_consent(db, "a@b.co", "couples")
    assert not ConsentService.has_consent(db, "other@b.co", "individual")


def test_has_consent_before_cutoff(db):
    ConsentService.record_consent(db, "a@b.co", "individual", "v1", ACKS)
    past = datetime.now(timezone.utc) - timedelta(days=1)
    future = datetime.now(timezone.utc) + timedelta(minutes=5)

    assert not ConsentService.has_consent(db, "a@b.co", "individual", before=past)
    assert ConsentService.has_consent(db, "a@b.co", "individual", before=future)


def test_list_consents_filters_by_email(db):
    ConsentService.record_consent(db, "a@b.co", "individual", "v1", ACKS)
    ConsentService.record_consent(db, "c@d.co", "family", "v1", ACKS)

    assert len(ConsentService.list_consents(db)) == 2
    assert [r.email for r in ConsentService.list_consents(db, email="C@D.co")] == ["c@d.co"]
