# therapy_booking/services/consent/consent_service.py
"""
Write-once consent records.

The booking flow checks ``has_consent`` before opening checkout. That gate is
the caller's job: records are matched by (email, session_type), so the ledger
cannot enforce it as a constraint.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from therapy_booking.core.exceptions import ValidationError
from therapy_booking.core.identity import Identity
from therapy_booking.models.consent import ConsentRecord
from therapy_booking.utils.time_utils import as_utc

logger = logging.getLogger(__name__)

CONSENT_SESSION_TYPES = ("individual", "couples", "family", "free")
MAX_VERSION_LENGTH = 20


class ConsentService:

    @staticmethod
    def record_consent(
            db: Session,
            email: str,
            session_type: str,
            version: str,
            acknowledgments: List[str],
            actor: Optional[Identity] = None,
            ip_address: Optional[str] = None,
            user_agent: Optional[str] = None
    ) -> ConsentRecord:
        email = (email or "").strip().lower()
        if not email:
            raise ValidationError("Email is required", field="email")
        if session_type not in CONSENT_SESSION_TYPES:
            raise ValidationError(
                f"Invalid session type. Allowed: {', '.join(CONSENT_SESSION_TYPES)}",
                field="session_type",
            )
        if not version or len(version) > MAX_VERSION_LENGTH:
            raise ValidationError("Invalid consent version", field="consent_version")
        if not acknowledgments or any(not isinstance(a, str) or not a.strip() for a in acknowledgments):
            raise ValidationError("At least one acknowledgment is required", field="acknowledgments")

        record = ConsentRecord(
            user_id=actor.user_id if actor else None,
            email=email,
            session_type=session_type,
            consent_version=version,
            acknowledgments=[a.strip() for a in acknowledgments],
            ip_address=ip_address,
            user_agent=(user_agent or "")[:512] or None,
        )
        db.add(record)
        db.commit()
        db.refresh(record)

        logger.info(f"Consent {record.id} recorded for {session_type} (v{version})")
        return record

    @staticmethod
    def latest_consent(
            db: Session,
            email: str,
            session_type: str,
            before: Optional[datetime] = None
    ) -> Optional[ConsentRecord]:
        query = db.query(ConsentRecord).filter(
            ConsentRecord.email == (email or "").strip().lower(),
            ConsentRecord.session_type == session_type
        )
        records = query.order_by(ConsentRecord.consented_at.desc()).all()
        if before is None:
            return records[0] if records else None

        cutoff = as_utc(before)
        for record in records:
            if as_utc(record.consented_at) <= cutoff:
                return record
        return None

    @staticmethod
    def has_consent(
            db: Session,
            email: str,
            session_type: str,
            before: Optional[datetime] = None
    ) -> bool:
        return ConsentService.latest_consent(db, email, session_type, before) is not None

    @staticmethod
    def list_consents(db: Session, email: Optional[str] = None, skip: int = 0, limit: int = 50):
        query = db.query(ConsentRecord)
        if email:
            query = query.filter(ConsentRecord.email == email.strip().lower())
        return query.order_by(ConsentRecord.consented_at.desc()).offset(skip).limit(limit).all()
