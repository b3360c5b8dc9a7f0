# ===== therapy_booking/models/consent.py =====
from sqlalchemy import Column, String, DateTime, JSON, Index

from therapy_booking.models.base import Base, new_id, utcnow


class ConsentRecord(Base):
    """
    Write-once acknowledgment of the consent form.

    Matched to bookings by (email, session_type), not by foreign key.
    """
    __tablename__ = "consent_records"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), nullable=True)
    email = Column(String(255), nullable=False)  # lower-case
    session_type = Column(String(20), nullable=False)
    consent_version = Column(String(20), nullable=False)
    acknowledgments = Column(JSON, nullable=False)  # ordered list of item ids

    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    consented_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_consent_records_email_type", "email", "session_type"),
    )
