# ===== therapy_booking/models/booking.py =====
from sqlalchemy import Column, String, Integer, Text, Date, DateTime, Index, CheckConstraint, text
import enum

from therapy_booking.models.base import Base, new_id, utcnow

FREE_CONSULTATION_MARKER = "[FREE_CONSULTATION]"


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class SessionType(str, enum.Enum):
    INDIVIDUAL = "individual"
    COUPLES = "couples"
    FAMILY = "family"


class SessionFormat(str, enum.Enum):
    CHAT = "chat"
    AUDIO = "audio"
    VIDEO = "video"


# One client at a time: a slot is held by any booking that is not cancelled.
ACTIVE_SLOT_PREDICATE = text("status <> 'cancelled'")


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=new_id)

    # Owner is optional, guests can book
    user_id = Column(String(64), nullable=True, index=True)

    # Customer info
    customer_name = Column(String(100), nullable=False)
    customer_email = Column(String(255), nullable=False, index=True)
    customer_phone = Column(String(20), nullable=True)

    # Session details
    session_type = Column(String(20), nullable=False)
    session_format = Column(String(20), nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=60)
    scheduled_date = Column(Date, nullable=False)
    scheduled_time = Column(String(5), nullable=False)  # HH:MM, practice-local
    timezone = Column(String(50), nullable=False, default="Asia/Kolkata")
    notes = Column(Text, nullable=True)

    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'completed', 'cancelled', 'no_show')",
            name="ck_bookings_status",
        ),
        CheckConstraint(
            "session_type IN ('individual', 'couples', 'family')",
            name="ck_bookings_session_type",
        ),
        CheckConstraint(
            "session_format IN ('chat', 'audio', 'video')",
            name="ck_bookings_session_format",
        ),
        Index(
            "uq_bookings_active_slot",
            "scheduled_date",
            "scheduled_time",
            unique=True,
            postgresql_where=ACTIVE_SLOT_PREDICATE,
            sqlite_where=ACTIVE_SLOT_PREDICATE,
        ),
        Index("ix_bookings_status_date", "status", "scheduled_date"),
    )

    @property
    def is_free_consultation(self) -> bool:
        return FREE_CONSULTATION_MARKER in (self.notes or "")

    def __repr__(self):
        return f"<Booking {self.id} {self.scheduled_date} {self.scheduled_time} ({self.status})>"
