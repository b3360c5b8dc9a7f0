# ============================================================================
# therapy_booking/services/booking/booking_service.py
# Booking ledger - the authoritative record of every appointment
# ============================================================================
"""
Service for creating bookings and moving them through their lifecycle.

Slot exclusivity is enforced twice: a read before insert gives a friendly
error, and the partial unique index ``uq_bookings_active_slot`` catches the
race where two requests pass the read together.
"""
import logging
from datetime import date, datetime, timedelta
from typing import Optional, Dict, Any, List

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from therapy_booking.config.settings import get_settings
from therapy_booking.core.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from therapy_booking.core.identity import Identity
from therapy_booking.models.booking import Booking, BookingStatus, FREE_CONSULTATION_MARKER
from therapy_booking.models.payment import Payment
from therapy_booking.schemas.booking import BookingCreate
from therapy_booking.services.audit.audit_service import AuditService
from therapy_booking.services.availability.availability_service import AvailabilityService
from therapy_booking.services.payment.pricing import FREE_CONSULTATION_DURATION, get_duration
from therapy_booking.utils.time_utils import as_utc, practice_today, session_start_utc, utcnow

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[BookingStatus, frozenset] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({
        BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW
    }),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.NO_SHOW: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in ALLOWED_TRANSITIONS.items() if not targets)


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


class BookingService:
    """Handles booking operations"""

    @staticmethod
    def create_booking(
            db: Session,
            data: BookingCreate,
            actor: Optional[Identity] = None,
            now: Optional[datetime] = None
    ) -> Booking:
        """
        Create a pending booking for a catalog slot.

        Raises:
            ValidationError: past date, closed day, off-catalog time, disabled format
            ConflictError: the slot is already held by a non-cancelled booking
        """
        BookingService._validate_slot(data, now)

        if data.free_consultation:
            duration = FREE_CONSULTATION_DURATION
        else:
            duration = get_duration(data.session_type.value, data.session_format.value)
            if duration is None:
                raise ValidationError(
                    f"{data.session_format.value} sessions are not offered for "
                    f"{data.session_type.value} therapy",
                    field="session_format",
                )

        existing = BookingService._active_booking_at(db, data.date, data.time)
        if existing:
            raise ConflictError(
                "This time slot is already booked. Please choose another slot.",
                scheduled_date=data.date.isoformat(),
                scheduled_time=data.time,
            )

        notes = (data.notes or "").strip() or None
        if data.free_consultation:
            notes = f"{FREE_CONSULTATION_MARKER} {notes}" if notes else FREE_CONSULTATION_MARKER

        booking = Booking(
            user_id=actor.user_id if actor else None,
            customer_name=data.customer.name,
            customer_email=data.customer.email,
            customer_phone=data.customer.phone,
            session_type=data.session_type.value,
            session_format=data.session_format.value,
            duration_minutes=duration,
            scheduled_date=data.date,
            scheduled_time=data.time,
            timezone=get_settings().PRACTICE_TIMEZONE,
            notes=notes,
            status=BookingStatus.PENDING.value,
        )

        db.add(booking)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            logger.info(f"Slot race lost for {data.date} {data.time}")
            raise ConflictError(
                "This time slot is already booked. Please choose another slot.",
                scheduled_date=data.date.isoformat(),
                scheduled_time=data.time,
            ) from exc

        db.refresh(booking)
        logger.info(
            f"Booking {booking.id} created for {booking.scheduled_date} {booking.scheduled_time} "
            f"({booking.session_type}/{booking.session_format})"
        )
        return booking

    @staticmethod
    def transition(
            db: Session,
            booking_id: str,
            new_status: BookingStatus,
            actor: Identity,
            reason: Optional[str] = None,
            now: Optional[datetime] = None
    ) -> Booking:
        """
        Move a booking to ``new_status`` as a single conditional update.

        The update only matches while the row still holds the status we read,
        so a concurrent admin edit makes this call fail instead of overwriting.
        """
        new_status = BookingStatus(new_status)
        booking = BookingService.get_booking(db, booking_id)
        BookingService._authorize_transition(booking, new_status, actor)

        current = BookingStatus(booking.status)
        if not can_transition(current, new_status):
            raise InvalidTransitionError(
                f"Cannot move booking from {current.value} to {new_status.value}",
                booking_id=booking.id,
                current_status=current.value,
                requested_status=new_status.value,
            )

        stamp = as_utc(now) or utcnow()
        values: Dict[str, Any] = {"status": new_status.value, "updated_at": stamp}
        if new_status == BookingStatus.CANCELLED:
            values["cancelled_at"] = stamp
            values["cancellation_reason"] = reason

        before = BookingService.snapshot(booking)
        updated = db.query(Booking).filter(
            Booking.id == booking.id,
            Booking.status == current.value
        ).update(values, synchronize_session=False)

        if updated == 0:
            db.rollback()
            latest = BookingService.get_booking(db, booking_id)
            raise InvalidTransitionError(
                f"Booking changed concurrently (now {latest.status}); transition to "
                f"{new_status.value} was not applied",
                booking_id=booking_id,
                current_status=latest.status,
                requested_status=new_status.value,
            )

        if actor.is_admin:
            AuditService.record(
                db, actor, "booking.transition", "booking", booking.id,
                old_data=before,
                new_data={"status": new_status.value, "reason": reason},
            )

        db.commit()
        db.refresh(booking)
        logger.info(f"Booking {booking.id}: {current.value} -> {new_status.value} by {actor.user_id}")
        return booking

    @staticmethod
    def delete_booking(
            db: Session,
            booking_id: str,
            actor: Identity,
            reason: str,
            request_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Audited, irreversible admin override outside the state machine"""
        if not actor.is_admin:
            raise AuthorizationError("Only admins can delete bookings")

        booking = BookingService.get_booking(db, booking_id)
        snapshot = BookingService.snapshot(booking)

        # Payments outlive the booking; keep them for the money trail.
        db.query(Payment).filter(Payment.booking_id == booking.id).update(
            {"booking_id": None}, synchronize_session=False
        )
        AuditService.record(
            db, actor, "booking.delete", "booking", booking.id,
            old_data=snapshot, new_data={"reason": reason}, request_id=request_id,
        )
        db.delete(booking)
        db.commit()

        logger.warning(f"Booking {booking_id} hard-deleted by {actor.user_id}: {reason}")
        return {"deleted": True, "booking_id": booking_id}

    @staticmethod
    def get_booking(db: Session, booking_id: str) -> Booking:
        booking = db.query(Booking).filter(Booking.id == booking_id).first()
        if not booking:
            raise NotFoundError("Booking not found", booking_id=booking_id)
        return booking

    @staticmethod
    def get_booking_for(db: Session, booking_id: str, actor: Identity) -> Booking:
        booking = BookingService.get_booking(db, booking_id)
        if not (actor.is_staff or BookingService.is_owner(booking, actor)):
            # Same answer as a missing booking, ids are not enumerable
            raise NotFoundError("Booking not found", booking_id=booking_id)
        return booking

    @staticmethod
    def list_bookings(
            db: Session,
            status: Optional[str] = None,
            start_date: Optional[date] = None,
            end_date: Optional[date] = None,
            email: Optional[str] = None,
            skip: int = 0,
            limit: int = 50
    ) -> Dict[str, Any]:
        """Get paginated list of bookings with filters."""
        query = db.query(Booking)

        if status:
            query = query.filter(Booking.status == status)
        if start_date:
            query = query.filter(Booking.scheduled_date >= start_date)
        if end_date:
            query = query.filter(Booking.scheduled_date <= end_date)
        if email:
            query = query.filter(Booking.customer_email == email.strip().lower())

        query = query.order_by(Booking.scheduled_date.asc(), Booking.scheduled_time.asc())
        total = query.count()
        bookings = query.offset(skip).limit(limit).all()

        return {
            "total": total,
            "skip": skip,
            "limit": limit,
            "bookings": bookings,
        }

    @staticmethod
    def list_for_identity(db: Session, actor: Identity) -> List[Booking]:
        return BookingService._owned_query(db, actor).order_by(
            Booking.scheduled_date.desc(), Booking.scheduled_time.desc()
        ).all()

    @staticmethod
    def upcoming_for_identity(
            db: Session,
            actor: Identity,
            within_minutes: Optional[int] = None,
            now: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """
        Pending/confirmed bookings starting within ``within_minutes``.

        Read-only; clients may poll it freely.
        """
        now = as_utc(now) or utcnow()
        within = within_minutes if within_minutes is not None else get_settings().UPCOMING_ALERT_MINUTES
        today = practice_today(now)

        candidates = BookingService._owned_query(db, actor).filter(
            Booking.status.in_([BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value]),
            Booking.scheduled_date >= today,
            Booking.scheduled_date <= today + timedelta(days=1)
        ).all()

        upcoming = []
        for booking in candidates:
            start = session_start_utc(booking.scheduled_date, booking.scheduled_time)
            minutes_until = int((start - now).total_seconds() // 60)
            if 0 <= minutes_until <= within:
                upcoming.append({
                    "booking": booking,
                    "minutes_until": minutes_until,
                    "is_today": booking.scheduled_date == today,
                })

        upcoming.sort(key=lambda item: item["minutes_until"])
        return upcoming

    @staticmethod
    def is_owner(booking: Booking, actor: Optional[Identity]) -> bool:
        if actor is None:
            return False
        if booking.user_id and booking.user_id == actor.user_id:
            return True
        return bool(actor.email) and booking.customer_email == actor.email.strip().lower()

    @staticmethod
    def snapshot(booking: Booking) -> Dict[str, Any]:
        return {
            "id": booking.id,
            "user_id": booking.user_id,
            "customer_name": booking.customer_name,
            "customer_email": booking.customer_email,
            "session_type": booking.session_type,
            "session_format": booking.session_format,
            "scheduled_date": booking.scheduled_date.isoformat() if booking.scheduled_date else None,
            "scheduled_time": booking.scheduled_time,
            "status": booking.status,
            "notes": booking.notes,
            "cancelled_at": booking.cancelled_at.isoformat() if booking.cancelled_at else None,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_slot(data: BookingCreate, now: Optional[datetime]) -> None:
        if data.date < practice_today(now):
            raise ValidationError("Date cannot be in the past", field="date")

        if not AvailabilityService.is_date_bookable(data.date, now):
            raise ValidationError("Sessions are not offered on this day", field="date")

        if data.time not in AvailabilityService.slot_catalog():
            raise ValidationError(
                f"{data.time} is not an offered time. Choose one of: "
                f"{', '.join(AvailabilityService.slot_catalog())}",
                field="time",
            )

        now_utc = as_utc(now) or utcnow()
        if session_start_utc(data.date, data.time) <= now_utc:
            raise ValidationError("This time has already passed", field="time")

    @staticmethod
    def _active_booking_at(db: Session, day: date, slot: str) -> Optional[Booking]:
        return db.query(Booking).filter(
            Booking.scheduled_date == day,
            Booking.scheduled_time == slot,
            Booking.status != BookingStatus.CANCELLED.value
        ).first()

    @staticmethod
    def _authorize_transition(booking: Booking, new_status: BookingStatus, actor: Identity) -> None:
        if actor.is_admin:
            return
        if new_status == BookingStatus.CANCELLED and BookingService.is_owner(booking, actor):
            return
        raise AuthorizationError(
            f"Not allowed to set booking status to {new_status.value}",
            booking_id=booking.id,
        )

    @staticmethod
    def _owned_query(db: Session, actor: Identity):
        conditions = [Booking.user_id == actor.user_id]
        if actor.email:
            conditions.append(Booking.customer_email == actor.email.strip().lower())
        return db.query(Booking).filter(or_(*conditions))
