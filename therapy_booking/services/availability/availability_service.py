# ===== therapy_booking/services/availability/availability_service.py =====
from typing import List, Dict, Optional, Set
from datetime import date, datetime
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
import logging

from therapy_booking.config.settings import get_settings
from therapy_booking.core.exceptions import ValidationError
from therapy_booking.models.booking import Booking, BookingStatus
from therapy_booking.services.payment.pricing import FREE_CONSULTATION, FREE_CONSULTATION_DURATION, get_duration
from therapy_booking.utils.time_utils import display_time, normalize_time, practice_today

logger = logging.getLogger(__name__)

ALLOWED_SESSION_TYPES = ("individual", "couples", "family", FREE_CONSULTATION)


class AvailabilityService:
    """
    Resolves bookable slots for a practice-local date.

    Slots are fixed points from the configured catalog, not ranges: a 90 minute
    couples session at 17:00 does not block 18:00. Only an exact (date, time)
    match with a non-cancelled booking makes a slot unavailable.
    """

    @staticmethod
    def slot_catalog() -> List[str]:
        settings = get_settings()
        return sorted({normalize_time(t) for t in settings.SLOT_CATALOG})

    @staticmethod
    def is_date_bookable(day: date, now: Optional[datetime] = None) -> bool:
        settings = get_settings()
        if day < practice_today(now):
            return False
        return day.weekday() not in settings.UNAVAILABLE_WEEKDAYS

    @staticmethod
    def get_available_slots(
            db: Session,
            day: date,
            session_type: str,
            session_format: Optional[str] = None,
            now: Optional[datetime] = None
    ) -> List[Dict]:
        """
        Get the slot catalog for ``day`` with availability flags.

        Read-only. If the store cannot be read, every catalog slot is returned
        as available; the ledger's unique index still rejects a double booking.
        """
        if session_type not in ALLOWED_SESSION_TYPES:
            raise ValidationError(
                f"Invalid session type. Allowed: {', '.join(ALLOWED_SESSION_TYPES)}",
                field="session_type",
            )

        if not AvailabilityService.is_date_bookable(day, now):
            return []

        duration = AvailabilityService._duration_for(session_type, session_format)
        catalog = AvailabilityService.slot_catalog()

        try:
            taken = AvailabilityService._taken_times(db, day)
        except SQLAlchemyError as e:
            logger.error(f"Slot lookup failed for {day}, serving fallback catalog: {e}")
            return AvailabilityService._build_slots(catalog, set(), duration)

        return AvailabilityService._build_slots(catalog, taken, duration)

    @staticmethod
    def _taken_times(db: Session, day: date) -> Set[str]:
        rows = db.query(Booking.scheduled_time).filter(
            Booking.scheduled_date == day,
            Booking.status != BookingStatus.CANCELLED.value
        ).all()
        return {row[0] for row in rows}

    @staticmethod
    def _build_slots(catalog: List[str], taken: Set[str], duration: Optional[int]) -> List[Dict]:
        return [
            {
                "time": slot,
                "display_time": display_time(slot),
                "available": slot not in taken,
                "duration_minutes": duration,
            }
            for slot in catalog
        ]

    @staticmethod
    def _duration_for(session_type: str, session_format: Optional[str]) -> Optional[int]:
        if session_type == FREE_CONSULTATION:
            return FREE_CONSULTATION_DURATION
        if not session_format:
            return None
        return get_duration(session_type, session_format)
