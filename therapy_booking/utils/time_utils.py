"""Practice-local date/time helpers"""
import re
from datetime import date, datetime, time, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from therapy_booking.config.settings import get_settings

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})\s*(AM|PM)?$", re.IGNORECASE)


def practice_tz() -> ZoneInfo:
    return ZoneInfo(get_settings().PRACTICE_TIMEZONE)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite returns them without tzinfo)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_time(value: str) -> str:
    """
    Normalize "5:00 PM", "5:00pm" or "17:00" to "17:00".

    Raises ValueError for anything else.
    """
    match = _TIME_RE.match(str(value).strip())
    if not match:
        raise ValueError(f"Invalid time format: {value!r}. Use HH:MM or HH:MM AM/PM")

    hours = int(match.group(1))
    minutes = int(match.group(2))
    period = (match.group(3) or "").upper()

    if period:
        if not 1 <= hours <= 12:
            raise ValueError(f"Invalid hour in {value!r}")
        if period == "PM" and hours != 12:
            hours += 12
        elif period == "AM" and hours == 12:
            hours = 0

    if hours > 23 or minutes > 59:
        raise ValueError(f"Invalid time: {value!r}")

    return f"{hours:02d}:{minutes:02d}"


def display_time(value: str) -> str:
    """"17:00" -> "5:00 PM" """
    parsed = time.fromisoformat(normalize_time(value))
    hour = parsed.hour % 12 or 12
    period = "AM" if parsed.hour < 12 else "PM"
    return f"{hour}:{parsed.minute:02d} {period}"


def session_start_utc(scheduled_date: date, scheduled_time: str) -> datetime:
    """Interpret a stored date + HH:MM string in the practice timezone and return UTC."""
    local_time = time.fromisoformat(normalize_time(scheduled_time))
    local = datetime.combine(scheduled_date, local_time, tzinfo=practice_tz())
    return local.astimezone(timezone.utc)


def practice_today(now: Optional[datetime] = None) -> date:
    now = as_utc(now) or utcnow()
    return now.astimezone(practice_tz()).date()
