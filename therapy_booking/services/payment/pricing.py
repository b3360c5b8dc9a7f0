# therapy_booking/services/payment/pricing.py
"""
Server-side price list. Clients choose a product, never an amount.

Prices are kept in whole rupees for readability and converted to paise on
lookup.
"""
from dataclasses import dataclass
from typing import Dict, Optional

FREE_CONSULTATION = "free"
FREE_CONSULTATION_DURATION = 15


@dataclass(frozen=True)
class SessionPrice:
    amount_minor: int
    currency: str
    duration_minutes: int


# (session type) -> (format) -> (rupees, minutes, enabled)
THERAPY_PRICING: Dict[str, Dict[str, tuple]] = {
    "individual": {
        "chat": (499, 30, True),
        "audio": (899, 45, True),
        "video": (1299, 60, True),
    },
    "couples": {
        "chat": (0, 30, False),
        "audio": (1499, 60, True),
        "video": (1999, 90, True),
    },
    "family": {
        "chat": (0, 30, False),
        "audio": (1799, 60, True),
        "video": (2499, 90, True),
    },
}


def get_price(session_type: str, session_format: str, currency: str = "INR") -> Optional[SessionPrice]:
    """Price for an enabled (type, format) pair, or None"""
    if session_type == FREE_CONSULTATION:
        return SessionPrice(amount_minor=0, currency=currency, duration_minutes=FREE_CONSULTATION_DURATION)

    entry = THERAPY_PRICING.get(session_type, {}).get(session_format)
    if not entry:
        return None

    rupees, minutes, enabled = entry
    if not enabled:
        return None

    return SessionPrice(amount_minor=rupees * 100, currency=currency, duration_minutes=minutes)


def get_duration(session_type: str, session_format: str) -> Optional[int]:
    price = get_price(session_type, session_format)
    return price.duration_minutes if price else None


def is_format_enabled(session_type: str, session_format: str) -> bool:
    return get_price(session_type, session_format) is not None
