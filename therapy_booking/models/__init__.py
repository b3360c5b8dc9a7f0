# therapy_booking/models/__init__.py
from .base import Base
from .booking import Booking, BookingStatus, SessionType, SessionFormat, FREE_CONSULTATION_MARKER
from .payment import Payment, PaymentStatus
from .coupon import Coupon
from .consent import ConsentRecord
from .audit_log import AuditLog

__all__ = [
    "Base",
    "Booking",
    "BookingStatus",
    "SessionType",
    "SessionFormat",
    "FREE_CONSULTATION_MARKER",
    "Payment",
    "PaymentStatus",
    "Coupon",
    "ConsentRecord",
    "AuditLog",
]
