# ============================================================================
# therapy_booking/services/refund/refund_policy.py
# Pure refund computation - no I/O, no gateway calls
# ============================================================================
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from therapy_booking.config.settings import get_settings
from therapy_booking.core.exceptions import RefundPolicyUndefined, PaymentStateError
from therapy_booking.models.booking import Booking
from therapy_booking.models.payment import Payment
from therapy_booking.utils.time_utils import as_utc, session_start_utc, utcnow


@dataclass(frozen=True)
class RefundDecision:
    amount: int
    is_full_refund: bool
    hours_before_session: Optional[float] = None


class RefundPolicy:
    """
    Full refund when cancelled at least ``full_window_hours`` before the
    session, ``partial_percent`` of the paid amount otherwise. Partial amounts
    round down to the minor unit. Cancelling after the session started has no
    defined refund and raises ``RefundPolicyUndefined``.
    """

    def __init__(self, full_window_hours: Optional[int] = None, partial_percent: Optional[int] = None):
        settings = get_settings()
        self.full_window = timedelta(
            hours=full_window_hours if full_window_hours is not None else settings.REFUND_FULL_WINDOW_HOURS
        )
        self.partial_percent = (
            partial_percent if partial_percent is not None else settings.REFUND_PARTIAL_PERCENT
        )

    def compute_refund(
            self,
            booking: Optional[Booking],
            payment: Payment,
            requested_at: Optional[datetime] = None
    ) -> RefundDecision:
        paid_amount = payment.amount_minor
        if paid_amount < 0:
            raise PaymentStateError("Payment amount is negative", payment_id=payment.id)

        # Payment never linked to a booking: nothing to measure against.
        if booking is None:
            return RefundDecision(amount=paid_amount, is_full_refund=True)

        requested_at = as_utc(requested_at) or utcnow()
        start = session_start_utc(booking.scheduled_date, booking.scheduled_time)
        delta = start - requested_at

        if delta < timedelta(0):
            raise RefundPolicyUndefined(
                "Session has already started; refund requires manual handling",
                booking_id=booking.id,
            )

        hours = delta.total_seconds() / 3600
        if delta >= self.full_window:
            return RefundDecision(amount=paid_amount, is_full_refund=True, hours_before_session=hours)

        amount = (paid_amount * self.partial_percent) // 100
        return RefundDecision(
            amount=amount,
            is_full_refund=amount >= paid_amount,
            hours_before_session=hours,
        )
