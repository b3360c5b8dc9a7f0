# therapy_booking/services/booking/cancellation_service.py
"""Cancellation = booking transition first, refund second."""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from therapy_booking.core.exceptions import BookingDomainError
from therapy_booking.core.identity import Identity
from therapy_booking.models.booking import Booking, BookingStatus
from therapy_booking.services.booking.booking_service import BookingService
from therapy_booking.services.payment.payment_service import PaymentService, RefundResult

logger = logging.getLogger(__name__)


@dataclass
class CancellationResult:
    booking: Booking
    refund: Optional[RefundResult] = None
    refund_error: Optional[BookingDomainError] = None

    @property
    def needs_reconciliation(self) -> bool:
        return self.refund_error is not None


class CancellationService:

    @staticmethod
    async def cancel(
            db: Session,
            booking_id: str,
            actor: Identity,
            reason: Optional[str],
            payment_service: PaymentService,
            now: Optional[datetime] = None
    ) -> CancellationResult:
        """
        Cancel a booking and refund its paid payment, if any.

        The cancellation stands even when the refund fails; the booking then
        shows up in the unrefunded-cancellations scan.
        """
        booking = BookingService.transition(db, booking_id, BookingStatus.CANCELLED, actor, reason, now)

        if payment_service.paid_payment_for(booking.id) is None:
            return CancellationResult(booking=booking)

        try:
            refund = await payment_service.refund(booking_id=booking.id, now=now)
        except BookingDomainError as e:
            logger.error(
                f"Booking {booking.id} cancelled but refund failed ({e.code}): {e.message}; "
                f"needs reconciliation"
            )
            return CancellationResult(booking=booking, refund_error=e)

        return CancellationResult(booking=booking, refund=refund)
