# ============================================================================
# therapy_booking/api/v1/public/bookings.py
# Client booking endpoints - thin HTTP layer
# ============================================================================
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.orm import Session

from therapy_booking.api.dependencies import (
    get_current_identity,
    get_optional_identity,
    get_payment_service,
)
from therapy_booking.config.database import get_db
from therapy_booking.core.exceptions import BookingDomainError
from therapy_booking.core.identity import Identity
from therapy_booking.schemas.booking import (
    BookingCancelRequest,
    BookingCreate,
    BookingOut,
    UpcomingBookingOut,
)
from therapy_booking.schemas.payment import PaymentOut, RefundResponse
from therapy_booking.services.booking.booking_service import BookingService
from therapy_booking.services.booking.cancellation_service import CancellationService
from therapy_booking.services.payment.payment_service import PaymentService

router = APIRouter(prefix="/bookings", tags=["Bookings"])
logger = logging.getLogger(__name__)


@router.post("", status_code=201)
async def create_booking(
        request: BookingCreate,
        identity: Optional[Identity] = Depends(get_optional_identity),
        db: Session = Depends(get_db),
        payment_service: PaymentService = Depends(get_payment_service)
):
    """
    Create a pending booking. If ``gateway_order_id`` is given the payment is
    linked right away, which confirms the booking when it is already paid.

    A failed link does not undo the booking; the client can retry
    ``/payments/link``.
    """
    booking = BookingService.create_booking(db, request, actor=identity)

    payment = None
    payment_error = None
    if request.gateway_order_id:
        try:
            payment = payment_service.link_to_booking(request.gateway_order_id, booking.id)
            db.refresh(booking)
        except BookingDomainError as e:
            logger.warning(f"Booking {booking.id} created but payment link failed: {e.message}")
            payment_error = e.to_dict()

    return {
        "booking": BookingOut.model_validate(booking),
        "payment": PaymentOut.model_validate(payment) if payment else None,
        "payment_error": payment_error,
    }


@router.get("/mine", response_model=list[BookingOut])
async def list_my_bookings(
        identity: Identity = Depends(get_current_identity),
        db: Session = Depends(get_db)
):
    """Bookings owned by the caller (by user id or verified email)."""
    return BookingService.list_for_identity(db, identity)


@router.get("/mine/upcoming", response_model=list[UpcomingBookingOut])
async def list_my_upcoming_bookings(
        within_minutes: Optional[int] = Query(None, ge=1, le=24 * 60),
        identity: Identity = Depends(get_current_identity),
        db: Session = Depends(get_db)
):
    """Sessions starting soon, for the join-session banner. Safe to poll."""
    upcoming = BookingService.upcoming_for_identity(db, identity, within_minutes=within_minutes)
    return [
        UpcomingBookingOut(
            **BookingOut.model_validate(item["booking"]).model_dump(),
            minutes_until=item["minutes_until"],
            is_today=item["is_today"],
        )
        for item in upcoming
    ]


@router.get("/{booking_id}", response_model=BookingOut)
async def get_booking(
        booking_id: str = Path(..., description="The booking ID"),
        identity: Identity = Depends(get_current_identity),
        db: Session = Depends(get_db)
):
    return BookingService.get_booking_for(db, booking_id, identity)


@router.post("/{booking_id}/cancel")
async def cancel_booking(
        request: BookingCancelRequest,
        booking_id: str = Path(..., description="The booking ID"),
        identity: Identity = Depends(get_current_identity),
        db: Session = Depends(get_db),
        payment_service: PaymentService = Depends(get_payment_service)
):
    """
    Cancel a booking you own and refund it per the cancellation policy.

    The booking is cancelled even if the refund fails; ``refund_error`` then
    says why and the case is picked up by reconciliation.
    """
    BookingService.get_booking_for(db, booking_id, identity)
    result = await CancellationService.cancel(
        db, booking_id, identity, request.reason, payment_service
    )

    refund = None
    if result.refund:
        refund = RefundResponse(
            refunded=True,
            amount=result.refund.amount,
            is_full_refund=result.refund.is_full_refund,
            mode=result.refund.mode,
            payment=PaymentOut.model_validate(result.refund.payment),
        )

    return {
        "booking": BookingOut.model_validate(result.booking),
        "refund": refund,
        "refund_error": result.refund_error.to_dict() if result.refund_error else None,
        "needs_reconciliation": result.needs_reconciliation,
    }
