# ============================================================================
# therapy_booking/api/v1/admin/bookings.py
# Practice staff booking management
# ============================================================================
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, Request
from sqlalchemy.orm import Session

from therapy_booking.api.dependencies import get_payment_service, require_admin, require_staff
from therapy_booking.config.database import get_db
from therapy_booking.core.identity import Identity
from therapy_booking.models.booking import BookingStatus
from therapy_booking.schemas.booking import BookingDeleteRequest, BookingOut, BookingTransitionRequest
from therapy_booking.schemas.payment import PaymentOut, RefundResponse
from therapy_booking.services.booking.booking_service import BookingService
from therapy_booking.services.booking.cancellation_service import CancellationService
from therapy_booking.services.payment.payment_service import PaymentService

router = APIRouter(prefix="/admin/bookings", tags=["Admin - Bookings"])


@router.get("")
async def list_bookings(
        status: Optional[BookingStatus] = Query(None, description="Filter by status"),
        start_date: Optional[date] = Query(None, description="Sessions on or after this date"),
        end_date: Optional[date] = Query(None, description="Sessions on or before this date"),
        email: Optional[str] = Query(None, description="Filter by customer email"),
        skip: int = Query(0, ge=0),
        limit: int = Query(50, ge=1, le=200),
        staff: Identity = Depends(require_staff),
        db: Session = Depends(get_db)
):
    """Paginated booking list. Therapists can read, only admins can change."""
    result = BookingService.list_bookings(
        db=db,
        status=status.value if status else None,
        start_date=start_date,
        end_date=end_date,
        email=email,
        skip=skip,
        limit=limit,
    )
    result["bookings"] = [BookingOut.model_validate(b) for b in result["bookings"]]
    return result


@router.patch("/{booking_id}/status")
async def update_booking_status(
        request: BookingTransitionRequest,
        booking_id: str = Path(..., description="The booking ID"),
        admin: Identity = Depends(require_admin),
        db: Session = Depends(get_db),
        payment_service: PaymentService = Depends(get_payment_service)
):
    """
    Move a booking through its lifecycle. Cancelling here also refunds the
    paid payment, same as a client cancellation.
    """
    if request.status == BookingStatus.CANCELLED:
        result = await CancellationService.cancel(
            db, booking_id, admin, request.reason, payment_service
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

    booking = BookingService.transition(db, booking_id, request.status, admin, request.reason)
    return {"booking": BookingOut.model_validate(booking)}


@router.delete("/{booking_id}")
async def delete_booking(
        payload: BookingDeleteRequest,
        request: Request,
        booking_id: str = Path(..., description="The booking ID"),
        admin: Identity = Depends(require_admin),
        db: Session = Depends(get_db)
):
    """Hard delete, outside the state machine. Always audited."""
    return BookingService.delete_booking(
        db,
        booking_id,
        admin,
        payload.reason,
        request_id=getattr(request.state, "correlation_id", None),
    )
