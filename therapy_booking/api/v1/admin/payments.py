# therapy_booking/api/v1/admin/payments.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from therapy_booking.api.dependencies import get_payment_service, require_admin
from therapy_booking.config.database import get_db
from therapy_booking.core.identity import Identity
from therapy_booking.models.payment import PaymentStatus
from therapy_booking.schemas.payment import PaymentOut
from therapy_booking.services.payment.payment_service import PaymentService

router = APIRouter(prefix="/admin", tags=["Admin - Payments"])


@router.get("/payments", response_model=List[PaymentOut])
async def list_payments(
        status: Optional[PaymentStatus] = Query(None),
        skip: int = Query(0, ge=0),
        limit: int = Query(50, ge=1, le=200),
        admin: Identity = Depends(require_admin),
        payment_service: PaymentService = Depends(get_payment_service)
):
    return payment_service.list_payments(status=status.value if status else None, skip=skip, limit=limit)


@router.get("/reconciliation")
async def unrefunded_cancellations(
        admin: Identity = Depends(require_admin),
        db: Session = Depends(get_db)
):
    """
    Cancelled bookings that still hold a paid payment. Read-only; refund
    them through ``POST /payments/refund`` after checking the gateway.
    """
    items = PaymentService.unrefunded_cancellations(db)
    return {"total": len(items), "items": items}
