# therapy_booking/api/v1/public/coupons.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from therapy_booking.config.database import get_db
from therapy_booking.schemas.coupon import CouponValidateRequest, CouponValidateResponse
from therapy_booking.services.coupon.coupon_service import CouponService

router = APIRouter(prefix="/coupons", tags=["Coupons"])


@router.post("/validate", response_model=CouponValidateResponse)
async def validate_coupon(
        request: CouponValidateRequest,
        db: Session = Depends(get_db)
):
    """
    Preview a coupon against an order amount. Does not count a use.
    """
    result = CouponService.validate(db, request.code, request.amount)
    if not result.valid:
        return CouponValidateResponse(
            valid=False,
            code=result.code,
            reason=result.reason,
            message=result.message,
        )

    return CouponValidateResponse(
        valid=True,
        code=result.code,
        discount_amount=result.discount_amount,
        payable_amount=request.amount - result.discount_amount,
    )
