# ============================================================================
# therapy_booking/api/v1/admin/coupons.py
# Coupon administration
# ============================================================================
from typing import List

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.orm import Session

from therapy_booking.api.dependencies import require_admin
from therapy_booking.config.database import get_db
from therapy_booking.core.identity import Identity
from therapy_booking.schemas.coupon import CouponCreate, CouponOut, CouponUpdate
from therapy_booking.services.coupon.coupon_service import CouponService

router = APIRouter(prefix="/admin/coupons", tags=["Admin - Coupons"])


@router.get("", response_model=List[CouponOut])
async def list_coupons(
        active_only: bool = Query(False),
        admin: Identity = Depends(require_admin),
        db: Session = Depends(get_db)
):
    return CouponService.list_coupons(db, active_only=active_only)


@router.post("", response_model=CouponOut, status_code=201)
async def create_coupon(
        request: CouponCreate,
        admin: Identity = Depends(require_admin),
        db: Session = Depends(get_db)
):
    return CouponService.create_coupon(db, request)


@router.patch("/{coupon_id}", response_model=CouponOut)
async def update_coupon(
        request: CouponUpdate,
        coupon_id: str = Path(..., description="The coupon ID"),
        admin: Identity = Depends(require_admin),
        db: Session = Depends(get_db)
):
    """Partial update. Deactivate with ``{"is_active": false}`` rather than deleting."""
    return CouponService.update_coupon(db, coupon_id, request)
