# ============================================================================
# therapy_booking/services/coupon/coupon_service.py
# ============================================================================
"""Coupon validation, redemption and administration"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, List

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from therapy_booking.core.exceptions import CouponInvalid, NotFoundError, ValidationError
from therapy_booking.models.coupon import Coupon
from therapy_booking.schemas.coupon import CouponCreate, CouponUpdate
from therapy_booking.utils.time_utils import as_utc, utcnow

logger = logging.getLogger(__name__)

REASON_MESSAGES = {
    "not_found": "Invalid coupon code",
    "inactive": "This coupon is no longer active",
    "not_yet_valid": "This coupon is not yet valid",
    "expired": "This coupon has expired",
    "below_minimum": "Order amount is below the minimum for this coupon",
    "exhausted": "This coupon has reached its usage limit",
    "no_discount": "No discount applies to this order",
}


@dataclass
class CouponValidation:
    valid: bool
    code: str
    discount_amount: int = 0
    reason: Optional[str] = None
    coupon: Optional[Coupon] = None

    @property
    def message(self) -> Optional[str]:
        return REASON_MESSAGES.get(self.reason) if self.reason else None


class CouponService:
    """
    Validation never changes ``used_count``; only a captured payment redeems a
    coupon, so abandoned checkouts cannot exhaust a limited code.
    """

    @staticmethod
    def normalize_code(code: str) -> str:
        return (code or "").strip().upper()

    @staticmethod
    def validate(
            db: Session,
            code: str,
            order_amount: int,
            now: Optional[datetime] = None
    ) -> CouponValidation:
        """Check a code against an order amount. Short-circuits on the first failure."""
        normalized = CouponService.normalize_code(code)
        if not isinstance(order_amount, int) or order_amount < 0:
            raise ValidationError("Order amount must be a non-negative integer in minor units")

        coupon = CouponService.get_by_code(db, normalized)
        if coupon is None:
            return CouponValidation(valid=False, code=normalized, reason="not_found")
        if not coupon.is_active:
            return CouponValidation(valid=False, code=normalized, reason="inactive", coupon=coupon)

        now = as_utc(now) or utcnow()
        if coupon.valid_from and as_utc(coupon.valid_from) > now:
            return CouponValidation(valid=False, code=normalized, reason="not_yet_valid", coupon=coupon)
        if coupon.valid_until and as_utc(coupon.valid_until) < now:
            return CouponValidation(valid=False, code=normalized, reason="expired", coupon=coupon)

        if order_amount < (coupon.min_amount_minor or 0):
            return CouponValidation(valid=False, code=normalized, reason="below_minimum", coupon=coupon)

        if coupon.max_uses is not None and (coupon.used_count or 0) >= coupon.max_uses:
            return CouponValidation(valid=False, code=normalized, reason="exhausted", coupon=coupon)

        discount = CouponService.compute_discount(coupon, order_amount)
        if discount <= 0:
            return CouponValidation(valid=False, code=normalized, reason="no_discount", coupon=coupon)

        return CouponValidation(valid=True, code=coupon.code, discount_amount=discount, coupon=coupon)

    @staticmethod
    def apply(
            db: Session,
            code: str,
            order_amount: int,
            now: Optional[datetime] = None
    ) -> CouponValidation:
        """Like ``validate`` but raises ``CouponInvalid`` with the specific reason"""
        result = CouponService.validate(db, code, order_amount, now)
        if not result.valid:
            raise CouponInvalid(result.reason, result.message)
        return result

    @staticmethod
    def compute_discount(coupon: Coupon, order_amount: int) -> int:
        if coupon.discount_type == "percent":
            pct = min(100, max(0, coupon.discount_value))
            return (order_amount * pct) // 100
        # fixed, never more than the order itself
        return min(order_amount, coupon.discount_value)

    @staticmethod
    def redeem(db: Session, code: str) -> bool:
        """
        Count one use for a paid order. Stages the update in the caller's
        transaction; returns False if the cap was reached in the meantime.
        """
        normalized = CouponService.normalize_code(code)
        updated = db.query(Coupon).filter(
            Coupon.code == normalized,
            or_(Coupon.max_uses.is_(None), Coupon.used_count < Coupon.max_uses)
        ).update({"used_count": Coupon.used_count + 1}, synchronize_session=False)

        if updated == 0:
            logger.warning(f"Coupon {normalized} could not be redeemed (missing or cap reached)")
            return False

        logger.info(f"Coupon {normalized} redeemed")
        return True

    @staticmethod
    def get_by_code(db: Session, code: str) -> Optional[Coupon]:
        normalized = CouponService.normalize_code(code)
        if not normalized:
            return None
        return db.query(Coupon).filter(func.upper(Coupon.code) == normalized).first()

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    @staticmethod
    def create_coupon(db: Session, data: CouponCreate) -> Coupon:
        coupon = Coupon(
            code=CouponService.normalize_code(data.code),
            discount_type=data.discount_type,
            discount_value=data.discount_value,
            min_amount_minor=data.min_amount_minor,
            valid_from=data.valid_from,
            valid_until=data.valid_until,
            max_uses=data.max_uses,
            is_active=data.is_active,
            description=data.description,
            used_count=0,
        )
        db.add(coupon)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise ValidationError(f"Coupon code {coupon.code} already exists", field="code") from exc
        db.refresh(coupon)
        logger.info(f"Coupon {coupon.code} created")
        return coupon

    @staticmethod
    def update_coupon(db: Session, coupon_id: str, data: CouponUpdate) -> Coupon:
        coupon = db.query(Coupon).filter(Coupon.id == coupon_id).first()
        if not coupon:
            raise NotFoundError("Coupon not found", coupon_id=coupon_id)

        changes = data.model_dump(exclude_unset=True)
        for field, value in changes.items():
            setattr(coupon, field, value)

        if coupon.discount_type == "percent" and not 1 <= coupon.discount_value <= 100:
            db.rollback()
            raise ValidationError("Percent discount must be between 1 and 100", field="discount_value")
        if coupon.max_uses is not None and coupon.used_count > coupon.max_uses:
            db.rollback()
            raise ValidationError("max_uses cannot be lower than the current use count", field="max_uses")

        db.commit()
        db.refresh(coupon)
        return coupon

    @staticmethod
    def list_coupons(db: Session, active_only: bool = False) -> List[Coupon]:
        query = db.query(Coupon)
        if active_only:
            query = query.filter(Coupon.is_active.is_(True))
        return query.order_by(Coupon.created_at.desc()).all()
