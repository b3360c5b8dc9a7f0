# ===== therapy_booking/models/coupon.py =====
from sqlalchemy import Column, String, Integer, Boolean, DateTime, Text, CheckConstraint

from therapy_booking.models.base import Base, new_id, utcnow


class Coupon(Base):
    __tablename__ = "coupons"

    id = Column(String(36), primary_key=True, default=new_id)
    code = Column(String(64), unique=True, nullable=False, index=True)  # stored upper-case

    # "percent" (1-100) or "fixed" (minor units)
    discount_type = Column(String(16), nullable=False, default="percent")
    discount_value = Column(Integer, nullable=False)

    # Optional constraints
    min_amount_minor = Column(Integer, nullable=False, default=0)
    valid_from = Column(DateTime(timezone=True), nullable=True)
    valid_until = Column(DateTime(timezone=True), nullable=True)
    max_uses = Column(Integer, nullable=True)
    used_count = Column(Integer, nullable=False, default=0)

    is_active = Column(Boolean, nullable=False, default=True)
    description = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("discount_type IN ('percent', 'fixed')", name="ck_coupons_discount_type"),
        CheckConstraint(
            "discount_type <> 'percent' OR (discount_value >= 1 AND discount_value <= 100)",
            name="ck_coupons_percent_range",
        ),
        CheckConstraint("discount_value > 0", name="ck_coupons_value_positive"),
        CheckConstraint("max_uses IS NULL OR used_count <= max_uses", name="ck_coupons_usage_cap"),
    )

    def __repr__(self):
        return f"<Coupon {self.code} {self.discount_type}:{self.discount_value}>"
