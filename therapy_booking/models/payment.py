# ===== therapy_booking/models/payment.py =====
from sqlalchemy import Column, String, Integer, DateTime, JSON, ForeignKey, Index, CheckConstraint
import enum

from therapy_booking.models.base import Base, new_id, utcnow


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=new_id)

    # Nullable: the order usually exists before the booking does
    booking_id = Column(String(36), ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True, index=True)
    user_id = Column(String(64), nullable=True)

    # Gateway references
    gateway_order_id = Column(String(64), nullable=False, unique=True, index=True)
    gateway_payment_id = Column(String(64), nullable=True, unique=True)
    gateway_signature = Column(String(128), nullable=True)
    gateway_refund_id = Column(String(64), nullable=True)

    # Money, always integer minor units
    amount_minor = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="INR")
    refund_amount_minor = Column(Integer, nullable=True)

    status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)

    # Customer snapshot, coupon applied, pricing, failure reasons
    metadata_ = Column("metadata", JSON, default=dict)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'paid', 'failed', 'refunded')",
            name="ck_payments_status",
        ),
        CheckConstraint("amount_minor >= 0", name="ck_payments_amount_non_negative"),
        Index("ix_payments_booking_status", "booking_id", "status"),
    )

    @property
    def coupon_code(self):
        return (self.metadata_ or {}).get("coupon_code")

    def __repr__(self):
        return f"<Payment {self.gateway_order_id} {self.amount_minor} {self.currency} ({self.status})>"
