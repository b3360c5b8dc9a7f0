# ============================================================================
# therapy_booking/services/payment/payment_service.py
# Payment order / capture / refund tracker
# ============================================================================
"""
Tracks a payment from order creation to capture and, optionally, refund.

The only source of truth for "paid" is a server-side signature check (or a
signed gateway webhook). Whatever the browser says about a payment is
advisory.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Dict, Any, List

from sqlalchemy import and_
from sqlalchemy.orm import Session

from therapy_booking.config.settings import get_settings
from therapy_booking.core.exceptions import (
    BookingDomainError,
    NotFoundError,
    PaymentLinkError,
    PaymentMismatchError,
    PaymentStateError,
    ValidationError,
    VerificationError,
)
from therapy_booking.core.identity import Identity, SYSTEM_ACTOR
from therapy_booking.models.booking import Booking, BookingStatus
from therapy_booking.models.payment import Payment, PaymentStatus
from therapy_booking.services.booking.booking_service import BookingService
from therapy_booking.services.coupon.coupon_service import CouponService
from therapy_booking.services.payment.pricing import FREE_CONSULTATION, get_price
from therapy_booking.services.payment.razorpay_gateway import RazorpayGateway
from therapy_booking.services.refund.refund_policy import RefundPolicy
from therapy_booking.utils.time_utils import as_utc, utcnow

logger = logging.getLogger(__name__)

MOCK_PAYMENT_PREFIX = "pay_mock_"
FREE_ORDER_PREFIX = "free_"


@dataclass
class OrderResult:
    payment: Payment
    key_id: Optional[str]
    list_amount: int
    discount_amount: int = 0
    coupon_code: Optional[str] = None

    @property
    def free_consultation(self) -> bool:
        return bool((self.payment.metadata_ or {}).get("free_consultation"))


@dataclass
class RefundResult:
    payment: Payment
    amount: int
    is_full_refund: bool
    mode: str  # "gateway" or "local"


class PaymentService:
    """Service for payment orders, capture, linking and refunds"""

    def __init__(
            self,
            db: Session,
            gateway: Optional[RazorpayGateway] = None,
            refund_policy: Optional[RefundPolicy] = None
    ):
        self.db = db
        self.gateway = gateway or RazorpayGateway()
        self.refund_policy = refund_policy or RefundPolicy()

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    async def create_order(
            self,
            amount_minor: int,
            currency: Optional[str] = None,
            free_consultation: bool = False,
            metadata: Optional[Dict[str, Any]] = None,
            actor: Optional[Identity] = None
    ) -> Payment:
        """
        Open a gateway order and record a pending payment for it.

        Zero is only accepted for the free consultation product, which never
        touches the gateway and is recorded as paid straight away.
        """
        currency = (currency or get_settings().DEFAULT_CURRENCY).upper()
        if isinstance(amount_minor, bool) or not isinstance(amount_minor, int):
            raise ValidationError("Amount must be an integer in minor currency units", field="amount")

        metadata = dict(metadata or {})

        if free_consultation:
            if amount_minor != 0:
                raise ValidationError("Free consultation orders must have a zero amount", field="amount")
            metadata["free_consultation"] = True
            payment = Payment(
                gateway_order_id=f"{FREE_ORDER_PREFIX}{uuid.uuid4().hex[:20]}",
                amount_minor=0,
                currency=currency,
                status=PaymentStatus.PAID.value,
                paid_at=utcnow(),
                user_id=actor.user_id if actor else None,
                metadata_=metadata,
            )
            self.db.add(payment)
            self.db.commit()
            self.db.refresh(payment)
            logger.info(f"Free consultation order {payment.gateway_order_id} recorded")
            return payment

        if amount_minor <= 0:
            raise ValidationError("Amount must be positive", field="amount")

        receipt = f"receipt_{uuid.uuid4().hex[:16]}"
        notes = {k: str(v) for k, v in metadata.items() if k in ("session_type", "session_format", "coupon_code")}
        order = await self.gateway.create_order(amount_minor, currency, receipt, notes)

        payment = Payment(
            gateway_order_id=order["id"],
            amount_minor=amount_minor,
            currency=currency,
            status=PaymentStatus.PENDING.value,
            user_id=actor.user_id if actor else None,
            metadata_=dict(metadata, receipt=receipt),
        )
        self.db.add(payment)
        self.db.commit()
        self.db.refresh(payment)

        logger.info(f"Order {payment.gateway_order_id} created for {amount_minor} {currency}")
        return payment

    async def create_checkout_order(
            self,
            session_type: str,
            session_format: str,
            coupon_code: Optional[str] = None,
            customer: Optional[Dict[str, Any]] = None,
            actor: Optional[Identity] = None,
            now: Optional[datetime] = None
    ) -> OrderResult:
        """Price a product server-side, apply an optional coupon and open the order"""
        settings = get_settings()
        price = get_price(session_type, session_format, settings.DEFAULT_CURRENCY)
        if price is None:
            raise ValidationError(
                f"{session_format} sessions are not offered for {session_type}",
                field="session_format",
            )

        metadata: Dict[str, Any] = {
            "session_type": session_type,
            "session_format": session_format,
            "list_amount": price.amount_minor,
        }
        if customer:
            metadata["customer"] = customer

        if session_type == FREE_CONSULTATION:
            payment = await self.create_order(
                0, price.currency, free_consultation=True, metadata=metadata, actor=actor
            )
            return OrderResult(payment=payment, key_id=None, list_amount=0)

        discount = 0
        applied_code = None
        if coupon_code:
            applied = CouponService.apply(self.db, coupon_code, price.amount_minor, now)
            discount = applied.discount_amount
            applied_code = applied.code
            metadata["coupon_code"] = applied_code
            metadata["discount_amount"] = discount

        payable = price.amount_minor - discount
        if payable <= 0:
            raise ValidationError(
                "Payable amount must be positive; use the free consultation for zero-cost sessions",
                field="coupon_code",
            )

        payment = await self.create_order(payable, price.currency, metadata=metadata, actor=actor)
        return OrderResult(
            payment=payment,
            key_id=self.gateway.key_id,
            list_amount=price.amount_minor,
            discount_amount=discount,
            coupon_code=applied_code,
        )

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------

    def verify_and_capture(
            self,
            gateway_order_id: str,
            gateway_payment_id: str,
            signature: str,
            now: Optional[datetime] = None
    ) -> Payment:
        """
        Check the gateway signature over ``order_id|payment_id`` and only then
        mark the payment paid. Fails closed: a mismatch leaves the payment
        pending and never confirms a booking.
        """
        payment = self._get_by_order(gateway_order_id)

        if not self.gateway.verify_payment_signature(gateway_order_id, gateway_payment_id, signature):
            logger.warning(
                f"Signature mismatch for order {gateway_order_id} (payment {gateway_payment_id}); "
                f"flagged for review"
            )
            raise VerificationError(
                "Invalid payment signature",
                order_id=gateway_order_id,
            )

        return self._capture(payment, gateway_payment_id, signature, now)

    def capture_from_webhook(
            self,
            gateway_order_id: str,
            gateway_payment_id: str,
            now: Optional[datetime] = None
    ) -> Payment:
        """Capture reported by a webhook whose body signature was already verified"""
        payment = self._get_by_order(gateway_order_id)
        return self._capture(payment, gateway_payment_id, None, now)

    def mark_failed(self, gateway_order_id: str, reason: Optional[str] = None) -> Payment:
        payment = self._get_by_order(gateway_order_id)
        if payment.status == PaymentStatus.FAILED.value:
            return payment

        metadata = dict(payment.metadata_ or {}, failure_reason=reason)
        updated = self.db.query(Payment).filter(
            Payment.id == payment.id,
            Payment.status == PaymentStatus.PENDING.value
        ).update({Payment.status: PaymentStatus.FAILED.value, Payment.metadata_: metadata},
                 synchronize_session=False)

        if updated == 0:
            self.db.rollback()
            raise PaymentStateError(
                f"Only pending payments can fail (payment is {payment.status})",
                order_id=gateway_order_id,
            )

        self.db.commit()
        self.db.refresh(payment)
        logger.info(f"Payment for order {gateway_order_id} failed: {reason}")
        return payment

    def _capture(
            self,
            payment: Payment,
            gateway_payment_id: str,
            signature: Optional[str],
            now: Optional[datetime]
    ) -> Payment:
        if payment.status == PaymentStatus.PAID.value:
            if payment.gateway_payment_id == gateway_payment_id:
                return payment  # already captured, e.g. webhook and client both reported
            raise PaymentStateError(
                "Order was already paid by a different payment",
                order_id=payment.gateway_order_id,
            )
        if payment.status != PaymentStatus.PENDING.value:
            raise PaymentStateError(
                f"Cannot capture a {payment.status} payment",
                order_id=payment.gateway_order_id,
            )

        paid_at = as_utc(now) or utcnow()
        updated = self.db.query(Payment).filter(
            Payment.id == payment.id,
            Payment.status == PaymentStatus.PENDING.value
        ).update({
            "status": PaymentStatus.PAID.value,
            "gateway_payment_id": gateway_payment_id,
            "gateway_signature": signature,
            "paid_at": paid_at,
        }, synchronize_session=False)

        if updated == 0:
            # Lost a race against another capture of the same order
            self.db.rollback()
            self.db.refresh(payment)
            if payment.status == PaymentStatus.PAID.value and payment.gateway_payment_id == gateway_payment_id:
                return payment
            raise PaymentStateError("Payment changed concurrently", order_id=payment.gateway_order_id)

        # Coupon use counts only once the money is in, in the same transaction.
        if payment.coupon_code:
            CouponService.redeem(self.db, payment.coupon_code)

        self.db.commit()
        self.db.refresh(payment)
        logger.info(f"Payment {gateway_payment_id} captured for order {payment.gateway_order_id}")

        if payment.booking_id:
            self._confirm_booking(payment.booking_id)
        return payment

    def _confirm_booking(self, booking_id: str) -> None:
        booking = self.db.query(Booking).filter(Booking.id == booking_id).first()
        if booking is None or booking.status != BookingStatus.PENDING.value:
            return
        try:
            BookingService.transition(self.db, booking_id, BookingStatus.CONFIRMED, SYSTEM_ACTOR)
        except BookingDomainError as e:
            logger.warning(f"Paid booking {booking_id} could not be confirmed: {e.message}")

    # ------------------------------------------------------------------
    # Linking
    # ------------------------------------------------------------------

    def link_to_booking(self, gateway_order_id: str, booking_id: str) -> Payment:
        """
        Attach a payment to a booking created after it. Re-linking the same
        pair is a no-op; linking to a second booking is rejected.
        """
        payment = self._get_by_order(gateway_order_id)
        booking = BookingService.get_booking(self.db, booking_id)

        if payment.booking_id == booking.id:
            return payment
        if payment.booking_id is not None:
            raise PaymentLinkError(
                "Payment is already linked to another booking",
                order_id=gateway_order_id,
            )
        if payment.status in (PaymentStatus.FAILED.value, PaymentStatus.REFUNDED.value):
            raise PaymentStateError(
                f"Cannot link a {payment.status} payment",
                order_id=gateway_order_id,
            )
        self._check_product_matches(payment, booking)

        effective = self._effective_payment_for(booking.id)
        if effective is not None:
            raise PaymentLinkError(
                "Booking already has an active payment",
                booking_id=booking.id,
            )

        updated = self.db.query(Payment).filter(
            Payment.id == payment.id,
            Payment.booking_id.is_(None)
        ).update({"booking_id": booking.id}, synchronize_session=False)

        if updated == 0:
            self.db.rollback()
            self.db.refresh(payment)
            if payment.booking_id == booking.id:
                return payment
            raise PaymentLinkError("Payment is already linked to another booking", order_id=gateway_order_id)

        self.db.commit()
        self.db.refresh(payment)
        logger.info(f"Order {gateway_order_id} linked to booking {booking.id}")

        if payment.status == PaymentStatus.PAID.value:
            self._confirm_booking(booking.id)
        return payment

    @staticmethod
    def _check_product_matches(payment: Payment, booking: Booking) -> None:
        """A payment may only settle the product it was priced for"""
        metadata = payment.metadata_ or {}
        paid_free = bool(metadata.get("free_consultation"))

        if paid_free != booking.is_free_consultation:
            logger.warning(
                f"Rejected link of order {payment.gateway_order_id} to booking {booking.id}: "
                f"free consultation mismatch"
            )
            raise PaymentMismatchError(
                "Free consultation orders only settle free consultation bookings",
                order_id=payment.gateway_order_id,
                booking_id=booking.id,
            )
        if paid_free:
            return

        if (metadata.get("session_type"), metadata.get("session_format")) != \
                (booking.session_type, booking.session_format):
            logger.warning(
                f"Rejected link of order {payment.gateway_order_id} "
                f"({metadata.get('session_type')}/{metadata.get('session_format')}) to booking {booking.id} "
                f"({booking.session_type}/{booking.session_format})"
            )
            raise PaymentMismatchError(
                "Payment was made for a different session",
                order_id=payment.gateway_order_id,
                booking_id=booking.id,
            )

    # ------------------------------------------------------------------
    # Refunds
    # ------------------------------------------------------------------

    async def refund(
            self,
            booking_id: Optional[str] = None,
            gateway_payment_id: Optional[str] = None,
            now: Optional[datetime] = None
    ) -> RefundResult:
        """
        Refund the paid payment behind a booking or gateway payment id.

        On any gateway failure the payment stays ``paid`` and the error
        propagates. There is no automatic retry.
        """
        if not booking_id and not gateway_payment_id:
            raise ValidationError("Provide booking_id or razorpay_payment_id")

        payment, booking = self._resolve_refundable(booking_id, gateway_payment_id)
        decision = self.refund_policy.compute_refund(booking, payment, now)

        is_local = (
            payment.amount_minor == 0
            or not payment.gateway_payment_id
            or payment.gateway_payment_id.startswith(MOCK_PAYMENT_PREFIX)
        )

        refund_id = None
        if is_local:
            mode = "local"
        else:
            if decision.amount <= 0:
                raise ValidationError("No refundable amount for this payment")
            try:
                response = await self.gateway.refund(
                    payment.gateway_payment_id,
                    amount_minor=None if decision.is_full_refund else decision.amount,
                    notes={"booking_id": payment.booking_id or "", "reason": "cancellation"},
                )
            except BookingDomainError as e:
                logger.error(
                    f"Refund of {decision.amount} failed for payment {payment.id} "
                    f"(booking {payment.booking_id}): {e.message}; payment stays paid"
                )
                raise
            refund_id = response.get("id")
            mode = "gateway"

        refunded_at = as_utc(now) or utcnow()
        updated = self.db.query(Payment).filter(
            Payment.id == payment.id,
            Payment.status == PaymentStatus.PAID.value
        ).update({
            "status": PaymentStatus.REFUNDED.value,
            "refunded_at": refunded_at,
            "refund_amount_minor": decision.amount,
            "gateway_refund_id": refund_id,
        }, synchronize_session=False)

        if updated == 0:
            self.db.rollback()
            logger.error(
                f"Refund {refund_id} issued but payment {payment.id} was no longer paid; "
                f"reconcile manually"
            )
            raise PaymentStateError("Payment changed while refunding", payment_id=payment.id)

        self.db.commit()
        self.db.refresh(payment)
        logger.info(
            f"Payment {payment.id} refunded {decision.amount}/{payment.amount_minor} "
            f"{payment.currency} ({mode})"
        )
        return RefundResult(
            payment=payment,
            amount=decision.amount,
            is_full_refund=decision.is_full_refund,
            mode=mode,
        )

    def _resolve_refundable(self, booking_id: Optional[str], gateway_payment_id: Optional[str]):
        booking = None
        if booking_id:
            booking = BookingService.get_booking(self.db, booking_id)
            payment = self.db.query(Payment).filter(
                Payment.booking_id == booking_id,
                Payment.status == PaymentStatus.PAID.value
            ).first()
        else:
            payment = self.db.query(Payment).filter(
                Payment.gateway_payment_id == gateway_payment_id,
                Payment.status == PaymentStatus.PAID.value
            ).first()
            if payment and payment.booking_id:
                booking = self.db.query(Booking).filter(Booking.id == payment.booking_id).first()

        if payment is None:
            raise NotFoundError(
                "No paid payment found for this booking/payment",
                booking_id=booking_id,
                payment_id=gateway_payment_id,
            )
        return payment, booking

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_by_order(self, gateway_order_id: str) -> Payment:
        return self._get_by_order(gateway_order_id)

    def paid_payment_for(self, booking_id: str) -> Optional[Payment]:
        return self.db.query(Payment).filter(
            Payment.booking_id == booking_id,
            Payment.status == PaymentStatus.PAID.value
        ).first()

    def list_payments(self, status: Optional[str] = None, skip: int = 0, limit: int = 50) -> List[Payment]:
        query = self.db.query(Payment)
        if status:
            query = query.filter(Payment.status == status)
        return query.order_by(Payment.created_at.desc()).offset(skip).limit(limit).all()

    @staticmethod
    def unrefunded_cancellations(db: Session) -> List[Dict[str, Any]]:
        """Cancelled bookings whose payment is still paid. Read-only."""
        rows = db.query(Booking, Payment).join(
            Payment, and_(Payment.booking_id == Booking.id, Payment.status == PaymentStatus.PAID.value)
        ).filter(
            Booking.status == BookingStatus.CANCELLED.value,
            Payment.amount_minor > 0
        ).order_by(Booking.cancelled_at.asc()).all()

        return [
            {
                "booking_id": booking.id,
                "customer_email": booking.customer_email,
                "scheduled_date": booking.scheduled_date.isoformat(),
                "scheduled_time": booking.scheduled_time,
                "cancelled_at": booking.cancelled_at.isoformat() if booking.cancelled_at else None,
                "payment_id": payment.id,
                "gateway_payment_id": payment.gateway_payment_id,
                "amount_minor": payment.amount_minor,
                "currency": payment.currency,
            }
            for booking, payment in rows
        ]

    def _get_by_order(self, gateway_order_id: str) -> Payment:
        payment = self.db.query(Payment).filter(Payment.gateway_order_id == gateway_order_id).first()
        if not payment:
            raise NotFoundError("Payment order not found", order_id=gateway_order_id)
        return payment

    def _effective_payment_for(self, booking_id: str) -> Optional[Payment]:
        return self.db.query(Payment).filter(
            Payment.booking_id == booking_id,
            Payment.status.in_([PaymentStatus.PENDING.value, PaymentStatus.PAID.value])
        ).first()
