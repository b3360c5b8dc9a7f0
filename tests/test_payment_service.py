from datetime import datetime, timedelta, timezone

import pytest

from conftest import (
    USER,
    make_booking,
    make_coupon,
    make_paid_payment,
    next_open_weekday,
    session_start,
    sign,
)
from therapy_booking.core.exceptions import (
    CouponInvalid,
    GatewayError,
    GatewayTimeout,
    NotFoundError,
    PaymentLinkError,
    PaymentMismatchError,
    PaymentStateError,
    RefundPolicyUndefined,
    ValidationError,
    VerificationError,
)
from therapy_booking.models import Booking, BookingStatus, Payment, PaymentStatus
from therapy_booking.models.booking import FREE_CONSULTATION_MARKER
from therapy_booking.services.booking.cancellation_service import CancellationService
from therapy_booking.services.payment.payment_service import PaymentService


# ============================================================================
# Orders
# ============================================================================

async def test_create_order_records_pending_payment(payment_service, fake_razorpay):
    payment = await payment_service.create_order(150000, "inr", metadata={"session_type": "couples"})

    assert payment.status == PaymentStatus.PENDING.value
    assert payment.amount_minor == 150000
    assert payment.currency == "INR"
    assert payment.gateway_order_id.startswith("order_")
    method, path, body = fake_razorpay.calls_to("/orders")[0]
    assert body["amount"] == 150000
    assert body["notes"] == {"session_type": "couples"}


@pytest.mark.parametrize("amount", [0, -100, 100.5])
async def test_create_order_rejects_bad_amounts(payment_service, fake_razorpay, amount):
    with pytest.raises(ValidationError):
        await payment_service.create_order(amount, "INR")
    assert fake_razorpay.requests == []


async def test_free_consultation_skips_gateway(payment_service, fake_razorpay):
    result = await payment_service.create_checkout_order("free", "video", customer={"email": "a@b.co"})

    assert result.free_consultation is True
    assert result.payment.status == PaymentStatus.PAID.value
    assert result.payment.amount_minor == 0
    assert result.payment.gateway_order_id.startswith("free_")
    assert result.payment.metadata_["customer"] == {"email": "a@b.co"}
    assert fake_razorpay.requests == []


async def test_checkout_prices_server_side_and_applies_coupon(payment_service, db, fake_razorpay):
    make_coupon(db, code="WELCOME10", discount_value=10)

    result = await payment_service.create_checkout_order("couples", "audio", coupon_code="welcome10")

    assert result.list_amount == 149900
    assert result.discount_amount == 14990
    assert result.payment.amount_minor == 134910
    assert result.coupon_code == "WELCOME10"
    assert result.key_id == "rzp_test_key"
    assert result.payment.coupon_code == "WELCOME10"


async def test_checkout_rejects_invalid_coupon_before_gateway(payment_service, db, fake_razorpay):
    make_coupon(db, code="EXPIRED5", valid_until=datetime.now(timezone.utc) - timedelta(days=1))

    with pytest.raises(CouponInvalid) as exc_info:
        await payment_service.create_checkout_order("individual", "video", coupon_code="EXPIRED5")

    assert exc_info.value.reason == "expired"
    assert fake_razorpay.requests == []


async def test_checkout_rejects_coupon_that_zeroes_the_price(payment_service, db):
    make_coupon(db, code="ALL", discount_value=100)

    with pytest.raises(ValidationError):
        await payment_service.create_checkout_order("individual", "chat", coupon_code="ALL")


async def test_checkout_rejects_disabled_format(payment_service):
    with pytest.raises(ValidationError):
        await payment_service.create_checkout_order("family", "chat")


# ============================================================================
# Capture
# ============================================================================

async def _pending_order(payment_service, amount=150000, **metadata):
    metadata.setdefault("session_type", "individual")
    metadata.setdefault("session_format", "video")
    return await payment_service.create_order(amount, "INR", metadata=metadata)


async def test_verify_and_capture_marks_paid(payment_service):
    payment = await _pending_order(payment_service)
    order_id = payment.gateway_order_id

    captured = payment_service.verify_and_capture(order_id, "pay_abc", sign(order_id, "pay_abc"))

    assert captured.status == PaymentStatus.PAID.value
    assert captured.gateway_payment_id == "pay_abc"
    assert captured.paid_at is not None


async def test_tampered_signature_leaves_payment_and_booking_pending(payment_service, db):
    booking = make_booking(db, status=BookingStatus.PENDING)
    payment = await _pending_order(payment_service)
    payment_service.link_to_booking(payment.gateway_order_id, booking.id)

    forged = sign(payment.gateway_order_id, "pay_other")
    with pytest.raises(VerificationError) as exc_info:
        payment_service.verify_and_capture(payment.gateway_order_id, "pay_abc", forged)

    assert exc_info.value.code == "signature_invalid"
    db.expire_all()
    assert db.query(Payment).filter(Payment.id == payment.id).one().status == "pending"
    assert db.query(Booking).filter(Booking.id == booking.id).one().status == "pending"


async def test_signature_from_wrong_secret_is_rejected(payment_service):
    payment = await _pending_order(payment_service)
    bad = sign(payment.gateway_order_id, "pay_abc", secret="someone-elses-secret")

    with pytest.raises(VerificationError):
        payment_service.verify_and_capture(payment.gateway_order_id, "pay_abc", bad)


async def test_capture_is_idempotent_for_same_payment(payment_service):
    payment = await _pending_order(payment_service)
    order_id = payment.gateway_order_id
    signature = sign(order_id, "pay_abc")

    first = payment_service.verify_and_capture(order_id, "pay_abc", signature)
    second = payment_service.verify_and_capture(order_id, "pay_abc", signature)

    assert first.id == second.id
    assert second.status == "paid"


async def test_capture_with_different_payment_id_is_rejected(payment_service):
    payment = await _pending_order(payment_service)
    order_id = payment.gateway_order_id
    payment_service.verify_and_capture(order_id, "pay_abc", sign(order_id, "pay_abc"))

    with pytest.raises(PaymentStateError):
        payment_service.verify_and_capture(order_id, "pay_xyz", sign(order_id, "pay_xyz"))


async def test_capture_unknown_order(payment_service):
    with pytest.raises(NotFoundError):
        payment_service.verify_and_capture("order_missing", "pay_abc", "sig")


async def test_capture_redeems_coupon_once(payment_service, db):
    coupon = make_coupon(db, code="WELCOME10", max_uses=5)
    result = await payment_service.create_checkout_order("individual", "video", coupon_code="WELCOME10")
    order_id = result.payment.gateway_order_id
    signature = sign(order_id, "pay_abc")

    payment_service.verify_and_capture(order_id, "pay_abc", signature)
    payment_service.verify_and_capture(order_id, "pay_abc", signature)

    db.refresh(coupon)
    assert coupon.used_count == 1


async def test_capture_confirms_linked_pending_booking(payment_service, db):
    booking = make_booking(db, status=BookingStatus.PENDING)
    payment = await _pending_order(payment_service)
    payment_service.link_to_booking(payment.gateway_order_id, booking.id)

    payment_service.verify_and_capture(
        payment.gateway_order_id, "pay_abc", sign(payment.gateway_order_id, "pay_abc")
    )

    db.refresh(booking)
    assert booking.status == BookingStatus.CONFIRMED.value


async def test_failed_payment_cannot_be_captured(payment_service):
    payment = await _pending_order(payment_service)
    payment_service.mark_failed(payment.gateway_order_id, "card declined")

    assert payment.status == "failed"
    assert payment.metadata_["failure_reason"] == "card declined"
    with pytest.raises(PaymentStateError):
        payment_service.verify_and_capture(
            payment.gateway_order_id, "pay_abc", sign(payment.gateway_order_id, "pay_abc")
        )


# ============================================================================
# Linking
# ============================================================================

async def test_link_paid_payment_confirms_booking(payment_service, db):
    payment = await _pending_order(payment_service)
    order_id = payment.gateway_order_id
    payment_service.verify_and_capture(order_id, "pay_abc", sign(order_id, "pay_abc"))
    booking = make_booking(db, status=BookingStatus.PENDING)

    linked = payment_service.link_to_booking(order_id, booking.id)

    assert linked.booking_id == booking.id
    db.refresh(booking)
    assert booking.status == "confirmed"


async def test_link_is_idempotent(payment_service, db):
    booking = make_booking(db, status=BookingStatus.PENDING)
    payment = await _pending_order(payment_service)

    payment_service.link_to_booking(payment.gateway_order_id, booking.id)
    again = payment_service.link_to_booking(payment.gateway_order_id, booking.id)

    assert again.booking_id == booking.id


async def test_link_to_second_booking_is_rejected(payment_service, db):
    first = make_booking(db, hhmm="09:00", status=BookingStatus.PENDING)
    second = make_booking(db, hhmm="10:00", status=BookingStatus.PENDING)
    payment = await _pending_order(payment_service)
    payment_service.link_to_booking(payment.gateway_order_id, first.id)

    with pytest.raises(PaymentLinkError):
        payment_service.link_to_booking(payment.gateway_order_id, second.id)


async def test_booking_accepts_only_one_active_payment(payment_service, db):
    booking = make_booking(db, status=BookingStatus.PENDING)
    first = await _pending_order(payment_service)
    second = await _pending_order(payment_service)
    payment_service.link_to_booking(first.gateway_order_id, booking.id)

    with pytest.raises(PaymentLinkError):
        payment_service.link_to_booking(second.gateway_order_id, booking.id)


async def test_failed_payment_cannot_be_linked(payment_service, db):
    booking = make_booking(db, status=BookingStatus.PENDING)
    payment = await _pending_order(payment_service)
    payment_service.mark_failed(payment.gateway_order_id, "declined")

    with pytest.raises(PaymentStateError):
        payment_service.link_to_booking(payment.gateway_order_id, booking.id)


async def test_free_order_cannot_settle_paid_booking(payment_service, db):
    free = (await payment_service.create_checkout_order("free", "video")).payment
    booking = make_booking(db, status=BookingStatus.PENDING, session_type="family", session_format="video",
                           duration_minutes=90)

    with pytest.raises(PaymentMismatchError) as exc_info:
        payment_service.link_to_booking(free.gateway_order_id, booking.id)

    assert exc_info.value.status_code == 409
    db.expire_all()
    assert db.query(Booking).filter(Booking.id == booking.id).one().status == "pending"
    assert db.query(Payment).filter(Payment.id == free.id).one().booking_id is None


async def test_cheaper_order_cannot_settle_expensive_booking(payment_service, db):
    cheap = (await payment_service.create_checkout_order("individual", "chat")).payment
    order_id = cheap.gateway_order_id
    payment_service.verify_and_capture(order_id, "pay_cheap", sign(order_id, "pay_cheap"))
    booking = make_booking(db, status=BookingStatus.PENDING, session_type="family", session_format="video")

    with pytest.raises(PaymentMismatchError):
        payment_service.link_to_booking(order_id, booking.id)

    db.refresh(booking)
    assert booking.status == "pending"


async def test_paid_order_cannot_settle_free_booking(payment_service, db):
    payment = await _pending_order(payment_service)
    booking = make_booking(db, status=BookingStatus.PENDING, notes=FREE_CONSULTATION_MARKER, duration_minutes=15)

    with pytest.raises(PaymentMismatchError):
        payment_service.link_to_booking(payment.gateway_order_id, booking.id)


async def test_payment_without_product_cannot_be_linked(payment_service, db):
    payment = await payment_service.create_order(150000, "INR")
    booking = make_booking(db, status=BookingStatus.PENDING)

    with pytest.raises(PaymentMismatchError):
        payment_service.link_to_booking(payment.gateway_order_id, booking.id)


async def test_free_order_confirms_free_booking(payment_service, db):
    free = (await payment_service.create_checkout_order("free", "video")).payment
    booking = make_booking(db, status=BookingStatus.PENDING, notes=FREE_CONSULTATION_MARKER, duration_minutes=15)

    payment_service.link_to_booking(free.gateway_order_id, booking.id)

    db.refresh(booking)
    assert booking.status == "confirmed"


# ============================================================================
# Refunds
# ============================================================================

def _hours_before(booking, hours):
    return session_start(booking.scheduled_date, booking.scheduled_time) - timedelta(hours=hours)


async def test_refund_30_hours_ahead_is_full(payment_service, db, fake_razorpay):
    booking = make_booking(db)
    payment = make_paid_payment(db, booking, amount=150000)

    result = await payment_service.refund(booking_id=booking.id, now=_hours_before(booking, 30))

    assert result.amount == 150000
    assert result.is_full_refund is True
    assert result.mode == "gateway"
    assert result.payment.status == "refunded"
    assert result.payment.refund_amount_minor == 150000
    assert result.payment.gateway_refund_id.startswith("rfnd_")
    # Full refunds omit the amount so the gateway refunds the whole capture
    _, path, body = fake_razorpay.calls_to("/refund")[0]
    assert path.endswith(f"/payments/{payment.gateway_payment_id}/refund")
    assert "amount" not in body


async def test_refund_10_hours_ahead_is_half(payment_service, db, fake_razorpay):
    booking = make_booking(db)
    make_paid_payment(db, booking, amount=150000)

    result = await payment_service.refund(booking_id=booking.id, now=_hours_before(booking, 10))

    assert result.amount == 75000
    assert result.is_full_refund is False
    assert fake_razorpay.calls_to("/refund")[0][2]["amount"] == 75000


async def test_refund_after_start_is_undefined_and_keeps_payment_paid(payment_service, db, fake_razorpay):
    booking = make_booking(db)
    payment = make_paid_payment(db, booking)

    with pytest.raises(RefundPolicyUndefined):
        await payment_service.refund(booking_id=booking.id, now=_hours_before(booking, -1))

    db.refresh(payment)
    assert payment.status == "paid"
    assert fake_razorpay.requests == []


async def test_mock_and_zero_payments_refund_locally(payment_service, db, fake_razorpay):
    booking = make_booking(db)
    make_paid_payment(db, booking, payment_id="pay_mock_123", amount=50000)

    result = await payment_service.refund(booking_id=booking.id, now=_hours_before(booking, 48))

    assert result.mode == "local"
    assert result.payment.status == "refunded"
    assert fake_razorpay.requests == []


async def test_refund_by_gateway_payment_id_without_booking(payment_service, db):
    make_paid_payment(db, None, payment_id="pay_orphan", amount=90000)

    result = await payment_service.refund(gateway_payment_id="pay_orphan")

    assert result.amount == 90000
    assert result.is_full_refund is True


async def test_refund_twice_is_rejected(payment_service, db):
    booking = make_booking(db)
    make_paid_payment(db, booking)
    await payment_service.refund(booking_id=booking.id, now=_hours_before(booking, 30))

    with pytest.raises(NotFoundError):
        await payment_service.refund(booking_id=booking.id, now=_hours_before(booking, 30))


async def test_gateway_failure_leaves_payment_paid(payment_service, db, fake_razorpay):
    booking = make_booking(db)
    payment = make_paid_payment(db, booking)
    fake_razorpay.fail_refunds = True

    with pytest.raises(GatewayError) as exc_info:
        await payment_service.refund(booking_id=booking.id, now=_hours_before(booking, 30))

    assert exc_info.value.retryable is False
    db.refresh(payment)
    assert payment.status == "paid"


async def test_gateway_timeout_is_not_success(payment_service, db, fake_razorpay):
    booking = make_booking(db)
    payment = make_paid_payment(db, booking)
    fake_razorpay.timeout_refunds = True

    with pytest.raises(GatewayTimeout) as exc_info:
        await payment_service.refund(booking_id=booking.id, now=_hours_before(booking, 30))

    # The refund may have landed; clients must not blindly retry it
    assert exc_info.value.retryable is False
    db.refresh(payment)
    assert payment.status == "paid"


async def test_refund_requires_an_identifier(payment_service):
    with pytest.raises(ValidationError):
        await payment_service.refund()


# ============================================================================
# Cancellation and reconciliation
# ============================================================================

async def test_cancellation_refunds_paid_booking(payment_service, db):
    booking = make_booking(db)
    make_paid_payment(db, booking, amount=150000)

    result = await CancellationService.cancel(
        db, booking.id, USER, "travel", payment_service, now=_hours_before(booking, 30)
    )

    assert result.booking.status == "cancelled"
    assert result.refund.amount == 150000
    assert result.needs_reconciliation is False


async def test_cancellation_stands_when_refund_fails(payment_service, db, fake_razorpay):
    booking = make_booking(db)
    make_paid_payment(db, booking)
    fake_razorpay.fail_refunds = True

    result = await CancellationService.cancel(
        db, booking.id, USER, None, payment_service, now=_hours_before(booking, 30)
    )

    assert result.booking.status == "cancelled"
    assert result.refund is None
    assert result.needs_reconciliation is True
    pending = PaymentService.unrefunded_cancellations(db)
    assert [item["booking_id"] for item in pending] == [booking.id]


async def test_cancellation_without_payment(payment_service, db):
    booking = make_booking(db, status=BookingStatus.PENDING)

    result = await CancellationService.cancel(db, booking.id, USER, None, payment_service)

    assert result.booking.status == "cancelled"
    assert result.refund is None
    assert result.needs_reconciliation is False


async def test_reconciliation_ignores_refunded_and_active(payment_service, db):
    day = next_open_weekday()
    refunded = make_booking(db, day=day, hhmm="09:00", status=BookingStatus.CANCELLED)
    make_paid_payment(db, refunded, status=PaymentStatus.REFUNDED.value)
    active = make_booking(db, day=day, hhmm="10:00")
    make_paid_payment(db, active)

    assert PaymentService.unrefunded_cancellations(db) == []
