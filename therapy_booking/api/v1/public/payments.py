# ============================================================================
# therapy_booking/api/v1/public/payments.py
# Checkout endpoints: create order, verify, link, refund
# ============================================================================
from typing import Optional

from fastapi import APIRouter, Depends

from therapy_booking.api.dependencies import get_optional_identity, get_payment_service, require_admin
from therapy_booking.core.identity import Identity
from therapy_booking.schemas.payment import (
    CreateOrderRequest,
    LinkPaymentRequest,
    OrderResponse,
    PaymentOut,
    RefundRequest,
    RefundResponse,
    VerifyPaymentRequest,
)
from therapy_booking.services.payment.payment_service import PaymentService

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/create-order", response_model=OrderResponse)
async def create_order(
        request: CreateOrderRequest,
        identity: Optional[Identity] = Depends(get_optional_identity),
        payment_service: PaymentService = Depends(get_payment_service)
):
    """
    Open a checkout order. The amount comes from the server-side price list
    and an optional coupon; the client never sends one.
    """
    result = await payment_service.create_checkout_order(
        session_type=request.session_type,
        session_format=request.session_format,
        coupon_code=request.coupon_code,
        customer=request.customer.model_dump() if request.customer else None,
        actor=identity,
    )
    return OrderResponse(
        order_id=result.payment.gateway_order_id,
        amount=result.payment.amount_minor,
        currency=result.payment.currency,
        key_id=result.key_id,
        list_amount=result.list_amount,
        discount_amount=result.discount_amount,
        coupon_code=result.coupon_code,
        free_consultation=result.free_consultation,
    )


@router.post("/verify", response_model=PaymentOut)
async def verify_payment(
        request: VerifyPaymentRequest,
        payment_service: PaymentService = Depends(get_payment_service)
):
    """Verify the checkout signature server-side and capture the payment."""
    return payment_service.verify_and_capture(
        request.razorpay_order_id,
        request.razorpay_payment_id,
        request.razorpay_signature,
    )


@router.post("/link", response_model=PaymentOut)
async def link_payment(
        request: LinkPaymentRequest,
        payment_service: PaymentService = Depends(get_payment_service)
):
    """Attach an order to a booking created after checkout. Idempotent."""
    return payment_service.link_to_booking(request.razorpay_order_id, request.booking_id)


@router.post("/refund", response_model=RefundResponse)
async def refund_payment(
        request: RefundRequest,
        admin: Identity = Depends(require_admin),
        payment_service: PaymentService = Depends(get_payment_service)
):
    """
    Refund by booking id or gateway payment id. Admin only; clients get
    their refund by cancelling the booking.
    """
    result = await payment_service.refund(
        booking_id=request.booking_id,
        gateway_payment_id=request.razorpay_payment_id,
    )
    return RefundResponse(
        refunded=True,
        amount=result.amount,
        is_full_refund=result.is_full_refund,
        mode=result.mode,
        payment=PaymentOut.model_validate(result.payment),
    )
