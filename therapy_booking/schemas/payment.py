"""
Pydantic schemas for orders, verification and refunds
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Dict, Any
from datetime import datetime

from therapy_booking.schemas.booking import CustomerIn


class CreateOrderRequest(BaseModel):
    session_type: str = Field(..., description="individual | couples | family | free")
    session_format: str = Field("video", description="chat | audio | video")
    coupon_code: Optional[str] = Field(None, max_length=64)
    customer: Optional[CustomerIn] = None


class OrderResponse(BaseModel):
    """Everything the client needs to open the checkout. No secrets."""
    order_id: str
    amount: int
    currency: str
    key_id: Optional[str] = None
    list_amount: int
    discount_amount: int = 0
    coupon_code: Optional[str] = None
    free_consultation: bool = False


class VerifyPaymentRequest(BaseModel):
    razorpay_order_id: str = Field(..., min_length=1, max_length=64)
    razorpay_payment_id: str = Field(..., min_length=1, max_length=64)
    razorpay_signature: str = Field(..., min_length=1, max_length=128)


class LinkPaymentRequest(BaseModel):
    razorpay_order_id: str = Field(..., min_length=1, max_length=64)
    booking_id: str = Field(..., min_length=1, max_length=36)


class RefundRequest(BaseModel):
    booking_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None


class PaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    booking_id: Optional[str] = None
    gateway_order_id: str
    gateway_payment_id: Optional[str] = None
    amount_minor: int
    currency: str
    status: str
    refund_amount_minor: Optional[int] = None
    metadata: Dict[str, Any] = Field(default_factory=dict, validation_alias="metadata_")
    created_at: datetime
    paid_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None


class RefundResponse(BaseModel):
    refunded: bool
    amount: int
    is_full_refund: bool
    mode: str
    payment: PaymentOut
