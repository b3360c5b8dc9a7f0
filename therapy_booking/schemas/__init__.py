# therapy_booking/schemas/__init__.py
from .booking import (
    CustomerIn,
    BookingCreate,
    BookingTransitionRequest,
    BookingCancelRequest,
    BookingDeleteRequest,
    AvailabilityRequest,
    TimeSlotOut,
    AvailabilityResponse,
    BookingOut,
    UpcomingBookingOut,
)

from .payment import (
    CreateOrderRequest,
    OrderResponse,
    VerifyPaymentRequest,
    LinkPaymentRequest,
    RefundRequest,
    PaymentOut,
    RefundResponse,
)

from .coupon import (
    CouponValidateRequest,
    CouponValidateResponse,
    CouponCreate,
    CouponUpdate,
    CouponOut,
)

from .consent import (
    ConsentCreate,
    ConsentOut,
    ConsentCheckResponse,
)
