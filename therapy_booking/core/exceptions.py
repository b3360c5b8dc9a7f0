# therapy_booking/core/exceptions.py
"""
Domain errors for the booking / payment / refund lifecycle.

Every error carries a stable ``code`` and a ``retryable`` flag so callers can
tell "try again" apart from "this cannot succeed". Route handlers never catch
these; the exception handler registered in ``main.py`` renders them.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class BookingDomainError(Exception):
    status_code = 400
    code = "domain_error"
    retryable = False

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details

    def to_dict(self) -> Dict[str, Any]:
        body = {
            "error": self.code,
            "detail": self.message,
            "retryable": self.retryable,
        }
        body.update(self.details)
        return body


class ValidationError(BookingDomainError):
    status_code = 400
    code = "validation_error"


class NotFoundError(BookingDomainError):
    status_code = 404
    code = "not_found"


class AuthorizationError(BookingDomainError):
    status_code = 403
    code = "forbidden"


class ConflictError(BookingDomainError):
    """The requested (date, time) slot is already held by another booking."""
    status_code = 409
    code = "slot_taken"


class InvalidTransitionError(BookingDomainError):
    status_code = 409
    code = "invalid_transition"


class PaymentLinkError(BookingDomainError):
    status_code = 409
    code = "payment_already_linked"


class PaymentMismatchError(PaymentLinkError):
    """Payment was priced for a different product than the booking."""
    code = "payment_product_mismatch"


class PaymentStateError(BookingDomainError):
    status_code = 409
    code = "payment_state"


class VerificationError(BookingDomainError):
    """Gateway signature did not match. Fatal for this payment attempt."""
    status_code = 400
    code = "signature_invalid"


class RefundPolicyUndefined(BookingDomainError):
    """Cancellation requested after the session started."""
    status_code = 422
    code = "refund_policy_undefined"


class CouponInvalid(BookingDomainError):
    status_code = 422
    code = "coupon_invalid"

    def __init__(self, reason: str, message: Optional[str] = None):
        super().__init__(message or f"Coupon is not applicable: {reason}", reason=reason)
        self.reason = reason


class GatewayError(BookingDomainError):
    """
    Only failures of read calls are retryable. A failed or timed-out refund or
    order may still have gone through on the gateway side.
    """
    status_code = 502
    code = "gateway_error"

    def __init__(self, message: str, retryable: bool = False, **details: Any):
        super().__init__(message, **details)
        self.retryable = retryable


class GatewayTimeout(GatewayError):
    status_code = 504
    code = "gateway_timeout"


class GatewayNotConfigured(BookingDomainError):
    status_code = 503
    code = "gateway_not_configured"


async def domain_error_handler(request: Request, exc: BookingDomainError) -> JSONResponse:
    """Render domain errors with enough structure for clients to react"""
    correlation_id = getattr(request.state, "correlation_id", "unknown")
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        f"{exc.code} on {request.method} {request.url.path}: {exc.message}",
        extra={"correlation_id": correlation_id},
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
