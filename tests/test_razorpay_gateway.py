import hashlib
import hmac

import httpx
import pytest

from therapy_booking.core.exceptions import GatewayError, GatewayNotConfigured, GatewayTimeout
from therapy_booking.services.payment.razorpay_gateway import RazorpayGateway


def _gateway(handler, key_id="rzp_test_key", key_secret="secret", webhook_secret="whsec"):
    return RazorpayGateway(
        key_id=key_id,
        key_secret=key_secret,
        webhook_secret=webhook_secret,
        base_url="https://api.razorpay.test/v1",
        timeout=1.0,
        transport=httpx.MockTransport(handler),
    )


def test_payment_signature_matches_razorpay_scheme():
    gateway = _gateway(lambda r: httpx.Response(200))
    expected = hmac.new(b"secret", b"order_1|pay_1", hashlib.sha256).hexdigest()

    assert gateway.verify_payment_signature("order_1", "pay_1", expected)
    assert not gateway.verify_payment_signature("order_1", "pay_2", expected)
    assert not gateway.verify_payment_signature("order_1", "pay_1", "")


def test_webhook_signature_covers_raw_body():
    gateway = _gateway(lambda r: httpx.Response(200))
    body = b'{"event":"payment.captured"}'
    signature = hmac.new(b"whsec", body, hashlib.sha256).hexdigest()

    assert gateway.verify_webhook_signature(body, signature)
    assert not gateway.verify_webhook_signature(body + b" ", signature)


def test_missing_secret_fails_closed():
    gateway = _gateway(lambda r: httpx.Response(200), key_secret="", webhook_secret="")

    with pytest.raises(GatewayNotConfigured):
        gateway.verify_payment_signature("order_1", "pay_1", "sig")
    with pytest.raises(GatewayNotConfigured):
        gateway.verify_webhook_signature(b"{}", "sig")


async def test_create_order_posts_amount_with_basic_auth():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = request.content
        return httpx.Response(200, json={"id": "order_123", "amount": 150000})

    order = await _gateway(handler).create_order(150000, "INR", "receipt_1", {"session_type": "couples"})

    assert order["id"] == "order_123"
    assert seen["path"] == "/v1/orders"
    assert seen["auth"].startswith("Basic ")
    assert b'"amount":150000' in seen["body"].replace(b" ", b"")


async def test_partial_refund_sends_amount():
    bodies = []

    def handler(request):
        bodies.append(request.content)
        return httpx.Response(200, json={"id": "rfnd_1"})

    gateway = _gateway(handler)
    await gateway.refund("pay_1", amount_minor=75000)
    await gateway.refund("pay_1")

    assert b"75000" in bodies[0]
    assert b"amount" not in bodies[1]


async def test_non_2xx_raises_gateway_error_with_description():
    gateway = _gateway(lambda r: httpx.Response(400, json={"error": {"description": "Bad amount"}}))

    with pytest.raises(GatewayError) as exc_info:
        await gateway.create_order(100, "INR", "r")

    assert "Bad amount" in exc_info.value.message
    assert exc_info.value.details["gateway_status"] == 400


async def test_timeout_raises_gateway_timeout():
    def handler(request):
        raise httpx.ConnectTimeout("slow", request=request)

    with pytest.raises(GatewayTimeout) as exc_info:
        await _gateway(handler).refund("pay_1")

    assert exc_info.value.status_code == 504
    assert exc_info.value.retryable is False
    assert exc_info.value.to_dict()["retryable"] is False


async def test_only_read_failures_are_retryable():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    gateway = _gateway(handler)
    with pytest.raises(GatewayTimeout) as read_exc:
        await gateway.fetch_payment("pay_1")
    with pytest.raises(GatewayTimeout) as order_exc:
        await gateway.create_order(100, "INR", "r")

    assert read_exc.value.retryable is True
    assert order_exc.value.retryable is False


async def test_connection_error_raises_gateway_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(GatewayError) as exc_info:
        await _gateway(handler).fetch_payment("pay_1")

    assert exc_info.value.retryable is True


async def test_rejected_refund_is_not_retryable():
    gateway = _gateway(lambda r: httpx.Response(500, json={"error": {"description": "Server error"}}))

    with pytest.raises(GatewayError) as exc_info:
        await gateway.refund("pay_1", amount_minor=5000)

    assert exc_info.value.retryable is False


async def test_unconfigured_gateway_never_calls_out():
    calls = []
    gateway = _gateway(lambda r: calls.append(r) or httpx.Response(200), key_id="", key_secret="")

    with pytest.raises(GatewayNotConfigured):
        await gateway.create_order(100, "INR", "r")
    assert calls == []
