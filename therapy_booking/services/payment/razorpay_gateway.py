# therapy_booking/services/payment/razorpay_gateway.py
"""
Thin async client for the Razorpay REST API.

Every call is bounded by ``GATEWAY_TIMEOUT_SECONDS``. A timeout is a failure,
never an assumed success. Mutating calls (order, refund) are not retried here.
"""
import hmac
import hashlib
import logging
from typing import Optional, Dict, Any

import httpx

from therapy_booking.config.settings import get_settings
from therapy_booking.core.exceptions import GatewayError, GatewayNotConfigured, GatewayTimeout

logger = logging.getLogger(__name__)


class RazorpayGateway:

    def __init__(
            self,
            key_id: Optional[str] = None,
            key_secret: Optional[str] = None,
            webhook_secret: Optional[str] = None,
            base_url: Optional[str] = None,
            timeout: Optional[float] = None,
            transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        settings = get_settings()
        self.key_id = key_id if key_id is not None else settings.RAZORPAY_KEY_ID
        self.key_secret = key_secret if key_secret is not None else settings.RAZORPAY_KEY_SECRET
        self.webhook_secret = (
            webhook_secret if webhook_secret is not None else settings.RAZORPAY_WEBHOOK_SECRET
        )
        self.timeout = timeout if timeout is not None else settings.GATEWAY_TIMEOUT_SECONDS
        self.http_client = httpx.AsyncClient(
            base_url=base_url or settings.RAZORPAY_API_BASE,
            auth=(self.key_id, self.key_secret),
            timeout=self.timeout,
            transport=transport,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.key_id and self.key_secret)

    async def create_order(
            self,
            amount_minor: int,
            currency: str,
            receipt: str,
            notes: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        return await self._request("POST", "/orders", json={
            "amount": amount_minor,
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
        })

    async def refund(
            self,
            gateway_payment_id: str,
            amount_minor: Optional[int] = None,
            notes: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        """Full refund when ``amount_minor`` is None, partial otherwise"""
        body: Dict[str, Any] = {"notes": notes or {}}
        if amount_minor is not None:
            body["amount"] = amount_minor
        return await self._request("POST", f"/payments/{gateway_payment_id}/refund", json=body)

    async def fetch_payment(self, gateway_payment_id: str) -> Dict[str, Any]:
        """Read-only status check, safe to retry"""
        return await self._request("GET", f"/payments/{gateway_payment_id}")

    def verify_payment_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        """
        Razorpay signs ``order_id|payment_id`` with the key secret (HMAC-SHA256, hex).
        """
        if not self.key_secret:
            raise GatewayNotConfigured("Payment gateway is not configured")
        expected = self.sign(f"{order_id}|{payment_id}", self.key_secret)
        return hmac.compare_digest(expected, signature or "")

    def verify_webhook_signature(self, raw_body: bytes, signature: str) -> bool:
        if not self.webhook_secret:
            raise GatewayNotConfigured("Webhook secret is not configured")
        expected = hmac.new(self.webhook_secret.encode(), raw_body, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, signature or "")

    @staticmethod
    def sign(message: str, secret: str) -> str:
        return hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest()

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        if not self.is_configured:
            raise GatewayNotConfigured("Payment gateway is not configured")

        # Mutating calls may have been applied even when we saw an error
        retryable = method == "GET"

        try:
            response = await self.http_client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"Razorpay {method} {path} timed out after {self.timeout}s")
            raise GatewayTimeout(
                f"Payment gateway timed out ({self.timeout}s)", retryable=retryable
            ) from e
        except httpx.RequestError as e:
            logger.error(f"Razorpay {method} {path} request error: {e}")
            raise GatewayError(
                f"Payment gateway unreachable: {str(e)[:200]}", retryable=retryable
            ) from e

        if not 200 <= response.status_code < 300:
            description = RazorpayGateway._error_description(response)
            logger.error(f"Razorpay {method} {path} -> HTTP {response.status_code}: {description}")
            raise GatewayError(
                f"Payment gateway rejected the request: {description}",
                retryable=retryable,
                gateway_status=response.status_code,
            )

        return response.json()

    @staticmethod
    def _error_description(response: httpx.Response) -> str:
        try:
            return response.json().get("error", {}).get("description") or response.text[:200]
        except ValueError:
            return response.text[:200]

    async def close(self):
        """Close the HTTP client."""
        await self.http_client.aclose()
