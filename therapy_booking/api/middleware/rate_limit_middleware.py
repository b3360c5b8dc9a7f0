# ===== therapy_booking/api/middleware/rate_limit_middleware.py =====
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
import time

RATE_LIMITED_PREFIXES = (
    "/api/v1/payments",
    "/api/v1/coupons",
)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Per-client rate limiting for payment and coupon routes.

    Coupon codes are guessable and order creation talks to the gateway, so
    both get a sliding one-minute window per client IP. The IP is the peer
    address; X-Forwarded-For is only honoured through uvicorn's
    ``--proxy-headers`` for trusted proxies, never read here.
    """

    def __init__(self, app, requests_per_minute: int = 30, window_seconds: float = 60.0):
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self.window_seconds = window_seconds
        self.request_times = {}  # In production, use Redis
        self._last_sweep = time.time()

    async def dispatch(self, request: Request, call_next):
        if not request.url.path.startswith(RATE_LIMITED_PREFIXES):
            return await call_next(request)

        client_key = request.client.host if request.client else "unknown"
        current_time = time.time()
        self._sweep(current_time)

        # Remove old timestamps
        recent = [
            t for t in self.request_times.get(client_key, [])
            if current_time - t < self.window_seconds
        ]

        if len(recent) >= self.requests_per_minute:
            retry_after = max(1, int(self.window_seconds - (current_time - recent[0])))
            self.request_times[client_key] = recent
            return JSONResponse(
                status_code=429,
                content={
                    "error": "rate_limited",
                    "detail": "Rate limit exceeded. Too many requests.",
                    "retryable": True,
                    "retry_after": retry_after
                },
                headers={"Retry-After": str(retry_after)}
            )

        recent.append(current_time)
        self.request_times[client_key] = recent

        return await call_next(request)

    def _sweep(self, current_time: float):
        """Forget clients with no request inside the window, at most once per window"""
        if current_time - self._last_sweep < self.window_seconds:
            return
        self._last_sweep = current_time
        idle = [
            key for key, times in self.request_times.items()
            if not times or current_time - times[-1] >= self.window_seconds
        ]
        for key in idle:
            del self.request_times[key]
