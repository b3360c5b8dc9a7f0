"""
FastAPI application for the practice booking and payment API

Bookings, checkout, refunds, coupons and consent. Periodic reconciliation runs
in the Celery worker.
"""
import logging
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.routing import APIRoute
from contextlib import asynccontextmanager

from therapy_booking.api.middleware.rate_limit_middleware import RateLimitMiddleware
from therapy_booking.api.v1.router import api_v1_router
from therapy_booking.config.settings import get_settings
from therapy_booking.core.exceptions import BookingDomainError, domain_error_handler
from therapy_booking.core.middleware import correlation_id_middleware, request_logging_middleware
from therapy_booking.core.monitoring import health_router
from therapy_booking.services.payment.razorpay_gateway import RazorpayGateway
from therapy_booking.utils.my_logging import setup_logging
from therapy_booking.webhooks.router import webhook_router

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    # Startup
    setup_logging()
    gateway = RazorpayGateway()
    app.state.gateway = gateway
    if not gateway.is_configured:
        logger.warning("Razorpay credentials missing: paid checkout and refunds are disabled")

    routes_count = sum(1 for route in app.routes if isinstance(route, APIRoute))
    logger.info(f"{settings.APP_NAME} starting up with {routes_count} routes")

    yield

    # Shutdown
    await gateway.close()
    logger.info(f"{settings.APP_NAME} shutting down")


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""

    app = FastAPI(
        title=settings.APP_NAME,
        description="Therapy session booking, payments, refunds and consent",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
    )

    app.add_exception_handler(BookingDomainError, domain_error_handler)

    app.add_middleware(RateLimitMiddleware, requests_per_minute=settings.RATE_LIMIT_PER_MINUTE)

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["*"],
    )

    # Add custom middleware
    app.middleware("http")(request_logging_middleware)
    app.middleware("http")(correlation_id_middleware)

    # Include routers
    app.include_router(webhook_router, prefix="/webhooks", tags=["webhooks"])
    app.include_router(health_router, prefix="/health", tags=["monitoring"])
    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/")
    async def root():
        return {
            "service": settings.APP_NAME,
            "version": "0.1.0",
            "status": "running",
            "endpoints": {
                "api": "/api/v1/",
                "webhooks": "/webhooks/",
                "health": "/health",
                "docs": "/docs" if settings.DEBUG else "disabled"
            }
        }

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "therapy_booking.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        proxy_headers=True,
        forwarded_allow_ips=settings.FORWARDED_ALLOW_IPS,
        log_level="info"
    )
