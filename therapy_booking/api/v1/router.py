"""
API v1 router setup
Organized into: public (optional or user JWT) and admin (JWT + role) routes
"""
from fastapi import APIRouter

from therapy_booking.api.v1.public import availability, bookings, payments, coupons, consent
from therapy_booking.api.v1.admin import (
    bookings as admin_bookings,
    payments as admin_payments,
    coupons as admin_coupons,
    consents as admin_consents,
)

api_v1_router = APIRouter()

# ============================================================================
# PUBLIC ROUTES (guest allowed, identity optional unless noted)
# ============================================================================
api_v1_router.include_router(availability.router)
api_v1_router.include_router(consent.router)
api_v1_router.include_router(coupons.router)

# ============================================================================
# CHECKOUT AND BOOKING ROUTES (refund and cancel require a JWT)
# ============================================================================
api_v1_router.include_router(payments.router)
api_v1_router.include_router(bookings.router)

# ============================================================================
# ADMIN ROUTES (JWT authentication + admin or therapist role required)
# ============================================================================
api_v1_router.include_router(admin_bookings.router)
api_v1_router.include_router(admin_payments.router)
api_v1_router.include_router(admin_coupons.router)
api_v1_router.include_router(admin_consents.router)


# ============================================================================
# ROOT ENDPOINT - API Info
# ============================================================================
@api_v1_router.get("/", tags=["Info"])
async def api_info():
    """
    API information, grouped by authentication type.
    """
    return {
        "version": "1.0",
        "authentication": {
            "public": "No authentication required (availability, consent, coupon preview, checkout)",
            "user": "JWT Bearer token required (my bookings, cancel, refund)",
            "admin": "JWT Bearer token + admin role required (therapists may read)"
        }
    }
