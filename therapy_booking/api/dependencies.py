# ============================================================================
# FILE: therapy_booking/api/dependencies.py
# Authentication and service dependencies
# ============================================================================
import logging
from typing import Optional

from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from therapy_booking.config.database import get_db
from therapy_booking.config.settings import get_settings
from therapy_booking.core.identity import Identity, Role
from therapy_booking.services.payment.payment_service import PaymentService
from therapy_booking.services.payment.razorpay_gateway import RazorpayGateway

logger = logging.getLogger(__name__)

# ============================================================================
# Security Schemes
# ============================================================================

# Tokens are issued by the external auth provider; we only verify them.
jwt_security = HTTPBearer(
    scheme_name="JWT Bearer Token",
    description="Enter the access token issued by the auth provider"
)

optional_jwt_security = HTTPBearer(auto_error=False)


# ============================================================================
# JWT Token Functions
# ============================================================================

def verify_access_token(token: str) -> dict:
    """
    Verify and decode an access token.

    Raises:
        HTTPException: If token is invalid or expired
    """
    settings = get_settings()
    options = {"verify_aud": bool(settings.AUTH_JWT_AUDIENCE)}
    try:
        return jwt.decode(
            token,
            settings.AUTH_JWT_SECRET,
            algorithms=[settings.AUTH_JWT_ALGORITHM],
            audience=settings.AUTH_JWT_AUDIENCE or None,
            options=options,
        )
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Could not validate credentials: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )


def identity_from_claims(payload: dict) -> Identity:
    user_id: Optional[str] = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # Role is set by the auth provider in app_metadata; fall back to a top-level claim
    app_metadata = payload.get("app_metadata") or {}
    raw_role = app_metadata.get("role") or payload.get("role") or Role.USER.value
    try:
        role = Role(raw_role)
    except ValueError:
        role = Role.USER

    email = payload.get("email")
    return Identity(user_id=str(user_id), email=email.strip().lower() if email else None, role=role)


# ============================================================================
# Identity Dependencies
# ============================================================================

async def get_current_identity(
        credentials: HTTPAuthorizationCredentials = Depends(jwt_security)
) -> Identity:
    """
    Dependency returning the verified caller.

    Usage in routes:
        @router.get("/bookings/mine")
        async def mine(identity: Identity = Depends(get_current_identity)):
            ...
    """
    payload = verify_access_token(credentials.credentials)
    return identity_from_claims(payload)


async def get_optional_identity(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_jwt_security)
) -> Optional[Identity]:
    """
    Optional authentication. Guest checkout is allowed, so a missing token is
    fine; a present but invalid token is still rejected.
    """
    if not credentials:
        return None
    payload = verify_access_token(credentials.credentials)
    return identity_from_claims(payload)


async def require_admin(
        identity: Identity = Depends(get_current_identity)
) -> Identity:
    """Dependency that requires the admin role."""
    if not identity.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return identity


async def require_staff(
        identity: Identity = Depends(get_current_identity)
) -> Identity:
    """Admins and therapists (read access to the booking ledger)."""
    if not identity.is_staff:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Staff access required"
        )
    return identity


# ============================================================================
# Service Dependencies
# ============================================================================

def get_gateway(request: Request) -> RazorpayGateway:
    """The gateway client is created once per app in the lifespan handler."""
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        gateway = RazorpayGateway()
        request.app.state.gateway = gateway
    return gateway


def get_payment_service(
        db: Session = Depends(get_db),
        gateway: RazorpayGateway = Depends(get_gateway)
) -> PaymentService:
    return PaymentService(db, gateway)


def client_ip(request: Request) -> Optional[str]:
    """Peer address as resolved by uvicorn's proxy-headers handling"""
    return request.client.host if request.client else None
