# ============================================================================
# therapy_booking/api/v1/public/consent.py
# Informed-consent capture before checkout
# ============================================================================
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import EmailStr
from sqlalchemy.orm import Session

from therapy_booking.api.dependencies import client_ip, get_optional_identity
from therapy_booking.config.database import get_db
from therapy_booking.core.identity import Identity
from therapy_booking.schemas.consent import ConsentCheckResponse, ConsentCreate, ConsentOut
from therapy_booking.services.consent.consent_service import ConsentService

router = APIRouter(prefix="/consent", tags=["Consent"])


@router.post("", response_model=ConsentOut, status_code=201)
async def record_consent(
        payload: ConsentCreate,
        request: Request,
        identity: Optional[Identity] = Depends(get_optional_identity),
        db: Session = Depends(get_db)
):
    """Record a consent. Records are never updated; a new version is a new row."""
    return ConsentService.record_consent(
        db,
        email=payload.email,
        session_type=payload.session_type,
        version=payload.consent_version,
        acknowledgments=payload.acknowledgments,
        actor=identity,
        ip_address=client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )


@router.get("/check", response_model=ConsentCheckResponse)
async def check_consent(
        email: EmailStr = Query(...),
        session_type: str = Query(...),
        db: Session = Depends(get_db)
):
    latest = ConsentService.latest_consent(db, email, session_type)
    return ConsentCheckResponse(
        email=email.lower(),
        session_type=session_type,
        has_consent=latest is not None,
        latest=ConsentOut.model_validate(latest) if latest else None,
    )
