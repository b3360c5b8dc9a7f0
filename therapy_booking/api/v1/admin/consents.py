# therapy_booking/api/v1/admin/consents.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from therapy_booking.api.dependencies import require_staff
from therapy_booking.config.database import get_db
from therapy_booking.core.identity import Identity
from therapy_booking.schemas.consent import ConsentOut
from therapy_booking.services.consent.consent_service import ConsentService

router = APIRouter(prefix="/admin/consents", tags=["Admin - Consents"])


@router.get("", response_model=List[ConsentOut])
async def list_consents(
        email: Optional[str] = Query(None),
        skip: int = Query(0, ge=0),
        limit: int = Query(50, ge=1, le=200),
        staff: Identity = Depends(require_staff),
        db: Session = Depends(get_db)
):
    return ConsentService.list_consents(db, email=email, skip=skip, limit=limit)
