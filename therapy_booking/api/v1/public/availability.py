# ============================================================================
# therapy_booking/api/v1/public/availability.py
# Slot lookup - no authentication, read-only
# ============================================================================
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from therapy_booking.config.database import get_db
from therapy_booking.schemas.booking import AvailabilityRequest, AvailabilityResponse
from therapy_booking.services.availability.availability_service import AvailabilityService

router = APIRouter(prefix="/availability", tags=["Public - Availability"])


@router.post("", response_model=AvailabilityResponse)
async def get_availability(
        request: AvailabilityRequest,
        db: Session = Depends(get_db)
):
    """
    Slots for a date, each flagged available or taken.

    Past dates and days the practice is closed return an empty list.
    """
    slots = AvailabilityService.get_available_slots(
        db=db,
        day=request.date,
        session_type=request.session_type,
        session_format=request.session_format,
    )
    return AvailabilityResponse(date=request.date, session_type=request.session_type, slots=slots)
