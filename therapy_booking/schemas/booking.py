"""
Pydantic schemas for bookings and availability
"""
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import Optional, List
from datetime import date, datetime
import re

from therapy_booking.models.booking import BookingStatus, SessionFormat, SessionType
from therapy_booking.utils.time_utils import normalize_time

_PHONE_CHARS = re.compile(r"^\+?[\d\s\-()]{10,20}$")


# ============================================================================
# Request Schemas
# ============================================================================

class CustomerIn(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    phone: Optional[str] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Name must be at least 2 characters")
        return v

    @field_validator("email")
    @classmethod
    def lower_email(cls, v):
        return v.strip().lower()

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        if v is None or not v.strip():
            return None
        digits = re.sub(r"[\s\-()]", "", v)
        if not 10 <= len(digits.lstrip("+")) <= 15 or not _PHONE_CHARS.match(v):
            raise ValueError("Phone number must be 10-15 digits")
        return v.strip()


class BookingCreate(BaseModel):
    """Slot selection submitted by the client"""
    session_type: SessionType
    session_format: SessionFormat
    date: date
    time: str = Field(..., description="HH:MM (24h) or H:MM AM/PM, practice-local")
    customer: CustomerIn
    notes: Optional[str] = Field(None, max_length=2000)
    free_consultation: bool = False
    gateway_order_id: Optional[str] = Field(
        None, description="Order to link once the booking exists"
    )

    @field_validator("time")
    @classmethod
    def validate_time(cls, v):
        return normalize_time(v)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "session_type": "individual",
                "session_format": "video",
                "date": "2030-03-11",
                "time": "5:00 PM",
                "customer": {"name": "Asha Rao", "email": "asha@example.com", "phone": "+91 98765 43210"},
            }
        }
    )


class BookingTransitionRequest(BaseModel):
    status: BookingStatus
    reason: Optional[str] = Field(None, max_length=500)


class BookingCancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class BookingDeleteRequest(BaseModel):
    reason: str = Field(..., min_length=3, max_length=500)


class AvailabilityRequest(BaseModel):
    date: date
    session_type: str
    session_format: Optional[str] = None


# ============================================================================
# Response Schemas
# ============================================================================

class TimeSlotOut(BaseModel):
    time: str
    display_time: str
    available: bool
    duration_minutes: Optional[int] = None


class AvailabilityResponse(BaseModel):
    date: date
    session_type: str
    slots: List[TimeSlotOut]


class BookingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: Optional[str] = None
    customer_name: str
    customer_email: str
    customer_phone: Optional[str] = None
    session_type: str
    session_format: str
    duration_minutes: int
    scheduled_date: date
    scheduled_time: str
    timezone: str
    status: str
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None


class UpcomingBookingOut(BookingOut):
    minutes_until: int
    is_today: bool
