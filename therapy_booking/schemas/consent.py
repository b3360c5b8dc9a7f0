"""
Pydantic schemas for consent records
"""
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import List, Optional
from datetime import datetime


class ConsentCreate(BaseModel):
    email: EmailStr
    session_type: str = Field(..., min_length=1, max_length=20)
    consent_version: str = Field(..., min_length=1, max_length=20)
    acknowledgments: List[str] = Field(..., min_length=1)


class ConsentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    session_type: str
    consent_version: str
    acknowledgments: List[str]
    consented_at: datetime


class ConsentCheckResponse(BaseModel):
    email: str
    session_type: str
    has_consent: bool
    latest: Optional[ConsentOut] = None
