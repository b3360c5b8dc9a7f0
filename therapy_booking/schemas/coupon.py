"""
Pydantic schemas for coupon validation and administration
"""
from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Optional, Literal
from datetime import datetime


class CouponValidateRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)
    amount: int = Field(..., ge=0, description="Order amount before discount, minor units")


class CouponValidateResponse(BaseModel):
    valid: bool
    code: Optional[str] = None
    discount_amount: Optional[int] = None
    payable_amount: Optional[int] = None
    reason: Optional[str] = None
    message: Optional[str] = None


class CouponCreate(BaseModel):
    code: str = Field(..., min_length=2, max_length=64)
    discount_type: Literal["percent", "fixed"]
    discount_value: int = Field(..., gt=0)
    min_amount_minor: int = Field(0, ge=0)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    max_uses: Optional[int] = Field(None, ge=1)
    is_active: bool = True
    description: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def check_ranges(self):
        if self.discount_type == "percent" and not 1 <= self.discount_value <= 100:
            raise ValueError("Percent discount must be between 1 and 100")
        if self.valid_from and self.valid_until and self.valid_until < self.valid_from:
            raise ValueError("valid_until must be after valid_from")
        return self


class CouponUpdate(BaseModel):
    """All fields optional - only send what you want to change"""
    discount_type: Optional[Literal["percent", "fixed"]] = None
    discount_value: Optional[int] = Field(None, gt=0)
    min_amount_minor: Optional[int] = Field(None, ge=0)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    max_uses: Optional[int] = Field(None, ge=1)
    is_active: Optional[bool] = None
    description: Optional[str] = Field(None, max_length=500)


class CouponOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    code: str
    discount_type: str
    discount_value: int
    min_amount_minor: int
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    max_uses: Optional[int] = None
    used_count: int
    is_active: bool
    description: Optional[str] = None
