"""Garage dashboard schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import validate_uk_phone


class GarageProfileUpdate(BaseModel):
    name: Optional[str] = None
    garage_name: Optional[str] = None
    address: Optional[str] = None
    zip_code: Optional[str] = None
    vts_number: Optional[str] = None
    primary_contact: Optional[str] = None
    phone_number: Optional[str] = None

    @field_validator("phone_number")
    @classmethod
    def validate_phone(cls, v):
        return validate_uk_phone(v)

    @field_validator("zip_code")
    @classmethod
    def validate_zip(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            raise ValueError("zip_code cannot be empty")
        return v.strip().upper() if v else v


class GarageProfileResponse(BaseModel):
    id: int
    email: str
    name: Optional[str] = None
    garage_name: Optional[str] = None
    address: Optional[str] = None
    zip_code: Optional[str] = None
    vts_number: Optional[str] = None
    primary_contact: Optional[str] = None
    phone_number: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    has_subscription: bool
    subscription_expires_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PricedService(BaseModel):
    name: str
    price: float

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("name is required")
        return v.strip()

    @field_validator("price")
    @classmethod
    def validate_price(cls, v: float) -> float:
        if v is None or v <= 0:
            raise ValueError("price must be greater than 0")
        return v


class AdditionalService(BaseModel):
    name: str
    price: float = 0

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("name is required")
        return v.strip()


class PricingUpsert(BaseModel):
    mot: PricedService
    retest: PricedService
    additionals: list[AdditionalService] = []


class ServiceResponse(BaseModel):
    id: int
    name: str
    price: float
    type: str

    class Config:
        from_attributes = True


class BookingStatusUpdate(BaseModel):
    status: Literal["ACCEPTED", "REJECTED", "COMPLETED", "CANCELLED"]
