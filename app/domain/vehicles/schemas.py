"""Vehicle domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import is_valid_registration, normalize_postcode, normalize_registration


class VehicleCreate(BaseModel):
    registration_number: str

    @field_validator("registration_number")
    @classmethod
    def validate_registration(cls, v: str) -> str:
        normalized = normalize_registration(v)
        if not is_valid_registration(normalized):
            raise ValueError("Invalid registration number format")
        return normalized


class VehicleUpdate(BaseModel):
    """Only descriptive fields can be edited; registry data comes from DVLA"""

    make: Optional[str] = None
    model: Optional[str] = None
    color: Optional[str] = None
    fuel_type: Optional[str] = None


class MotDefectResponse(BaseModel):
    id: int
    type: Optional[str] = None
    text: Optional[str] = None
    dangerous: bool

    class Config:
        from_attributes = True


class MotReportResponse(BaseModel):
    id: int
    test_number: Optional[str] = None
    test_date: Optional[datetime] = None
    expiry_date: Optional[date] = None
    status: Optional[str] = None
    odometer_value: Optional[int] = None
    odometer_unit: Optional[str] = None
    odometer_result: Optional[str] = None
    defects: list[MotDefectResponse] = []

    class Config:
        from_attributes = True


class VehicleResponse(BaseModel):
    id: int
    registration_number: str
    make: Optional[str] = None
    model: Optional[str] = None
    color: Optional[str] = None
    fuel_type: Optional[str] = None
    year_of_manufacture: Optional[int] = None
    engine_capacity: Optional[int] = None
    co2_emissions: Optional[int] = None
    mot_expiry_date: Optional[date] = None
    is_expired: bool = False
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class VehicleDetailResponse(VehicleResponse):
    mot_reports: list[MotReportResponse] = []


class GarageSearchRequest(BaseModel):
    registration_number: str
    postcode: str
    radius_miles: Optional[float] = None

    @field_validator("registration_number")
    @classmethod
    def validate_registration(cls, v: str) -> str:
        return normalize_registration(v)

    @field_validator("postcode")
    @classmethod
    def validate_postcode(cls, v: str) -> str:
        if not normalize_postcode(v):
            raise ValueError("postcode is required")
        return v.strip().upper()

    @field_validator("radius_miles")
    @classmethod
    def validate_radius(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError("radius_miles must be greater than 0")
        return v
