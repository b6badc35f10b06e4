"""Booking domain schemas - Pydantic models for validation"""

from typing import Literal, Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import validate_date_string, validate_time_string


class BookSlotRequest(BaseModel):
    """Book either a stored slot (slot_id) or a template slot (date + times)"""

    garage_id: int
    vehicle_id: int
    service_type: Literal["MOT", "RETEST"] = "MOT"
    slot_id: Optional[int] = None
    date: Optional[str] = None  # YYYY-MM-DD
    start_time: Optional[str] = None  # HH:MM
    end_time: Optional[str] = None

    @field_validator("date")
    @classmethod
    def validate_date(cls, v):
        return validate_date_string(v)

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, v):
        return validate_time_string(v)


class BookingData(BaseModel):
    order_id: int
    garage_id: int
    vehicle_id: int
    slot_id: int
    service_type: str
    total_amount: float
    order_date: Optional[str] = None
    status: str


class BookingResponse(BaseModel):
    success: bool
    message: str
    data: BookingData
