"""Scheduling domain schemas - Pydantic models for garage schedules and slot management"""

from datetime import datetime
from typing import Literal, Optional, Union

from pydantic import BaseModel, field_validator, model_validator

from ...shared.validators import validate_date_string, validate_time_string


class TimeInterval(BaseModel):
    start_time: str
    end_time: str

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, v):
        return validate_time_string(v)

    @model_validator(mode="after")
    def validate_order(self):
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self


class DayHours(BaseModel):
    is_closed: bool = False
    intervals: list[TimeInterval] = []


class Restriction(BaseModel):
    """A HOLIDAY (by date, month/day or weekday) or a BREAK (time range, optionally per weekday)"""

    type: Literal["HOLIDAY", "BREAK"]
    date: Optional[str] = None
    month: Optional[int] = None
    day: Optional[int] = None
    day_of_week: Optional[Union[int, str, list[int]]] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    description: Optional[str] = None

    @field_validator("date")
    @classmethod
    def validate_date(cls, v):
        return validate_date_string(v)

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, v):
        return validate_time_string(v)

    @model_validator(mode="after")
    def validate_shape(self):
        if self.type == "BREAK":
            if not self.start_time or not self.end_time:
                raise ValueError("BREAK restrictions need start_time and end_time")
            if self.start_time >= self.end_time:
                raise ValueError("Break start_time must be before end_time")
        elif self.date is None and (self.month is None or self.day is None) and self.day_of_week is None:
            raise ValueError("HOLIDAY restrictions need a date, a month and day, or a day_of_week")
        return self


class ScheduleCreate(BaseModel):
    start_time: str
    end_time: str
    slot_duration: int = 60
    restrictions: list[Restriction] = []
    daily_hours: dict[str, DayHours] = {}
    is_active: bool = True

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, v):
        return validate_time_string(v)

    @field_validator("daily_hours")
    @classmethod
    def validate_day_keys(cls, v):
        for key in v:
            if key not in {"0", "1", "2", "3", "4", "5", "6"}:
                raise ValueError("daily_hours keys must be day numbers 0 (Sunday) to 6 (Saturday)")
        return v


class ScheduleUpdate(BaseModel):
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    slot_duration: Optional[int] = None
    restrictions: Optional[list[Restriction]] = None
    daily_hours: Optional[dict[str, DayHours]] = None
    is_active: Optional[bool] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, v):
        return validate_time_string(v)


class ScheduleResponse(BaseModel):
    id: int
    garage_id: int
    start_time: str
    end_time: str
    slot_duration: int
    restrictions: list = []
    daily_hours: dict = {}
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SlotModificationRequest(BaseModel):
    start_date: str
    end_date: str
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    action: Literal["BLOCK", "UNBLOCK"]
    reason: Optional[str] = None
    replace_existing: bool = False

    @field_validator("start_date", "end_date")
    @classmethod
    def validate_date(cls, v):
        return validate_date_string(v)

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, v):
        return validate_time_string(v)


class ManualSlotRequest(BaseModel):
    date: str
    slots: list[TimeInterval]
    replace: bool = False

    @field_validator("date")
    @classmethod
    def validate_date(cls, v):
        return validate_date_string(v)

    @field_validator("slots")
    @classmethod
    def validate_slots(cls, v):
        if not v:
            raise ValueError("At least one slot is required")
        return v


class ModifySlotTimeRequest(BaseModel):
    date: str
    current_time: str
    new_start_time: str
    new_end_time: str
    reason: Optional[str] = None

    @field_validator("date")
    @classmethod
    def validate_date(cls, v):
        return validate_date_string(v)

    @field_validator("current_time", "new_start_time", "new_end_time")
    @classmethod
    def validate_time(cls, v):
        return validate_time_string(v)
