"""Admin domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, field_validator


class AdminUserResponse(BaseModel):
    id: int
    email: str
    name: Optional[str] = None
    role: str
    status: str
    approved_at: Optional[datetime] = None
    phone_number: Optional[str] = None
    garage_name: Optional[str] = None
    address: Optional[str] = None
    zip_code: Optional[str] = None
    vts_number: Optional[str] = None
    primary_contact: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    has_subscription: bool = False
    subscription_expires_at: Optional[datetime] = None
    billing_id: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BroadcastRequest(BaseModel):
    text: str
    role: Optional[Literal["ADMIN", "DRIVER", "GARAGE"]] = None

    @field_validator("text")
    @classmethod
    def validate_text(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("text is required")
        return v.strip()
