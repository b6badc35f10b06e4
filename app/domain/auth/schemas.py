"""Auth domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import validate_uk_phone


def _validate_password(v: str) -> str:
    if not v or len(v) < 8:
        raise ValueError("password must be at least 8 characters")
    return v


class RegisterRequest(BaseModel):
    """Schema for creating a driver or garage account"""

    email: str
    password: str
    name: Optional[str] = None
    role: Literal["DRIVER", "GARAGE"] = "DRIVER"
    phone_number: Optional[str] = None

    # Garage fields
    garage_name: Optional[str] = None
    address: Optional[str] = None
    zip_code: Optional[str] = None
    vts_number: Optional[str] = None
    primary_contact: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = (v or "").strip().lower()
        if "@" not in v or "." not in v.split("@")[-1]:
            raise ValueError("A valid email address is required")
        return v

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _validate_password(v)

    @field_validator("phone_number")
    @classmethod
    def validate_phone(cls, v):
        return validate_uk_phone(v)

    @field_validator("zip_code")
    @classmethod
    def validate_zip(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().upper() if v and v.strip() else None


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return (v or "").strip().lower()


class ChangePasswordRequest(BaseModel):
    old_password: str
    new_password: str

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, v: str) -> str:
        return _validate_password(v)


class UserResponse(BaseModel):
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
    has_subscription: bool = False
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse
