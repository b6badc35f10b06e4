"""Billing domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator


class CheckoutRequest(BaseModel):
    """Schema for starting a garage subscription checkout"""

    plan_id: int
    success_path: Optional[str] = None  # e.g. "/garage/billing?checkout=success"
    cancel_path: Optional[str] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class PlanCreate(BaseModel):
    name: str
    description: Optional[str] = None
    price_pence: int
    currency: str = "GBP"
    max_bookings_per_month: Optional[int] = None
    max_vehicles: Optional[int] = None
    priority_support: bool = False
    advanced_analytics: bool = False
    custom_branding: bool = False
    trial_period_days: int = 14

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("name is required")
        return v.strip()

    @field_validator("price_pence")
    @classmethod
    def validate_price(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("price_pence must be greater than 0")
        return v

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        if len(v) != 3:
            raise ValueError("currency must be a 3-letter ISO code")
        return v.upper()

    @field_validator("trial_period_days")
    @classmethod
    def validate_trial(cls, v: int) -> int:
        if v < 0 or v > 90:
            raise ValueError("trial_period_days must be between 0 and 90")
        return v


class PlanUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price_pence: Optional[int] = None
    max_bookings_per_month: Optional[int] = None
    max_vehicles: Optional[int] = None
    priority_support: Optional[bool] = None
    advanced_analytics: Optional[bool] = None
    custom_branding: Optional[bool] = None
    trial_period_days: Optional[int] = None
    is_active: Optional[bool] = None

    @field_validator("price_pence")
    @classmethod
    def validate_price(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v <= 0:
            raise ValueError("price_pence must be greater than 0")
        return v


class PlanResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    price_pence: int
    price_formatted: str
    currency: str
    max_bookings_per_month: Optional[int] = None
    max_vehicles: Optional[int] = None
    priority_support: bool
    advanced_analytics: bool
    custom_branding: bool
    trial_period_days: int
    is_active: bool
    is_legacy_price: bool
    features: list[str] = []


class SubscriptionResponse(BaseModel):
    id: int
    garage_id: int
    plan_id: int
    plan_name: Optional[str] = None
    status: str
    price_pence: int
    price_formatted: str
    currency: str
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    next_billing_date: Optional[datetime] = None
    cancel_at: Optional[datetime] = None
    cancel_at_period_end: bool
    cancellation_reason: Optional[str] = None
    is_grandfathered: bool
