"""Garage dashboard router - Profile, pricing, bookings and billing history"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_garage
from ...database import get_db
from ...models import User
from .schemas import (
    BookingStatusUpdate,
    GarageProfileResponse,
    GarageProfileUpdate,
    PricingUpsert,
    ServiceResponse,
)
from .service import GarageService

router = APIRouter(prefix="/garage", tags=["Garage Dashboard"])


def get_garage_service(db: Session = Depends(get_db)) -> GarageService:
    """Dependency injection for GarageService"""
    return GarageService(db)


# ============================================================================
# PROFILE
# ============================================================================


@router.get("/profile", response_model=GarageProfileResponse)
async def get_profile(
    current_user: User = Depends(get_current_garage),
    service: GarageService = Depends(get_garage_service),
):
    return service.get_profile(current_user)


@router.patch("/profile", response_model=GarageProfileResponse)
async def update_profile(
    body: GarageProfileUpdate,
    current_user: User = Depends(get_current_garage),
    service: GarageService = Depends(get_garage_service),
):
    return await service.update_profile(current_user, body)


# ============================================================================
# PRICING
# ============================================================================


@router.get("/services", response_model=list[ServiceResponse])
async def get_services(
    current_user: User = Depends(get_current_garage),
    service: GarageService = Depends(get_garage_service),
):
    return service.get_services(current_user)


@router.put("/services/pricing", response_model=list[ServiceResponse])
async def upsert_pricing(
    body: PricingUpsert,
    current_user: User = Depends(get_current_garage),
    service: GarageService = Depends(get_garage_service),
):
    return service.upsert_pricing(current_user, body)


@router.delete("/services/{service_id}")
async def delete_service(
    service_id: int,
    current_user: User = Depends(get_current_garage),
    service: GarageService = Depends(get_garage_service),
):
    return service.delete_service(current_user, service_id)


# ============================================================================
# BOOKINGS
# ============================================================================


@router.get("/bookings")
async def list_bookings(
    status: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_garage),
    service: GarageService = Depends(get_garage_service),
):
    return service.list_bookings(current_user, status, search, page, limit)


@router.get("/bookings/{order_id}")
async def get_booking(
    order_id: int,
    current_user: User = Depends(get_current_garage),
    service: GarageService = Depends(get_garage_service),
):
    return service.get_booking(current_user, order_id)


@router.patch("/bookings/{order_id}/status")
async def update_booking_status(
    order_id: int,
    body: BookingStatusUpdate,
    current_user: User = Depends(get_current_garage),
    service: GarageService = Depends(get_garage_service),
):
    return await service.update_booking_status(current_user, order_id, body.status)


# ============================================================================
# BILLING HISTORY
# ============================================================================


@router.get("/payments")
async def list_payments(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_garage),
    service: GarageService = Depends(get_garage_service),
):
    return service.list_payments(current_user, page, limit)


@router.get("/payments/{payment_id}")
async def get_payment(
    payment_id: int,
    current_user: User = Depends(get_current_garage),
    service: GarageService = Depends(get_garage_service),
):
    return service.get_payment(current_user, payment_id)


@router.get("/invoices")
async def list_invoices(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_garage),
    service: GarageService = Depends(get_garage_service),
):
    return service.list_invoices(current_user, page, limit)


@router.get("/invoices/{invoice_id}")
async def get_invoice(
    invoice_id: int,
    current_user: User = Depends(get_current_garage),
    service: GarageService = Depends(get_garage_service),
):
    return service.get_invoice(current_user, invoice_id)
