"""Booking router - Driver booking endpoints"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...auth import get_current_driver, get_current_user
from ...database import get_db
from ...models import User
from .schemas import BookingResponse, BookSlotRequest
from .service import VehicleBookingService

router = APIRouter(prefix="/bookings", tags=["Bookings"])


def get_booking_service(db: Session = Depends(get_db)) -> VehicleBookingService:
    """Dependency injection for VehicleBookingService"""
    return VehicleBookingService(db)


@router.get("/garages/{garage_id}/slots")
async def get_available_slots(
    garage_id: int,
    date: str = Query(..., description="YYYY-MM-DD"),
    current_user: User = Depends(get_current_driver),
    service: VehicleBookingService = Depends(get_booking_service),
):
    try:
        d = datetime.strptime(date, "%Y-%m-%d").date()
    except ValueError as e:
        raise HTTPException(status_code=400, detail="Invalid date format. Use YYYY-MM-DD") from e
    return service.get_available_slots(garage_id, d)


@router.post("", response_model=BookingResponse)
async def book_slot(
    body: BookSlotRequest,
    current_user: User = Depends(get_current_user),
    service: VehicleBookingService = Depends(get_booking_service),
):
    return await service.book_slot(current_user, body)


@router.get("")
async def get_my_bookings(
    status: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_driver),
    service: VehicleBookingService = Depends(get_booking_service),
):
    return service.get_my_bookings(current_user, status, search, page, limit)


@router.get("/{order_id}")
async def get_booking(
    order_id: int,
    current_user: User = Depends(get_current_driver),
    service: VehicleBookingService = Depends(get_booking_service),
):
    return service.get_booking(current_user, order_id)


@router.patch("/{order_id}/cancel")
async def cancel_booking(
    order_id: int,
    current_user: User = Depends(get_current_driver),
    service: VehicleBookingService = Depends(get_booking_service),
):
    return service.cancel_booking(current_user, order_id)
