"""Scheduling router - Garage schedule, calendar and slot management endpoints"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...auth import get_current_garage
from ...database import get_db
from ...models import User
from .schemas import (
    ManualSlotRequest,
    ModifySlotTimeRequest,
    ScheduleCreate,
    ScheduleResponse,
    ScheduleUpdate,
    SlotModificationRequest,
)
from .service import SchedulingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/garage/schedule", tags=["Garage Schedule"])


def get_scheduling_service(db: Session = Depends(get_db)) -> SchedulingService:
    """Dependency injection for SchedulingService"""
    return SchedulingService(db)


# ============================================================================
# SCHEDULE
# ============================================================================


@router.get("", response_model=ScheduleResponse)
async def get_schedule(
    current_user: User = Depends(get_current_garage),
    service: SchedulingService = Depends(get_scheduling_service),
):
    return service.get_schedule(current_user)


@router.post("", response_model=ScheduleResponse, status_code=201)
async def create_schedule(
    data: ScheduleCreate,
    current_user: User = Depends(get_current_garage),
    service: SchedulingService = Depends(get_scheduling_service),
):
    return service.create_schedule(current_user, data)


@router.patch("", response_model=ScheduleResponse)
async def update_schedule(
    data: ScheduleUpdate,
    current_user: User = Depends(get_current_garage),
    service: SchedulingService = Depends(get_scheduling_service),
):
    return service.update_schedule(current_user, data)


# ============================================================================
# CALENDAR + SLOTS
# ============================================================================


@router.get("/calendar")
async def get_calendar_view(
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
    week: Optional[int] = Query(None, ge=1, le=6),
    current_user: User = Depends(get_current_garage),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Week-by-week calendar with hours, breaks, holidays and stored slots"""
    return service.get_calendar_view(current_user, year, month, week)


@router.get("/slots")
async def get_slots_for_date(
    date: str,
    current_user: User = Depends(get_current_garage),
    service: SchedulingService = Depends(get_scheduling_service),
):
    try:
        day = datetime.strptime(date, "%Y-%m-%d").date()
    except ValueError as e:
        raise HTTPException(status_code=400, detail="Date must be in YYYY-MM-DD format") from e
    return service.get_day_slots(current_user.id, day)


@router.post("/slots/modify")
async def modify_slots(
    data: SlotModificationRequest,
    current_user: User = Depends(get_current_garage),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Block or unblock slots across a date range"""
    return service.modify_slots(current_user, data)


@router.post("/slots/manual")
async def add_manual_slots(
    data: ManualSlotRequest,
    current_user: User = Depends(get_current_garage),
    service: SchedulingService = Depends(get_scheduling_service),
):
    return service.add_manual_slots(current_user, data)


@router.patch("/slots/time")
async def modify_slot_time(
    data: ModifySlotTimeRequest,
    current_user: User = Depends(get_current_garage),
    service: SchedulingService = Depends(get_scheduling_service),
):
    return service.modify_slot_time(current_user, data)
