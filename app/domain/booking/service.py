"""Booking service - Driver slot booking with double-booking protection"""

import asyncio
import logging
from datetime import date, datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from ...config import BOOKING_MAX_RETRIES, BOOKING_RETRY_BASE_DELAY
from ...database import is_serialization_failure, is_unique_violation
from ...email_service import send_new_booking_email
from ...models import (
    NotificationType,
    Order,
    OrderStatus,
    Service,
    SlotModificationType,
    User,
    UserRole,
    UserStatus,
    Vehicle,
)
from ...shared.pagination import paginate
from ..notifications.service import NotificationService
from ..scheduling.repository import ScheduleRepository
from ..scheduling.service import SchedulingService
from ..scheduling.slot_rules import combine, validate_slot_is_bookable
from .repository import BookingRepository
from .schemas import BookSlotRequest

logger = logging.getLogger(__name__)

SLOT_TAKEN = "Slot not available or already booked"
TEMPLATE_SLOT_TAKEN = "This time slot is already booked"
RETRIES_EXHAUSTED = "This time slot was just booked by another user. Please choose another slot."
BOOKING_FAILED = "Unable to complete booking. Please try again or contact support."
CANCELLABLE_STATUSES = (OrderStatus.PENDING, OrderStatus.ACCEPTED)


def serialize_booking(order: Order) -> dict:
    slot = order.slot
    garage = order.garage
    vehicle = order.vehicle
    return {
        "id": order.id,
        "status": order.status,
        "total_amount": order.total_amount,
        "order_date": order.order_date,
        "garage": {
            "id": garage.id,
            "garage_name": garage.garage_name,
            "address": garage.address,
            "zip_code": garage.zip_code,
            "phone_number": garage.phone_number,
        }
        if garage
        else None,
        "vehicle": {
            "id": vehicle.id,
            "registration_number": vehicle.registration_number,
            "make": vehicle.make,
            "model": vehicle.model,
        }
        if vehicle
        else None,
        "slot": {
            "id": slot.id,
            "date": slot.start_datetime.date().isoformat(),
            "start_time": slot.start_datetime.strftime("%H:%M"),
            "end_time": slot.end_datetime.strftime("%H:%M"),
        }
        if slot
        else None,
        "items": [
            {
                "service_id": item.service_id,
                "name": item.service.name if item.service else None,
                "quantity": item.quantity,
                "price": item.price,
            }
            for item in order.items
        ],
    }


class VehicleBookingService:
    """
    Books MOT slots for drivers.

    Stored slots are claimed with a conditional UPDATE. Template slots are
    materialised inside a SERIALIZABLE transaction; the unique
    ``(garage_id, start_datetime)`` index turns a lost race into a unique
    violation, which is retried with exponential backoff.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = BookingRepository()
        self.schedule_repo = ScheduleRepository()
        self.notifications = NotificationService(db)

    # ========================================================================
    # BOOKING
    # ========================================================================

    def _validate_request(self, driver: User, request: BookSlotRequest) -> tuple[User, Vehicle, Service]:
        if driver.role != UserRole.DRIVER or driver.status != UserStatus.ACTIVE:
            raise HTTPException(status_code=404, detail="User not found or not a driver")

        vehicle = self.repo.get_driver_vehicle(self.db, driver.id, request.vehicle_id)
        if not vehicle:
            raise HTTPException(status_code=404, detail="Vehicle not found")

        garage = self.repo.get_bookable_garage(self.db, request.garage_id)
        if not garage:
            raise HTTPException(status_code=404, detail="Garage not available")

        service = self.repo.get_garage_service(self.db, garage.id, request.service_type)
        if not service:
            raise HTTPException(
                status_code=404, detail=f"{request.service_type} service not available for this garage"
            )

        if request.slot_id is None and not (request.date and request.start_time and request.end_time):
            raise HTTPException(
                status_code=400, detail="Either slot_id or date, start_time and end_time are required"
            )
        return garage, vehicle, service

    def _create_order(
        self, driver: User, vehicle: Vehicle, service: Service, garage_id: int, slot_id: int, start: datetime
    ) -> Order:
        order = self.repo.create_order(
            self.db,
            driver_id=driver.id,
            vehicle_id=vehicle.id,
            garage_id=garage_id,
            slot_id=slot_id,
            status=OrderStatus.PENDING,
            total_amount=service.price,
            order_date=start,
        )
        self.repo.add_order_item(self.db, order_id=order.id, service_id=service.id, quantity=1, price=service.price)
        return order

    def _book_existing_slot(self, driver: User, vehicle: Vehicle, service: Service, garage_id: int, slot_id: int):
        try:
            if not self.repo.claim_slot(self.db, slot_id, garage_id):
                raise HTTPException(status_code=409, detail=SLOT_TAKEN)

            slot = self.repo.get_slot(self.db, slot_id)
            order = self._create_order(driver, vehicle, service, garage_id, slot.id, slot.start_datetime)
            slot.order_id = order.id
            slot.is_available = False
            slot.modification_type = SlotModificationType.BOOKED
            self.db.commit()
            return order, slot
        except HTTPException:
            self.db.rollback()
            raise
        except DBAPIError as e:
            self.db.rollback()
            if is_unique_violation(e):
                raise HTTPException(status_code=409, detail=SLOT_TAKEN) from e
            raise

    def _book_template_slot_once(
        self, driver: User, vehicle: Vehicle, service: Service, garage_id: int, start: datetime, end: datetime
    ):
        # Isolation level can only be chosen at the start of a transaction
        self.db.rollback()
        self.db.connection(execution_options={"isolation_level": "SERIALIZABLE"})

        slot = self.repo.get_slot_at(self.db, garage_id, start)
        if slot and (slot.order_id or slot.is_blocked or not slot.is_available):
            raise HTTPException(status_code=409, detail=TEMPLATE_SLOT_TAKEN)
        if self.repo.has_overlapping_taken_slot(self.db, garage_id, start, end):
            raise HTTPException(status_code=409, detail=TEMPLATE_SLOT_TAKEN)

        if not slot:
            schedule = self.schedule_repo.get_schedule(self.db, garage_id)
            slot = self.repo.add_slot(
                self.db,
                garage_id=garage_id,
                schedule_id=schedule.id if schedule else None,
                start_datetime=start,
                end_datetime=end,
                is_available=False,
                is_blocked=False,
            )

        order = self._create_order(driver, vehicle, service, garage_id, slot.id, start)
        slot.order_id = order.id
        slot.is_available = False
        slot.modification_type = SlotModificationType.BOOKED
        slot.modified_by = driver.id
        self.db.commit()
        return order, slot

    async def _book_template_slot(
        self, driver: User, vehicle: Vehicle, service: Service, garage_id: int, start: datetime, end: datetime
    ):
        schedule = self.schedule_repo.get_schedule(self.db, garage_id)
        validate_slot_is_bookable(schedule, start, end)

        for attempt in range(BOOKING_MAX_RETRIES + 1):
            try:
                return self._book_template_slot_once(driver, vehicle, service, garage_id, start, end)
            except HTTPException:
                self.db.rollback()
                raise
            except DBAPIError as e:
                self.db.rollback()
                if not (is_serialization_failure(e) or is_unique_violation(e)):
                    raise
                if attempt >= BOOKING_MAX_RETRIES:
                    logger.warning(f"⚠️ Booking retries exhausted for garage {garage_id} at {start}")
                    raise HTTPException(status_code=409, detail=RETRIES_EXHAUSTED) from e
                delay = BOOKING_RETRY_BASE_DELAY * (2**attempt)
                logger.info(f"🔄 Booking conflict for garage {garage_id} at {start}, retry {attempt + 1} in {delay}s")
                await asyncio.sleep(delay)

        raise HTTPException(status_code=409, detail=RETRIES_EXHAUSTED)

    async def book_slot(self, driver: User, request: BookSlotRequest) -> dict:
        garage, vehicle, service = self._validate_request(driver, request)

        try:
            if request.slot_id is not None:
                order, slot = self._book_existing_slot(driver, vehicle, service, garage.id, request.slot_id)
            else:
                d = datetime.strptime(request.date, "%Y-%m-%d").date()
                start = combine(d, request.start_time)
                end = combine(d, request.end_time)
                order, slot = await self._book_template_slot(driver, vehicle, service, garage.id, start, end)
        except HTTPException:
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Booking failed for driver {driver.id} at garage {garage.id}: {e}")
            raise HTTPException(status_code=400, detail=BOOKING_FAILED) from e

        logger.info(f"✅ Booking {order.id} confirmed: driver {driver.id}, garage {garage.id}, slot {slot.id}")
        await self._notify_garage(order, garage, driver, vehicle, request.service_type, slot.start_datetime)

        return {
            "success": True,
            "message": "Booking confirmed successfully",
            "data": {
                "order_id": order.id,
                "garage_id": garage.id,
                "vehicle_id": vehicle.id,
                "slot_id": slot.id,
                "service_type": request.service_type,
                "total_amount": order.total_amount,
                "order_date": order.order_date.isoformat() if order.order_date else None,
                "status": order.status,
            },
        }

    async def _notify_garage(
        self, order: Order, garage: User, driver: User, vehicle: Vehicle, service_type: str, start: datetime
    ) -> None:
        slot_time = start.strftime("%d %b %Y %H:%M")
        self.notifications.safe_create(
            garage.id,
            NotificationType.BOOKING,
            f"New {service_type} booking for {vehicle.registration_number} on {slot_time}",
            sender_id=driver.id,
            entity_id=str(order.id),
        )
        try:
            await send_new_booking_email(
                garage.email,
                garage.garage_name or garage.name or garage.email,
                driver.name or driver.email,
                vehicle.registration_number,
                service_type,
                slot_time,
                order.total_amount,
            )
        except Exception as e:
            logger.error(f"❌ Failed to send booking email for order {order.id}: {e}")

    # ========================================================================
    # QUERIES
    # ========================================================================

    def get_available_slots(self, garage_id: int, d: date, now: Optional[datetime] = None) -> dict:
        if not self.repo.get_bookable_garage(self.db, garage_id):
            raise HTTPException(status_code=404, detail="Garage not available")
        return SchedulingService(self.db).get_day_slots(garage_id, d, now)

    def get_my_bookings(
        self, driver: User, status: Optional[str] = None, search: Optional[str] = None, page: int = 1, limit: int = 10
    ) -> dict:
        query = self.repo.driver_bookings_query(self.db, driver.id, status, search)
        orders, pagination = paginate(query, page, limit)
        return {"data": [serialize_booking(o) for o in orders], "pagination": pagination}

    def get_booking(self, driver: User, order_id: int) -> dict:
        order = self.repo.get_driver_order(self.db, driver.id, order_id)
        if not order:
            raise HTTPException(status_code=404, detail="Booking not found")
        return serialize_booking(order)

    def cancel_booking(self, driver: User, order_id: int) -> dict:
        order = self.repo.get_driver_order(self.db, driver.id, order_id)
        if not order:
            raise HTTPException(status_code=404, detail="Booking not found")
        if order.status not in CANCELLABLE_STATUSES:
            raise HTTPException(status_code=400, detail=f"Cannot cancel a booking that is {order.status}")

        order.status = OrderStatus.CANCELLED
        release_slot(order)
        self.db.commit()

        self.notifications.safe_create(
            order.garage_id,
            NotificationType.BOOKING_STATUS,
            f"Booking #{order.id} was cancelled by the driver",
            sender_id=driver.id,
            entity_id=str(order.id),
        )
        logger.info(f"🚫 Booking {order.id} cancelled by driver {driver.id}")
        return serialize_booking(order)


def release_slot(order: Order) -> None:
    """
    Free the order's slot so it can be booked again.

    The order lets go of the slot too; `order_date` still holds its start.
    """
    slot = order.slot
    order.slot = None
    if not slot:
        return
    slot.order_id = None
    slot.is_available = True
    slot.is_blocked = False
    slot.modification_type = None
