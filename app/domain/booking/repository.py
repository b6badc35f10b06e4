"""Booking repository - Database operations for driver bookings"""

from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Query, Session, joinedload

from ...models import Order, OrderItem, Service, TimeSlot, User, UserRole, UserStatus, Vehicle
from ...shared.validators import normalize_status_filter


class BookingRepository:
    """Repository for booking database operations"""

    @staticmethod
    def get_driver_vehicle(db: Session, driver_id: int, vehicle_id: int) -> Optional[Vehicle]:
        return db.query(Vehicle).filter(Vehicle.id == vehicle_id, Vehicle.user_id == driver_id).first()

    @staticmethod
    def get_bookable_garage(db: Session, garage_id: int) -> Optional[User]:
        """Approved, active garage that drivers can currently see"""
        return (
            db.query(User)
            .filter(
                User.id == garage_id,
                User.role == UserRole.GARAGE,
                User.status == UserStatus.ACTIVE,
                User.approved_at.isnot(None),
                User.has_subscription.is_(True),
            )
            .first()
        )

    @staticmethod
    def get_garage_service(db: Session, garage_id: int, service_type: str) -> Optional[Service]:
        return (
            db.query(Service)
            .filter(Service.garage_id == garage_id, Service.type == service_type, Service.price > 0)
            .first()
        )

    @staticmethod
    def claim_slot(db: Session, slot_id: int, garage_id: int) -> bool:
        """Conditionally take a free slot; False when another booking got there first"""
        claimed = (
            db.query(TimeSlot)
            .filter(
                TimeSlot.id == slot_id,
                TimeSlot.garage_id == garage_id,
                TimeSlot.is_available.is_(True),
                TimeSlot.is_blocked.is_(False),
                TimeSlot.order_id.is_(None),
            )
            .update({TimeSlot.is_available: False}, synchronize_session=False)
        )
        return claimed == 1

    @staticmethod
    def get_slot(db: Session, slot_id: int) -> Optional[TimeSlot]:
        return db.query(TimeSlot).filter(TimeSlot.id == slot_id).first()

    @staticmethod
    def get_slot_at(db: Session, garage_id: int, start: datetime) -> Optional[TimeSlot]:
        return db.query(TimeSlot).filter(TimeSlot.garage_id == garage_id, TimeSlot.start_datetime == start).first()

    @staticmethod
    def has_overlapping_taken_slot(db: Session, garage_id: int, start: datetime, end: datetime) -> bool:
        return (
            db.query(TimeSlot.id)
            .filter(
                TimeSlot.garage_id == garage_id,
                TimeSlot.start_datetime < end,
                TimeSlot.end_datetime > start,
                TimeSlot.start_datetime != start,
                or_(TimeSlot.order_id.isnot(None), TimeSlot.is_blocked.is_(True), TimeSlot.is_available.is_(False)),
            )
            .first()
            is not None
        )

    @staticmethod
    def add_slot(db: Session, **data) -> TimeSlot:
        slot = TimeSlot(**data)
        db.add(slot)
        db.flush()
        return slot

    @staticmethod
    def create_order(db: Session, **data) -> Order:
        order = Order(**data)
        db.add(order)
        db.flush()
        return order

    @staticmethod
    def add_order_item(db: Session, **data) -> OrderItem:
        item = OrderItem(**data)
        db.add(item)
        db.flush()
        return item

    @staticmethod
    def get_driver_order(db: Session, driver_id: int, order_id: int) -> Optional[Order]:
        return (
            db.query(Order)
            .options(joinedload(Order.garage), joinedload(Order.vehicle), joinedload(Order.slot))
            .filter(Order.id == order_id, Order.driver_id == driver_id)
            .first()
        )

    @staticmethod
    def driver_bookings_query(
        db: Session, driver_id: int, status: Optional[str] = None, search: Optional[str] = None
    ) -> Query:
        query = (
            db.query(Order)
            .options(joinedload(Order.garage), joinedload(Order.vehicle), joinedload(Order.slot))
            .filter(Order.driver_id == driver_id)
        )
        status = normalize_status_filter(status)
        if status:
            query = query.filter(Order.status == status)
        if search:
            term = f"%{search.strip()}%"
            garage_ids = db.query(User.id).filter(
                User.role == UserRole.GARAGE, or_(User.garage_name.ilike(term), User.name.ilike(term))
            )
            vehicle_ids = db.query(Vehicle.id).filter(Vehicle.registration_number.ilike(term))
            query = query.filter(or_(Order.garage_id.in_(garage_ids), Order.vehicle_id.in_(vehicle_ids)))
        return query.order_by(Order.created_at.desc(), Order.id.desc())
