"""Scheduling repository - Database operations for schedules and time slots"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Schedule, TimeSlot


class ScheduleRepository:
    """Repository for schedule and time slot database operations"""

    @staticmethod
    def get_schedule(db: Session, garage_id: int) -> Optional[Schedule]:
        return db.query(Schedule).filter(Schedule.garage_id == garage_id).first()

    @staticmethod
    def create_schedule(db: Session, garage_id: int, **data) -> Schedule:
        schedule = Schedule(garage_id=garage_id, **data)
        db.add(schedule)
        db.commit()
        db.refresh(schedule)
        return schedule

    @staticmethod
    def update_schedule(db: Session, schedule: Schedule, **updates) -> Schedule:
        for key, value in updates.items():
            if hasattr(schedule, key):
                setattr(schedule, key, value)
        db.commit()
        db.refresh(schedule)
        return schedule

    # ------------------------------------------------------------------
    # Time slots
    # ------------------------------------------------------------------

    @staticmethod
    def get_slot(db: Session, slot_id: int, garage_id: int) -> Optional[TimeSlot]:
        return db.query(TimeSlot).filter(TimeSlot.id == slot_id, TimeSlot.garage_id == garage_id).first()

    @staticmethod
    def get_slot_at(db: Session, garage_id: int, start_datetime: datetime) -> Optional[TimeSlot]:
        return (
            db.query(TimeSlot)
            .filter(TimeSlot.garage_id == garage_id, TimeSlot.start_datetime == start_datetime)
            .first()
        )

    @staticmethod
    def get_slots_between(db: Session, garage_id: int, start: datetime, end: datetime) -> list[TimeSlot]:
        """Slots starting in [start, end)"""
        return (
            db.query(TimeSlot)
            .filter(
                TimeSlot.garage_id == garage_id,
                TimeSlot.start_datetime >= start,
                TimeSlot.start_datetime < end,
            )
            .order_by(TimeSlot.start_datetime)
            .all()
        )

    @staticmethod
    def find_overlapping(
        db: Session, garage_id: int, start: datetime, end: datetime, exclude_id: Optional[int] = None
    ) -> list[TimeSlot]:
        query = db.query(TimeSlot).filter(
            TimeSlot.garage_id == garage_id,
            TimeSlot.start_datetime < end,
            TimeSlot.end_datetime > start,
        )
        if exclude_id is not None:
            query = query.filter(TimeSlot.id != exclude_id)
        return query.all()

    @staticmethod
    def add_slot(db: Session, **data) -> TimeSlot:
        """Stage a new slot in the current transaction"""
        slot = TimeSlot(**data)
        db.add(slot)
        db.flush()
        return slot

    @staticmethod
    def delete_slots(db: Session, slots: list[TimeSlot]) -> None:
        for slot in slots:
            db.delete(slot)
        db.flush()
