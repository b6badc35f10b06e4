"""Scheduling service - Garage schedules, calendar view and manual slot management"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import Schedule, SlotModificationType, TimeSlot, User
from .calendar_view import (
    generate_holidays_for_month,
    generate_week_schedule,
    get_current_week_info,
    get_month_name,
    get_week_date_range,
    get_weeks_in_month,
    validate_month,
    validate_week_number,
)
from .repository import ScheduleRepository
from .schemas import (
    ManualSlotRequest,
    ModifySlotTimeRequest,
    ScheduleCreate,
    ScheduleUpdate,
    SlotModificationRequest,
)
from .slot_rules import (
    MAX_SLOT_MINUTES,
    MIN_SLOT_MINUTES,
    combine,
    generate_slots_for_date,
    is_day_unavailable,
    time_to_minutes,
)

logger = logging.getLogger(__name__)

MAX_MODIFICATION_DAYS = 90


def slot_status(slot: TimeSlot) -> str:
    if slot.order_id:
        return "BOOKED"
    if slot.is_blocked:
        return "BLOCKED"
    return "AVAILABLE" if slot.is_available else "BOOKED"


def is_placeholder(slot: TimeSlot) -> bool:
    """Blocked TIME_MODIFIED rows only hide a template slot that was moved or replaced"""
    return slot.is_blocked and slot.modification_type == SlotModificationType.TIME_MODIFIED and not slot.order_id


def serialize_slot(slot: TimeSlot) -> dict:
    return {
        "id": slot.id,
        "start_time": slot.start_datetime.strftime("%H:%M"),
        "end_time": slot.end_datetime.strftime("%H:%M"),
        "date": slot.start_datetime.date().isoformat(),
        "status": slot_status(slot),
        "modification_type": slot.modification_type,
        "modification_reason": slot.modification_reason,
    }


def _parse_date(value: str) -> date:
    return datetime.strptime(value, "%Y-%m-%d").date()


def _day_bounds(d: date) -> tuple[datetime, datetime]:
    start = datetime(d.year, d.month, d.day)
    return start, start + timedelta(days=1)


class SchedulingService:
    """Service layer for schedule and slot management"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ScheduleRepository()

    # ========================================================================
    # SCHEDULE CRUD
    # ========================================================================

    def get_schedule(self, garage: User) -> Schedule:
        schedule = self.repo.get_schedule(self.db, garage.id)
        if not schedule:
            raise HTTPException(status_code=404, detail="No schedule found for this garage")
        return schedule

    def _validate_hours(self, start_time: str, end_time: str, slot_duration: int) -> None:
        if time_to_minutes(start_time) >= time_to_minutes(end_time):
            raise HTTPException(status_code=400, detail="start_time must be before end_time")
        if slot_duration < MIN_SLOT_MINUTES or slot_duration > MAX_SLOT_MINUTES:
            raise HTTPException(
                status_code=400,
                detail=f"slot_duration must be between {MIN_SLOT_MINUTES} and {MAX_SLOT_MINUTES} minutes",
            )

    def create_schedule(self, garage: User, data: ScheduleCreate) -> Schedule:
        if self.repo.get_schedule(self.db, garage.id):
            raise HTTPException(status_code=409, detail="Schedule already exists for this garage")

        self._validate_hours(data.start_time, data.end_time, data.slot_duration)
        payload = data.model_dump()
        logger.info(f"📅 Creating schedule for garage {garage.id}")
        return self.repo.create_schedule(self.db, garage.id, **payload)

    def update_schedule(self, garage: User, data: ScheduleUpdate) -> Schedule:
        schedule = self.get_schedule(garage)
        updates = data.model_dump(exclude_unset=True)

        self._validate_hours(
            updates.get("start_time") or schedule.start_time,
            updates.get("end_time") or schedule.end_time,
            updates.get("slot_duration") or schedule.slot_duration,
        )
        logger.info(f"📅 Updating schedule for garage {garage.id}: {list(updates.keys())}")
        return self.repo.update_schedule(self.db, schedule, **updates)

    # ========================================================================
    # SLOT LISTING
    # ========================================================================

    def get_day_slots(self, garage_id: int, d: date, now: Optional[datetime] = None) -> dict:
        """
        Merge generated template slots with stored slots for one date.

        Template slots have no id. A stored slot replaces every template slot
        it overlaps. Slots that have already started are left out.
        """
        now = now or datetime.now()
        schedule = self.repo.get_schedule(self.db, garage_id)
        day_start, day_end = _day_bounds(d)
        stored = self.repo.get_slots_between(self.db, garage_id, day_start, day_end)

        if not schedule and not stored:
            return {"date": d.isoformat(), "slots": [], "message": "No schedule found for this garage"}

        slots = []
        for template in generate_slots_for_date(schedule, d):
            start = combine(d, template["start_time"])
            end = combine(d, template["end_time"])
            if start < now:
                continue
            if any(s.start_datetime < end and s.end_datetime > start for s in stored):
                continue
            slots.append({**template, "id": None, "date": d.isoformat(), "status": "AVAILABLE"})

        for slot in stored:
            if is_placeholder(slot):
                continue
            if slot.start_datetime < now and slot_status(slot) == "AVAILABLE":
                continue
            slots.append(serialize_slot(slot))

        slots.sort(key=lambda s: s["start_time"])

        message = None
        if not slots:
            if schedule and is_day_unavailable(schedule, d):
                message = "No slots available for this date (holiday or closed)"
            else:
                message = "No slots available for this date"
        return {"date": d.isoformat(), "slots": slots, "message": message}

    # ========================================================================
    # CALENDAR VIEW
    # ========================================================================

    def get_calendar_view(
        self, garage: User, year: int, month: int, week: Optional[int] = None, today: Optional[date] = None
    ) -> dict:
        validate_month(year, month)
        today = today or date.today()
        week_info = get_current_week_info(year, month, today)
        week_number = week or week_info["week_number"]

        if not validate_week_number(week_number, year, month):
            raise HTTPException(
                status_code=400,
                detail=f"Invalid week number. {get_month_name(month)} {year} has {get_weeks_in_month(year, month)} weeks",
            )

        schedule = self.repo.get_schedule(self.db, garage.id)
        week_start, week_end = get_week_date_range(year, month, week_number)
        days = generate_week_schedule(schedule, week_start, today)

        range_start, _ = _day_bounds(week_start)
        _, range_end = _day_bounds(week_end)
        stored = self.repo.get_slots_between(self.db, garage.id, range_start, range_end)
        booked = [serialize_slot(s) for s in stored if not is_placeholder(s)]
        for day in days:
            day["slots"] = [s for s in booked if s["date"] == day["date"]]

        return {
            "year": year,
            "month": month,
            "month_name": get_month_name(month),
            "week_number": week_number,
            "total_weeks": get_weeks_in_month(year, month),
            "week_start": week_start.isoformat(),
            "week_end": week_end.isoformat(),
            "today": week_info["today_date"],
            "schedule": {
                "start_time": schedule.start_time,
                "end_time": schedule.end_time,
                "slot_duration": schedule.slot_duration,
                "is_active": schedule.is_active,
            }
            if schedule
            else None,
            "days": days,
            "holidays": generate_holidays_for_month(schedule, year, month),
        }

    # ========================================================================
    # SLOT MODIFICATIONS
    # ========================================================================

    def _slots_in_window(
        self, garage_id: int, schedule: Optional[Schedule], d: date, start_time: Optional[str], end_time: Optional[str]
    ) -> tuple[list[TimeSlot], list[dict]]:
        """Stored and template slots on ``d`` that fall inside the optional time window"""
        day_start, day_end = _day_bounds(d)
        stored = [s for s in self.repo.get_slots_between(self.db, garage_id, day_start, day_end) if not is_placeholder(s)]
        templates = []
        for template in generate_slots_for_date(schedule, d):
            start = combine(d, template["start_time"])
            end = combine(d, template["end_time"])
            if any(s.start_datetime < end and s.end_datetime > start for s in stored):
                continue
            templates.append({"start": start, "end": end})

        def in_window(start: datetime, end: datetime) -> bool:
            if start_time and start.strftime("%H:%M") < start_time:
                return False
            if end_time and end.strftime("%H:%M") > end_time:
                return False
            return True

        stored = [s for s in stored if in_window(s.start_datetime, s.end_datetime)]
        templates = [t for t in templates if in_window(t["start"], t["end"])]
        return stored, templates

    def modify_slots(self, garage: User, data: SlotModificationRequest) -> dict:
        """Block or unblock every slot in a date range (optionally narrowed to a time window)"""
        start_date = _parse_date(data.start_date)
        end_date = _parse_date(data.end_date)
        if end_date < start_date:
            raise HTTPException(status_code=400, detail="end_date must be on or after start_date")
        if (end_date - start_date).days > MAX_MODIFICATION_DAYS:
            raise HTTPException(status_code=400, detail=f"Date range cannot exceed {MAX_MODIFICATION_DAYS} days")
        if data.start_time and data.end_time and data.start_time >= data.end_time:
            raise HTTPException(status_code=400, detail="start_time must be before end_time")

        schedule = self.repo.get_schedule(self.db, garage.id)
        window = []
        current = start_date
        while current <= end_date:
            window.append((current, *self._slots_in_window(garage.id, schedule, current, data.start_time, data.end_time)))
            current += timedelta(days=1)

        if data.action == "BLOCK" and not data.replace_existing:
            booked = [s for _, stored, _ in window for s in stored if s.order_id]
            if booked:
                return {
                    "success": False,
                    "requires_confirmation": True,
                    "message": f"{len(booked)} booked slot(s) fall inside this range and will be left untouched",
                    "warning": "Resend with replace_existing=true to block the remaining slots",
                    "affected_slots": [
                        {
                            "id": s.id,
                            "time": f"{s.start_datetime:%Y-%m-%d %H:%M}",
                            "status": "BOOKED",
                            "source": "DATABASE",
                        }
                        for s in booked
                    ],
                }

        modifications = []
        try:
            for _, stored, templates in window:
                for slot in stored:
                    if slot.order_id:
                        modifications.append({"slot_id": slot.id, "status": "SKIPPED_BOOKED"})
                        continue
                    if data.action == "BLOCK":
                        slot.is_blocked = True
                        slot.is_available = False
                        slot.modification_type = SlotModificationType.MANUAL_BLOCK
                        slot.modification_reason = data.reason
                        slot.modified_by = garage.id
                    elif slot.is_blocked:
                        slot.is_blocked = False
                        slot.is_available = True
                        slot.modification_type = None
                        slot.modification_reason = None
                        slot.modified_by = garage.id
                    else:
                        continue
                    modifications.append({"slot_id": slot.id, "status": "UPDATED"})

                if data.action == "BLOCK":
                    for template in templates:
                        slot = self.repo.add_slot(
                            self.db,
                            garage_id=garage.id,
                            schedule_id=schedule.id if schedule else None,
                            start_datetime=template["start"],
                            end_datetime=template["end"],
                            is_available=False,
                            is_blocked=True,
                            modification_type=SlotModificationType.MANUAL_BLOCK,
                            modification_reason=data.reason,
                            modified_by=garage.id,
                        )
                        modifications.append({"slot_id": slot.id, "status": "CREATED"})
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Slot {data.action.lower()} failed for garage {garage.id}: {e}")
            raise

        changed = len([m for m in modifications if m["status"] != "SKIPPED_BOOKED"])
        logger.info(f"✅ {data.action} applied to {changed} slot(s) for garage {garage.id}")
        return {
            "success": True,
            "modifications": modifications,
            "message": f"{changed} slot(s) {'blocked' if data.action == 'BLOCK' else 'unblocked'}",
        }

    def add_manual_slots(self, garage: User, data: ManualSlotRequest, now: Optional[datetime] = None) -> dict:
        """
        Add slots by hand for one date. With ``replace`` the day's unbooked
        slots (stored and generated) are replaced by exactly the given ones.
        """
        now = now or datetime.now()
        d = _parse_date(data.date)
        if d < now.date():
            raise HTTPException(status_code=400, detail="Cannot add slots in the past")

        requested = sorted(
            ((combine(d, s.start_time), combine(d, s.end_time)) for s in data.slots), key=lambda r: r[0]
        )
        for (_, prev_end), (next_start, _) in zip(requested, requested[1:]):
            if next_start < prev_end:
                raise HTTPException(status_code=400, detail="Manual slots must not overlap each other")

        schedule = self.repo.get_schedule(self.db, garage.id)
        day_start, day_end = _day_bounds(d)
        modifications = []

        try:
            existing = self.repo.get_slots_between(self.db, garage.id, day_start, day_end)
            if data.replace:
                self.repo.delete_slots(self.db, [s for s in existing if not s.order_id])
                existing = [s for s in existing if s.order_id]
                # Hide generated slots the new set does not cover
                for template in generate_slots_for_date(schedule, d):
                    start = combine(d, template["start_time"])
                    end = combine(d, template["end_time"])
                    if any(start < r_end and end > r_start for r_start, r_end in requested):
                        continue
                    if any(s.start_datetime == start for s in existing):
                        continue
                    self.repo.add_slot(
                        self.db,
                        garage_id=garage.id,
                        start_datetime=start,
                        end_datetime=end,
                        is_available=False,
                        is_blocked=True,
                        modification_type=SlotModificationType.TIME_MODIFIED,
                        modification_reason="Replaced by manual slots",
                        modified_by=garage.id,
                    )

            for start, end in requested:
                booked = [s for s in existing if s.order_id and s.start_datetime < end and s.end_datetime > start]
                if booked:
                    modifications.append({"slot_id": booked[0].id, "status": "SKIPPED_BOOKED"})
                    continue

                same_start = next((s for s in existing if s.start_datetime == start), None)
                if same_start:
                    same_start.end_datetime = end
                    same_start.is_available = True
                    same_start.is_blocked = False
                    same_start.modification_type = None
                    same_start.modified_by = garage.id
                    modifications.append({"slot_id": same_start.id, "status": "UPDATED"})
                    continue

                slot = self.repo.add_slot(
                    self.db,
                    garage_id=garage.id,
                    schedule_id=schedule.id if schedule else None,
                    start_datetime=start,
                    end_datetime=end,
                    is_available=True,
                    is_blocked=False,
                    modified_by=garage.id,
                )
                existing.append(slot)
                modifications.append({"slot_id": slot.id, "status": "CREATED"})

            self.db.commit()
        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Manual slot creation failed for garage {garage.id}: {e}")
            raise

        created = len([m for m in modifications if m["status"] != "SKIPPED_BOOKED"])
        return {
            "success": True,
            "modifications": modifications,
            "message": f"{created} slot(s) saved for {d.isoformat()}",
        }

    def modify_slot_time(self, garage: User, data: ModifySlotTimeRequest, now: Optional[datetime] = None) -> dict:
        """Move a single unbooked slot (stored or generated) to a new time on the same date"""
        now = now or datetime.now()
        d = _parse_date(data.date)
        current_start = combine(d, data.current_time)
        new_start = combine(d, data.new_start_time)
        new_end = combine(d, data.new_end_time)

        if new_start >= new_end:
            raise HTTPException(status_code=400, detail="new_start_time must be before new_end_time")
        if new_start < now:
            raise HTTPException(status_code=400, detail="Cannot move a slot into the past")

        schedule = self.repo.get_schedule(self.db, garage.id)
        slot = self.repo.get_slot_at(self.db, garage.id, current_start)

        if slot and slot.order_id:
            raise HTTPException(status_code=409, detail="Cannot modify a booked slot")

        template = next(
            (t for t in generate_slots_for_date(schedule, d) if t["start_time"] == data.current_time), None
        )
        if slot is None and template is None:
            raise HTTPException(status_code=404, detail="Slot not found")

        original = {
            "start": data.current_time,
            "end": slot.end_datetime.strftime("%H:%M") if slot else template["end_time"],
        }

        conflicts = [
            s
            for s in self.repo.find_overlapping(self.db, garage.id, new_start, new_end, exclude_id=slot.id if slot else None)
            if not is_placeholder(s)
        ]
        if conflicts:
            raise HTTPException(status_code=409, detail="New time conflicts with an existing slot")

        try:
            moved_away = new_start != current_start
            if moved_away:
                target = self.repo.get_slot_at(self.db, garage.id, new_start)
                if target is not None and is_placeholder(target):
                    self.repo.delete_slots(self.db, [target])

            if slot is None:
                slot = self.repo.add_slot(
                    self.db,
                    garage_id=garage.id,
                    schedule_id=schedule.id if schedule else None,
                    start_datetime=new_start,
                    end_datetime=new_end,
                    is_available=True,
                    is_blocked=False,
                )
            else:
                if moved_away:
                    # Free the unique (garage, start) key before reusing it for a placeholder
                    slot.start_datetime = new_start
                slot.end_datetime = new_end
                self.db.flush()

            slot.modification_type = SlotModificationType.TIME_MODIFIED
            slot.modification_reason = data.reason
            slot.modified_by = garage.id

            if moved_away and template is not None:
                existing_placeholder = self.repo.get_slot_at(self.db, garage.id, current_start)
                if existing_placeholder is None:
                    self.repo.add_slot(
                        self.db,
                        garage_id=garage.id,
                        start_datetime=current_start,
                        end_datetime=combine(d, template["end_time"]),
                        is_available=False,
                        is_blocked=True,
                        modification_type=SlotModificationType.TIME_MODIFIED,
                        modification_reason=f"Moved to {data.new_start_time}",
                        modified_by=garage.id,
                    )
            self.db.commit()
            self.db.refresh(slot)
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Slot time change failed for garage {garage.id}: {e}")
            raise

        logger.info(
            f"🔄 Garage {garage.id} moved slot {data.date} {data.current_time} -> {data.new_start_time}-{data.new_end_time}"
        )
        return {
            "success": True,
            "modifications": [
                {
                    "slot_id": slot.id,
                    "status": "UPDATED",
                    "details": {
                        "original_time": original,
                        "new_time": {"start": data.new_start_time, "end": data.new_end_time},
                    },
                }
            ],
            "message": "Slot time updated successfully",
        }
