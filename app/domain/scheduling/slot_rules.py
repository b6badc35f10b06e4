"""Schedule rules - Expand a garage schedule into bookable slots and validate requested times.

Days of the week are numbered 0 (Sunday) to 6 (Saturday), matching the keys
of ``Schedule.daily_hours`` and the ``day_of_week`` field of restrictions.
"""

from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import HTTPException

from ...models import Schedule

MIN_SLOT_MINUTES = 15
MAX_SLOT_MINUTES = 480

HOLIDAY = "HOLIDAY"
BREAK = "BREAK"


def time_to_minutes(value: str) -> int:
    hours, minutes = value.split(":")[:2]
    return int(hours) * 60 + int(minutes)


def minutes_to_time(value: int) -> str:
    return f"{value // 60:02d}:{value % 60:02d}"


def day_of_week(d: date) -> int:
    """0 = Sunday ... 6 = Saturday"""
    return (d.weekday() + 1) % 7


def combine(d: date, hhmm: str) -> datetime:
    minutes = time_to_minutes(hhmm)
    return datetime(d.year, d.month, d.day) + timedelta(minutes=minutes)


def _restrictions(schedule: Schedule) -> list[dict]:
    restrictions = schedule.restrictions or []
    return restrictions if isinstance(restrictions, list) else []


def _day_config(schedule: Schedule, dow: int) -> dict:
    daily_hours = schedule.daily_hours or {}
    if not isinstance(daily_hours, dict):
        return {}
    return daily_hours.get(str(dow)) or daily_hours.get(dow) or {}


def matches_day_of_week(value, dow: int) -> bool:
    """A restriction's day_of_week may be an int, a numeric string or a list of either"""
    if value is None:
        return False
    if isinstance(value, (list, tuple)):
        return any(matches_day_of_week(v, dow) for v in value)
    try:
        return int(value) == dow
    except (TypeError, ValueError):
        return False


def is_closed_day(schedule: Schedule, d: date) -> bool:
    return bool(_day_config(schedule, day_of_week(d)).get("is_closed"))


def find_holiday(schedule: Schedule, d: date) -> Optional[dict]:
    """Return the HOLIDAY restriction covering ``d``, if any"""
    dow = day_of_week(d)
    iso = d.isoformat()
    for restriction in _restrictions(schedule):
        if restriction.get("type") != HOLIDAY:
            continue
        if restriction.get("date"):
            if str(restriction["date"])[:10] == iso:
                return restriction
            continue
        month, day = restriction.get("month"), restriction.get("day")
        if month is not None and day is not None and int(month) == d.month and int(day) == d.day:
            return restriction
        if matches_day_of_week(restriction.get("day_of_week"), dow):
            return restriction
    return None


def get_breaks(schedule: Schedule, d: date) -> list[dict]:
    """BREAK restrictions for the day; a break without day_of_week applies every day"""
    dow = day_of_week(d)
    breaks = []
    for restriction in _restrictions(schedule):
        if restriction.get("type") != BREAK:
            continue
        if not restriction.get("start_time") or not restriction.get("end_time"):
            continue
        if "day_of_week" in restriction and restriction["day_of_week"] is not None:
            if not matches_day_of_week(restriction["day_of_week"], dow):
                continue
        breaks.append(
            {
                "start_time": restriction["start_time"],
                "end_time": restriction["end_time"],
                "description": restriction.get("description") or "Break Time",
            }
        )
    return sorted(breaks, key=lambda b: time_to_minutes(b["start_time"]))


def get_operating_intervals(schedule: Schedule, d: date) -> list[tuple[str, str]]:
    """Opening intervals for the day: per-day intervals when configured, else the global hours"""
    config = _day_config(schedule, day_of_week(d))
    intervals = [
        (i["start_time"], i["end_time"])
        for i in config.get("intervals") or []
        if i.get("start_time") and i.get("end_time")
    ]
    if intervals:
        return sorted(intervals, key=lambda i: time_to_minutes(i[0]))
    if config.get("start_time") and config.get("end_time"):
        return [(config["start_time"], config["end_time"])]
    return [(schedule.start_time, schedule.end_time)]


def is_day_unavailable(schedule: Schedule, d: date) -> bool:
    return is_closed_day(schedule, d) or find_holiday(schedule, d) is not None


def generate_slots_for_date(schedule: Optional[Schedule], d: date) -> list[dict]:
    """
    Expand the schedule into template slots for one date.

    Slots step by ``slot_duration`` through each operating interval. A slot
    that would overlap a break restarts at the end of that break. Closed days,
    holidays and inactive schedules produce no slots.
    """
    if not schedule or not schedule.is_active or is_day_unavailable(schedule, d):
        return []

    duration = schedule.slot_duration or 60
    breaks = [(time_to_minutes(b["start_time"]), time_to_minutes(b["end_time"])) for b in get_breaks(schedule, d)]
    slots = []

    for interval_start, interval_end in get_operating_intervals(schedule, d):
        cursor = time_to_minutes(interval_start)
        end = time_to_minutes(interval_end)
        while cursor + duration <= end:
            slot_end = cursor + duration
            overlapping = [b for b in breaks if cursor < b[1] and slot_end > b[0]]
            if overlapping:
                cursor = max(b[1] for b in overlapping)
                continue
            slots.append({"start_time": minutes_to_time(cursor), "end_time": minutes_to_time(slot_end)})
            cursor = slot_end

    return slots


def validate_slot_is_bookable(
    schedule: Optional[Schedule],
    start: datetime,
    end: datetime,
    now: Optional[datetime] = None,
) -> None:
    """
    Check a requested template slot against the garage schedule.

    Raises:
        HTTPException(400) describing the first rule the slot breaks
    """
    if not schedule or not schedule.is_active:
        raise HTTPException(status_code=400, detail="Garage has no active schedule")

    now = now or datetime.now()
    if start < now:
        raise HTTPException(status_code=400, detail="Cannot book a slot in the past")

    if end.date() != start.date() and end != datetime.combine(start.date() + timedelta(days=1), datetime.min.time()):
        raise HTTPException(status_code=400, detail="Booking must start and end on the same day")

    duration = (end - start).total_seconds() / 60
    if duration < MIN_SLOT_MINUTES or duration > MAX_SLOT_MINUTES:
        raise HTTPException(
            status_code=400,
            detail=f"Slot duration must be between {MIN_SLOT_MINUTES} and {MAX_SLOT_MINUTES} minutes",
        )

    day = start.date()
    if is_closed_day(schedule, day):
        raise HTTPException(status_code=400, detail="Garage is closed on this day")

    if find_holiday(schedule, day):
        raise HTTPException(status_code=400, detail="Garage is closed on this date (holiday)")

    start_minutes = start.hour * 60 + start.minute
    end_minutes = start_minutes + int(duration)

    for brk in get_breaks(schedule, day):
        break_start = time_to_minutes(brk["start_time"])
        break_end = time_to_minutes(brk["end_time"])
        if start_minutes < break_end and end_minutes > break_start:
            raise HTTPException(
                status_code=400,
                detail=f"Cannot book during break time ({brk['start_time']} - {brk['end_time']})",
            )

    intervals = get_operating_intervals(schedule, day)
    fits = any(
        time_to_minutes(i_start) <= start_minutes and end_minutes <= time_to_minutes(i_end)
        for i_start, i_end in intervals
    )
    if not fits:
        hours = ", ".join(f"{i_start} - {i_end}" for i_start, i_end in intervals)
        raise HTTPException(status_code=400, detail=f"Booking must be within operating hours: {hours}")
