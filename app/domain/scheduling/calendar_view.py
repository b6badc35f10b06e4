"""Calendar view helpers - Month/week arithmetic for the garage schedule calendar.

Weeks run Sunday to Saturday. Week 1 of a month is the week containing the
1st, so it may start in the previous month.
"""

from datetime import date, timedelta
from typing import Optional

from fastapi import HTTPException

from ...models import Schedule
from .slot_rules import day_of_week, find_holiday, get_breaks, get_operating_intervals, is_closed_day

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]
MONTH_NAMES = [
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
]


def _first_week_start(year: int, month: int) -> date:
    first = date(year, month, 1)
    return first - timedelta(days=day_of_week(first))


def _last_day_of_month(year: int, month: int) -> date:
    if month == 12:
        return date(year, 12, 31)
    return date(year, month + 1, 1) - timedelta(days=1)


def calculate_week_number(d: date, year: int, month: int) -> int:
    """1-based week of ``year``/``month`` that ``d`` falls in"""
    return (d - _first_week_start(year, month)).days // 7 + 1


def get_week_date_range(year: int, month: int, week_number: int) -> tuple[date, date]:
    start = _first_week_start(year, month) + timedelta(days=(week_number - 1) * 7)
    return start, start + timedelta(days=6)


def get_weeks_in_month(year: int, month: int) -> int:
    return calculate_week_number(_last_day_of_month(year, month), year, month)


def get_current_week_info(year: int, month: int, today: Optional[date] = None) -> dict:
    """Week containing today when viewing the current month, else week 1"""
    today = today or date.today()
    is_current_month = today.year == year and today.month == month
    return {
        "week_number": calculate_week_number(today, year, month) if is_current_month else 1,
        "today_date": today.isoformat(),
        "is_current_month": is_current_month,
    }


def validate_week_number(week_number: int, year: int, month: int) -> bool:
    return 1 <= week_number <= get_weeks_in_month(year, month)


def validate_month(year: int, month: int) -> None:
    if month < 1 or month > 12:
        raise HTTPException(status_code=400, detail="Month must be between 1 and 12")
    if year < 2000 or year > 2100:
        raise HTTPException(status_code=400, detail="Year is out of range")


def get_day_name(dow: int) -> str:
    return DAY_NAMES[dow]


def get_month_name(month: int) -> str:
    return MONTH_NAMES[month - 1]


def generate_week_schedule(schedule: Optional[Schedule], week_start: date, today: Optional[date] = None) -> list[dict]:
    """Seven day summaries (hours, breaks, holiday flag) starting at ``week_start``"""
    today = today or date.today()
    days = []

    for offset in range(7):
        current = week_start + timedelta(days=offset)
        dow = day_of_week(current)
        holiday = find_holiday(schedule, current) if schedule else None
        closed = is_closed_day(schedule, current) if schedule else False

        hours: list[dict] = []
        if holiday:
            description = holiday.get("description") or "Holiday"
        elif closed:
            description = "Closed"
        elif schedule and schedule.is_active:
            hours = [{"start_time": s, "end_time": e} for s, e in get_operating_intervals(schedule, current)]
            description = "Normal Working Day"
        else:
            description = "No schedule"

        days.append(
            {
                "date": current.isoformat(),
                "day_of_week": dow,
                "day_name": get_day_name(dow),
                "start_time": hours[0]["start_time"] if hours else None,
                "end_time": hours[-1]["end_time"] if hours else None,
                "operating_hours": hours,
                "is_holiday": holiday is not None or closed,
                "is_today": current == today,
                "description": description,
                "breaks": get_breaks(schedule, current) if hours else [],
            }
        )

    return days


def generate_holidays_for_month(schedule: Optional[Schedule], year: int, month: int) -> list[dict]:
    """Every closed or holiday date in the month"""
    if not schedule:
        return []

    holidays = []
    current = date(year, month, 1)
    last = _last_day_of_month(year, month)
    while current <= last:
        holiday = find_holiday(schedule, current)
        if holiday:
            holidays.append(
                {
                    "date": current.isoformat(),
                    "type": "HOLIDAY",
                    "description": holiday.get("description") or "Holiday",
                }
            )
        elif is_closed_day(schedule, current):
            holidays.append(
                {
                    "date": current.isoformat(),
                    "type": "CLOSED",
                    "description": f"Closed on {get_day_name(day_of_week(current))}s",
                }
            )
        current += timedelta(days=1)

    return holidays
