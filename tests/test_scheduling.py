from datetime import datetime

import pytest

from app.models import Order, OrderStatus, SlotModificationType, TimeSlot

from .factories import auth_headers, future_weekday, make_schedule, make_user, make_vehicle


@pytest.fixture
def day():
    return future_weekday(0)


def day_slots(client, garage, day) -> dict:
    response = client.get("/garage/schedule/slots", params={"date": day.isoformat()}, headers=auth_headers(garage))
    assert response.status_code == 200
    return {s["start_time"]: s for s in response.json()["slots"]}


def book_stored_slot(db, garage, day, hour) -> TimeSlot:
    driver = make_user(db)
    vehicle = make_vehicle(db, driver, registration_number=f"BK{hour:02d}ABC")
    slot = TimeSlot(
        garage_id=garage.id,
        start_datetime=datetime(day.year, day.month, day.day, hour),
        end_datetime=datetime(day.year, day.month, day.day, hour + 1),
        is_available=False,
        is_blocked=False,
        modification_type=SlotModificationType.BOOKED,
    )
    db.add(slot)
    db.flush()
    order = Order(
        driver_id=driver.id, vehicle_id=vehicle.id, garage_id=garage.id, slot_id=slot.id, status=OrderStatus.PENDING
    )
    db.add(order)
    db.flush()
    slot.order_id = order.id
    db.commit()
    return slot


# ============================================================================
# SCHEDULE CRUD
# ============================================================================


def test_create_and_update_schedule(client, garage):
    headers = auth_headers(garage)
    body = {
        "start_time": "08:00",
        "end_time": "16:00",
        "slot_duration": 45,
        "restrictions": [{"type": "BREAK", "start_time": "12:00", "end_time": "12:30"}],
        "daily_hours": {"0": {"is_closed": True}},
    }
    created = client.post("/garage/schedule", json=body, headers=headers)
    assert created.status_code == 201
    assert created.json()["slot_duration"] == 45

    duplicate = client.post("/garage/schedule", json=body, headers=headers)
    assert duplicate.status_code == 409

    updated = client.patch("/garage/schedule", json={"slot_duration": 30}, headers=headers)
    assert updated.status_code == 200
    assert updated.json()["slot_duration"] == 30
    assert updated.json()["start_time"] == "08:00"


def test_schedule_hours_must_be_ordered(client, garage):
    response = client.post(
        "/garage/schedule", json={"start_time": "17:00", "end_time": "09:00"}, headers=auth_headers(garage)
    )
    assert response.status_code == 400


def test_break_restriction_needs_times(client, garage):
    response = client.post(
        "/garage/schedule",
        json={"start_time": "09:00", "end_time": "17:00", "restrictions": [{"type": "BREAK"}]},
        headers=auth_headers(garage),
    )
    assert response.status_code == 422


def test_unapproved_garage_is_forbidden(client, db, garage):
    garage.approved_at = None
    db.commit()
    response = client.get("/garage/schedule", headers=auth_headers(garage))
    assert response.status_code == 403


# ============================================================================
# BLOCKING
# ============================================================================


def test_block_day_creates_blocked_rows(client, db, garage, day):
    make_schedule(db, garage, start_time="09:00", end_time="12:00")
    response = client.post(
        "/garage/schedule/slots/modify",
        json={"start_date": day.isoformat(), "end_date": day.isoformat(), "action": "BLOCK", "reason": "Ramp repair"},
        headers=auth_headers(garage),
    )
    assert response.status_code == 200
    assert [m["status"] for m in response.json()["modifications"]] == ["CREATED"] * 3

    slots = day_slots(client, garage, day)
    assert {s["status"] for s in slots.values()} == {"BLOCKED"}
    assert slots["09:00"]["modification_reason"] == "Ramp repair"


def test_block_with_booked_slot_needs_confirmation(client, db, garage, day):
    make_schedule(db, garage, start_time="09:00", end_time="12:00")
    booked = book_stored_slot(db, garage, day, 10)
    body = {"start_date": day.isoformat(), "end_date": day.isoformat(), "action": "BLOCK"}

    first = client.post("/garage/schedule/slots/modify", json=body, headers=auth_headers(garage))
    assert first.json()["requires_confirmation"] is True
    assert first.json()["affected_slots"][0]["id"] == booked.id

    confirmed = client.post(
        "/garage/schedule/slots/modify", json={**body, "replace_existing": True}, headers=auth_headers(garage)
    )
    statuses = {m["status"] for m in confirmed.json()["modifications"]}
    assert statuses == {"SKIPPED_BOOKED", "CREATED"}

    db.refresh(booked)
    assert booked.is_blocked is False
    assert booked.order_id is not None


def test_unblock_restores_slots(client, db, garage, day):
    make_schedule(db, garage, start_time="09:00", end_time="11:00")
    headers = auth_headers(garage)
    window = {"start_date": day.isoformat(), "end_date": day.isoformat()}
    client.post("/garage/schedule/slots/modify", json={**window, "action": "BLOCK"}, headers=headers)

    response = client.post("/garage/schedule/slots/modify", json={**window, "action": "UNBLOCK"}, headers=headers)
    assert response.status_code == 200
    assert {s["status"] for s in day_slots(client, garage, day).values()} == {"AVAILABLE"}


# ============================================================================
# MANUAL SLOTS + TIME CHANGES
# ============================================================================


def test_replace_day_with_manual_slots(client, db, garage, day):
    make_schedule(db, garage, start_time="09:00", end_time="12:00")
    response = client.post(
        "/garage/schedule/slots/manual",
        json={"date": day.isoformat(), "slots": [{"start_time": "13:00", "end_time": "14:30"}], "replace": True},
        headers=auth_headers(garage),
    )
    assert response.status_code == 200

    slots = day_slots(client, garage, day)
    assert list(slots) == ["13:00"]
    assert slots["13:00"]["end_time"] == "14:30"


def test_manual_slots_must_not_overlap(client, db, garage, day):
    make_schedule(db, garage)
    response = client.post(
        "/garage/schedule/slots/manual",
        json={
            "date": day.isoformat(),
            "slots": [{"start_time": "13:00", "end_time": "14:00"}, {"start_time": "13:30", "end_time": "14:30"}],
        },
        headers=auth_headers(garage),
    )
    assert response.status_code == 400


def test_move_template_slot_leaves_hidden_placeholder(client, db, garage, day):
    make_schedule(db, garage, start_time="09:00", end_time="12:00")
    response = client.patch(
        "/garage/schedule/slots/time",
        json={"date": day.isoformat(), "current_time": "11:00", "new_start_time": "12:00", "new_end_time": "13:00"},
        headers=auth_headers(garage),
    )
    assert response.status_code == 200
    details = response.json()["modifications"][0]["details"]
    assert details["original_time"] == {"start": "11:00", "end": "12:00"}

    slots = day_slots(client, garage, day)
    assert list(slots) == ["09:00", "10:00", "12:00"]
    placeholder = db.query(TimeSlot).filter(TimeSlot.is_blocked.is_(True)).one()
    assert placeholder.modification_type == SlotModificationType.TIME_MODIFIED


def test_booked_slot_cannot_be_moved(client, db, garage, day):
    make_schedule(db, garage, start_time="09:00", end_time="12:00")
    book_stored_slot(db, garage, day, 10)
    response = client.patch(
        "/garage/schedule/slots/time",
        json={"date": day.isoformat(), "current_time": "10:00", "new_start_time": "12:00", "new_end_time": "13:00"},
        headers=auth_headers(garage),
    )
    assert response.status_code == 409


def test_move_into_occupied_time_conflicts(client, db, garage, day):
    make_schedule(db, garage, start_time="09:00", end_time="12:00")
    book_stored_slot(db, garage, day, 10)
    response = client.patch(
        "/garage/schedule/slots/time",
        json={"date": day.isoformat(), "current_time": "09:00", "new_start_time": "10:30", "new_end_time": "11:00"},
        headers=auth_headers(garage),
    )
    assert response.status_code == 409


# ============================================================================
# CALENDAR
# ============================================================================


def test_calendar_view_week(client, db, garage):
    make_schedule(db, garage, restrictions=[{"type": "HOLIDAY", "date": "2030-01-01", "description": "New Year"}])
    response = client.get(
        "/garage/schedule/calendar", params={"year": 2030, "month": 1, "week": 1}, headers=auth_headers(garage)
    )
    assert response.status_code == 200
    body = response.json()
    assert len(body["days"]) == 7
    assert body["days"][0]["day_name"] == "Sunday"
    assert body["holidays"] == [{"date": "2030-01-01", "type": "HOLIDAY", "description": "New Year"}]


def test_calendar_rejects_missing_week(client, db, garage):
    make_schedule(db, garage)
    response = client.get(
        "/garage/schedule/calendar", params={"year": 2024, "month": 2, "week": 6}, headers=auth_headers(garage)
    )
    assert response.status_code == 400
