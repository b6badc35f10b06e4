from datetime import datetime

import pytest

from app.domain.billing.repository import BillingRepository
from app.models import (
    Notification,
    NotificationType,
    Order,
    OrderStatus,
    PaymentStatus,
    PaymentType,
    ServiceType,
    TimeSlot,
)
from app.services import geocoding

from .factories import auth_headers, future_weekday, make_garage, make_schedule, make_service, make_vehicle


@pytest.fixture
def booking(client, db, driver, garage):
    """A pending booking made by the driver at 10:00 on a future Monday"""
    make_schedule(db, garage)
    make_service(db, garage, ServiceType.MOT, 54.85)
    vehicle = make_vehicle(db, driver)
    body = {
        "garage_id": garage.id,
        "vehicle_id": vehicle.id,
        "service_type": "MOT",
        "date": future_weekday(0).isoformat(),
        "start_time": "10:00",
        "end_time": "11:00",
    }
    response = client.post("/bookings", json=body, headers=auth_headers(driver))
    assert response.status_code == 200
    return response.json()["data"]


# ============================================================================
# PROFILE + PRICING
# ============================================================================


def test_profile_update_regeocodes_new_postcode(client, db, garage, monkeypatch):
    async def fake_fetch(postcode):
        return {"postcode": "B1 1AA", "latitude": 52.4797, "longitude": -1.9027, "outcode": "B1"}

    monkeypatch.setattr(geocoding, "fetch_postcode", fake_fetch)
    response = client.patch(
        "/garage/profile", json={"zip_code": "b1 1aa", "garage_name": "Brum MOT"}, headers=auth_headers(garage)
    )

    assert response.status_code == 200
    body = response.json()
    assert body["zip_code"] == "B1 1AA"
    assert body["garage_name"] == "Brum MOT"
    assert body["latitude"] == 52.4797


def test_pricing_upsert_replaces_additionals(client, db, garage):
    make_service(db, garage, ServiceType.ADDITIONAL, 5, name="Wash")
    make_service(db, garage, ServiceType.ADDITIONAL, 0, name="Coffee")
    headers = auth_headers(garage)
    body = {
        "mot": {"name": "Class 4 MOT", "price": 54.85},
        "retest": {"name": "Partial retest", "price": 27.5},
        "additionals": [{"name": "wash", "price": 7.5}, {"name": "Wheel alignment", "price": 30}],
    }

    response = client.put("/garage/services/pricing", json=body, headers=headers)

    assert response.status_code == 200
    services = {s["name"]: s for s in response.json()}
    assert services["Class 4 MOT"]["type"] == ServiceType.MOT
    assert services["Wash"]["price"] == 7.5
    assert "Coffee" not in services
    assert "Wheel alignment" in services

    body["mot"]["price"] = 49.99
    again = client.put("/garage/services/pricing", json=body, headers=headers).json()
    assert len([s for s in again if s["type"] == ServiceType.MOT]) == 1
    assert next(s for s in again if s["type"] == ServiceType.MOT)["price"] == 49.99


def test_pricing_needs_positive_prices(client, garage):
    body = {"mot": {"name": "MOT", "price": 0}, "retest": {"name": "Retest", "price": 10}}
    assert client.put("/garage/services/pricing", json=body, headers=auth_headers(garage)).status_code == 422


def test_service_with_bookings_cannot_be_deleted(client, db, garage, booking):
    mot = next(s for s in garage.services if s.type == ServiceType.MOT)
    response = client.delete(f"/garage/services/{mot.id}", headers=auth_headers(garage))
    assert response.status_code == 409


def test_unused_service_can_be_deleted(client, db, garage):
    service = make_service(db, garage, ServiceType.ADDITIONAL, 5, name="Wash")
    response = client.delete(f"/garage/services/{service.id}", headers=auth_headers(garage))
    assert response.json()["success"] is True


# ============================================================================
# BOOKINGS
# ============================================================================


def test_garage_lists_and_searches_bookings(client, garage, booking):
    headers = auth_headers(garage)

    listing = client.get("/garage/bookings", headers=headers).json()
    assert listing["pagination"]["total_count"] == 1
    assert listing["data"][0]["driver"]["name"] == "Dana Driver"
    assert listing["data"][0]["slot"]["start_time"] == "10:00"

    assert client.get("/garage/bookings", params={"search": "ab12"}, headers=headers).json()["data"]
    assert not client.get("/garage/bookings", params={"search": "nobody"}, headers=headers).json()["data"]
    assert not client.get("/garage/bookings", params={"status": "COMPLETED"}, headers=headers).json()["data"]
    assert client.get("/garage/bookings", params={"status": "pending"}, headers=headers).json()["data"]
    assert client.get("/garage/bookings", params={"status": "all"}, headers=headers).json()["data"]


def test_other_garage_cannot_see_booking(client, db, booking):
    other = make_garage(db, email="other-garage@example.com")
    response = client.get(f"/garage/bookings/{booking['order_id']}", headers=auth_headers(other))
    assert response.status_code == 404


def test_accept_then_complete_notifies_driver(client, db, driver, garage, booking, sent_emails):
    headers = auth_headers(garage)
    url = f"/garage/bookings/{booking['order_id']}/status"

    accepted = client.patch(url, json={"status": "ACCEPTED"}, headers=headers)
    assert accepted.status_code == 200
    assert accepted.json()["status"] == OrderStatus.ACCEPTED

    completed = client.patch(url, json={"status": "COMPLETED"}, headers=headers)
    assert completed.json()["status"] == OrderStatus.COMPLETED

    updates = (
        db.query(Notification)
        .filter(Notification.receiver_id == driver.id, Notification.type == NotificationType.BOOKING_STATUS)
        .order_by(Notification.id)
        .all()
    )
    assert len(updates) == 2
    assert updates[-1].text.endswith("is now completed")
    assert [e["to"] for e in sent_emails].count(driver.email) == 2


def test_rejecting_releases_slot(client, db, garage, booking):
    response = client.patch(
        f"/garage/bookings/{booking['order_id']}/status", json={"status": "REJECTED"}, headers=auth_headers(garage)
    )
    assert response.status_code == 200

    slot = db.get(TimeSlot, booking["slot_id"])
    assert slot.order_id is None
    assert slot.is_available is True
    order = db.get(Order, booking["order_id"])
    db.refresh(order)
    assert order.slot_id is None
    assert response.json()["slot"] is None


def test_invalid_transition_is_rejected(client, garage, booking):
    headers = auth_headers(garage)
    url = f"/garage/bookings/{booking['order_id']}/status"
    response = client.patch(url, json={"status": "COMPLETED"}, headers=headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Cannot change booking from PENDING to COMPLETED"


# ============================================================================
# BILLING HISTORY
# ============================================================================


def test_payments_and_invoices_are_scoped_to_garage(client, db, garage):
    repo = BillingRepository()
    payment = repo.create_transaction(
        db,
        user_id=garage.id,
        garage_id=garage.id,
        amount=29.99,
        currency="GBP",
        type=PaymentType.SUBSCRIPTION,
        status=PaymentStatus.PAID,
        reference_number="in_123",
    )
    invoice = repo.create_invoice(
        db,
        invoice_number="INV-20300101-0001",
        garage_id=garage.id,
        issue_date=datetime(2030, 1, 1),
        amount=29.99,
        status=PaymentStatus.PAID,
    )
    other = make_garage(db, email="other-garage@example.com")
    headers = auth_headers(garage)

    assert client.get("/garage/payments", headers=headers).json()["data"][0]["reference_number"] == "in_123"
    assert client.get(f"/garage/invoices/{invoice.id}", headers=headers).json()["invoice_number"] == "INV-20300101-0001"
    assert client.get(f"/garage/payments/{payment.id}", headers=auth_headers(other)).status_code == 404
    assert client.get(f"/garage/invoices/{invoice.id}", headers=auth_headers(other)).status_code == 404
