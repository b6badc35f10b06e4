from app.models import Notification, NotificationType, OrderStatus, UserRole, UserStatus

from .factories import (
    auth_headers,
    future_weekday,
    make_garage,
    make_plan,
    make_schedule,
    make_service,
    make_subscription,
    make_vehicle,
)


def test_non_admins_are_forbidden(client, driver, garage):
    for user in (driver, garage):
        assert client.get("/admin/dashboard", headers=auth_headers(user)).status_code == 403


# ============================================================================
# GARAGE APPROVAL
# ============================================================================


def test_approve_garage_notifies_and_emails(client, db, admin, sent_emails):
    pending = make_garage(db, email="pending@example.com", approved_at=None)

    response = client.patch(f"/admin/users/{pending.id}/approve", headers=auth_headers(admin))

    assert response.status_code == 200
    assert response.json()["approved_at"] is not None
    notification = db.query(Notification).filter(Notification.receiver_id == pending.id).one()
    assert notification.type == NotificationType.GARAGE_APPROVED
    assert notification.sender_id == admin.id
    assert [e["to"] for e in sent_emails] == ["pending@example.com"]

    again = client.patch(f"/admin/users/{pending.id}/approve", headers=auth_headers(admin))
    assert again.status_code == 409


def test_only_garages_need_approval(client, admin, driver):
    response = client.patch(f"/admin/users/{driver.id}/approve", headers=auth_headers(admin))
    assert response.status_code == 400


def test_unknown_user_is_not_found(client, admin):
    assert client.get("/admin/users/9999", headers=auth_headers(admin)).status_code == 404


# ============================================================================
# MODERATION
# ============================================================================


def test_ban_and_unban(client, db, admin, driver):
    headers = auth_headers(admin)

    banned = client.patch(f"/admin/users/{driver.id}/ban", headers=headers)
    assert banned.json()["status"] == UserStatus.BANNED
    assert client.get("/bookings", headers=auth_headers(driver)).status_code == 403

    unbanned = client.patch(f"/admin/users/{driver.id}/unban", headers=headers)
    assert unbanned.json()["status"] == UserStatus.ACTIVE
    assert client.get("/bookings", headers=auth_headers(driver)).status_code == 200


def test_admins_cannot_be_banned(client, admin):
    response = client.patch(f"/admin/users/{admin.id}/ban", headers=auth_headers(admin))
    assert response.status_code == 400
    assert response.json()["detail"] == "Admin accounts cannot be banned"


def test_list_users_filters(client, db, admin, driver, garage):
    make_garage(db, email="pending@example.com", approved_at=None, garage_name="Pending Motors")
    headers = auth_headers(admin)

    garages = client.get("/admin/users", params={"role": UserRole.GARAGE}, headers=headers).json()
    assert garages["pagination"]["total_count"] == 2

    found = client.get("/admin/users", params={"search": "pending"}, headers=headers).json()
    assert [u["email"] for u in found["data"]] == ["pending@example.com"]


# ============================================================================
# OVERVIEW
# ============================================================================


def test_dashboard_counts(client, db, admin, driver, garage):
    make_garage(db, email="pending@example.com", approved_at=None)
    make_subscription(db, garage, make_plan(db))
    make_schedule(db, garage)
    make_service(db, garage)
    vehicle = make_vehicle(db, driver)
    client.post(
        "/bookings",
        json={
            "garage_id": garage.id,
            "vehicle_id": vehicle.id,
            "service_type": "MOT",
            "date": future_weekday(0).isoformat(),
            "start_time": "09:00",
            "end_time": "10:00",
        },
        headers=auth_headers(driver),
    )

    stats = client.get("/admin/dashboard", headers=auth_headers(admin)).json()

    assert stats["drivers"] == 1
    assert stats["garages"] == 2
    assert stats["pending_garages"] == 1
    assert stats["bookings"]["total"] == 1
    assert stats["bookings"]["pending"] == 1
    assert stats["bookings"]["completed"] == 0
    assert stats["active_subscriptions"] == 1


def test_admin_sees_all_bookings(client, db, admin, driver, garage):
    make_schedule(db, garage)
    make_service(db, garage)
    vehicle = make_vehicle(db, driver)
    order_id = client.post(
        "/bookings",
        json={
            "garage_id": garage.id,
            "vehicle_id": vehicle.id,
            "service_type": "MOT",
            "date": future_weekday(0).isoformat(),
            "start_time": "09:00",
            "end_time": "10:00",
        },
        headers=auth_headers(driver),
    ).json()["data"]["order_id"]
    headers = auth_headers(admin)

    listing = client.get("/admin/bookings", params={"garage_id": garage.id}, headers=headers).json()
    assert listing["data"][0]["garage"]["garage_name"] == "Kwik MOT Centre"
    assert listing["data"][0]["status"] == OrderStatus.PENDING
    pending = client.get("/admin/bookings", params={"status": "pending"}, headers=headers).json()
    assert pending["pagination"]["total_count"] == 1

    assert client.get(f"/admin/bookings/{order_id}", headers=headers).json()["id"] == order_id
    assert client.get("/admin/bookings/9999", headers=headers).status_code == 404


def test_subscriptions_and_visibility_reports(client, db, admin, garage):
    make_subscription(db, garage, make_plan(db, name="Premium"))
    make_garage(db, email="ghost@example.com")
    headers = auth_headers(admin)

    subscriptions = client.get("/admin/subscriptions", headers=headers).json()
    assert subscriptions["data"][0]["plan_name"] == "Premium"
    assert subscriptions["data"][0]["garage"]["id"] == garage.id

    health = client.get("/admin/subscriptions/health", headers=headers).json()
    assert health["total"] == 1
    assert health["active"] == 1

    report = client.get("/admin/subscriptions/visibility", headers=headers).json()
    assert report["inconsistent"] == 1

    fixed = client.post("/admin/subscriptions/visibility/fix", headers=headers).json()
    assert fixed["fixed"] == 1


def test_broadcast_to_role(client, db, admin, driver, garage):
    response = client.post(
        "/admin/notifications/broadcast",
        json={"text": "  Scheduled maintenance on Sunday  ", "role": "DRIVER"},
        headers=auth_headers(admin),
    )

    assert response.json() == {"success": True, "sent": 1}
    notification = db.query(Notification).filter(Notification.receiver_id == driver.id).one()
    assert notification.text == "Scheduled maintenance on Sunday"
    assert notification.sender_id == admin.id
