from app.domain.notifications.service import NotificationService
from app.models import NotificationType, UserRole

from .factories import auth_headers, make_user


def test_create_pushes_to_receiver_channel(db, driver, fake_redis):
    notification = NotificationService(db).create(driver.id, NotificationType.BOOKING, "Booking confirmed", entity_id="7")

    channel, message = fake_redis.published[0]
    assert channel == f"notifications:{driver.id}"
    assert message["event"] == "notification"
    assert message["data"]["id"] == notification.id
    assert message["data"]["text"] == "Booking confirmed"
    assert message["data"]["entity_id"] == "7"


def test_push_failure_does_not_lose_notification(db, driver, fake_redis, monkeypatch):
    def broken_publish(channel, message):
        raise ConnectionError("redis down")

    monkeypatch.setattr(fake_redis, "publish", broken_publish)
    notification = NotificationService(db).create(driver.id, NotificationType.SYSTEM, "Hello")
    assert notification.id is not None


def test_list_and_mark_read(client, db, driver):
    service = NotificationService(db)
    first = service.create(driver.id, NotificationType.SYSTEM, "First")
    service.create(driver.id, NotificationType.SYSTEM, "Second")
    headers = auth_headers(driver)

    listing = client.get("/notifications", headers=headers).json()
    assert listing["unread_count"] == 2
    assert listing["pagination"]["total_count"] == 2

    read = client.patch(f"/notifications/{first.id}/read", headers=headers)
    assert read.status_code == 200
    assert read.json()["read_at"] is not None
    assert client.get("/notifications/unread-count", headers=headers).json() == {"unread_count": 1}

    unread = client.get("/notifications", params={"unread_only": True}, headers=headers).json()
    assert [n["text"] for n in unread["data"]] == ["Second"]

    all_read = client.patch("/notifications/read-all", headers=headers).json()
    assert all_read["updated"] == 1
    assert client.get("/notifications/unread-count", headers=headers).json() == {"unread_count": 0}


def test_other_users_notification_is_not_found(client, db, driver, garage):
    notification = NotificationService(db).create(garage.id, NotificationType.SYSTEM, "Garage only")
    response = client.patch(f"/notifications/{notification.id}/read", headers=auth_headers(driver))
    assert response.status_code == 404


def test_admins_and_broadcast(db, admin, driver, garage):
    make_user(db, UserRole.ADMIN, email="second-admin@example.com")
    service = NotificationService(db)

    assert service.send_to_all_admins(NotificationType.SYSTEM, "New garage registered") == 2
    assert service.broadcast("Maintenance tonight", admin, role=UserRole.GARAGE) == 1
    assert service.broadcast("Maintenance tonight", admin) == 3
