import pytest

from app.models import Notification, User, UserRole, UserStatus
from app.services import geocoding

from .factories import PASSWORD, auth_headers, make_garage, make_user


@pytest.fixture
def postcodes(monkeypatch):
    async def fake_fetch(postcode):
        return {"postcode": "LS1 4AP", "latitude": 53.7997, "longitude": -1.5492, "outcode": "LS1"}

    monkeypatch.setattr(geocoding, "fetch_postcode", fake_fetch)


# ============================================================================
# REGISTRATION
# ============================================================================


def test_register_driver_is_approved(client, db, sent_emails):
    response = client.post(
        "/auth/register",
        json={"email": " New.Driver@Example.com ", "password": PASSWORD, "name": "New Driver"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["email"] == "new.driver@example.com"
    assert body["user"]["role"] == UserRole.DRIVER

    user = db.query(User).one()
    assert user.approved_at is not None
    assert user.password_hash != PASSWORD
    assert [e["to"] for e in sent_emails] == ["new.driver@example.com"]


def test_register_garage_waits_for_approval(client, db, admin, postcodes):
    response = client.post(
        "/auth/register",
        json={
            "email": "leeds@example.com",
            "password": PASSWORD,
            "role": "GARAGE",
            "garage_name": "Leeds Test Centre",
            "zip_code": "ls1 4ap",
            "phone_number": "0113 496 0000",
        },
    )

    assert response.status_code == 201
    garage = db.query(User).filter(User.email == "leeds@example.com").one()
    assert garage.approved_at is None
    assert garage.zip_code == "LS1 4AP"
    assert garage.latitude == 53.7997
    assert garage.phone_number == "+441134960000"

    alert = db.query(Notification).filter(Notification.receiver_id == admin.id).one()
    assert "Leeds Test Centre" in alert.text

    profile = client.get("/garage/profile", headers={"Authorization": f"Bearer {response.json()['access_token']}"})
    assert profile.status_code == 403


def test_garage_needs_a_name(client):
    response = client.post(
        "/auth/register", json={"email": "nameless@example.com", "password": PASSWORD, "role": "GARAGE"}
    )
    assert response.status_code == 400


def test_duplicate_email_conflicts(client, driver):
    response = client.post("/auth/register", json={"email": "DRIVER@example.com", "password": PASSWORD})
    assert response.status_code == 409
    assert response.json()["detail"] == "Email already registered"


@pytest.mark.parametrize(
    "body",
    [
        {"email": "not-an-email", "password": PASSWORD},
        {"email": "short@example.com", "password": "abc"},
        {"email": "admin@example.com", "password": PASSWORD, "role": "ADMIN"},
    ],
)
def test_invalid_registration_is_rejected(client, body):
    assert client.post("/auth/register", json=body).status_code == 422


# ============================================================================
# LOGIN
# ============================================================================


def test_login_returns_token(client, driver):
    response = client.post("/auth/login", json={"email": "Driver@Example.com", "password": PASSWORD})
    assert response.status_code == 200
    token = response.json()["access_token"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["email"] == "driver@example.com"


def test_wrong_password_is_unauthorized(client, driver):
    response = client.post("/auth/login", json={"email": "driver@example.com", "password": "wrong-password"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid credentials"


def test_unapproved_or_banned_cannot_log_in(client, db):
    make_garage(db, email="pending@example.com", approved_at=None)
    make_user(db, email="banned@example.com", status=UserStatus.BANNED)

    for email in ("pending@example.com", "banned@example.com"):
        response = client.post("/auth/login", json={"email": email, "password": PASSWORD})
        assert response.status_code == 403


def test_banned_user_token_is_rejected(client, db, driver):
    headers = auth_headers(driver)
    driver.status = UserStatus.BANNED
    db.commit()
    assert client.get("/auth/me", headers=headers).status_code in (401, 403)


def test_invalid_token_is_unauthorized(client):
    response = client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


# ============================================================================
# PASSWORD
# ============================================================================


def test_change_password(client, driver):
    headers = auth_headers(driver)
    wrong = client.post(
        "/auth/change-password", json={"old_password": "nope-nope", "new_password": "brand-new-pass"}, headers=headers
    )
    assert wrong.status_code == 400
    assert wrong.json()["detail"] == "Current password is incorrect"

    changed = client.post(
        "/auth/change-password", json={"old_password": PASSWORD, "new_password": "brand-new-pass"}, headers=headers
    )
    assert changed.json() == {"success": True, "message": "Password updated successfully"}

    login = client.post("/auth/login", json={"email": "driver@example.com", "password": "brand-new-pass"})
    assert login.status_code == 200
