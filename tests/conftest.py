import json

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app import email_service
from app.cache import cache
from app.database import Base, get_db
from app.domain.billing.stripe_service import stripe_service
from app.main import app
from app.models import UserRole

from .factories import make_garage, make_user

engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeRedis:
    """Just enough of the redis client for the cache and the push fan-out"""

    def __init__(self):
        self.store = {}
        self.published = []

    def set(self, key, value, nx=False, ex=None):
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    def delete(self, key):
        self.store.pop(key, None)

    def publish(self, channel, message):
        self.published.append((channel, json.loads(message)))
        return 1


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(cache, "redis_client", fake)
    return fake


@pytest.fixture(autouse=True)
def sent_emails(monkeypatch):
    """Capture outgoing emails instead of calling Resend"""
    sent = []

    async def fake_send_email(to, subject, mjml_content, from_address=None):
        sent.append({"to": to, "subject": subject})
        return {"id": f"email_{len(sent)}"}

    monkeypatch.setattr(email_service, "send_email", fake_send_email)
    return sent


@pytest.fixture(autouse=True)
def stripe_disabled(monkeypatch):
    monkeypatch.setattr(stripe_service, "api_key", None)
    monkeypatch.setattr(stripe_service, "webhook_secret", None)


@pytest.fixture
def driver(db):
    return make_user(db, UserRole.DRIVER, email="driver@example.com", name="Dana Driver")


@pytest.fixture
def garage(db):
    return make_garage(db)


@pytest.fixture
def admin(db):
    return make_user(db, UserRole.ADMIN, email="admin@example.com", name="Ada Admin")
