from datetime import datetime, timedelta

import pytest

from app.domain.billing import status_service
from app.domain.billing.status_service import SubscriptionStatusService, status_for_days_past_due
from app.domain.billing.visibility_service import SubscriptionVisibilityService
from app.models import Notification, NotificationType, SubscriptionStatus

from .factories import auth_headers, make_garage, make_plan, make_subscription

NOW = datetime(2030, 3, 15, 0, 5)


@pytest.mark.parametrize(
    "days,expected",
    [
        (-3, SubscriptionStatus.ACTIVE),
        (0, SubscriptionStatus.ACTIVE),
        (1, SubscriptionStatus.PAST_DUE),
        (7, SubscriptionStatus.PAST_DUE),
        (8, SubscriptionStatus.SUSPENDED),
    ],
)
def test_status_for_days_past_due(days, expected):
    assert status_for_days_past_due(days) == expected


# ============================================================================
# DAILY STATUS CHECK
# ============================================================================


def test_lapsed_subscription_becomes_past_due(db, garage):
    plan = make_plan(db)
    subscription = make_subscription(db, garage, plan, current_period_end=NOW - timedelta(days=3))

    summary = SubscriptionStatusService(db).check_subscription_statuses(now=NOW)

    assert summary["processed"] == 1
    assert summary["past_due"] == 1
    db.refresh(subscription)
    db.refresh(garage)
    assert subscription.status == SubscriptionStatus.PAST_DUE
    assert garage.has_subscription is False
    notification = db.query(Notification).filter(Notification.receiver_id == garage.id).one()
    assert notification.type == NotificationType.SUBSCRIPTION
    assert "overdue" in notification.text


def test_long_lapsed_subscription_is_suspended(db, garage):
    plan = make_plan(db)
    subscription = make_subscription(
        db, garage, plan, status=SubscriptionStatus.PAST_DUE, current_period_end=NOW - timedelta(days=10)
    )

    summary = SubscriptionStatusService(db).check_subscription_statuses(now=NOW)

    assert summary["suspended"] == 1
    db.refresh(subscription)
    assert subscription.status == SubscriptionStatus.SUSPENDED
    assert "suspended" in db.query(Notification).one().text


def test_current_subscription_is_untouched(db, garage):
    plan = make_plan(db)
    subscription = make_subscription(db, garage, plan, current_period_end=NOW + timedelta(days=20))

    summary = SubscriptionStatusService(db).check_subscription_statuses(now=NOW)

    assert summary["processed"] == 0
    db.refresh(subscription)
    assert subscription.status == SubscriptionStatus.ACTIVE
    assert db.query(Notification).count() == 0


def test_many_expiring_subscriptions_alert_admins(db, admin, monkeypatch):
    monkeypatch.setattr(status_service, "SUBSCRIPTION_EXPIRY_ALERT_THRESHOLD", 1)
    plan = make_plan(db)
    for i in range(2):
        garage = make_garage(db, email=f"expiring-{i}@example.com")
        make_subscription(db, garage, plan, current_period_end=NOW + timedelta(days=2))

    summary = SubscriptionStatusService(db).check_subscription_statuses(now=NOW)

    assert summary["expiring_soon"] == 2
    alert = db.query(Notification).filter(Notification.receiver_id == admin.id).one()
    assert alert.type == NotificationType.SYSTEM


def test_garage_status_endpoint(client, db, garage):
    plan = make_plan(db, name="Premium")
    make_subscription(db, garage, plan)

    response = client.get("/garage/subscription/status", headers=auth_headers(garage))
    assert response.status_code == 200
    body = response.json()
    assert body["has_active_subscription"] is True
    assert body["plan_name"] == "Premium"
    assert body["days_until_expiry"] in (24, 25)


# ============================================================================
# VISIBILITY
# ============================================================================


def test_active_subscription_makes_garage_visible(db):
    garage = make_garage(db, email="hidden@example.com", has_subscription=False)
    plan = make_plan(db)
    subscription = make_subscription(db, garage, plan)

    visible = SubscriptionVisibilityService(db).update_user_subscription_status(garage.id)

    assert visible is True
    db.refresh(garage)
    assert garage.has_subscription is True
    assert garage.subscription_expires_at == subscription.current_period_end


def test_past_due_garage_stays_visible_when_not_hidden(db, garage):
    plan = make_plan(db)
    make_subscription(db, garage, plan, status=SubscriptionStatus.PAST_DUE)
    service = SubscriptionVisibilityService(db)

    assert service.update_user_subscription_status(garage.id, should_hide_from_drivers=False) is True
    assert service.update_user_subscription_status(garage.id) is False


def test_unknown_garage_returns_none(db):
    assert SubscriptionVisibilityService(db).update_user_subscription_status(9999) is None


def test_fix_inconsistencies_hides_garage_without_subscription(db, garage):
    service = SubscriptionVisibilityService(db)

    report = service.validate_consistency(now=NOW)
    assert report["inconsistent"] == 1
    assert report["inconsistencies"][0]["garage_id"] == garage.id

    result = service.fix_inconsistencies(now=NOW)
    assert result == {"checked": 1, "inconsistent": 1, "fixed": 1}
    db.refresh(garage)
    assert garage.has_subscription is False
    assert service.validate_consistency(now=NOW)["inconsistent"] == 0
