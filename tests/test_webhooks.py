import json
from datetime import datetime, timedelta

import pytest

from app.domain.billing.stripe_service import stripe_service
from app.domain.billing.webhook_service import (
    map_stripe_status,
    resolve_invoice_subscription_id,
    retry_attempt_for,
    subscription_period,
)
from app.models import GarageSubscription, Invoice, PaymentStatus, PaymentTransaction, SubscriptionStatus

from .factories import make_plan, make_subscription

PERIOD_START = 1893456000  # 2030-01-01
PERIOD_END = 1896134400  # 2030-02-01


@pytest.fixture
def verified_events(monkeypatch):
    """Accept any payload as a correctly signed event"""
    monkeypatch.setattr(stripe_service, "construct_event", lambda payload, signature: json.loads(payload))


@pytest.fixture
def subscription(db, garage):
    return make_subscription(db, garage, make_plan(db))


def post_event(client, event_type, obj, event_id="evt_1", previous=None):
    event = {"id": event_id, "type": event_type, "data": {"object": obj}}
    if previous:
        event["data"]["previous_attributes"] = previous
    return client.post(
        "/stripe/webhook", content=json.dumps(event), headers={"stripe-signature": "t=1,v1=test"}
    )


def paid_invoice(subscription, invoice_id="in_1", amount=2999):
    return {
        "id": invoice_id,
        "subscription": subscription.stripe_subscription_id,
        "amount_paid": amount,
        "currency": "gbp",
        "lines": {"data": [{"period": {"start": PERIOD_START, "end": PERIOD_END}}]},
    }


# ============================================================================
# PAYLOAD HELPERS
# ============================================================================


def test_stripe_statuses_map_to_local_statuses():
    assert map_stripe_status("trialing") == SubscriptionStatus.ACTIVE
    assert map_stripe_status("unpaid") == SubscriptionStatus.PAST_DUE
    assert map_stripe_status("canceled") == SubscriptionStatus.CANCELLED
    assert map_stripe_status("something_new") == SubscriptionStatus.INACTIVE


def test_subscription_id_is_found_across_invoice_shapes():
    assert resolve_invoice_subscription_id({"subscription": "sub_a"}) == "sub_a"
    assert resolve_invoice_subscription_id({"subscription": {"id": "sub_b"}}) == "sub_b"
    assert resolve_invoice_subscription_id({"lines": {"data": [{"subscription": "sub_c"}]}}) == "sub_c"
    assert (
        resolve_invoice_subscription_id({"parent": {"subscription_details": {"subscription": "sub_d"}}}) == "sub_d"
    )
    assert resolve_invoice_subscription_id({}) is None


def test_subscription_period_falls_back_to_items():
    start, end = subscription_period(
        {"items": {"data": [{"current_period_start": PERIOD_START, "current_period_end": PERIOD_END}]}}
    )
    assert start == datetime(2030, 1, 1)
    assert end == datetime(2030, 2, 1)


def test_retry_attempt_counts_hours_past_due():
    now = datetime(2030, 1, 10, 12)
    subscription = GarageSubscription(status=SubscriptionStatus.PAST_DUE, updated_at=now - timedelta(hours=30))
    assert retry_attempt_for(subscription, now) == 2
    subscription.updated_at = now - timedelta(days=4)
    assert retry_attempt_for(subscription, now) == 4
    subscription.status = SubscriptionStatus.ACTIVE
    assert retry_attempt_for(subscription, now) == 0


# ============================================================================
# ENDPOINT
# ============================================================================


def test_unsigned_event_is_rejected(client):
    response = client.post("/stripe/webhook", content=b"{}", headers={"stripe-signature": "bad"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid signature"


def test_unhandled_event_is_acknowledged(client, verified_events):
    response = post_event(client, "customer.created", {"id": "cus_1"})
    assert response.status_code == 200
    assert response.json()["result"]["status"] == "ignored"


def test_payment_succeeded_records_invoice(client, db, garage, subscription, verified_events, sent_emails):
    response = post_event(client, "invoice.payment_succeeded", paid_invoice(subscription))

    assert response.status_code == 200
    result = response.json()["result"]
    assert result["status"] == "paid"
    assert result["amount"] == 29.99

    invoice = db.query(Invoice).one()
    assert invoice.invoice_number == f"INV-{datetime.utcnow():%Y%m%d}-0001"
    assert invoice.membership_period == "Jan 1, 2030 - Feb 1, 2030"
    transaction = db.query(PaymentTransaction).one()
    assert transaction.status == PaymentStatus.PAID
    assert transaction.reference_number == "in_1"
    assert sent_emails[0]["to"] == garage.email


def test_repeated_event_is_processed_once(client, db, subscription, verified_events):
    first = post_event(client, "invoice.payment_succeeded", paid_invoice(subscription), event_id="evt_dup")
    second = post_event(client, "invoice.payment_succeeded", paid_invoice(subscription), event_id="evt_dup")

    assert first.json()["result"]["status"] == "paid"
    assert second.json()["status"] == "already_processed"
    assert db.query(Invoice).count() == 1


def test_same_amount_invoiced_twice_in_a_day_is_skipped(client, db, subscription, verified_events):
    post_event(client, "invoice.payment_succeeded", paid_invoice(subscription), event_id="evt_a")
    response = post_event(
        client, "invoice.payment_succeeded", paid_invoice(subscription, "in_2"), event_id="evt_b"
    )
    assert response.json()["result"]["status"] == "duplicate"
    assert db.query(Invoice).count() == 1


def test_first_payment_failure_keeps_garage_listed(client, db, garage, subscription, verified_events):
    response = post_event(
        client, "invoice.payment_failed", {"id": "in_9", "subscription": subscription.stripe_subscription_id}
    )

    assert response.json()["result"] == {"status": SubscriptionStatus.PAST_DUE, "attempt": 1, "hidden": False}
    db.refresh(subscription)
    db.refresh(garage)
    assert subscription.status == SubscriptionStatus.PAST_DUE
    assert garage.has_subscription is True


def test_exhausted_payment_retries_suspend_garage(client, db, garage, subscription, verified_events):
    subscription.status = SubscriptionStatus.PAST_DUE
    subscription.updated_at = datetime.utcnow() - timedelta(days=4)
    db.commit()

    response = post_event(
        client, "invoice.payment_failed", {"id": "in_9", "subscription": subscription.stripe_subscription_id}
    )

    assert response.json()["result"]["status"] == SubscriptionStatus.SUSPENDED
    db.refresh(subscription)
    db.refresh(garage)
    assert subscription.status == SubscriptionStatus.SUSPENDED
    assert garage.has_subscription is False


def test_subscription_deleted_hides_garage(client, db, garage, subscription, verified_events):
    response = post_event(client, "customer.subscription.deleted", {"id": subscription.stripe_subscription_id})

    assert response.json()["result"]["status"] == "cancelled"
    db.refresh(garage)
    assert garage.has_subscription is False


def test_trial_conversion_sends_email(client, db, garage, subscription, verified_events, sent_emails):
    stripe_subscription = {
        "id": subscription.stripe_subscription_id,
        "status": "active",
        "current_period_start": PERIOD_START,
        "current_period_end": PERIOD_END,
    }
    response = post_event(
        client, "customer.subscription.updated", stripe_subscription, previous={"status": "trialing"}
    )

    assert response.json()["result"]["trial_converted"] is True
    assert [e["to"] for e in sent_emails] == [garage.email]
    db.refresh(subscription)
    assert subscription.current_period_end == datetime(2030, 2, 1)


def test_created_event_links_subscription_from_metadata(client, db, garage, verified_events):
    pending = make_subscription(
        db, garage, make_plan(db, name="Starter"), status=SubscriptionStatus.INACTIVE, stripe_subscription_id=None
    )
    stripe_subscription = {
        "id": "sub_new",
        "customer": "cus_new",
        "metadata": {"garage_subscription_id": str(pending.id)},
        "current_period_start": PERIOD_START,
        "current_period_end": PERIOD_END,
    }

    response = post_event(client, "customer.subscription.created", stripe_subscription)

    assert response.json()["result"]["status"] == "activated"
    db.refresh(pending)
    assert pending.status == SubscriptionStatus.ACTIVE
    assert pending.stripe_subscription_id == "sub_new"
    assert pending.stripe_customer_id == "cus_new"
