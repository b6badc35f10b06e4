"""Stripe webhook service - Mirrors processor subscription events onto local rows"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from ...config import SUBSCRIPTION_GRACE_PERIOD_DAYS, SUBSCRIPTION_MAX_PAYMENT_RETRIES
from ...email_service import (
    send_subscription_payment_failed_email,
    send_subscription_payment_success_email,
    send_trial_converted_email,
    send_trial_ending_email,
)
from ...models import (
    GarageSubscription,
    NotificationType,
    PaymentStatus,
    PaymentType,
    SubscriptionStatus,
)
from ..notifications.service import NotificationService
from .repository import BillingRepository
from .stripe_service import stripe_service
from .subscription_service import format_price
from .visibility_service import SubscriptionVisibilityService

logger = logging.getLogger(__name__)

STRIPE_STATUS_MAP = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELLED,
    "incomplete_expired": SubscriptionStatus.CANCELLED,
    "incomplete": SubscriptionStatus.INACTIVE,
    "paused": SubscriptionStatus.SUSPENDED,
}

PAYMENT_INTENT_STATUS_MAP = {
    "payment_intent.succeeded": PaymentStatus.PAID,
    "payment_intent.payment_failed": PaymentStatus.FAILED,
    "payment_intent.canceled": PaymentStatus.CANCELLED,
}

DUPLICATE_INVOICE_WINDOW = timedelta(hours=24)
INVOICE_DUE_DAYS = 30


def from_timestamp(value) -> Optional[datetime]:
    """Unix seconds -> naive UTC datetime"""
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc).replace(tzinfo=None)


def format_period_date(d: datetime) -> str:
    return f"{d.strftime('%b')} {d.day}, {d.year}"


def format_membership_period(start: Optional[datetime], end: Optional[datetime]) -> Optional[str]:
    if not start or not end:
        return None
    return f"{format_period_date(start)} - {format_period_date(end)}"


def map_stripe_status(status: Optional[str]) -> str:
    return STRIPE_STATUS_MAP.get(status or "", SubscriptionStatus.INACTIVE)


def subscription_period(subscription: dict) -> tuple[Optional[datetime], Optional[datetime]]:
    """Current period of a Stripe subscription; newer API versions keep it on the items"""
    start = subscription.get("current_period_start")
    end = subscription.get("current_period_end")
    if not start or not end:
        items = (subscription.get("items") or {}).get("data") or []
        if items:
            start = start or items[0].get("current_period_start")
            end = end or items[0].get("current_period_end")
    start = start or subscription.get("start_date") or subscription.get("created")
    end = end or subscription.get("trial_end")
    return from_timestamp(start), from_timestamp(end)


def resolve_invoice_subscription_id(invoice: dict) -> Optional[str]:
    """Find the subscription id across the invoice shapes Stripe has used"""
    subscription = invoice.get("subscription")
    if isinstance(subscription, str):
        return subscription
    if isinstance(subscription, dict) and isinstance(subscription.get("id"), str):
        return subscription["id"]

    lines = (invoice.get("lines") or {}).get("data") or []
    if lines and isinstance(lines[0].get("subscription"), str):
        return lines[0]["subscription"]

    details = ((invoice.get("parent") or {}).get("subscription_details") or {}).get("subscription")
    if isinstance(details, str):
        return details
    return None


def invoice_period(invoice: dict) -> tuple[Optional[datetime], Optional[datetime]]:
    lines = (invoice.get("lines") or {}).get("data") or []
    if lines:
        period = lines[0].get("period") or {}
        if period.get("start") and period.get("end"):
            return from_timestamp(period["start"]), from_timestamp(period["end"])
    if invoice.get("period_start") and invoice.get("period_end"):
        return from_timestamp(invoice["period_start"]), from_timestamp(invoice["period_end"])
    return None, None


def retry_attempt_for(subscription: GarageSubscription, now: datetime) -> int:
    """Retry attempt number from the hours a subscription has been PAST_DUE"""
    if subscription.status != SubscriptionStatus.PAST_DUE:
        return 0
    since = subscription.updated_at or now
    hours = (now - since).total_seconds() / 3600
    if hours < 24:
        return 1
    if hours < 48:
        return 2
    if hours < 72:
        return 3
    return 4


def grace_period_expired(subscription: GarageSubscription, now: datetime) -> bool:
    if subscription.status != SubscriptionStatus.PAST_DUE or not subscription.updated_at:
        return False
    return now - subscription.updated_at > timedelta(days=SUBSCRIPTION_GRACE_PERIOD_DAYS)


class StripeWebhookService:
    """
    Applies verified Stripe events.

    Each handler returns a small status dict for logging. Email and in-app
    notification failures never fail the event.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = BillingRepository()
        self.visibility = SubscriptionVisibilityService(db)
        self.notifications = NotificationService(db)

    async def handle_event(self, event: dict, now: Optional[datetime] = None) -> dict:
        now = now or datetime.utcnow()
        event_type = event.get("type")
        data = event.get("data") or {}
        obj = data.get("object") or {}
        previous = data.get("previous_attributes") or {}

        logger.info(f"🔔 Stripe event {event.get('id')} type={event_type}")

        if event_type == "customer.subscription.created":
            return self.handle_subscription_created(obj)
        if event_type == "customer.subscription.updated":
            return await self.handle_subscription_updated(obj, previous, now)
        if event_type == "customer.subscription.deleted":
            return self.handle_subscription_deleted(obj)
        if event_type == "invoice.payment_succeeded":
            return await self.handle_payment_succeeded(obj, now)
        if event_type == "invoice.payment_failed":
            return await self.handle_payment_failed(obj, now)
        if event_type == "customer.subscription.trial_will_end":
            return await self.handle_trial_will_end(obj, now)
        if event_type in PAYMENT_INTENT_STATUS_MAP:
            return self.handle_payment_intent(obj, PAYMENT_INTENT_STATUS_MAP[event_type])

        logger.info(f"ℹ️ Unhandled Stripe event type: {event_type}")
        return {"status": "ignored", "type": event_type}

    # ========================================================================
    # SUBSCRIPTION LIFECYCLE
    # ========================================================================

    def _find_local_subscription(self, stripe_subscription: dict) -> Optional[GarageSubscription]:
        subscription = self.repo.get_subscription_by_stripe_id(self.db, stripe_subscription.get("id"))
        if subscription:
            return subscription

        local_id = (stripe_subscription.get("metadata") or {}).get("garage_subscription_id")
        if not local_id:
            return None
        try:
            subscription = self.repo.get_subscription(self.db, int(local_id))
        except (TypeError, ValueError):
            logger.warning(f"⚠️ Invalid garage_subscription_id in metadata: {local_id}")
            return None
        if subscription and not subscription.stripe_subscription_id:
            subscription.stripe_subscription_id = stripe_subscription.get("id")
        return subscription

    def _apply_period(self, subscription: GarageSubscription, stripe_subscription: dict) -> None:
        start, end = subscription_period(stripe_subscription)
        subscription.current_period_start = start
        subscription.current_period_end = end
        subscription.next_billing_date = end

    def handle_subscription_created(self, stripe_subscription: dict) -> dict:
        subscription = self._find_local_subscription(stripe_subscription)
        if not subscription:
            logger.error(f"❌ No garage subscription for Stripe subscription {stripe_subscription.get('id')}")
            return {"status": "not_found"}

        subscription.status = SubscriptionStatus.ACTIVE
        subscription.stripe_customer_id = stripe_subscription.get("customer") or subscription.stripe_customer_id
        self._apply_period(subscription, stripe_subscription)
        self.db.commit()

        self.visibility.update_user_subscription_status(subscription.garage_id, source="webhook_created")
        logger.info(f"✅ Garage subscription {subscription.id} activated for garage {subscription.garage_id}")
        return {"status": "activated", "subscription_id": subscription.id}

    async def handle_subscription_updated(self, stripe_subscription: dict, previous: dict, now: datetime) -> dict:
        subscription = self.repo.get_subscription_by_stripe_id(self.db, stripe_subscription.get("id"))
        if not subscription:
            logger.error(f"❌ No garage subscription for Stripe subscription {stripe_subscription.get('id')}")
            return {"status": "not_found"}

        previous_status = subscription.status
        previous_period_end = subscription.current_period_end
        stripe_status = stripe_subscription.get("status")
        new_status = map_stripe_status(stripe_status)

        subscription.status = new_status
        self._apply_period(subscription, stripe_subscription)
        subscription.cancel_at = from_timestamp(stripe_subscription.get("cancel_at"))
        subscription.cancel_at_period_end = bool(stripe_subscription.get("cancel_at_period_end"))
        subscription.cancellation_reason = (stripe_subscription.get("cancellation_details") or {}).get(
            "feedback"
        ) or subscription.cancellation_reason
        self.db.commit()

        trial_end = from_timestamp(stripe_subscription.get("trial_end"))
        garage = subscription.garage
        garage_name = garage.garage_name or garage.name or garage.email
        plan_name = subscription.plan.name if subscription.plan else "subscription"

        converted = stripe_status == "active" and (
            previous.get("status") == "trialing"
            or (
                trial_end is not None
                and previous_period_end == trial_end
                and subscription.current_period_end is not None
                and subscription.current_period_end > previous_period_end
            )
        )
        if converted:
            logger.info(f"🎉 Trial converted to paid for garage {garage.id}")
            await self._send_email(send_trial_converted_email, garage.email, garage_name, plan_name)

        trial_expired = (
            trial_end is not None
            and trial_end < now
            and new_status in (SubscriptionStatus.CANCELLED, SubscriptionStatus.PAST_DUE)
            and previous_status != new_status
        )
        if trial_expired:
            logger.info(f"⏰ Trial expired without payment for garage {garage.id}")
            self.notifications.safe_create(
                garage.id,
                NotificationType.SUBSCRIPTION,
                f'Your free trial of the "{plan_name}" plan has ended. '
                "Add a payment method to keep your garage listed.",
                entity_id=str(subscription.id),
            )

        self.visibility.update_user_subscription_status(subscription.garage_id, source="webhook_updated")
        logger.info(f"✅ Subscription {subscription.id} updated: {previous_status} -> {new_status}")
        return {
            "status": "updated",
            "subscription_id": subscription.id,
            "trial_converted": converted,
            "trial_expired": trial_expired,
        }

    def handle_subscription_deleted(self, stripe_subscription: dict) -> dict:
        subscription = self.repo.get_subscription_by_stripe_id(self.db, stripe_subscription.get("id"))
        if not subscription:
            return {"status": "not_found"}

        subscription.status = SubscriptionStatus.CANCELLED
        self.db.commit()
        self.visibility.update_user_subscription_status(subscription.garage_id, source="webhook_deleted")

        plan_name = subscription.plan.name if subscription.plan else "subscription"
        self.notifications.safe_create(
            subscription.garage_id,
            NotificationType.SUBSCRIPTION,
            f'Your subscription to the "{plan_name}" plan has been cancelled.',
            entity_id=str(subscription.id),
        )
        logger.info(f"✅ Subscription {subscription.id} cancelled")
        return {"status": "cancelled", "subscription_id": subscription.id}

    async def handle_trial_will_end(self, stripe_subscription: dict, now: datetime) -> dict:
        subscription = self.repo.get_subscription_by_stripe_id(self.db, stripe_subscription.get("id"))
        if not subscription:
            return {"status": "not_found"}

        trial_end = from_timestamp(stripe_subscription.get("trial_end")) or now
        days_remaining = max(0, -(-int((trial_end - now).total_seconds()) // 86400))
        garage = subscription.garage
        plan_name = subscription.plan.name if subscription.plan else "subscription"

        await self._send_email(
            send_trial_ending_email, garage.email, garage.garage_name or garage.name or garage.email, days_remaining
        )
        self.notifications.safe_create(
            garage.id,
            NotificationType.SUBSCRIPTION,
            f'Your trial for the "{plan_name}" plan is ending in {days_remaining} days. '
            "Please add a payment method to continue your subscription.",
            entity_id=str(subscription.id),
        )
        return {"status": "notified", "days_remaining": days_remaining}

    # ========================================================================
    # INVOICES
    # ========================================================================

    async def _resolve_invoice_subscription(self, invoice: dict) -> Optional[GarageSubscription]:
        subscription_id = resolve_invoice_subscription_id(invoice)
        if not subscription_id:
            logger.warning(f"⚠️ Could not determine subscription for invoice {invoice.get('id')}")
            return None

        subscription = self.repo.get_subscription_by_stripe_id(self.db, subscription_id)
        if subscription:
            return subscription

        # Invoice can arrive before customer.subscription.created
        try:
            stripe_subscription = await stripe_service.retrieve_subscription(subscription_id)
        except Exception as e:
            logger.error(f"❌ Could not fetch subscription {subscription_id} from Stripe: {e}")
            return None
        subscription = self._find_local_subscription(stripe_subscription)
        if subscription:
            self.db.commit()
        return subscription

    def next_invoice_number(self, now: datetime) -> str:
        prefix = f"INV-{now.strftime('%Y%m%d')}"
        sequence = self.repo.count_invoices_with_prefix(self.db, prefix) + 1
        return f"{prefix}-{sequence:04d}"

    async def handle_payment_succeeded(self, invoice: dict, now: datetime) -> dict:
        subscription = await self._resolve_invoice_subscription(invoice)
        if not subscription:
            return {"status": "not_found"}

        amount = (invoice.get("amount_paid") or 0) / 100
        if self.repo.find_recent_invoice(self.db, subscription.garage_id, amount, now - DUPLICATE_INVOICE_WINDOW):
            logger.info(f"🔄 Invoice for garage {subscription.garage_id} already recorded, skipping")
            return {"status": "duplicate"}

        subscription.status = SubscriptionStatus.ACTIVE
        self.repo.create_transaction(
            self.db,
            commit=False,
            user_id=subscription.garage_id,
            garage_id=subscription.garage_id,
            amount=amount,
            currency=(invoice.get("currency") or subscription.currency or "GBP").upper(),
            type=PaymentType.SUBSCRIPTION,
            status=PaymentStatus.PAID,
            provider="stripe",
            reference_number=invoice.get("id"),
            raw_status="succeeded",
        )

        period_start, period_end = invoice_period(invoice)
        if subscription.stripe_subscription_id:
            try:
                stripe_subscription = await stripe_service.retrieve_subscription(subscription.stripe_subscription_id)
                start, end = subscription_period(stripe_subscription)
                if start and end:
                    period_start, period_end = start, end
            except Exception as e:
                logger.warning(f"⚠️ Using invoice period for {invoice.get('id')}: {e}")
        if period_start and not period_end:
            period_end = period_start + relativedelta(months=1)
        membership_period = format_membership_period(period_start, period_end)

        invoice_number = self.next_invoice_number(now)
        self.repo.create_invoice(
            self.db,
            commit=False,
            invoice_number=invoice_number,
            garage_id=subscription.garage_id,
            driver_id=subscription.garage_id,
            order_id=None,
            membership_period=membership_period,
            issue_date=now,
            due_date=now + timedelta(days=INVOICE_DUE_DAYS),
            amount=amount,
            status=PaymentStatus.PAID,
        )
        self.db.commit()
        logger.info(f"📄 Invoice {invoice_number} created for garage {subscription.garage_id}")

        self.visibility.update_user_subscription_status(subscription.garage_id, source="webhook_payment_succeeded")

        garage = subscription.garage
        plan_name = subscription.plan.name if subscription.plan else "subscription"
        await self._send_email(
            send_subscription_payment_success_email,
            garage.email,
            garage.garage_name or garage.name or garage.email,
            plan_name,
            format_price(round(amount * 100)),
            invoice_number,
            membership_period or "",
        )
        self.notifications.safe_create(
            garage.id,
            NotificationType.SUBSCRIPTION,
            f'Your payment for the "{plan_name}" plan was successful.',
            entity_id=str(subscription.id),
        )
        return {"status": "paid", "invoice_number": invoice_number, "amount": amount}

    async def handle_payment_failed(self, invoice: dict, now: datetime) -> dict:
        subscription = await self._resolve_invoice_subscription(invoice)
        if not subscription:
            return {"status": "not_found"}

        attempt = retry_attempt_for(subscription, now)
        first_failure = subscription.status != SubscriptionStatus.PAST_DUE
        retries_exhausted = attempt >= SUBSCRIPTION_MAX_PAYMENT_RETRIES
        grace_expired = grace_period_expired(subscription, now)

        if first_failure:
            new_status = SubscriptionStatus.PAST_DUE
            attempt = 1
            hide = False
        elif retries_exhausted or grace_expired:
            new_status = SubscriptionStatus.SUSPENDED
            hide = True
        else:
            new_status = SubscriptionStatus.PAST_DUE
            hide = False

        # Leaving PAST_DUE untouched keeps updated_at as the first-failure time
        if subscription.status != new_status:
            subscription.status = new_status
            self.db.commit()

        self.visibility.update_user_subscription_status(
            subscription.garage_id, source="webhook_payment_failed", should_hide_from_drivers=hide
        )

        amount = format_price(invoice.get("amount_due") or 0)
        garage = subscription.garage
        plan_name = subscription.plan.name if subscription.plan else "subscription"
        logger.warning(
            f"⚠️ Payment failed for garage {garage.id}: {amount} "
            f"(attempt {attempt}/{SUBSCRIPTION_MAX_PAYMENT_RETRIES}, status={new_status})"
        )

        await self._send_email(
            send_subscription_payment_failed_email,
            garage.email,
            garage.garage_name or garage.name or garage.email,
            amount,
            new_status == SubscriptionStatus.SUSPENDED,
        )
        self.notifications.safe_create(
            garage.id,
            NotificationType.SUBSCRIPTION,
            f'Your subscription payment of {amount} for the "{plan_name}" plan failed. '
            "Please update your payment method.",
            entity_id=str(subscription.id),
        )
        return {"status": new_status, "attempt": attempt, "hidden": hide}

    # ========================================================================
    # PAYMENT INTENTS
    # ========================================================================

    def handle_payment_intent(self, payment_intent: dict, status: str) -> dict:
        transaction = self.repo.get_transaction_by_reference(self.db, payment_intent.get("id"))
        if not transaction:
            logger.info(f"ℹ️ No transaction for payment intent {payment_intent.get('id')}")
            return {"status": "not_found"}

        transaction.status = status
        transaction.raw_status = payment_intent.get("status")
        self.db.commit()
        return {"status": status, "transaction_id": transaction.id}

    async def _send_email(self, sender, *args) -> None:
        try:
            await sender(*args)
        except Exception as e:
            logger.error(f"❌ Failed to send {sender.__name__}: {e}")
