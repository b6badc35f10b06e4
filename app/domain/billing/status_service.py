"""Subscription status service - Daily lifecycle check and status queries"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...config import SUBSCRIPTION_EXPIRY_ALERT_THRESHOLD, SUBSCRIPTION_SUSPEND_AFTER_DAYS
from ...models import GarageSubscription, NotificationType, SubscriptionStatus
from ..notifications.service import NotificationService
from .repository import BillingRepository
from .visibility_service import SubscriptionVisibilityService

logger = logging.getLogger(__name__)

EXPIRING_SOON_DAYS = 7


def status_for_days_past_due(days_past_due: int) -> str:
    """ACTIVE until the period ends, PAST_DUE for a week, then SUSPENDED"""
    if days_past_due <= 0:
        return SubscriptionStatus.ACTIVE
    if days_past_due <= SUBSCRIPTION_SUSPEND_AFTER_DAYS:
        return SubscriptionStatus.PAST_DUE
    return SubscriptionStatus.SUSPENDED


class SubscriptionStatusService:
    """Service for subscription lifecycle transitions driven by the calendar"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = BillingRepository()
        self.visibility = SubscriptionVisibilityService(db)
        self.notifications = NotificationService(db)

    def check_subscription_statuses(self, now: Optional[datetime] = None) -> dict:
        """
        Move lapsed subscriptions along ACTIVE -> PAST_DUE -> SUSPENDED.

        Runs from the midnight cron. Admins are told when an unusual number of
        subscriptions is about to expire, and when the run itself fails.
        """
        now = now or datetime.utcnow()
        today = now.date()
        end_of_today = datetime(today.year, today.month, today.day) + timedelta(days=1) - timedelta(microseconds=1)
        summary = {"processed": 0, "active": 0, "past_due": 0, "suspended": 0, "errors": 0}

        logger.info("🔄 Starting daily subscription status check")

        try:
            for subscription in self.repo.get_subscriptions_due(self.db, end_of_today):
                summary["processed"] += 1
                try:
                    new_status = self._apply_status(subscription, today)
                    summary[new_status.lower()] += 1
                except Exception as e:
                    summary["errors"] += 1
                    self.db.rollback()
                    logger.error(f"❌ Failed to update subscription {subscription.id}: {e}")

            expiring = self.repo.count_expiring_between(self.db, now, now + timedelta(days=EXPIRING_SOON_DAYS))
            summary["expiring_soon"] = expiring
            if expiring > SUBSCRIPTION_EXPIRY_ALERT_THRESHOLD:
                logger.warning(f"⚠️ {expiring} subscriptions expire within {EXPIRING_SOON_DAYS} days")
                self.notifications.send_to_all_admins(
                    NotificationType.SYSTEM,
                    f"{expiring} garage subscriptions expire within the next {EXPIRING_SOON_DAYS} days",
                )
        except Exception as e:
            logger.error(f"❌ Subscription status check failed: {e}")
            self.db.rollback()
            self.notifications.send_to_all_admins(
                NotificationType.SYSTEM, f"Subscription status cron failed: {str(e)[:200]}"
            )
            raise

        logger.info(f"✅ Subscription status check complete: {summary}")
        return summary

    def _apply_status(self, subscription: GarageSubscription, today) -> str:
        days_past_due = (today - subscription.current_period_end.date()).days
        new_status = status_for_days_past_due(days_past_due)

        if subscription.status != new_status:
            logger.info(
                f"🔄 Subscription {subscription.id} {subscription.status} -> {new_status} "
                f"({days_past_due} days past due)"
            )
            subscription.status = new_status
            self.db.commit()
            self.visibility.update_user_subscription_status(subscription.garage_id, source="status_cron")

            if new_status == SubscriptionStatus.SUSPENDED:
                self.notifications.safe_create(
                    subscription.garage_id,
                    NotificationType.SUBSCRIPTION,
                    "Your subscription has been suspended and your garage is hidden from drivers. "
                    "Please update your payment details to reactivate it.",
                    entity_id=str(subscription.id),
                )
            elif new_status == SubscriptionStatus.PAST_DUE:
                self.notifications.safe_create(
                    subscription.garage_id,
                    NotificationType.SUBSCRIPTION,
                    "Your subscription payment is overdue. Please update your payment details.",
                    entity_id=str(subscription.id),
                )
        return new_status

    # ========================================================================
    # QUERIES
    # ========================================================================

    def is_garage_subscription_active(self, garage_id: int, now: Optional[datetime] = None) -> bool:
        now = now or datetime.utcnow()
        subscription = self.repo.get_latest_subscription(self.db, garage_id, [SubscriptionStatus.ACTIVE])
        if not subscription:
            return False
        return subscription.current_period_end is None or subscription.current_period_end >= now

    def get_garage_subscription_status(self, garage_id: int, now: Optional[datetime] = None) -> dict:
        now = now or datetime.utcnow()
        subscription = self.repo.get_latest_subscription(self.db, garage_id)
        if not subscription:
            return {
                "has_active_subscription": False,
                "status": None,
                "plan_name": None,
                "expires_at": None,
                "days_until_expiry": None,
            }

        days_until_expiry = None
        if subscription.current_period_end:
            days_until_expiry = (subscription.current_period_end.date() - now.date()).days

        return {
            "has_active_subscription": self.is_garage_subscription_active(garage_id, now),
            "status": subscription.status,
            "plan_name": subscription.plan.name if subscription.plan else None,
            "expires_at": subscription.current_period_end,
            "days_until_expiry": days_until_expiry,
        }

    def get_subscription_health_summary(self, now: Optional[datetime] = None) -> dict:
        now = now or datetime.utcnow()
        counts = self.repo.count_by_status(self.db)
        return {
            "total": sum(counts.values()),
            "active": counts.get(SubscriptionStatus.ACTIVE, 0),
            "past_due": counts.get(SubscriptionStatus.PAST_DUE, 0),
            "suspended": counts.get(SubscriptionStatus.SUSPENDED, 0),
            "cancelled": counts.get(SubscriptionStatus.CANCELLED, 0),
            "inactive": counts.get(SubscriptionStatus.INACTIVE, 0),
            "expiring_soon": self.repo.count_expiring_between(
                self.db, now, now + timedelta(days=EXPIRING_SOON_DAYS)
            ),
            "expired_recently": self.repo.count_expired_between(
                self.db, now - timedelta(days=EXPIRING_SOON_DAYS), now
            ),
            "generated_at": now,
        }
