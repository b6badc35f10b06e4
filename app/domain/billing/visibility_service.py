"""Subscription visibility - Keep User.has_subscription in step with garage subscriptions.

Drivers only see garages whose ``has_subscription`` flag is set. The flag is
derived from the latest ACTIVE subscription; a PAST_DUE subscription can stay
visible while it is inside the payment grace period.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...config import SUBSCRIPTION_GRACE_PERIOD_DAYS
from ...models import GarageSubscription, SubscriptionStatus
from .repository import BillingRepository

logger = logging.getLogger(__name__)


class SubscriptionVisibilityService:
    """Derives and repairs the driver-facing subscription flag on garages"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = BillingRepository()

    def _in_grace_period(self, subscription: GarageSubscription, now: datetime) -> bool:
        since = subscription.updated_at or subscription.current_period_end
        if since is None:
            return False
        return now - since <= timedelta(days=SUBSCRIPTION_GRACE_PERIOD_DAYS)

    def _expected_visibility(
        self, garage_id: int, should_hide_from_drivers: Optional[bool] = None
    ) -> tuple[bool, Optional[GarageSubscription]]:
        active = self.repo.get_latest_subscription(self.db, garage_id, [SubscriptionStatus.ACTIVE])
        if active:
            return True, active

        if should_hide_from_drivers is False:
            past_due = self.repo.get_latest_subscription(self.db, garage_id, [SubscriptionStatus.PAST_DUE])
            if past_due:
                return True, past_due

        return False, None

    def update_user_subscription_status(
        self, garage_id: int, source: str = "system", should_hide_from_drivers: Optional[bool] = None
    ) -> Optional[bool]:
        """
        Recompute ``has_subscription`` for one garage.

        ``should_hide_from_drivers=False`` keeps a PAST_DUE garage listed
        (webhook grace period). Errors are logged and None is returned.
        """
        try:
            user = self.repo.get_user(self.db, garage_id)
            if not user:
                logger.warning(f"⚠️ Visibility update skipped: garage {garage_id} not found ({source})")
                return None

            visible, subscription = self._expected_visibility(garage_id, should_hide_from_drivers)
            if should_hide_from_drivers is True:
                visible = False

            previous = user.has_subscription
            user.has_subscription = visible
            user.subscription_expires_at = subscription.current_period_end if visible and subscription else None
            self.db.commit()

            if previous != visible:
                logger.info(f"🔄 Garage {garage_id} visibility {previous} -> {visible} (source={source})")
            return visible
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to update subscription visibility for garage {garage_id} ({source}): {e}")
            return None

    def batch_update(self, garage_ids: list[int], source: str = "batch") -> dict:
        results = {"updated": 0, "visible": 0, "hidden": 0, "failed": 0}
        for garage_id in garage_ids:
            visible = self.update_user_subscription_status(garage_id, source)
            if visible is None:
                results["failed"] += 1
                continue
            results["updated"] += 1
            results["visible" if visible else "hidden"] += 1
        return results

    def get_visibility_status(self, garage_id: int, now: Optional[datetime] = None) -> Optional[dict]:
        now = now or datetime.utcnow()
        user = self.repo.get_user(self.db, garage_id)
        if not user:
            return None

        latest = self.repo.get_latest_subscription(self.db, garage_id)
        expected, _ = self._expected_visibility(garage_id)
        consistent = user.has_subscription == expected
        # A PAST_DUE garage left visible inside its grace period is expected
        if not consistent and user.has_subscription and latest and latest.status == SubscriptionStatus.PAST_DUE:
            consistent = self._in_grace_period(latest, now)

        return {
            "garage_id": garage_id,
            "has_subscription": user.has_subscription,
            "subscription_expires_at": user.subscription_expires_at,
            "latest_subscription_status": latest.status if latest else None,
            "expected_visibility": expected,
            "is_consistent": consistent,
        }

    def validate_consistency(self, now: Optional[datetime] = None) -> dict:
        inconsistencies = []
        garage_ids = self.repo.get_garage_ids(self.db)
        for garage_id in garage_ids:
            status = self.get_visibility_status(garage_id, now)
            if status and not status["is_consistent"]:
                inconsistencies.append(status)
        return {
            "checked": len(garage_ids),
            "inconsistent": len(inconsistencies),
            "inconsistencies": inconsistencies,
        }

    def fix_inconsistencies(self, now: Optional[datetime] = None) -> dict:
        report = self.validate_consistency(now)
        fixed = 0
        for entry in report["inconsistencies"]:
            if self.update_user_subscription_status(entry["garage_id"], source="consistency_fix") is not None:
                fixed += 1
        if report["inconsistent"]:
            logger.warning(f"⚠️ Fixed {fixed}/{report['inconsistent']} garage visibility inconsistencies")
        return {"checked": report["checked"], "inconsistent": report["inconsistent"], "fixed": fixed}
