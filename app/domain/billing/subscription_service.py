"""Subscription service - Garage-facing plans, checkout and cancellation"""

import logging

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import FRONTEND_URL
from ...models import GarageSubscription, SubscriptionPlan, SubscriptionStatus, User
from ...shared.pagination import paginate
from .repository import BillingRepository
from .schemas import CancelRequest, CheckoutRequest
from .stripe_service import stripe_service

logger = logging.getLogger(__name__)

CURRENCY_SYMBOLS = {"GBP": "£", "USD": "$", "EUR": "€"}


def format_price(price_pence: int, currency: str = "GBP") -> str:
    symbol = CURRENCY_SYMBOLS.get((currency or "GBP").upper(), "")
    return f"{symbol}{price_pence / 100:.2f}"


def plan_features(plan: SubscriptionPlan) -> list[str]:
    features = []
    if plan.max_bookings_per_month:
        features.append(f"Up to {plan.max_bookings_per_month} bookings per month")
    else:
        features.append("Unlimited bookings")
    if plan.max_vehicles:
        features.append(f"Up to {plan.max_vehicles} vehicles")
    if plan.priority_support:
        features.append("Priority support")
    if plan.advanced_analytics:
        features.append("Advanced analytics")
    if plan.custom_branding:
        features.append("Custom branding")
    if plan.trial_period_days:
        features.append(f"{plan.trial_period_days}-day free trial")
    return features


def serialize_plan(plan: SubscriptionPlan) -> dict:
    return {
        "id": plan.id,
        "name": plan.name,
        "description": plan.description,
        "price_pence": plan.price_pence,
        "price_formatted": format_price(plan.price_pence, plan.currency),
        "currency": plan.currency,
        "max_bookings_per_month": plan.max_bookings_per_month,
        "max_vehicles": plan.max_vehicles,
        "priority_support": plan.priority_support,
        "advanced_analytics": plan.advanced_analytics,
        "custom_branding": plan.custom_branding,
        "trial_period_days": plan.trial_period_days,
        "is_active": plan.is_active,
        "is_legacy_price": plan.is_legacy_price,
        "features": plan_features(plan),
    }


def serialize_subscription(subscription: GarageSubscription) -> dict:
    return {
        "id": subscription.id,
        "garage_id": subscription.garage_id,
        "plan_id": subscription.plan_id,
        "plan_name": subscription.plan.name if subscription.plan else None,
        "status": subscription.status,
        "price_pence": subscription.price_pence,
        "price_formatted": format_price(subscription.price_pence, subscription.currency),
        "currency": subscription.currency,
        "current_period_start": subscription.current_period_start,
        "current_period_end": subscription.current_period_end,
        "next_billing_date": subscription.next_billing_date,
        "cancel_at": subscription.cancel_at,
        "cancel_at_period_end": subscription.cancel_at_period_end,
        "cancellation_reason": subscription.cancellation_reason,
        "is_grandfathered": subscription.is_grandfathered,
    }


class GarageSubscriptionService:
    """Service for a garage's own subscription"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = BillingRepository()

    def get_available_plans(self, page: int = 1, limit: int = 10) -> dict:
        plans, pagination = paginate(self.repo.available_plans_query(self.db), page, limit)
        return {"data": [serialize_plan(p) for p in plans], "pagination": pagination}

    def get_current_subscription(self, garage: User) -> dict:
        subscription = self.repo.get_latest_subscription(self.db, garage.id)
        return {
            "has_subscription": garage.has_subscription,
            "subscription": serialize_subscription(subscription) if subscription else None,
        }

    async def create_checkout_session(self, request: CheckoutRequest, garage: User) -> dict:
        """Create a pending subscription row and a Stripe checkout session for it"""
        if self.repo.get_latest_subscription(self.db, garage.id, [SubscriptionStatus.ACTIVE]):
            raise HTTPException(status_code=409, detail="Garage already has an active subscription")

        plan = self.repo.get_plan(self.db, request.plan_id)
        if not plan:
            raise HTTPException(status_code=404, detail="Subscription plan not found")
        if not plan.is_active or not plan.stripe_price_id:
            raise HTTPException(status_code=400, detail="Subscription plan is not available")

        if not stripe_service.is_available():
            raise HTTPException(status_code=503, detail="Billing service temporarily unavailable")

        customer_id = garage.billing_id
        if not customer_id:
            try:
                customer_id = await stripe_service.create_customer(
                    garage.email, garage.garage_name or garage.name, {"user_id": str(garage.id)}
                )
                garage.billing_id = customer_id
                self.db.commit()
            except Exception as e:
                logger.error(f"Failed to create Stripe customer for garage {garage.id}: {e}")
                raise HTTPException(status_code=500, detail="Failed to create checkout session") from e

        pending = self.repo.create_subscription(
            self.db,
            garage_id=garage.id,
            plan_id=plan.id,
            status=SubscriptionStatus.INACTIVE,
            price_pence=plan.price_pence,
            currency=plan.currency,
            stripe_customer_id=customer_id,
        )

        success_url = f"{FRONTEND_URL}{request.success_path or '/garage/billing?checkout=success'}"
        cancel_url = f"{FRONTEND_URL}{request.cancel_path or '/garage/billing?checkout=cancel'}"
        metadata = {
            "garage_subscription_id": str(pending.id),
            "garage_id": str(garage.id),
            "plan_id": str(plan.id),
            "source": "garage_dashboard",
        }

        try:
            session = await stripe_service.create_checkout_session(
                customer_id=customer_id,
                price_id=plan.stripe_price_id,
                success_url=success_url,
                cancel_url=cancel_url,
                metadata=metadata,
                trial_period_days=plan.trial_period_days,
            )
        except Exception as e:
            logger.error(f"Failed to create checkout session for garage {garage.id}: {e}")
            self.db.delete(pending)
            self.db.commit()
            raise HTTPException(status_code=500, detail="Failed to create checkout session") from e

        logger.info(f"✅ Created checkout session for garage {garage.id}: {session.get('id')}")
        return {
            "checkout_url": session.get("url"),
            "session_id": session.get("id"),
            "garage_subscription_id": pending.id,
        }

    async def create_billing_portal_session(self, garage: User) -> dict:
        if not garage.billing_id:
            raise HTTPException(status_code=400, detail="No billing account found for this garage")
        if not stripe_service.is_available():
            raise HTTPException(status_code=503, detail="Billing service temporarily unavailable")

        try:
            session = await stripe_service.create_billing_portal_session(
                garage.billing_id, f"{FRONTEND_URL}/garage/billing"
            )
        except Exception as e:
            logger.error(f"Failed to create billing portal session for garage {garage.id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to create billing portal session") from e
        return {"url": session.get("url")}

    async def cancel_subscription(self, request: CancelRequest, garage: User) -> dict:
        """Cancel at the end of the current period; access continues until then"""
        subscription = self.repo.get_latest_subscription(
            self.db, garage.id, [SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE]
        )
        if not subscription or not subscription.stripe_subscription_id:
            raise HTTPException(status_code=400, detail="No active subscription found")
        if not stripe_service.is_available():
            raise HTTPException(status_code=503, detail="Billing service temporarily unavailable")

        try:
            await stripe_service.cancel_at_period_end(subscription.stripe_subscription_id, request.reason)
        except Exception as e:
            logger.error(f"Failed to cancel subscription {subscription.id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to cancel subscription") from e

        subscription.cancel_at_period_end = True
        subscription.cancel_at = subscription.current_period_end
        subscription.cancellation_reason = request.reason
        self.repo.save(self.db, subscription)

        logger.info(f"✅ Subscription {subscription.id} set to cancel at period end")
        return {
            "message": "Subscription will be canceled at the end of the billing period",
            "subscription": serialize_subscription(subscription),
        }
