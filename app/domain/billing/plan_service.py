"""Plan service - Admin management of subscription plans"""

import logging

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import GarageSubscription, SubscriptionPlan, SubscriptionStatus
from ...shared.pagination import paginate
from .repository import BillingRepository
from .schemas import PlanCreate, PlanUpdate
from .stripe_service import stripe_service
from .subscription_service import serialize_plan

logger = logging.getLogger(__name__)


class PlanService:
    """
    Service for subscription plans.

    A plan's Stripe price is immutable. Changing ``price_pence`` creates a new
    price on the same product; the previous price is kept as a legacy plan row
    and every existing subscriber moves to it (grandfathered).
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = BillingRepository()

    def list_plans(self, page: int = 1, limit: int = 10, include_inactive: bool = True) -> dict:
        query = self.repo.all_plans_query(self.db) if include_inactive else self.repo.available_plans_query(self.db)
        plans, pagination = paginate(query, page, limit)
        return {"data": [serialize_plan(p) for p in plans], "pagination": pagination}

    def get_plan(self, plan_id: int) -> SubscriptionPlan:
        plan = self.repo.get_plan(self.db, plan_id)
        if not plan:
            raise HTTPException(status_code=404, detail="Subscription plan not found")
        return plan

    async def create_plan(self, request: PlanCreate) -> dict:
        if self.repo.get_plan_by_name(self.db, request.name):
            raise HTTPException(status_code=409, detail="A plan with this name already exists")

        product_id = price_id = None
        if stripe_service.is_available():
            try:
                product_id, price_id = await stripe_service.create_product_with_price(
                    request.name, request.description, request.price_pence, request.currency
                )
            except Exception as e:
                raise HTTPException(status_code=502, detail="Failed to create plan with payment provider") from e
        else:
            logger.warning(f"⚠️ Stripe not configured; plan {request.name} created without a price")

        plan = self.repo.create_plan(
            self.db,
            **request.model_dump(),
            stripe_product_id=product_id,
            stripe_price_id=price_id,
        )
        logger.info(f"✅ Created subscription plan {plan.id} ({plan.name})")
        return serialize_plan(plan)

    async def update_plan(self, plan_id: int, request: PlanUpdate) -> dict:
        plan = self.get_plan(plan_id)
        if plan.is_legacy_price:
            raise HTTPException(status_code=400, detail="Legacy plans cannot be edited")

        updates = request.model_dump(exclude_unset=True)
        new_price = updates.pop("price_pence", None)

        if "name" in updates and updates["name"]:
            existing = self.repo.get_plan_by_name(self.db, updates["name"])
            if existing and existing.id != plan.id:
                raise HTTPException(status_code=409, detail="A plan with this name already exists")

        grandfathered = 0
        if new_price is not None and new_price != plan.price_pence:
            grandfathered = await self._change_price(plan, new_price)

        for field, value in updates.items():
            setattr(plan, field, value)
        self.repo.save(self.db, plan)

        logger.info(f"✅ Updated subscription plan {plan.id}")
        result = serialize_plan(plan)
        result["grandfathered_subscriptions"] = grandfathered
        return result

    async def _change_price(self, plan: SubscriptionPlan, new_price: int) -> int:
        new_price_id = None
        if plan.stripe_product_id and stripe_service.is_available():
            try:
                new_price_id = await stripe_service.create_price(plan.stripe_product_id, new_price, plan.currency)
            except Exception as e:
                raise HTTPException(status_code=502, detail="Failed to create price with payment provider") from e

        legacy = SubscriptionPlan(
            name=f"{plan.name} (legacy {plan.price_pence}p #{plan.id})",
            description=plan.description,
            price_pence=plan.price_pence,
            currency=plan.currency,
            max_bookings_per_month=plan.max_bookings_per_month,
            max_vehicles=plan.max_vehicles,
            priority_support=plan.priority_support,
            advanced_analytics=plan.advanced_analytics,
            custom_branding=plan.custom_branding,
            trial_period_days=plan.trial_period_days,
            stripe_product_id=plan.stripe_product_id,
            stripe_price_id=plan.stripe_price_id,
            is_active=True,
            is_legacy_price=True,
        )
        self.db.add(legacy)
        self.db.flush()

        subscribers = (
            self.db.query(GarageSubscription)
            .filter(
                GarageSubscription.plan_id == plan.id,
                GarageSubscription.status.notin_([SubscriptionStatus.CANCELLED]),
            )
            .all()
        )
        for subscription in subscribers:
            subscription.plan_id = legacy.id
            subscription.is_grandfathered = True

        plan.price_pence = new_price
        plan.stripe_price_id = new_price_id
        logger.info(
            f"💷 Plan {plan.id} price changed to {new_price}p; "
            f"{len(subscribers)} subscriptions kept on legacy plan {legacy.id}"
        )
        return len(subscribers)

    def deactivate_plan(self, plan_id: int) -> dict:
        plan = self.get_plan(plan_id)
        plan.is_active = False
        self.repo.save(self.db, plan)
        logger.info(f"🚫 Deactivated subscription plan {plan.id}")
        return serialize_plan(plan)
