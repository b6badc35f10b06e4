"""Billing router - Garage subscription endpoints and the Stripe webhook"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from ...auth import get_current_garage
from ...cache import cache, stripe_event_key
from ...database import get_db
from ...models import User
from .schemas import CancelRequest, CheckoutRequest
from .status_service import SubscriptionStatusService
from .stripe_service import stripe_service
from .subscription_service import GarageSubscriptionService
from .webhook_service import StripeWebhookService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/garage/subscription", tags=["Billing"])
webhooks_router = APIRouter(prefix="/stripe", tags=["Webhooks"])

WEBHOOK_IDEMPOTENCY_TTL = 86400


def get_subscription_service(db: Session = Depends(get_db)) -> GarageSubscriptionService:
    """Dependency injection for GarageSubscriptionService"""
    return GarageSubscriptionService(db)


# ============================================================================
# GARAGE SUBSCRIPTION
# ============================================================================


@router.get("/plans")
async def get_available_plans(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    garage: User = Depends(get_current_garage),
    service: GarageSubscriptionService = Depends(get_subscription_service),
):
    """Active, non-legacy plans ordered by price"""
    return service.get_available_plans(page, limit)


@router.get("")
async def get_current_subscription(
    garage: User = Depends(get_current_garage),
    service: GarageSubscriptionService = Depends(get_subscription_service),
):
    return service.get_current_subscription(garage)


@router.get("/status")
async def get_subscription_status(
    garage: User = Depends(get_current_garage),
    db: Session = Depends(get_db),
):
    return SubscriptionStatusService(db).get_garage_subscription_status(garage.id)


@router.post("/checkout")
async def create_checkout_session(
    body: CheckoutRequest,
    garage: User = Depends(get_current_garage),
    service: GarageSubscriptionService = Depends(get_subscription_service),
):
    return await service.create_checkout_session(body, garage)


@router.post("/portal")
async def create_billing_portal_session(
    garage: User = Depends(get_current_garage),
    service: GarageSubscriptionService = Depends(get_subscription_service),
):
    return await service.create_billing_portal_session(garage)


@router.post("/cancel")
async def cancel_subscription(
    body: CancelRequest,
    garage: User = Depends(get_current_garage),
    service: GarageSubscriptionService = Depends(get_subscription_service),
):
    return await service.cancel_subscription(body, garage)


# ============================================================================
# WEBHOOK
# ============================================================================


@webhooks_router.post("/webhook")
async def handle_stripe_webhook(request: Request, db: Session = Depends(get_db)):
    """
    Verify the Stripe signature and apply the event.

    Headers:
      - 'stripe-signature': 't={timestamp},v1={hmac_sha256}'

    Events are de-duplicated by id for 24 hours. A failing handler releases
    the id and answers 500 so Stripe retries the delivery.
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    try:
        event = stripe_service.construct_event(payload, signature)
    except ValueError as e:
        logger.error(f"❌ Invalid Stripe webhook payload: {e}")
        raise HTTPException(status_code=400, detail="Invalid payload") from e
    except Exception as e:
        logger.error(f"❌ Stripe webhook signature verification failed: {e}")
        raise HTTPException(status_code=400, detail="Invalid signature") from e

    event_id = event.get("id", "unknown")
    idempotency_key = stripe_event_key(event_id)
    if not cache.claim(idempotency_key, ttl=WEBHOOK_IDEMPOTENCY_TTL):
        logger.info(f"🔄 Stripe event {event_id} already processed, skipping (idempotency)")
        return {"received": True, "status": "already_processed"}

    try:
        result = await StripeWebhookService(db).handle_event(event)
    except Exception as e:
        db.rollback()
        cache.release(idempotency_key)
        logger.error(f"❌ Stripe event {event_id} ({event.get('type')}) failed: {e}")
        raise HTTPException(status_code=500, detail="Webhook processing failed") from e

    return {"received": True, "result": result}
