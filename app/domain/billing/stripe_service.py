"""Stripe service - Integration with the Stripe API"""

import asyncio
import json
import logging
from typing import Any, Optional

import stripe

from ...config import STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET

logger = logging.getLogger(__name__)


def as_dict(obj: Any) -> dict:
    """Convert a StripeObject (or plain dict) into a plain dict"""
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return obj
    for attr in ("to_dict", "to_dict_recursive"):
        converter = getattr(obj, attr, None)
        if callable(converter):
            return converter()
    return json.loads(str(obj))


class StripeService:
    """Service for Stripe API operations"""

    def __init__(self):
        self.api_key = STRIPE_SECRET_KEY
        self.webhook_secret = STRIPE_WEBHOOK_SECRET

        if not self.api_key:
            logger.warning("STRIPE_SECRET_KEY not set; billing endpoints will fail until configured")
        else:
            stripe.api_key = self.api_key
            logger.info("Stripe client initialized")

    def is_available(self) -> bool:
        """Check if Stripe is configured"""
        return bool(self.api_key)

    def _require_client(self) -> None:
        if not self.is_available():
            raise Exception("Stripe client not initialized")

    async def create_customer(self, email: str, name: Optional[str] = None, metadata: Optional[dict] = None) -> str:
        """Create a customer and return its id"""
        self._require_client()
        try:
            customer = await asyncio.to_thread(
                stripe.Customer.create, email=email, name=name, metadata=metadata or {}
            )
            return as_dict(customer)["id"]
        except Exception as e:
            logger.error(f"Failed to create Stripe customer for {email}: {e}")
            raise

    async def create_product_with_price(
        self, name: str, description: Optional[str], price_pence: int, currency: str = "GBP"
    ) -> tuple[str, str]:
        """Create a product with a monthly recurring price; returns (product_id, price_id)"""
        self._require_client()
        try:
            product = as_dict(
                await asyncio.to_thread(stripe.Product.create, name=name, description=description or None)
            )
            price_id = await self.create_price(product["id"], price_pence, currency)
            return product["id"], price_id
        except Exception as e:
            logger.error(f"Failed to create Stripe product for plan {name}: {e}")
            raise

    async def create_price(self, product_id: str, price_pence: int, currency: str = "GBP") -> str:
        self._require_client()
        try:
            price = await asyncio.to_thread(
                stripe.Price.create,
                product=product_id,
                unit_amount=price_pence,
                currency=currency.lower(),
                recurring={"interval": "month"},
            )
            return as_dict(price)["id"]
        except Exception as e:
            logger.error(f"Failed to create Stripe price for product {product_id}: {e}")
            raise

    async def create_checkout_session(
        self,
        customer_id: Optional[str],
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Optional[dict] = None,
        trial_period_days: Optional[int] = None,
        customer_email: Optional[str] = None,
    ) -> dict:
        """Create a subscription-mode checkout session"""
        self._require_client()

        subscription_data: dict = {"metadata": metadata or {}}
        if trial_period_days:
            subscription_data["trial_period_days"] = trial_period_days

        params: dict = {
            "mode": "subscription",
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata or {},
            "subscription_data": subscription_data,
        }
        if customer_id:
            params["customer"] = customer_id
        elif customer_email:
            params["customer_email"] = customer_email

        try:
            session = await asyncio.to_thread(stripe.checkout.Session.create, **params)
            return as_dict(session)
        except Exception as e:
            logger.error(f"Failed to create checkout session: {e}")
            raise

    async def create_billing_portal_session(self, customer_id: str, return_url: str) -> dict:
        self._require_client()
        try:
            session = await asyncio.to_thread(
                stripe.billing_portal.Session.create, customer=customer_id, return_url=return_url
            )
            return as_dict(session)
        except Exception as e:
            logger.error(f"Failed to create billing portal session for {customer_id}: {e}")
            raise

    async def retrieve_subscription(self, subscription_id: str) -> dict:
        self._require_client()
        try:
            return as_dict(await asyncio.to_thread(stripe.Subscription.retrieve, subscription_id))
        except Exception as e:
            logger.error(f"Failed to retrieve subscription {subscription_id}: {e}")
            raise

    async def cancel_at_period_end(self, subscription_id: str, reason: Optional[str] = None) -> dict:
        self._require_client()
        try:
            subscription = await asyncio.to_thread(
                stripe.Subscription.modify,
                subscription_id,
                cancel_at_period_end=True,
                metadata={"cancellation_reason": reason or ""},
            )
            return as_dict(subscription)
        except Exception as e:
            logger.error(f"Failed to cancel subscription {subscription_id}: {e}")
            raise

    def construct_event(self, payload: bytes, signature: Optional[str]) -> dict:
        """
        Verify a webhook signature and return the decoded event.

        Raises:
            ValueError: If the payload is not valid JSON
            stripe.error.SignatureVerificationError: If the signature does not match
        """
        if not self.webhook_secret:
            raise Exception("STRIPE_WEBHOOK_SECRET not configured")
        stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        return json.loads(payload)


# Singleton instance
stripe_service = StripeService()
