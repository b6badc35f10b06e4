"""
Small Redis helpers used by the API processes.

- claim/release: one-shot keys used to de-duplicate Stripe webhook deliveries
- publish: JSON fan-out to per-user notification channels

Redis being down never blocks a request. A claim then succeeds (the event is
processed, possibly twice) and a publish is reported as skipped.
"""

import json
import logging
from typing import Any

from .redis_client import get_redis_client

logger = logging.getLogger(__name__)

STRIPE_EVENT_KEY_PREFIX = "stripe_event_processed"


def stripe_event_key(event_id: str) -> str:
    return f"{STRIPE_EVENT_KEY_PREFIX}:{event_id}"


class Cache:
    def __init__(self):
        self.redis_client = None

    def _get_client(self):
        """Lazy load Redis client"""
        if self.redis_client is None:
            try:
                self.redis_client = get_redis_client()
            except Exception as e:
                logger.warning(f"⚠️ Redis unavailable: {e}")
                return None
        return self.redis_client

    def claim(self, key: str, ttl: int) -> bool:
        """
        Atomically take ownership of `key` for `ttl` seconds.

        Returns False only when somebody already holds the key.
        """
        client = self._get_client()
        if not client:
            return True

        try:
            claimed = client.set(key, "1", nx=True, ex=ttl)
        except Exception as e:
            logger.error(f"❌ Claim failed for {key}: {e}")
            return True

        if not claimed:
            logger.debug(f"🔒 Key already claimed: {key}")
            return False
        return True

    def release(self, key: str) -> None:
        client = self._get_client()
        if not client:
            return

        try:
            client.delete(key)
        except Exception as e:
            logger.error(f"❌ Release failed for {key}: {e}")

    def publish(self, channel: str, message: Any) -> bool:
        client = self._get_client()
        if not client:
            return False

        try:
            client.publish(channel, json.dumps(message, default=str))
            return True
        except Exception as e:
            logger.error(f"❌ Publish error on {channel}: {e}")
            return False


cache = Cache()
