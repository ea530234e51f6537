"""
Content-addressed decision cache in Redis.

The key is a SHA-256 over the conversation id and the sorted unread ids,
so identical unread sets share one entry no matter the order they were
fetched in. Entries carry their own expires_at; Redis TTL is only cleanup.
"""

import hashlib
from datetime import datetime, timedelta
from typing import Any

from pydantic import ValidationError

from smart_notify.config import settings
from smart_notify.features.smart_notifications.domain import NotificationDecision
from smart_notify.infrastructure.observability.logging import get_logger
from smart_notify.services.redis_client import fast_redis

logger = get_logger(__name__)

CACHE_KEY_PREFIX = "notification_cache:"


def cache_key(conversation_id: str, message_ids: list[str]) -> str:
    material = f"{conversation_id}:{','.join(sorted(message_ids))}"
    return CACHE_KEY_PREFIX + hashlib.sha256(material.encode("utf-8")).hexdigest()


class DecisionCache:
    def __init__(self, redis=None, ttl_seconds: int | None = None):
        self.redis = redis or fast_redis
        self.ttl_seconds = ttl_seconds or settings.DECISION_CACHE_TTL_SECONDS

    async def get(
        self, conversation_id: str, message_ids: list[str], now: datetime
    ) -> NotificationDecision | None:
        key = cache_key(conversation_id, message_ids)
        try:
            entry = await self.redis.get_json(key)
            if not entry:
                return None

            expires_at = datetime.fromisoformat(entry["expires_at"])
            if expires_at <= now:
                logger.debug("Decision cache entry expired", conversation_id=conversation_id)
                await self.redis.delete(key)
                return None

            decision = NotificationDecision.model_validate(entry["decision"])
            logger.info("Decision cache hit", conversation_id=conversation_id)
            return decision

        except (KeyError, TypeError, ValueError, ValidationError) as e:
            logger.warning(
                "Discarding malformed decision cache entry",
                conversation_id=conversation_id,
                error=str(e),
            )
            await self.redis.delete(key)
            return None
        except Exception as e:
            logger.error(
                "Decision cache read failed, treating as miss",
                conversation_id=conversation_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

    async def put(
        self, decision: NotificationDecision, message_ids: list[str], now: datetime
    ) -> bool:
        key = cache_key(decision.conversation_id, message_ids)
        entry: dict[str, Any] = {
            "cache_key": key,
            "decision": decision.model_dump(mode="json"),
            "conversation_id": decision.conversation_id,
            "unread_message_ids": sorted(message_ids),
            "created_at": now.isoformat(),
            "expires_at": (now + timedelta(seconds=self.ttl_seconds)).isoformat(),
        }
        try:
            stored = await self.redis.set_json(key, entry, ttl_s=self.ttl_seconds)
        except Exception as e:
            logger.error(
                "Decision cache write failed",
                conversation_id=decision.conversation_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        if not stored:
            logger.warning("Decision cache write skipped", conversation_id=decision.conversation_id)
        return stored
