"""
Delivery gating: active-conversation suppression and the per-user hourly
notification budget. Neither touches the decision itself.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from smart_notify.config import settings
from smart_notify.features.smart_notifications.domain import (
    ActivityRecord,
    NotificationPreferences,
)
from smart_notify.infrastructure.observability.logging import get_logger
from smart_notify.services.redis_client import fast_redis

logger = get_logger(__name__)

ACTIVITY_KEY_PREFIX = "user_activity:"
RATE_KEY_PREFIX = "notify_rate:"


@dataclass(slots=True)
class SuppressionResult:
    suppressed: bool
    reason: str | None = None
    count: int | None = None
    reset_in_seconds: int | None = None


class ActivityTracker:
    """Per-user "currently viewing" record written by the client app."""

    def __init__(self, redis=None, ttl_seconds: int | None = None):
        self.redis = redis or fast_redis
        self.ttl_seconds = ttl_seconds or settings.ACTIVITY_RECORD_TTL_SECONDS

    async def record(
        self, user_id: str, conversation_id: str | None, now: datetime
    ) -> ActivityRecord:
        record = ActivityRecord(
            user_id=user_id, active_conversation_id=conversation_id, timestamp=now
        )
        await self.redis.set_json(
            ACTIVITY_KEY_PREFIX + user_id,
            {
                "user_id": user_id,
                "active_conversation_id": conversation_id,
                "timestamp": now.isoformat(),
            },
            ttl_s=self.ttl_seconds,
        )
        return record

    async def get(self, user_id: str) -> ActivityRecord | None:
        data = await self.redis.get_json(ACTIVITY_KEY_PREFIX + user_id)
        if not data:
            return None
        try:
            return ActivityRecord(
                user_id=user_id,
                active_conversation_id=data.get("active_conversation_id"),
                timestamp=datetime.fromisoformat(data["timestamp"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Malformed activity record", user_id=user_id, error=str(e))
            return None


class DeliverySuppressor:
    def __init__(
        self,
        redis=None,
        activity: ActivityTracker | None = None,
        active_window_seconds: int | None = None,
        rate_window_seconds: int | None = None,
        fail_open: bool | None = None,
    ):
        self.redis = redis or fast_redis
        self.activity = activity or ActivityTracker(redis=self.redis)
        self.active_window = timedelta(
            seconds=active_window_seconds or settings.ACTIVE_CONVERSATION_WINDOW_SECONDS
        )
        self.rate_window_seconds = rate_window_seconds or settings.RATE_LIMIT_WINDOW_SECONDS
        self.fail_open = settings.RATE_LIMIT_FAIL_OPEN if fail_open is None else fail_open

    async def is_viewing(self, user_id: str, conversation_id: str, now: datetime) -> bool:
        try:
            record = await self.activity.get(user_id)
        except Exception as e:
            logger.warning("Activity lookup failed", user_id=user_id, error=str(e))
            return False

        if record is None or record.active_conversation_id != conversation_id:
            return False
        return now - record.timestamp <= self.active_window

    async def check(
        self,
        user_id: str,
        conversation_id: str,
        preferences: NotificationPreferences,
        now: datetime,
    ) -> SuppressionResult:
        """Decide whether a should-notify decision may be delivered."""
        if not preferences.enabled:
            return SuppressionResult(suppressed=True, reason="notifications_disabled")

        if await self.is_viewing(user_id, conversation_id, now):
            logger.info(
                "Delivery suppressed, user is viewing conversation",
                user_id=user_id,
                conversation_id=conversation_id,
            )
            return SuppressionResult(suppressed=True, reason="active_conversation")

        try:
            count, ttl = await self.redis.incr_in_window(
                RATE_KEY_PREFIX + user_id, self.rate_window_seconds
            )
        except Exception as e:
            logger.error(
                "Notification rate counter unavailable",
                user_id=user_id,
                fail_open=self.fail_open,
                error=str(e),
                error_type=type(e).__name__,
            )
            if self.fail_open:
                return SuppressionResult(suppressed=False, reason="rate_limiter_error")
            return SuppressionResult(suppressed=True, reason="rate_limiter_error")

        if count > preferences.max_analyses_per_hour:
            logger.info(
                "Delivery suppressed, hourly budget exhausted",
                user_id=user_id,
                count=count,
                limit=preferences.max_analyses_per_hour,
                reset_in_seconds=ttl,
            )
            return SuppressionResult(
                suppressed=True, reason="rate_limited", count=count, reset_in_seconds=ttl
            )

        return SuppressionResult(suppressed=False, count=count, reset_in_seconds=ttl)
