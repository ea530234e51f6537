"""
Notification preferences (user owned) and learned profiles.
"""

from typing import Any

from smart_notify.db.helpers import execute_query, fetch_one
from smart_notify.features.smart_notifications.domain import (
    NotificationPreferences,
    NotificationProfile,
)
from smart_notify.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

_FALLBACK_STRATEGIES = {"simple_rules", "notify_all", "suppress_all"}
_RATES = {"high", "medium", "low"}


def _preferences_from_row(row: dict[str, Any]) -> NotificationPreferences:
    defaults = NotificationPreferences()

    def pick(column: str, default: Any) -> Any:
        value = row.get(column)
        return default if value is None else value

    strategy = pick("fallback_strategy", defaults.fallback_strategy)
    if strategy not in _FALLBACK_STRATEGIES:
        logger.warning("Unknown fallback strategy, using default", fallback_strategy=strategy)
        strategy = defaults.fallback_strategy

    return NotificationPreferences(
        enabled=bool(pick("enabled", defaults.enabled)),
        pause_threshold_seconds=int(
            pick("pause_threshold_seconds", defaults.pause_threshold_seconds)
        ),
        active_conversation_threshold=int(
            pick("active_conversation_threshold", defaults.active_conversation_threshold)
        ),
        quiet_hours_start=pick("quiet_hours_start", defaults.quiet_hours_start),
        quiet_hours_end=pick("quiet_hours_end", defaults.quiet_hours_end),
        timezone=pick("timezone", defaults.timezone),
        priority_keywords=list(pick("priority_keywords", defaults.priority_keywords)),
        max_analyses_per_hour=int(pick("max_analyses_per_hour", defaults.max_analyses_per_hour)),
        fallback_strategy=strategy,
    )


class PreferencesRepository:
    @classmethod
    async def get_preferences(cls, user_id: str) -> NotificationPreferences | None:
        query = """
            SELECT enabled, pause_threshold_seconds, active_conversation_threshold,
                   quiet_hours_start, quiet_hours_end, timezone, priority_keywords,
                   max_analyses_per_hour, fallback_strategy
            FROM notification_preferences
            WHERE user_id = %s
        """
        row = await fetch_one(query, (user_id,))
        return _preferences_from_row(row) if row else None

    @classmethod
    async def get_profile(cls, user_id: str) -> NotificationProfile | None:
        query = """
            SELECT user_id, preferred_notification_rate, learned_keywords,
                   suppressed_topics, accuracy, updated_at
            FROM notification_profiles
            WHERE user_id = %s
        """
        row = await fetch_one(query, (user_id,))
        if not row:
            return None

        rate = row.get("preferred_notification_rate") or "medium"
        return NotificationProfile(
            user_id=str(row["user_id"]),
            preferred_notification_rate=rate if rate in _RATES else "medium",
            learned_keywords=list(row.get("learned_keywords") or []),
            suppressed_topics=list(row.get("suppressed_topics") or []),
            accuracy=row.get("accuracy"),
            updated_at=row.get("updated_at"),
        )

    @classmethod
    async def upsert_profile(cls, profile: NotificationProfile) -> None:
        query = """
            INSERT INTO notification_profiles (
                user_id, preferred_notification_rate, learned_keywords,
                suppressed_topics, accuracy, updated_at
            )
            VALUES (%s, %s, %s, %s, %s, NOW())
            ON CONFLICT (user_id)
            DO UPDATE SET
                preferred_notification_rate = EXCLUDED.preferred_notification_rate,
                learned_keywords = EXCLUDED.learned_keywords,
                suppressed_topics = EXCLUDED.suppressed_topics,
                accuracy = EXCLUDED.accuracy,
                updated_at = NOW()
        """
        await execute_query(
            query,
            (
                profile.user_id,
                profile.preferred_notification_rate,
                profile.learned_keywords,
                profile.suppressed_topics,
                profile.accuracy,
            ),
        )
        logger.info(
            "Notification profile upserted",
            user_id=profile.user_id,
            preferred_notification_rate=profile.preferred_notification_rate,
            accuracy=profile.accuracy,
        )
