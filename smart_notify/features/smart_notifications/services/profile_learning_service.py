"""
Learns a per-user notification profile from journal feedback.
"""

import re
from collections import Counter
from datetime import datetime, timedelta
from typing import Any

from smart_notify.config import settings
from smart_notify.features.smart_notifications.domain import (
    NotificationHistoryEntry,
    NotificationProfile,
    utcnow,
)
from smart_notify.features.smart_notifications.repository.journal_repository import (
    JournalRepository,
)
from smart_notify.features.smart_notifications.repository.preferences_repository import (
    PreferencesRepository,
)
from smart_notify.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

HIGH_ACCURACY_THRESHOLD = 0.8
MEDIUM_ACCURACY_THRESHOLD = 0.5
TOP_KEYWORDS = 10
MIN_WORD_LENGTH = 4

STOP_WORDS = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "is", "are", "was", "were",
        "to", "from", "in", "on", "at", "for", "with", "of", "by", "this",
        "that", "it", "you", "your", "has", "have", "had", "be", "been",
        "message", "messages", "notification", "notified", "notify",
    }
)  # fmt: skip

_WORD_RE = re.compile(r"[^\w\s]")


def extract_keywords(texts: list[str], limit: int = TOP_KEYWORDS) -> list[str]:
    """Most frequent non-stop words longer than three characters."""
    counts: Counter[str] = Counter()
    for text in texts:
        for word in _WORD_RE.sub(" ", text.lower()).split():
            if len(word) >= MIN_WORD_LENGTH and word not in STOP_WORDS:
                counts[word] += 1
    # Ties broken alphabetically so the result is stable
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [word for word, _ in ranked[:limit]]


def rate_for_accuracy(accuracy: float) -> str:
    if accuracy >= HIGH_ACCURACY_THRESHOLD:
        return "high"
    if accuracy >= MEDIUM_ACCURACY_THRESHOLD:
        return "medium"
    return "low"


def build_profile(
    user_id: str, entries: list[NotificationHistoryEntry]
) -> NotificationProfile | None:
    helpful = [e for e in entries if e.user_feedback == "helpful"]
    not_helpful = [e for e in entries if e.user_feedback == "not_helpful"]
    total = len(helpful) + len(not_helpful)
    if total == 0:
        return None

    accuracy = round(len(helpful) / total, 2)

    def texts(items: list[NotificationHistoryEntry]) -> list[str]:
        return [f"{e.notification_text or ''} {e.ai_reasoning or ''}" for e in items]

    return NotificationProfile(
        user_id=user_id,
        preferred_notification_rate=rate_for_accuracy(accuracy),
        learned_keywords=extract_keywords(texts(helpful)),
        suppressed_topics=extract_keywords(texts(not_helpful)),
        accuracy=accuracy,
    )


class ProfileLearningService:
    def __init__(self, journal=JournalRepository, profiles=PreferencesRepository):
        self.journal = journal
        self.profiles = profiles

    async def refresh_profile(
        self, user_id: str, now: datetime | None = None
    ) -> NotificationProfile | None:
        """Rebuild and store the user's profile. Returns None when there is no feedback."""
        now = now or utcnow()
        since = now - timedelta(days=settings.FEEDBACK_LOOKBACK_DAYS)

        entries = await self.journal.list_since(user_id, since)
        profile = build_profile(user_id, entries)
        if profile is None:
            logger.info("No feedback to learn from", user_id=user_id)
            return None

        await self.profiles.upsert_profile(profile)
        logger.info(
            "Notification profile refreshed",
            user_id=user_id,
            accuracy=profile.accuracy,
            preferred_notification_rate=profile.preferred_notification_rate,
            learned_keywords=len(profile.learned_keywords),
            suppressed_topics=len(profile.suppressed_topics),
        )
        return profile

    async def refresh_all_profiles(self, now: datetime | None = None) -> dict[str, Any]:
        """Refresh every user with recent feedback; one user's failure does not stop the rest."""
        now = now or utcnow()
        since = now - timedelta(days=settings.FEEDBACK_LOOKBACK_DAYS)
        user_ids = await self.journal.list_users_with_feedback(since)

        stats = {"users": len(user_ids), "updated": 0, "skipped": 0, "failed": 0}
        for user_id in user_ids:
            try:
                profile = await self.refresh_profile(user_id, now=now)
            except Exception as e:
                stats["failed"] += 1
                logger.error(
                    "Profile refresh failed",
                    user_id=user_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue

            if profile is None:
                stats["skipped"] += 1
            else:
                stats["updated"] += 1

        logger.info("Profile refresh run completed", **stats)
        return stats


profile_learning_service = ProfileLearningService()
