from collections import Counter
from datetime import datetime, timedelta
from typing import Any

from smart_notify.config import settings
from smart_notify.features.smart_notifications.domain import NotificationHistoryEntry, utcnow
from smart_notify.features.smart_notifications.repository.journal_repository import (
    JournalRepository,
)

TOP_FALSE_POSITIVE_REASONS = 5


def summarize(entries: list[NotificationHistoryEntry], period_days: int) -> dict[str, Any]:
    helpful = sum(1 for e in entries if e.user_feedback == "helpful")
    not_helpful = sum(1 for e in entries if e.user_feedback == "not_helpful")
    rated = helpful + not_helpful

    false_positives = Counter(
        e.ai_reasoning or "Unknown"
        for e in entries
        if e.decision and e.user_feedback == "not_helpful"
    )

    return {
        "period_days": period_days,
        "total_decisions": len(entries),
        "notified": sum(1 for e in entries if e.decision),
        "delivered": sum(1 for e in entries if e.was_delivered),
        "helpful": helpful,
        "not_helpful": not_helpful,
        "accuracy_percent": round(helpful / rated * 100, 1) if rated else None,
        "top_false_positive_reasons": [
            {"reason": reason, "count": count}
            for reason, count in sorted(false_positives.items(), key=lambda i: (-i[1], i[0]))[
                :TOP_FALSE_POSITIVE_REASONS
            ]
        ],
    }


class NotificationAnalyticsService:
    def __init__(self, journal=JournalRepository):
        self.journal = journal

    async def get_analytics(self, user_id: str, now: datetime | None = None) -> dict[str, Any]:
        now = now or utcnow()
        period = settings.FEEDBACK_LOOKBACK_DAYS
        entries = await self.journal.list_since(user_id, now - timedelta(days=period))
        return summarize(entries, period)


analytics_service = NotificationAnalyticsService()
