from datetime import datetime

from smart_notify.features.smart_notifications.domain import (
    DecisionSource,
    NotificationDecision,
)
from smart_notify.features.smart_notifications.repository.journal_repository import (
    JournalRepository,
)
from smart_notify.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DecisionJournal:
    """Write side of the decision journal. Failures are logged, never raised."""

    def __init__(self, repository=JournalRepository):
        self.repository = repository

    async def record(
        self,
        user_id: str,
        decision: NotificationDecision,
        source: DecisionSource,
        message_count: int,
        now: datetime,
    ) -> str | None:
        """Append one row; `created_at` is the invocation time, not the decision timestamp."""
        message_ids = decision.message_ids or []
        try:
            entry_id = await self.repository.insert_entry(
                user_id=user_id,
                conversation_id=decision.conversation_id,
                message_id=message_ids[0] if message_ids else None,
                created_at=now,
                should_notify=decision.should_notify,
                priority=decision.priority,
                reason=decision.reason,
                notification_text=decision.notification_text,
                message_count=message_count,
                decision_source=source.value,
            )
        except Exception as e:
            logger.error(
                "Decision journal write failed",
                user_id=user_id,
                conversation_id=decision.conversation_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        logger.debug("Decision journaled", entry_id=entry_id, decision_source=source.value)
        return entry_id

    async def mark_delivered(self, entry_id: str | None) -> bool:
        if entry_id is None:
            return False
        try:
            return await self.repository.mark_delivered(entry_id)
        except Exception as e:
            logger.error("Failed to mark journal entry delivered", entry_id=entry_id, error=str(e))
            return False
