from smart_notify.features.smart_notifications.domain import (
    NotificationHistoryEntry,
    NotificationInputError,
    NotificationPermissionError,
)
from smart_notify.features.smart_notifications.repository.journal_repository import (
    JournalRepository,
)
from smart_notify.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

MIN_HISTORY_LIMIT = 1
MAX_HISTORY_LIMIT = 100


def clamp_limit(limit: int) -> int:
    return max(MIN_HISTORY_LIMIT, min(MAX_HISTORY_LIMIT, limit))


class NotificationHistoryService:
    """Read side of the decision journal plus feedback patching."""

    def __init__(self, journal=JournalRepository):
        self.journal = journal

    async def list_history(self, user_id: str, limit: int = 20) -> list[NotificationHistoryEntry]:
        return await self.journal.list_for_user(user_id, clamp_limit(limit))

    async def submit_feedback(
        self, user_id: str, entry_id: str, feedback: str
    ) -> NotificationHistoryEntry:
        """
        Attach or overwrite feedback on one of the user's own entries.

        Raises:
            NotificationInputError: entry does not exist
            NotificationPermissionError: entry belongs to another user
        """
        entry = await self.journal.get_entry(entry_id)
        if entry is None:
            raise NotificationInputError(f"Notification history entry {entry_id} not found")
        if entry.user_id != user_id:
            raise NotificationPermissionError("Cannot give feedback on another user's notification")

        await self.journal.set_feedback(entry_id, feedback)
        entry.user_feedback = feedback

        logger.info(
            "Notification feedback recorded", user_id=user_id, entry_id=entry_id, feedback=feedback
        )
        return entry


history_service = NotificationHistoryService()
