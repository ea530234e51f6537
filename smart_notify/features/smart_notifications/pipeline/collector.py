from datetime import datetime, timedelta

from smart_notify.config import settings
from smart_notify.features.smart_notifications.domain import (
    Conversation,
    NotificationInputError,
    NotificationPermissionError,
    UnreadMessage,
)
from smart_notify.features.smart_notifications.repository.conversation_repository import (
    ConversationRepository,
)
from smart_notify.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class UnreadMessageCollector:
    """Loads the conversation and the user's unread window of messages."""

    def __init__(
        self,
        conversations=ConversationRepository,
        window_minutes: int | None = None,
        message_cap: int | None = None,
    ):
        self.conversations = conversations
        self.window_minutes = window_minutes or settings.UNREAD_WINDOW_MINUTES
        self.message_cap = message_cap or settings.UNREAD_MESSAGE_CAP

    async def collect(
        self, user_id: str, conversation_id: str, now: datetime
    ) -> tuple[Conversation, list[UnreadMessage]]:
        """
        Raises:
            NotificationInputError: conversation does not exist
            NotificationPermissionError: user is not a participant
        """
        conversation = await self.conversations.get_conversation(conversation_id)
        if conversation is None:
            raise NotificationInputError(f"Conversation {conversation_id} not found")

        if user_id not in conversation.participant_ids:
            logger.warning(
                "Analyze requested by non-participant",
                user_id=user_id,
                conversation_id=conversation_id,
            )
            raise NotificationPermissionError("User is not a participant in this conversation")

        since = now - timedelta(minutes=self.window_minutes)
        messages = await self.conversations.list_unread_messages(
            conversation_id, user_id, since, self.message_cap
        )

        logger.debug(
            "Unread messages collected",
            user_id=user_id,
            conversation_id=conversation_id,
            unread_count=len(messages),
        )
        return conversation, messages
