"""
Builds the reasoning context for one invocation.

Only the conversation and unread messages are required. Every other piece
(preferences, profile, names, history, neighbours) degrades to a default
when its source fails.
"""

from datetime import datetime, timedelta

from smart_notify.config import settings
from smart_notify.features.smart_notifications.domain import (
    Conversation,
    NotificationContext,
    NotificationPreferences,
    NotificationProfile,
    UnreadMessage,
)
from smart_notify.features.smart_notifications.pipeline.quiet_hours import is_in_quiet_hours
from smart_notify.features.smart_notifications.pipeline.semantic_index import SemanticIndex
from smart_notify.features.smart_notifications.repository.conversation_repository import (
    ConversationRepository,
)
from smart_notify.features.smart_notifications.repository.preferences_repository import (
    PreferencesRepository,
)
from smart_notify.features.smart_notifications.repository.user_repository import UserRepository
from smart_notify.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class ContextAssembler:
    def __init__(
        self,
        preferences=PreferencesRepository,
        users=UserRepository,
        conversations=ConversationRepository,
        semantic_index: SemanticIndex | None = None,
    ):
        self.preferences = preferences
        self.users = users
        self.conversations = conversations
        self.semantic_index = semantic_index or SemanticIndex()

    async def load_preferences(self, user_id: str) -> NotificationPreferences:
        """User preferences, or defaults when absent or unreadable."""
        try:
            prefs = await self.preferences.get_preferences(user_id)
        except Exception as e:
            logger.warning(
                "Failed to load notification preferences, using defaults",
                user_id=user_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return NotificationPreferences()
        return prefs or NotificationPreferences()

    async def _load_profile(self, user_id: str) -> tuple[NotificationProfile | None, bool]:
        try:
            return await self.preferences.get_profile(user_id), False
        except Exception as e:
            logger.warning("Failed to load notification profile", user_id=user_id, error=str(e))
            return None, True

    async def _resolve_names(
        self, user_id: str, messages: list[UnreadMessage]
    ) -> tuple[str | None, bool]:
        """Fill sender_name on each message; returns the recipient's own name."""
        ids = sorted({m.sender_id for m in messages} | {user_id})
        degraded = False
        try:
            names = await self.users.get_display_names(ids)
        except Exception as e:
            logger.warning("Failed to resolve display names", user_id=user_id, error=str(e))
            names = {}
            degraded = True

        for message in messages:
            message.sender_name = names.get(message.sender_id, "Unknown")
        return names.get(user_id), degraded

    def minimal_context(
        self,
        user_id: str,
        conversation: Conversation,
        messages: list[UnreadMessage],
        preferences: NotificationPreferences,
        now: datetime,
    ) -> NotificationContext:
        """Context used when assembly timed out."""
        for message in messages:
            if message.sender_name is None:
                message.sender_name = "Unknown"
        return NotificationContext(
            user_id=user_id,
            conversation=conversation,
            messages=messages,
            preferences=preferences,
            in_quiet_hours=is_in_quiet_hours(preferences, now),
            degraded=True,
        )

    async def assemble(
        self,
        user_id: str,
        conversation: Conversation,
        messages: list[UnreadMessage],
        preferences: NotificationPreferences,
        now: datetime,
    ) -> NotificationContext:
        context = NotificationContext(
            user_id=user_id,
            conversation=conversation,
            messages=messages,
            preferences=preferences,
            in_quiet_hours=is_in_quiet_hours(preferences, now),
        )

        context.profile, profile_failed = await self._load_profile(user_id)
        context.recipient_name, names_failed = await self._resolve_names(user_id, messages)
        context.degraded = profile_failed or names_failed

        since = now - timedelta(days=settings.RECENT_ACTIVITY_DAYS)
        try:
            context.recent_activity = await self.conversations.list_recent_activity(user_id, since)
            context.conversation_summaries = await self.conversations.list_conversation_summaries(
                user_id, since
            )
        except Exception as e:
            logger.warning("Failed to load recent activity", user_id=user_id, error=str(e))
            context.degraded = True

        try:
            context.neighbours = await self._find_neighbours(user_id, conversation, messages, now)
        except Exception as e:
            logger.warning(
                "Semantic context unavailable, continuing without neighbours",
                user_id=user_id,
                conversation_id=conversation.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            context.degraded = True

        logger.info(
            "Notification context assembled",
            user_id=user_id,
            conversation_id=conversation.id,
            neighbours=len(context.neighbours),
            has_profile=context.profile is not None,
            degraded=context.degraded,
        )
        return context

    async def _find_neighbours(
        self,
        user_id: str,
        conversation: Conversation,
        messages: list[UnreadMessage],
        now: datetime,
    ):
        history = await self.conversations.list_recent_messages(
            conversation.id, settings.EMBEDDING_HISTORY_WINDOW
        )
        embeddings = await self.semantic_index.ensure_embeddings(
            conversation, list(messages) + list(history), now
        )

        query = embeddings.get(messages[0].id) if messages else None
        if query is None:
            return []

        return await self.semantic_index.search(
            user_id, query.vector, exclude_ids=[m.id for m in messages]
        )
