"""
Read-only access to conversations and messages.

Conversation and message CRUD belongs to the chat service; this
repository only reads what the notification pipeline needs.
"""

from datetime import datetime
from typing import Any

from smart_notify.db.helpers import fetch_all, fetch_one
from smart_notify.features.smart_notifications.domain import Conversation, UnreadMessage
from smart_notify.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


def _message_from_row(row: dict[str, Any]) -> UnreadMessage:
    return UnreadMessage(
        id=str(row["id"]),
        conversation_id=str(row["conversation_id"]),
        sender_id=str(row["sender_id"]),
        text=row.get("text") or "",
        timestamp=row["created_at"],
    )


class ConversationRepository:
    """Queries over conversations and messages."""

    @classmethod
    async def get_conversation(cls, conversation_id: str) -> Conversation | None:
        query = """
            SELECT id, participant_ids, is_group, group_name, last_message_at
            FROM conversations
            WHERE id = %s
        """
        row = await fetch_one(query, (conversation_id,))
        if not row:
            return None

        return Conversation(
            id=str(row["id"]),
            participant_ids=[str(p) for p in row.get("participant_ids") or []],
            is_group=bool(row.get("is_group")),
            group_name=row.get("group_name"),
            last_message_at=row.get("last_message_at"),
        )

    @classmethod
    async def list_unread_messages(
        cls, conversation_id: str, user_id: str, since: datetime, limit: int
    ) -> list[UnreadMessage]:
        """Messages newer than ``since`` the user has not read, newest first."""
        query = """
            SELECT id, conversation_id, sender_id, text, created_at
            FROM messages
            WHERE conversation_id = %s
              AND created_at > %s
              AND NOT (%s = ANY(COALESCE(read_by, ARRAY[]::text[])))
            ORDER BY created_at DESC
            LIMIT %s
        """
        rows = await fetch_all(query, (conversation_id, since, user_id, limit))
        return [_message_from_row(row) for row in rows]

    @classmethod
    async def list_recent_messages(cls, conversation_id: str, limit: int) -> list[UnreadMessage]:
        """Most recent messages of a conversation regardless of read state."""
        query = """
            SELECT id, conversation_id, sender_id, text, created_at
            FROM messages
            WHERE conversation_id = %s
            ORDER BY created_at DESC
            LIMIT %s
        """
        rows = await fetch_all(query, (conversation_id, limit))
        return [_message_from_row(row) for row in rows]

    @classmethod
    async def list_recent_activity(
        cls, user_id: str, since: datetime, limit: int = 20
    ) -> list[dict[str, Any]]:
        """Recent messages across every conversation the user belongs to."""
        query = """
            SELECT m.id, m.conversation_id, m.sender_id, m.text, m.created_at
            FROM messages m
            JOIN conversations c ON c.id = m.conversation_id
            WHERE %s = ANY(c.participant_ids)
              AND m.created_at > %s
            ORDER BY m.created_at DESC
            LIMIT %s
        """
        return await fetch_all(query, (user_id, since, limit))

    @classmethod
    async def list_conversation_summaries(
        cls, user_id: str, since: datetime, limit: int = 10
    ) -> list[dict[str, Any]]:
        """Active conversations for the user with their unread counts."""
        query = """
            SELECT c.id AS conversation_id,
                   c.is_group,
                   c.group_name,
                   c.last_message_at,
                   COUNT(m.id) FILTER (
                       WHERE NOT (%s = ANY(COALESCE(m.read_by, ARRAY[]::text[])))
                   ) AS unread_count
            FROM conversations c
            LEFT JOIN messages m
              ON m.conversation_id = c.id AND m.created_at > %s
            WHERE %s = ANY(c.participant_ids)
              AND c.last_message_at > %s
            GROUP BY c.id, c.is_group, c.group_name, c.last_message_at
            ORDER BY c.last_message_at DESC
            LIMIT %s
        """
        return await fetch_all(query, (user_id, since, user_id, since, limit))
