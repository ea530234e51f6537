"""
Decision journal persistence (notification_decisions table).

Rows are append-only; only was_delivered and user_feedback change after
insert.
"""

from datetime import datetime
from typing import Any

from smart_notify.db.helpers import execute_query, fetch_all, fetch_one, fetch_val
from smart_notify.features.smart_notifications.domain import NotificationHistoryEntry
from smart_notify.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

_ENTRY_COLUMNS = """
    id, user_id, conversation_id, message_id, created_at, should_notify,
    priority, reason, notification_text, message_count, was_delivered,
    decision_source, user_feedback, feedback_at
"""


def _entry_from_row(row: dict[str, Any]) -> NotificationHistoryEntry:
    return NotificationHistoryEntry(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        conversation_id=str(row["conversation_id"]),
        message_id=str(row["message_id"]) if row.get("message_id") else None,
        timestamp=row["created_at"],
        decision=bool(row["should_notify"]),
        priority=row["priority"],
        ai_reasoning=row.get("reason") or "",
        notification_text=row.get("notification_text"),
        message_count=int(row.get("message_count") or 0),
        was_delivered=bool(row.get("was_delivered")),
        decision_source=row.get("decision_source") or "ai",
        user_feedback=row.get("user_feedback"),
        feedback_at=row.get("feedback_at"),
    )


class JournalRepository:
    @classmethod
    async def insert_entry(
        cls,
        *,
        user_id: str,
        conversation_id: str,
        message_id: str | None,
        created_at: datetime,
        should_notify: bool,
        priority: str,
        reason: str,
        notification_text: str | None,
        message_count: int,
        decision_source: str,
    ) -> str:
        query = """
            INSERT INTO notification_decisions (
                user_id, conversation_id, message_id, created_at, should_notify,
                priority, reason, notification_text, message_count,
                was_delivered, decision_source
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, FALSE, %s)
            RETURNING id
        """
        entry_id = await fetch_val(
            query,
            (
                user_id,
                conversation_id,
                message_id,
                created_at,
                should_notify,
                priority,
                reason,
                notification_text,
                message_count,
                decision_source,
            ),
        )
        return str(entry_id)

    @classmethod
    async def mark_delivered(cls, entry_id: str) -> bool:
        query = """
            UPDATE notification_decisions
            SET was_delivered = TRUE
            WHERE id = %s
        """
        return await execute_query(query, (entry_id,)) > 0

    @classmethod
    async def get_entry(cls, entry_id: str) -> NotificationHistoryEntry | None:
        query = f"SELECT {_ENTRY_COLUMNS} FROM notification_decisions WHERE id = %s"
        row = await fetch_one(query, (entry_id,))
        return _entry_from_row(row) if row else None

    @classmethod
    async def list_for_user(cls, user_id: str, limit: int) -> list[NotificationHistoryEntry]:
        query = f"""
            SELECT {_ENTRY_COLUMNS}
            FROM notification_decisions
            WHERE user_id = %s
            ORDER BY created_at DESC
            LIMIT %s
        """
        rows = await fetch_all(query, (user_id, limit))
        return [_entry_from_row(row) for row in rows]

    @classmethod
    async def list_since(cls, user_id: str, since: datetime) -> list[NotificationHistoryEntry]:
        query = f"""
            SELECT {_ENTRY_COLUMNS}
            FROM notification_decisions
            WHERE user_id = %s AND created_at > %s
            ORDER BY created_at DESC
        """
        rows = await fetch_all(query, (user_id, since))
        return [_entry_from_row(row) for row in rows]

    @classmethod
    async def set_feedback(cls, entry_id: str, feedback: str) -> bool:
        query = """
            UPDATE notification_decisions
            SET user_feedback = %s, feedback_at = NOW()
            WHERE id = %s
        """
        return await execute_query(query, (feedback, entry_id)) > 0

    @classmethod
    async def list_users_with_feedback(cls, since: datetime) -> list[str]:
        query = """
            SELECT DISTINCT user_id
            FROM notification_decisions
            WHERE user_feedback IS NOT NULL AND feedback_at > %s
        """
        rows = await fetch_all(query, (since,))
        return [str(row["user_id"]) for row in rows]
