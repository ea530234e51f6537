"""
Storage for per-message embeddings.

Rows are keyed by message id and replaced wholesale on regeneration, so
concurrent writers for the same message converge on the last write.
"""

from typing import Any

from smart_notify.db.helpers import execute_many, fetch_all
from smart_notify.features.smart_notifications.domain import MessageEmbedding
from smart_notify.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

# Candidate pool for in-process cosine ranking
SEARCH_CANDIDATE_LIMIT = 500


def _embedding_from_row(row: dict[str, Any]) -> MessageEmbedding:
    return MessageEmbedding(
        message_id=str(row["message_id"]),
        conversation_id=str(row["conversation_id"]),
        vector=list(row.get("embedding") or []),
        timestamp=row["message_timestamp"],
        participant_ids=[str(p) for p in row.get("participant_ids") or []],
        message_text=row.get("message_text") or "",
        embedded_at=row["embedded_at"],
    )


class EmbeddingRepository:
    @classmethod
    async def get_embeddings(cls, message_ids: list[str]) -> dict[str, MessageEmbedding]:
        if not message_ids:
            return {}

        query = """
            SELECT message_id, conversation_id, embedding, participant_ids,
                   message_text, message_timestamp, embedded_at
            FROM message_embeddings
            WHERE message_id = ANY(%s)
        """
        rows = await fetch_all(query, (list(message_ids),))
        return {str(row["message_id"]): _embedding_from_row(row) for row in rows}

    @classmethod
    async def upsert_embeddings(cls, embeddings: list[MessageEmbedding]) -> int:
        query = """
            INSERT INTO message_embeddings (
                message_id, conversation_id, embedding, participant_ids,
                message_text, message_timestamp, embedded_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (message_id)
            DO UPDATE SET
                embedding = EXCLUDED.embedding,
                participant_ids = EXCLUDED.participant_ids,
                message_text = EXCLUDED.message_text,
                embedded_at = EXCLUDED.embedded_at
        """
        payload = [
            (
                e.message_id,
                e.conversation_id,
                e.vector,
                e.participant_ids,
                e.message_text,
                e.timestamp,
                e.embedded_at,
            )
            for e in embeddings
        ]
        written = await execute_many(query, payload)
        logger.debug("Message embeddings upserted", count=written)
        return written

    @classmethod
    async def list_search_candidates(
        cls, user_id: str, exclude_ids: list[str]
    ) -> list[MessageEmbedding]:
        """Embeddings visible to the user, newest first, minus the excluded ids."""
        query = """
            SELECT message_id, conversation_id, embedding, participant_ids,
                   message_text, message_timestamp, embedded_at
            FROM message_embeddings
            WHERE %s = ANY(participant_ids)
              AND NOT (message_id = ANY(%s))
            ORDER BY message_timestamp DESC
            LIMIT %s
        """
        rows = await fetch_all(query, (user_id, list(exclude_ids), SEARCH_CANDIDATE_LIMIT))
        return [_embedding_from_row(row) for row in rows]
