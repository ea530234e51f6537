"""
Lazily maintained message embeddings and similarity search.

Embeddings younger than the freshness window are reused; missing or stale
ones are regenerated in a single batch and upserted.
"""

import math
from datetime import datetime, timedelta

from smart_notify.config import settings
from smart_notify.features.smart_notifications.domain import (
    Conversation,
    MessageEmbedding,
    SemanticNeighbour,
    UnreadMessage,
)
from smart_notify.features.smart_notifications.repository.embedding_repository import (
    EmbeddingRepository,
)
from smart_notify.infrastructure.observability.logging import get_logger
from smart_notify.services.openai_service import openai_service

logger = get_logger(__name__)


def cosine_similarity(a: list[float], b: list[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


class SemanticIndex:
    def __init__(
        self,
        embeddings=EmbeddingRepository,
        embedder=None,
        freshness_days: int | None = None,
    ):
        self.embeddings = embeddings
        self.embedder = embedder or openai_service
        self.freshness = timedelta(days=freshness_days or settings.EMBEDDING_FRESHNESS_DAYS)

    async def ensure_embeddings(
        self, conversation: Conversation, messages: list[UnreadMessage], now: datetime
    ) -> dict[str, MessageEmbedding]:
        """
        Return an embedding for every message with text, generating the
        missing or stale ones in one embed call.
        """
        unique: dict[str, UnreadMessage] = {}
        for message in messages:
            if message.text and message.text.strip():
                unique.setdefault(message.id, message)

        if not unique:
            return {}

        existing = await self.embeddings.get_embeddings(list(unique))
        cutoff = now - self.freshness

        result: dict[str, MessageEmbedding] = {}
        to_embed: list[UnreadMessage] = []
        for message_id, message in unique.items():
            stored = existing.get(message_id)
            if stored is not None and stored.embedded_at > cutoff and stored.vector:
                result[message_id] = stored
            else:
                to_embed.append(message)

        if to_embed:
            vectors = await self.embedder.embed([m.text for m in to_embed])
            fresh = [
                MessageEmbedding(
                    message_id=m.id,
                    conversation_id=m.conversation_id,
                    vector=vector,
                    timestamp=m.timestamp,
                    participant_ids=list(conversation.participant_ids),
                    message_text=m.text,
                    embedded_at=now,
                )
                for m, vector in zip(to_embed, vectors)
            ]
            await self.embeddings.upsert_embeddings(fresh)
            result.update({e.message_id: e for e in fresh})

        logger.debug(
            "Embeddings ensured",
            conversation_id=conversation.id,
            reused=len(result) - len(to_embed),
            regenerated=len(to_embed),
        )
        return result

    async def search(
        self,
        user_id: str,
        query_vector: list[float],
        exclude_ids: list[str],
        top_k: int | None = None,
    ) -> list[SemanticNeighbour]:
        """Top-K most similar messages from conversations the user is in."""
        top_k = top_k or settings.SEMANTIC_TOP_K
        candidates = await self.embeddings.list_search_candidates(user_id, exclude_ids)
        excluded = set(exclude_ids)

        scored = [
            SemanticNeighbour(
                message_id=c.message_id,
                conversation_id=c.conversation_id,
                text=c.message_text,
                score=cosine_similarity(query_vector, c.vector),
                timestamp=c.timestamp,
            )
            for c in candidates
            if c.message_id not in excluded
        ]
        scored.sort(key=lambda n: (-n.score, n.message_id))
        return scored[:top_k]
