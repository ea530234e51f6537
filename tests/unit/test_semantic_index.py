from datetime import timedelta

import pytest
from conftest import NOW, FakeEmbedder, FakeEmbeddings, make_message

from smart_notify.features.smart_notifications.domain import Conversation, MessageEmbedding
from smart_notify.features.smart_notifications.pipeline import SemanticIndex, cosine_similarity

CONVERSATION = Conversation(id="conv-1", participant_ids=["user-123", "user-456"])


def _stored(message_id, vector, embedded_days_ago=1, participants=None, conversation_id="conv-1"):
    return MessageEmbedding(
        message_id=message_id,
        conversation_id=conversation_id,
        vector=vector,
        timestamp=NOW - timedelta(days=embedded_days_ago),
        participant_ids=participants or ["user-123", "user-456"],
        message_text=f"text of {message_id}",
        embedded_at=NOW - timedelta(days=embedded_days_ago),
    )


def test_cosine_similarity():
    assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)
    assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0
    assert cosine_similarity([1.0], [1.0, 2.0]) == 0.0


@pytest.mark.asyncio
async def test_fresh_embeddings_are_reused():
    repo = FakeEmbeddings({"m1": _stored("m1", [1.0, 0.0], embedded_days_ago=2)})
    embedder = FakeEmbedder()
    index = SemanticIndex(embeddings=repo, embedder=embedder)

    result = await index.ensure_embeddings(CONVERSATION, [make_message("m1", "hello")], NOW)

    assert result["m1"].vector == [1.0, 0.0]
    assert embedder.calls == []
    assert repo.upserts == []


@pytest.mark.asyncio
async def test_stale_and_missing_embeddings_regenerated_in_one_batch():
    repo = FakeEmbeddings({"m1": _stored("m1", [1.0, 0.0], embedded_days_ago=8)})
    embedder = FakeEmbedder()
    index = SemanticIndex(embeddings=repo, embedder=embedder)
    messages = [make_message("m1", "hello"), make_message("m2", "deploy status?")]

    result = await index.ensure_embeddings(CONVERSATION, messages, NOW)

    assert embedder.calls == [["hello", "deploy status?"]]
    assert set(result) == {"m1", "m2"}
    assert all(e.embedded_at == NOW for e in result.values())
    assert len(repo.upserts) == 1


@pytest.mark.asyncio
async def test_blank_messages_are_skipped():
    embedder = FakeEmbedder()
    index = SemanticIndex(embeddings=FakeEmbeddings(), embedder=embedder)

    result = await index.ensure_embeddings(CONVERSATION, [make_message("m1", "   ")], NOW)

    assert result == {}
    assert embedder.calls == []


@pytest.mark.asyncio
async def test_search_ranks_and_filters_by_participation():
    repo = FakeEmbeddings(
        {
            "a": _stored("a", [1.0, 0.0]),
            "b": _stored("b", [0.7, 0.7]),
            "c": _stored("c", [0.0, 1.0]),
            "other": _stored("other", [1.0, 0.0], participants=["user-999"]),
            "current": _stored("current", [1.0, 0.0]),
        }
    )
    index = SemanticIndex(embeddings=repo, embedder=FakeEmbedder())

    neighbours = await index.search("user-123", [1.0, 0.0], exclude_ids=["current"], top_k=2)

    assert [n.message_id for n in neighbours] == ["a", "b"]
    assert neighbours[0].score == pytest.approx(1.0)
