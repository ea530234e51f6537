import asyncio
import json
from datetime import UTC, datetime, timedelta

import pytest

from smart_notify.auth.verify import auth_dependency
from smart_notify.features.smart_notifications.domain import (
    Conversation,
    NotificationHistoryEntry,
    NotificationPreferences,
    UnreadMessage,
)
from smart_notify.features.smart_notifications.pipeline import (
    ContextAssembler,
    DecisionCache,
    DecisionJournal,
    DeliveryDispatcher,
    DeliverySuppressor,
    ReasoningEngine,
    SemanticIndex,
    UnreadMessageCollector,
)
from smart_notify.features.smart_notifications.services.pipeline_service import (
    NotificationPipelineService,
)
from smart_notify.services.push_service import DeliveryReceipt

# 11:00 in America/Los_Angeles, outside the default 22:00-08:00 quiet hours
NOW = datetime(2026, 3, 10, 18, 0, tzinfo=UTC)


@pytest.fixture
def auth_override():
    def _override():
        return {"sub": "user-123"}

    return _override


@pytest.fixture
def apply_auth_override(auth_override):
    def _apply(app):
        app.dependency_overrides[auth_dependency] = auth_override

    return _apply


class FakeRedis:
    def __init__(self):
        self.store: dict[str, str] = {}
        self.counters: dict[str, int] = {}
        self.fail_counter = False

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        self.store[key] = value
        return True

    async def get(self, key: str) -> str | None:
        return self.store.get(key)

    async def delete(self, key: str) -> bool:
        return self.store.pop(key, None) is not None

    async def get_json(self, key: str):
        raw = self.store.get(key)
        return json.loads(raw) if raw else None

    async def set_json(self, key: str, value: dict, ttl_s: int | None = None) -> bool:
        self.store[key] = json.dumps(value, default=str)
        return True

    async def incr_in_window(self, key: str, window_s: int) -> tuple[int, int]:
        if self.fail_counter:
            raise ConnectionError("redis down")
        self.counters[key] = self.counters.get(key, 0) + 1
        return self.counters[key], window_s


@pytest.fixture
def fake_redis():
    return FakeRedis()


def make_message(
    message_id: str,
    text: str,
    minutes_ago: int = 1,
    sender_id: str = "user-456",
    conversation_id: str = "conv-1",
) -> UnreadMessage:
    return UnreadMessage(
        id=message_id,
        conversation_id=conversation_id,
        sender_id=sender_id,
        text=text,
        timestamp=NOW - timedelta(minutes=minutes_ago),
    )


class FakeConversations:
    def __init__(self, conversation: Conversation | None, unread=None, history=None):
        self.conversation = conversation
        self.unread = list(unread or [])
        self.history = list(history or [])
        self.unread_calls = []

    async def get_conversation(self, conversation_id):
        if self.conversation and self.conversation.id == conversation_id:
            return self.conversation
        return None

    async def list_unread_messages(self, conversation_id, user_id, since, limit):
        self.unread_calls.append((conversation_id, user_id, since, limit))
        # Fresh copies so name resolution on one run does not leak into the next
        return [
            UnreadMessage(m.id, m.conversation_id, m.sender_id, m.text, m.timestamp)
            for m in self.unread
        ][:limit]

    async def list_recent_messages(self, conversation_id, limit):
        return self.history[:limit]

    async def list_recent_activity(self, user_id, since, limit=20):
        return []

    async def list_conversation_summaries(self, user_id, since, limit=10):
        return []


class FakePreferences:
    def __init__(self, preferences=None, profile=None, fail=False):
        self.preferences = preferences
        self.profile = profile
        self.fail = fail
        self.upserted = []

    async def get_preferences(self, user_id):
        if self.fail:
            raise RuntimeError("preferences unavailable")
        return self.preferences

    async def get_profile(self, user_id):
        return self.profile

    async def upsert_profile(self, profile):
        self.upserted.append(profile)


class FakeUsers:
    def __init__(self, names=None, token: str | None = "push-token-1"):
        self.names = names or {"user-123": "Alice", "user-456": "Bob"}
        self.token = token
        self.deleted_tokens = []

    async def get_display_names(self, user_ids):
        return {uid: self.names[uid] for uid in user_ids if uid in self.names}

    async def get_push_token(self, user_id):
        return self.token

    async def delete_push_token(self, user_id, token):
        self.deleted_tokens.append((user_id, token))
        self.token = None
        return True


class FakeEmbeddings:
    def __init__(self, stored=None):
        self.stored = dict(stored or {})
        self.upserts = []

    async def get_embeddings(self, message_ids):
        return {mid: self.stored[mid] for mid in message_ids if mid in self.stored}

    async def upsert_embeddings(self, embeddings):
        self.upserts.append(list(embeddings))
        for e in embeddings:
            self.stored[e.message_id] = e
        return len(embeddings)

    async def list_search_candidates(self, user_id, exclude_ids):
        return [
            e
            for e in self.stored.values()
            if user_id in e.participant_ids and e.message_id not in exclude_ids
        ]


class FakeEmbedder:
    def __init__(self, fail=False):
        self.calls: list[list[str]] = []
        self.fail = fail

    async def embed(self, texts):
        self.calls.append(list(texts))
        if self.fail:
            raise RuntimeError("embedding service unavailable")
        return [[float(len(t)), 1.0, 0.5] for t in texts]


class FakeReasoner:
    def __init__(self, response=None, error: Exception | None = None, delay: float = 0):
        self.response = response
        self.error = error
        self.delay = delay
        self.calls = 0

    async def reason(self, system_message, user_message):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.response


class FakePush:
    def __init__(self, error: Exception | None = None, delay: float = 0):
        self.error = error
        self.delay = delay
        self.sent = []

    async def send(self, message):
        self.sent.append(message)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return DeliveryReceipt(message_name="projects/p/messages/1", status_code=200)


class FakeJournal:
    def __init__(self, fail=False):
        self.entries: dict[str, dict] = {}
        self.fail = fail
        self.feedback: dict[str, str] = {}
        self.history: list[NotificationHistoryEntry] = []

    async def insert_entry(self, **fields):
        if self.fail:
            raise RuntimeError("journal unavailable")
        entry_id = f"entry-{len(self.entries) + 1}"
        self.entries[entry_id] = {**fields, "was_delivered": False}
        return entry_id

    async def mark_delivered(self, entry_id):
        self.entries[entry_id]["was_delivered"] = True
        return True

    async def get_entry(self, entry_id):
        return next((e for e in self.history if e.id == entry_id), None)

    async def list_for_user(self, user_id, limit):
        return [e for e in self.history if e.user_id == user_id][:limit]

    async def list_since(self, user_id, since):
        return [e for e in self.history if e.user_id == user_id and e.timestamp > since]

    async def set_feedback(self, entry_id, feedback):
        self.feedback[entry_id] = feedback
        return True

    async def list_users_with_feedback(self, since):
        return sorted({e.user_id for e in self.history if e.user_feedback})


def make_history_entry(
    entry_id: str,
    *,
    user_id: str = "user-123",
    decision: bool = True,
    feedback: str | None = None,
    reason: str = "Direct question detected",
    text: str = "Bob: Can you review the deployment plan?",
    days_ago: int = 1,
    delivered: bool = True,
    at: datetime | None = None,
) -> NotificationHistoryEntry:
    return NotificationHistoryEntry(
        id=entry_id,
        user_id=user_id,
        conversation_id="conv-1",
        message_id="msg-1",
        timestamp=(at or NOW) - timedelta(days=days_ago),
        decision=decision,
        priority="medium",
        ai_reasoning=reason,
        notification_text=text,
        message_count=1,
        was_delivered=delivered,
        decision_source="ai",
        user_feedback=feedback,
    )


@pytest.fixture
def conversation():
    return Conversation(id="conv-1", participant_ids=["user-123", "user-456"])


@pytest.fixture
def pipeline_env(conversation, fake_redis):
    """Every collaborator of the pipeline as an in-memory fake."""

    class Env:
        pass

    env = Env()
    env.redis = fake_redis
    env.conversations = FakeConversations(conversation)
    env.preferences = FakePreferences(NotificationPreferences())
    env.users = FakeUsers()
    env.embeddings = FakeEmbeddings()
    env.embedder = FakeEmbedder()
    env.reasoner = FakeReasoner(
        response={
            "should_notify": True,
            "reason": "Direct request for review",
            "notification_text": "Bob: Can you review the deployment plan?",
            "priority": "high",
        }
    )
    env.push = FakePush()
    env.journal = FakeJournal()

    def build(**overrides) -> NotificationPipelineService:
        stages = {
            "collector": UnreadMessageCollector(conversations=env.conversations),
            "cache": DecisionCache(redis=env.redis),
            "assembler": ContextAssembler(
                preferences=env.preferences,
                users=env.users,
                conversations=env.conversations,
                semantic_index=SemanticIndex(embeddings=env.embeddings, embedder=env.embedder),
            ),
            "reasoning": ReasoningEngine(reasoner=env.reasoner),
            "suppressor": DeliverySuppressor(redis=env.redis),
            "dispatcher": DeliveryDispatcher(users=env.users, push=env.push),
            "journal": DecisionJournal(repository=env.journal),
        }
        return NotificationPipelineService(**{**stages, **overrides})

    env.build = build
    return env
