import asyncio

import pytest
from conftest import NOW, FakeReasoner, make_message

from smart_notify.features.smart_notifications.domain import (
    Conversation,
    DecisionSource,
    NotificationContext,
    NotificationPreferences,
)
from smart_notify.features.smart_notifications.pipeline import (
    ReasoningEngine,
    validate_reasoning_output,
)
from smart_notify.features.smart_notifications.pipeline.prompts import build_user_prompt
from smart_notify.services.openai_service import ReasoningError


@pytest.fixture
def context():
    message = make_message("m1", "Can you review the deployment plan?")
    message.sender_name = "Bob"
    return NotificationContext(
        user_id="user-123",
        conversation=Conversation(id="conv-1", participant_ids=["user-123", "user-456"]),
        messages=[message],
        preferences=NotificationPreferences(),
        recipient_name="Alice",
    )


def test_valid_output(context):
    decision = validate_reasoning_output(
        {"should_notify": True, "priority": "high", "reason": "Direct ask"}, context, NOW
    )

    assert decision.should_notify is True
    assert decision.priority == "high"
    assert decision.notification_text == ""
    assert decision.conversation_id == "conv-1"
    assert decision.message_ids == ["m1"]
    assert decision.timestamp == NOW


@pytest.mark.parametrize(
    "raw",
    [
        ["not", "an", "object"],
        {"priority": "high"},
        {"should_notify": "yes", "priority": "high"},
        {"should_notify": True, "priority": "urgent"},
        {"should_notify": True},
    ],
)
def test_invalid_output_raises(context, raw):
    with pytest.raises(ReasoningError):
        validate_reasoning_output(raw, context, NOW)


def test_optional_fields_are_lenient(context):
    decision = validate_reasoning_output(
        {
            "should_notify": False,
            "priority": "low",
            "reason": None,
            "notification_text": "x" * 150,
            "confidence": 0.4,
        },
        context,
        NOW,
    )

    assert decision.reason == ""
    assert len(decision.notification_text) == 100


@pytest.mark.asyncio
async def test_engine_uses_model_decision(context):
    reasoner = FakeReasoner(response={"should_notify": True, "priority": "medium"})

    decision, source = await ReasoningEngine(reasoner=reasoner).decide(context, NOW)

    assert source is DecisionSource.AI
    assert decision.priority == "medium"


@pytest.mark.asyncio
async def test_engine_falls_back_on_error(context):
    reasoner = FakeReasoner(error=ReasoningError("rate limited"))

    decision, source = await ReasoningEngine(reasoner=reasoner).decide(context, NOW)

    assert source is DecisionSource.FALLBACK
    assert decision.should_notify is True
    assert decision.reason.endswith("(fallback heuristic)")


@pytest.mark.asyncio
async def test_engine_falls_back_on_timeout(context):
    reasoner = FakeReasoner(response={"should_notify": False, "priority": "low"}, delay=1)

    decision, source = await ReasoningEngine(reasoner=reasoner).decide(context, NOW, timeout=0.01)

    assert source is DecisionSource.FALLBACK


@pytest.mark.asyncio
async def test_engine_skips_call_without_budget(context):
    reasoner = FakeReasoner(response={"should_notify": False, "priority": "low"})

    _, source = await ReasoningEngine(reasoner=reasoner).decide(context, NOW, timeout=0)

    assert source is DecisionSource.FALLBACK
    assert reasoner.calls == 0


@pytest.mark.asyncio
async def test_engine_propagates_cancellation(context):
    reasoner = FakeReasoner(response={"should_notify": False, "priority": "low"}, delay=5)
    task = asyncio.create_task(ReasoningEngine(reasoner=reasoner).decide(context, NOW))
    await asyncio.sleep(0.01)

    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task


def test_prompt_mentions_recipient_and_messages(context):
    prompt = build_user_prompt(context, NOW)

    assert "Alice" in prompt
    assert "Can you review the deployment plan?" in prompt
