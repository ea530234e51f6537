import pytest
from conftest import NOW, FakePush, FakeUsers, make_message

from smart_notify.features.smart_notifications.domain import Conversation, NotificationDecision
from smart_notify.features.smart_notifications.pipeline import (
    DeliveryDispatcher,
    build_push_payload,
    presentation_for_priority,
)
from smart_notify.services.push_service import InvalidPushTokenError, PushDeliveryError

DIRECT = Conversation(id="conv-1", participant_ids=["user-123", "user-456"])
GROUP = Conversation(
    id="conv-2",
    participant_ids=["user-123", "user-456", "user-789"],
    is_group=True,
    group_name="Launch Team",
)


def _decision(priority="high", conversation_id="conv-1"):
    return NotificationDecision(
        should_notify=True,
        reason="Direct request",
        notification_text="Bob: can you review?",
        priority=priority,
        timestamp=NOW,
        conversation_id=conversation_id,
        message_ids=["m1"],
    )


def test_presentation_mapping():
    high = presentation_for_priority("high")
    medium = presentation_for_priority("medium")
    low = presentation_for_priority("low")

    assert (high.alert, high.sound, high.badge) == (True, True, True)
    assert (medium.alert, medium.sound, medium.badge) == (True, False, True)
    assert (low.alert, low.sound, low.badge) == (False, False, True)


def test_high_priority_payload():
    newest = make_message("m1", "can you review?")
    newest.sender_name = "Bob"

    payload = build_push_payload("tok", _decision("high"), DIRECT, newest)

    assert payload["token"] == "tok"
    assert payload["notification"] == {"title": "Bob", "body": "Bob: can you review?"}
    assert payload["data"] == {
        "conversationId": "conv-1",
        "messageId": "m1",
        "priority": "high",
        "type": "smart_notification",
    }
    aps = payload["apns"]["payload"]["aps"]
    assert aps["sound"] == "default"
    assert aps["badge"] == 1
    assert aps["category"] == "SMART_NOTIFICATION_CATEGORY"
    assert payload["android"]["priority"] == "HIGH"


def test_medium_priority_is_silent_alert():
    payload = build_push_payload("tok", _decision("medium"), DIRECT, make_message("m1", "hi"))

    aps = payload["apns"]["payload"]["aps"]
    assert "notification" in payload
    assert "sound" not in aps
    assert payload["android"]["priority"] == "NORMAL"


def test_low_priority_is_badge_only():
    payload = build_push_payload("tok", _decision("low"), DIRECT, make_message("m1", "hi"))

    aps = payload["apns"]["payload"]["aps"]
    assert "notification" not in payload
    assert aps["badge"] == 1
    assert aps["content-available"] == 1
    assert payload["apns"]["headers"]["apns-push-type"] == "background"


def test_group_title_includes_group_name():
    newest = make_message("m1", "hi", conversation_id="conv-2")
    newest.sender_name = "Bob"

    payload = build_push_payload("tok", _decision("medium", "conv-2"), GROUP, newest)

    assert payload["notification"]["title"] == "Bob in Launch Team"


@pytest.mark.asyncio
async def test_dispatch_delivers_and_resolves_sender():
    push = FakePush()
    dispatcher = DeliveryDispatcher(users=FakeUsers(), push=push)

    outcome = await dispatcher.dispatch(
        "user-123", _decision(), DIRECT, [make_message("m1", "can you review?")]
    )

    assert outcome.delivered is True
    assert outcome.status == "delivered"
    assert push.sent[0]["notification"]["title"] == "Bob"


@pytest.mark.asyncio
async def test_dispatch_without_token_skips_send():
    push = FakePush()
    dispatcher = DeliveryDispatcher(users=FakeUsers(token=None), push=push)

    outcome = await dispatcher.dispatch("user-123", _decision(), DIRECT, [make_message("m1", "x")])

    assert outcome.status == "no_token"
    assert push.sent == []


@pytest.mark.asyncio
async def test_invalid_token_is_deleted():
    users = FakeUsers()
    dispatcher = DeliveryDispatcher(
        users=users, push=FakePush(error=InvalidPushTokenError("UNREGISTERED", status_code=404))
    )

    outcome = await dispatcher.dispatch("user-123", _decision(), DIRECT, [make_message("m1", "x")])

    assert outcome.status == "invalid_token"
    assert users.deleted_tokens == [("user-123", "push-token-1")]


@pytest.mark.asyncio
async def test_transient_failure_keeps_token():
    users = FakeUsers()
    dispatcher = DeliveryDispatcher(
        users=users, push=FakePush(error=PushDeliveryError("unavailable", status_code=503))
    )

    outcome = await dispatcher.dispatch("user-123", _decision(), DIRECT, [make_message("m1", "x")])

    assert outcome.delivered is False
    assert outcome.status == "failed"
    assert users.deleted_tokens == []


@pytest.mark.asyncio
async def test_dispatch_leaves_messages_untouched():
    push = FakePush()
    dispatcher = DeliveryDispatcher(users=FakeUsers(), push=push)
    messages = [make_message("m1", "can you review?")]

    await dispatcher.dispatch("user-123", _decision(), DIRECT, messages)

    assert messages[0].sender_name is None
    assert push.sent[0]["notification"]["title"] == "Bob"
    assert push.sent[0]["data"]["conversationId"] == "conv-1"
    assert push.sent[0]["data"]["messageId"] == "m1"
