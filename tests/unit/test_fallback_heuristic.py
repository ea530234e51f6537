from datetime import UTC, datetime

from conftest import NOW, make_message

from smart_notify.features.smart_notifications.domain import (
    Conversation,
    NotificationContext,
    NotificationPreferences,
    NotificationProfile,
)
from smart_notify.features.smart_notifications.pipeline import fallback_decision

CONVERSATION = Conversation(id="conv-1", participant_ids=["user-123", "user-456"])

# 23:30 in America/Los_Angeles, inside the default quiet hours
QUIET_NOW = datetime(2026, 3, 11, 6, 30, tzinfo=UTC)


def _context(messages, preferences=None, profile=None, recipient_name="Alice"):
    for message in messages:
        message.sender_name = message.sender_name or "Bob"
    return NotificationContext(
        user_id="user-123",
        conversation=CONVERSATION,
        messages=messages,
        preferences=preferences or NotificationPreferences(),
        recipient_name=recipient_name,
        profile=profile,
    )


def test_no_messages_never_notifies():
    decision = fallback_decision(_context([]), NOW)

    assert decision.should_notify is False
    assert decision.priority == "low"
    assert decision.message_ids == []


def test_priority_keyword_notifies_medium():
    context = _context([make_message("m1", "URGENT: production down")])

    decision = fallback_decision(context, NOW)

    assert decision.should_notify is True
    assert decision.priority == "medium"
    assert decision.notification_text == "Bob: URGENT: production down"
    assert decision.reason.endswith("(fallback heuristic)")


def test_mention_is_high_even_in_quiet_hours():
    context = _context([make_message("m1", "hey @alice can you check this")])

    decision = fallback_decision(context, QUIET_NOW)

    assert decision.should_notify is True
    assert decision.priority == "high"


def test_only_newest_message_can_trigger():
    context = _context(
        [
            make_message("m2", "ok thanks", minutes_ago=1),
            make_message("m1", "urgent: prod is down", minutes_ago=12),
        ]
    )

    decision = fallback_decision(context, NOW)

    assert decision.should_notify is False
    assert decision.reason == "No notification triggers found (fallback heuristic)"
    assert decision.message_ids == ["m2", "m1"]


def test_older_mention_is_ignored():
    context = _context(
        [
            make_message("m2", "sounds good", minutes_ago=1),
            make_message("m1", "@user-123 please look", minutes_ago=3),
        ]
    )

    decision = fallback_decision(context, NOW)

    assert decision.should_notify is False
    assert decision.priority == "low"


def test_trigger_in_newest_message_uses_its_text():
    context = _context(
        [
            make_message("m2", "can you look at the logs?", minutes_ago=1),
            make_message("m1", "morning", minutes_ago=5),
        ]
    )

    decision = fallback_decision(context, NOW)

    assert decision.should_notify is True
    assert decision.notification_text == "Bob: can you look at the logs?"


def test_quiet_hours_suppress_keywords():
    context = _context([make_message("m1", "urgent deploy question?")])

    decision = fallback_decision(context, QUIET_NOW)

    assert decision.should_notify is False
    assert decision.priority == "low"


def test_question_detected():
    context = _context([make_message("m1", "Could you send the slides")])

    decision = fallback_decision(context, NOW)

    assert decision.should_notify is True
    assert "question" in decision.reason.lower()


def test_small_talk_does_not_notify():
    context = _context([make_message("m1", "lol nice"), make_message("m0", "ok", minutes_ago=2)])

    decision = fallback_decision(context, NOW)

    assert decision.should_notify is False
    assert decision.priority == "low"
    assert decision.notification_text == ""


def test_strategies_override_rules():
    messages = [make_message("m1", "lol nice")]

    notify_all = fallback_decision(
        _context(messages, NotificationPreferences(fallback_strategy="notify_all")), NOW
    )
    suppress_all = fallback_decision(
        _context(
            [make_message("m1", "@alice urgent")],
            NotificationPreferences(fallback_strategy="suppress_all"),
        ),
        NOW,
    )

    assert notify_all.should_notify is True
    assert notify_all.priority == "medium"
    assert suppress_all.should_notify is False


def test_profile_adjusts_priority_and_keywords():
    profile = NotificationProfile(
        user_id="user-123", preferred_notification_rate="high", learned_keywords=["invoice"]
    )
    context = _context([make_message("m1", "the invoice is ready")], profile=profile)

    decision = fallback_decision(context, NOW)

    assert decision.should_notify is True
    assert decision.priority == "high"
    assert "invoice" in decision.reason


def test_suppressed_topic_in_newest_message():
    profile = NotificationProfile(user_id="user-123", suppressed_topics=["standup"])
    context = _context([make_message("m1", "standup notes, urgent?")], profile=profile)

    decision = fallback_decision(context, NOW)

    assert decision.should_notify is False


def test_long_text_is_truncated():
    context = _context([make_message("m1", "urgent " + "x" * 200)])

    decision = fallback_decision(context, NOW)

    assert len(decision.notification_text) == 100
    assert decision.notification_text.endswith("...")


def test_deterministic():
    messages = [make_message("m1", "can you review this?")]

    assert fallback_decision(_context(messages), NOW) == fallback_decision(_context(messages), NOW)
