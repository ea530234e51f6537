"""
Deterministic rule-based decision used whenever reasoning fails.

Everything here is pure: the same context and ``now`` always produce the
same decision, and no input can make it raise.
"""

import re
from datetime import datetime

from smart_notify.features.smart_notifications.domain import (
    NotificationContext,
    NotificationDecision,
    UnreadMessage,
    truncate_notification_text,
)
from smart_notify.features.smart_notifications.pipeline.quiet_hours import is_in_quiet_hours

QUESTION_PATTERNS = [
    re.compile(r"\bcan you\b", re.IGNORECASE),
    re.compile(r"\bcould you\b", re.IGNORECASE),
    re.compile(r"\bwould you\b", re.IGNORECASE),
    re.compile(r"\bwill you\b", re.IGNORECASE),
    re.compile(r"\?\s*$"),
]


def _is_mention(text: str, user_id: str, user_name: str | None) -> bool:
    lowered = text.lower()
    handles = [user_id]
    if user_name:
        handles.append(user_name)
    return any(f"@{handle.lower()}" in lowered for handle in handles if handle)


def _matching_keyword(text: str, keywords: list[str]) -> str | None:
    lowered = text.lower()
    for keyword in keywords:
        if keyword and keyword.lower() in lowered:
            return keyword
    return None


def _is_question(text: str) -> bool:
    return any(pattern.search(text) for pattern in QUESTION_PATTERNS)


def _notification_text(message: UnreadMessage) -> str:
    return truncate_notification_text(f"{message.sender_name or 'Unknown'}: {message.text}")


def _decision(
    context: NotificationContext,
    now: datetime,
    *,
    should_notify: bool,
    priority: str,
    reason: str,
    message: UnreadMessage | None = None,
) -> NotificationDecision:
    return NotificationDecision(
        should_notify=should_notify,
        priority=priority,
        reason=f"{reason} (fallback heuristic)",
        notification_text=_notification_text(message) if should_notify and message else "",
        timestamp=now,
        conversation_id=context.conversation.id,
        message_ids=[m.id for m in context.messages],
    )


def fallback_decision(context: NotificationContext, now: datetime) -> NotificationDecision:
    messages = context.messages
    prefs = context.preferences
    profile = context.profile

    if not messages:
        return _decision(
            context, now, should_notify=False, priority="low", reason="No unread messages"
        )

    newest = messages[0]

    if prefs.fallback_strategy == "notify_all":
        return _decision(
            context,
            now,
            should_notify=True,
            priority="medium",
            reason="Notify-all strategy",
            message=newest,
        )
    if prefs.fallback_strategy == "suppress_all":
        return _decision(
            context, now, should_notify=False, priority="low", reason="Suppress-all strategy"
        )

    # Only the newest unread message can trigger a notification
    if _is_mention(newest.text, context.user_id, context.recipient_name):
        return _decision(
            context,
            now,
            should_notify=True,
            priority="high",
            reason="User directly mentioned",
            message=newest,
        )

    if is_in_quiet_hours(prefs, now):
        return _decision(
            context, now, should_notify=False, priority="low", reason="Quiet hours, no mention"
        )

    if profile and _matching_keyword(newest.text, profile.suppressed_topics):
        return _decision(
            context,
            now,
            should_notify=False,
            priority="low",
            reason="Newest message matches a suppressed topic",
        )

    keywords = list(prefs.priority_keywords)
    if profile:
        keywords.extend(k for k in profile.learned_keywords if k not in keywords)

    keyword = _matching_keyword(newest.text, keywords)
    if keyword:
        reason = f'Priority keyword detected: "{keyword}"'
    elif _is_question(newest.text):
        reason = "Direct question detected"
    else:
        return _decision(
            context,
            now,
            should_notify=False,
            priority="low",
            reason="No notification triggers found",
        )

    priority = "medium"
    if profile and profile.preferred_notification_rate == "high":
        priority = "high"
    elif profile and profile.preferred_notification_rate == "low":
        priority = "low"

    return _decision(
        context, now, should_notify=True, priority=priority, reason=reason, message=newest
    )
