"""
Prompt text for the notification reasoning call.
"""

from datetime import datetime

from smart_notify.features.smart_notifications.domain import (
    NotificationContext,
    NotificationProfile,
    UnreadMessage,
)

SYSTEM_PROMPT = """### Role
You are a notification assistant for remote team professionals. Decide whether the user should be interrupted by a push notification for the unread messages below.
Adapt to the user's learned preferences from their feedback history when they are provided.

### ALWAYS NOTIFY if
- The user is directly mentioned (@username or by name)
- The user is asked a direct question ("Can you...", "Could you...", "Would you...", "Will you...")
- A decision is made that affects the user's work or responsibilities
- There is an urgent or time-sensitive request related to the user's projects
- A production issue or blocker is mentioned that affects the user
- Someone assigns a task to the user
- A meeting or deadline is mentioned that involves the user

### SHOULD NOTIFY if
- A message contains one of the user's priority keywords
- A message contains one of the user's learned important keywords
- The discussion is about a topic the user recently participated in
- There is an important update on a project the user is involved in
- Someone requests feedback or review that could involve the user

### NEVER NOTIFY if
- General team chat that does not involve the user
- FYI updates the user is not responsible for
- Social or casual conversation (jokes, "thanks", "lol", emoji reactions)
- Information the user already knows (see related history)
- Automated messages or bot responses
- The message is about a topic the user marked as not helpful (suppressed topics)
- The user is in quiet hours, unless they are directly mentioned

### Notification text
- Clear and actionable, includes the sender name and key context
- At most 100 characters
- Format: "{Sender}: {key message summary}"
- Examples: "Sarah: Can you review the API design by EOD?", "John mentioned you: Need help with production bug"

### Priority
- high: direct mentions, urgent issues, direct questions, production problems
- medium: priority keywords, important updates, indirect questions
- low: general updates, non-urgent information

### Output
Return ONLY a JSON object (no prose, no markdown) with exactly these keys:
{"should_notify": true|false, "reason": "1-2 sentence explanation", "notification_text": "max 100 chars", "priority": "high"|"medium"|"low"}
"""

_RATE_INSTRUCTIONS = {
    "high": "User appreciates frequent notifications. Be more liberal in notification decisions.",
    "medium": "User prefers moderate notification frequency. Balance importance vs frequency.",
    "low": "User dislikes frequent notifications. Only notify for critical messages.",
}


def format_messages(messages: list[UnreadMessage]) -> str:
    return "\n".join(
        f"[{m.timestamp.isoformat()}] {m.sender_name or 'Unknown'}: {m.text}" for m in messages
    )


def _format_profile(profile: NotificationProfile) -> str:
    accuracy = f"{profile.accuracy * 100:.0f}%" if profile.accuracy is not None else "N/A"
    learned = ", ".join(profile.learned_keywords) or "None learned yet"
    suppressed = ", ".join(profile.suppressed_topics) or "None"
    return (
        "\nLearned User Preferences (from feedback history):\n"
        f"- Notification frequency preference: {profile.preferred_notification_rate}\n"
        f"- {_RATE_INSTRUCTIONS[profile.preferred_notification_rate]}\n"
        f"- User finds these topics important: {learned}\n"
        f"- User doesn't want notifications about: {suppressed}\n"
        f"- Historical accuracy: {accuracy}\n"
    )


def _format_user_context(context: NotificationContext) -> str:
    lines = [
        f"- User id: {context.user_id}",
        f"- Display name: {context.recipient_name or 'Unknown'}",
        f"- Currently in quiet hours: {'yes' if context.in_quiet_hours else 'no'}",
    ]
    conversation = context.conversation
    if conversation.is_group:
        lines.append(f"- Conversation: group \"{conversation.group_name or 'Unnamed group'}\"")
    else:
        lines.append("- Conversation: direct message")

    if context.conversation_summaries:
        lines.append("- Other active conversations:")
        for summary in context.conversation_summaries:
            label = summary.get("group_name") or summary.get("conversation_id")
            lines.append(f"  * {label}: {summary.get('unread_count', 0)} unread")

    if context.recent_activity:
        lines.append("- Recent messages across conversations:")
        for item in context.recent_activity[:10]:
            lines.append(f"  * {(item.get('text') or '')[:120]}")

    if context.neighbours:
        lines.append("- Related history (most similar earlier messages):")
        for neighbour in context.neighbours:
            lines.append(f"  * ({neighbour.score:.2f}) {neighbour.text[:160]}")

    return "\n".join(lines)


def build_user_prompt(context: NotificationContext, now: datetime) -> str:
    prefs = context.preferences
    profile_section = _format_profile(context.profile) if context.profile else ""

    return f"""User Context:
{_format_user_context(context)}

User Preferences:
- AI notifications enabled: {prefs.enabled}
- Quiet hours: {prefs.quiet_hours_start} - {prefs.quiet_hours_end} ({prefs.timezone})
- Priority keywords: {", ".join(prefs.priority_keywords)}
- Max notifications per hour: {prefs.max_analyses_per_hour}
{profile_section}
Current Time: {now.isoformat()}

Conversation Messages (unread for user, newest first):
{format_messages(context.messages)}

Analyze these messages and decide if the user should be notified."""
