"""
Domain subpackage for the smart notification feature.
"""

from .exceptions import NotificationInputError, NotificationPermissionError
from .models import (
    ActivityRecord,
    Conversation,
    DecisionSource,
    MessageEmbedding,
    NotificationContext,
    NotificationDecision,
    NotificationHistoryEntry,
    NotificationPreferences,
    NotificationProfile,
    ReasoningPayload,
    SemanticNeighbour,
    UnreadMessage,
    truncate_notification_text,
    utcnow,
)

__all__ = [
    "ActivityRecord",
    "Conversation",
    "DecisionSource",
    "MessageEmbedding",
    "NotificationContext",
    "NotificationDecision",
    "NotificationHistoryEntry",
    "NotificationInputError",
    "NotificationPermissionError",
    "NotificationPreferences",
    "NotificationProfile",
    "ReasoningPayload",
    "SemanticNeighbour",
    "UnreadMessage",
    "truncate_notification_text",
    "utcnow",
]
