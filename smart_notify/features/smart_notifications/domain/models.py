"""
Domain models for the smart notification feature.

Plain dataclasses describe what the repositories read and write. The
decision itself is a frozen pydantic model because it crosses the HTTP
boundary and the decision cache unchanged.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_validator

Priority = Literal["high", "medium", "low"]
FallbackStrategy = Literal["simple_rules", "notify_all", "suppress_all"]
Feedback = Literal["helpful", "not_helpful"]

NOTIFICATION_TEXT_LIMIT = 100

DEFAULT_PRIORITY_KEYWORDS = ["urgent", "ASAP", "production down", "blocker", "emergency"]


def truncate_notification_text(text: str | None, limit: int = NOTIFICATION_TEXT_LIMIT) -> str:
    if not text:
        return ""
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def utcnow() -> datetime:
    return datetime.now(UTC)


class DecisionSource(str, Enum):
    """Which pipeline path produced a decision."""

    AI = "ai"
    FALLBACK = "fallback"
    CACHE = "cache"
    SHORT_CIRCUIT = "short_circuit"


class NotificationDecision(BaseModel):
    """Canonical output of one pipeline run."""

    model_config = ConfigDict(frozen=True)

    should_notify: bool = Field(..., description="Whether the user should be interrupted")
    reason: str = Field("", description="Short explanation of the decision")
    notification_text: str | None = Field(None, description="Text shown in the push alert")
    priority: Priority = Field(..., description="Delivery tier")
    timestamp: datetime = Field(default_factory=utcnow)
    conversation_id: str = Field(..., description="Conversation the decision is about")
    message_ids: list[str] | None = Field(None, description="Unread message ids considered")


class ReasoningPayload(BaseModel):
    """
    Shape the reasoning model must return.

    should_notify and priority are strictly required; everything else
    defaults. Unknown keys are ignored.
    """

    model_config = ConfigDict(extra="ignore")

    should_notify: StrictBool
    priority: Priority
    reason: str = ""
    notification_text: str = ""

    @field_validator("reason", "notification_text", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("notification_text")
    @classmethod
    def _truncate(cls, value: str) -> str:
        return truncate_notification_text(value)


@dataclass(slots=True)
class Conversation:
    id: str
    participant_ids: list[str]
    is_group: bool = False
    group_name: str | None = None
    last_message_at: datetime | None = None


@dataclass(slots=True)
class UnreadMessage:
    """A candidate message the recipient has not read yet."""

    id: str
    conversation_id: str
    sender_id: str
    text: str
    timestamp: datetime
    sender_name: str | None = None


@dataclass(slots=True)
class NotificationPreferences:
    """User-owned notification settings. Defaults apply when the user has none."""

    enabled: bool = True
    pause_threshold_seconds: int = 120
    active_conversation_threshold: int = 20
    quiet_hours_start: str = "22:00"
    quiet_hours_end: str = "08:00"
    timezone: str = "America/Los_Angeles"
    priority_keywords: list[str] = field(default_factory=lambda: list(DEFAULT_PRIORITY_KEYWORDS))
    max_analyses_per_hour: int = 10
    fallback_strategy: FallbackStrategy = "simple_rules"


@dataclass(slots=True)
class NotificationProfile:
    """Learned from feedback; optional."""

    user_id: str
    preferred_notification_rate: Priority = "medium"
    learned_keywords: list[str] = field(default_factory=list)
    suppressed_topics: list[str] = field(default_factory=list)
    accuracy: float | None = None
    updated_at: datetime | None = None


@dataclass(slots=True)
class ActivityRecord:
    user_id: str
    active_conversation_id: str | None
    timestamp: datetime


@dataclass(slots=True)
class MessageEmbedding:
    message_id: str
    conversation_id: str
    vector: list[float]
    timestamp: datetime
    participant_ids: list[str]
    message_text: str
    embedded_at: datetime


@dataclass(slots=True)
class SemanticNeighbour:
    message_id: str
    conversation_id: str
    text: str
    score: float
    timestamp: datetime | None = None


@dataclass(slots=True)
class NotificationContext:
    """Everything the reasoning step sees about one invocation."""

    user_id: str
    conversation: Conversation
    messages: list[UnreadMessage]
    preferences: NotificationPreferences
    recipient_name: str | None = None
    profile: NotificationProfile | None = None
    neighbours: list[SemanticNeighbour] = field(default_factory=list)
    recent_activity: list[dict[str, Any]] = field(default_factory=list)
    conversation_summaries: list[dict[str, Any]] = field(default_factory=list)
    in_quiet_hours: bool = False
    degraded: bool = False


@dataclass(slots=True)
class NotificationHistoryEntry:
    """A notification_decisions row."""

    id: str
    user_id: str
    conversation_id: str
    message_id: str | None
    timestamp: datetime
    decision: bool
    priority: Priority
    ai_reasoning: str
    notification_text: str | None
    message_count: int
    was_delivered: bool
    decision_source: str
    user_feedback: Feedback | None = None
    feedback_at: datetime | None = None
