"""
Request and response models for the notification endpoints.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from smart_notify.features.smart_notifications.domain import NotificationHistoryEntry


class AnalyzeRequest(BaseModel):
    conversation_id: str = Field(..., min_length=1, description="Conversation to analyze")
    user_id: str = Field(..., min_length=1, description="Recipient; must match the caller")


class FeedbackRequest(BaseModel):
    feedback: Literal["helpful", "not_helpful"] = Field(
        ..., description="User rating of the notification"
    )


class ActivityRequest(BaseModel):
    conversation_id: str | None = Field(
        None, description="Conversation currently on screen, or null when none"
    )


class HistoryEntryResponse(BaseModel):
    id: str
    conversation_id: str
    message_id: str | None
    timestamp: datetime
    decision: bool
    priority: Literal["high", "medium", "low"]
    ai_reasoning: str
    notification_text: str | None
    message_count: int
    was_delivered: bool
    decision_source: str
    user_feedback: Literal["helpful", "not_helpful"] | None = None

    @classmethod
    def from_entry(cls, entry: NotificationHistoryEntry) -> "HistoryEntryResponse":
        return cls(
            id=entry.id,
            conversation_id=entry.conversation_id,
            message_id=entry.message_id,
            timestamp=entry.timestamp,
            decision=entry.decision,
            priority=entry.priority,
            ai_reasoning=entry.ai_reasoning,
            notification_text=entry.notification_text,
            message_count=entry.message_count,
            was_delivered=entry.was_delivered,
            decision_source=entry.decision_source,
            user_feedback=entry.user_feedback,
        )


class HistoryResponse(BaseModel):
    entries: list[HistoryEntryResponse]
    count: int


class ActivityResponse(BaseModel):
    user_id: str
    active_conversation_id: str | None
    timestamp: datetime


class ProfileResponse(BaseModel):
    updated: bool
    preferred_notification_rate: Literal["high", "medium", "low"] | None = None
    learned_keywords: list[str] = Field(default_factory=list)
    suppressed_topics: list[str] = Field(default_factory=list)
    accuracy: float | None = None


class FalsePositiveReason(BaseModel):
    reason: str
    count: int


class AnalyticsResponse(BaseModel):
    period_days: int
    total_decisions: int
    notified: int
    delivered: int
    helpful: int
    not_helpful: int
    accuracy_percent: float | None
    top_false_positive_reasons: list[FalsePositiveReason]
