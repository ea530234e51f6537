import asyncio
from datetime import datetime

from pydantic import ValidationError

from smart_notify.features.smart_notifications.domain import (
    DecisionSource,
    NotificationContext,
    NotificationDecision,
    ReasoningPayload,
)
from smart_notify.features.smart_notifications.pipeline.fallback import fallback_decision
from smart_notify.features.smart_notifications.pipeline.prompts import (
    SYSTEM_PROMPT,
    build_user_prompt,
)
from smart_notify.infrastructure.observability.logging import get_logger
from smart_notify.services.openai_service import ReasoningError, openai_service

logger = get_logger(__name__)


def validate_reasoning_output(
    raw: object, context: NotificationContext, now: datetime
) -> NotificationDecision:
    """
    Turn raw model output into a decision.

    Raises:
        ReasoningError: output is not an object or fails the payload schema
    """
    if not isinstance(raw, dict):
        raise ReasoningError("Reasoning output is not a JSON object", recoverable=True)

    try:
        payload = ReasoningPayload.model_validate(raw)
    except ValidationError as e:
        raise ReasoningError(f"Reasoning output failed validation: {e.error_count()} errors") from e

    return NotificationDecision(
        should_notify=payload.should_notify,
        priority=payload.priority,
        reason=payload.reason,
        notification_text=payload.notification_text,
        timestamp=now,
        conversation_id=context.conversation.id,
        message_ids=[m.id for m in context.messages],
    )


class ReasoningEngine:
    """Model decision with a guaranteed fallback."""

    def __init__(self, reasoner=None):
        self.reasoner = reasoner or openai_service

    async def decide(
        self, context: NotificationContext, now: datetime, timeout: float | None = None
    ) -> tuple[NotificationDecision, DecisionSource]:
        """Never raises; returns the decision and which path produced it."""
        try:
            user_prompt = build_user_prompt(context, now)
            if timeout is not None and timeout <= 0:
                raise TimeoutError("No time left for reasoning")
            raw = await asyncio.wait_for(
                self.reasoner.reason(SYSTEM_PROMPT, user_prompt), timeout=timeout
            )
            decision = validate_reasoning_output(raw, context, now)
            logger.info(
                "Reasoning decision produced",
                user_id=context.user_id,
                conversation_id=context.conversation.id,
                should_notify=decision.should_notify,
                priority=decision.priority,
            )
            return decision, DecisionSource.AI

        except Exception as e:
            logger.warning(
                "Reasoning failed, using fallback heuristic",
                user_id=context.user_id,
                conversation_id=context.conversation.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return fallback_decision(context, now), DecisionSource.FALLBACK
