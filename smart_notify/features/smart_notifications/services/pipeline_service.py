"""
Notification pipeline orchestration.

collect -> cache lookup -> context -> reasoning -> cache write -> journal
-> suppression -> delivery -> mark delivered

Input and permission errors from the collector, and a collector that
outlives the whole budget, are the only exceptions that leave ``analyze``.
Every other failure degrades to a smaller context, the fallback heuristic,
or a skipped side effect.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime

from smart_notify.config import settings
from smart_notify.features.smart_notifications.domain import (
    Conversation,
    DecisionSource,
    NotificationDecision,
    NotificationPreferences,
    UnreadMessage,
    utcnow,
)
from smart_notify.features.smart_notifications.pipeline.collector import UnreadMessageCollector
from smart_notify.features.smart_notifications.pipeline.context_assembler import (
    ContextAssembler,
)
from smart_notify.features.smart_notifications.pipeline.decision_cache import DecisionCache
from smart_notify.features.smart_notifications.pipeline.delivery import DeliveryDispatcher
from smart_notify.features.smart_notifications.pipeline.fallback import fallback_decision
from smart_notify.features.smart_notifications.pipeline.journal import DecisionJournal
from smart_notify.features.smart_notifications.pipeline.reasoning import ReasoningEngine
from smart_notify.features.smart_notifications.pipeline.suppression import DeliverySuppressor
from smart_notify.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


@dataclass(slots=True)
class _Run:
    """Mutable state of one invocation, read by the journal guard."""

    user_id: str
    conversation: Conversation
    messages: list[UnreadMessage]
    now: datetime
    deadline: float
    preferences: NotificationPreferences | None = None
    decision: NotificationDecision | None = None
    source: DecisionSource | None = None
    entry_id: str | None = None
    journal_task: asyncio.Task | None = None
    journaled: bool = False
    outcome: dict = field(default_factory=dict)


class NotificationPipelineService:
    def __init__(
        self,
        collector: UnreadMessageCollector | None = None,
        cache: DecisionCache | None = None,
        assembler: ContextAssembler | None = None,
        reasoning: ReasoningEngine | None = None,
        suppressor: DeliverySuppressor | None = None,
        dispatcher: DeliveryDispatcher | None = None,
        journal: DecisionJournal | None = None,
        budget_seconds: float | None = None,
        context_timeout_seconds: float | None = None,
    ):
        self.collector = collector or UnreadMessageCollector()
        self.cache = cache or DecisionCache()
        self.assembler = assembler or ContextAssembler()
        self.reasoning = reasoning or ReasoningEngine()
        self.suppressor = suppressor or DeliverySuppressor()
        self.dispatcher = dispatcher or DeliveryDispatcher()
        self.journal = journal or DecisionJournal()
        self.budget_seconds = budget_seconds or settings.PIPELINE_BUDGET_SECONDS
        self.context_timeout_seconds = (
            context_timeout_seconds or settings.CONTEXT_TIMEOUT_SECONDS
        )

    @staticmethod
    def _remaining(run: _Run) -> float:
        return run.deadline - asyncio.get_running_loop().time()

    async def analyze(
        self, user_id: str, conversation_id: str, now: datetime | None = None
    ) -> NotificationDecision:
        """
        Run the pipeline for one (user, conversation) pair.

        Raises:
            NotificationInputError: unknown conversation
            NotificationPermissionError: user is not a participant
            TimeoutError: collection did not finish within the budget
        """
        now = now or utcnow()
        deadline = asyncio.get_running_loop().time() + self.budget_seconds

        try:
            async with asyncio.timeout_at(deadline):
                conversation, messages = await self.collector.collect(
                    user_id, conversation_id, now
                )
        except TimeoutError:
            logger.error(
                "Unread message collection exceeded the pipeline budget",
                user_id=user_id,
                conversation_id=conversation_id,
            )
            raise

        run = _Run(
            user_id=user_id,
            conversation=conversation,
            messages=messages,
            now=now,
            deadline=deadline,
        )

        try:
            await self._decide_within_budget(run)
            await self._journal(run)
            await self._deliver_within_budget(run)
        finally:
            if not run.journaled:
                await self._journal_on_abort(run)

        logger.info(
            "Notification pipeline completed",
            user_id=user_id,
            conversation_id=conversation_id,
            decision_source=run.source.value if run.source else None,
            should_notify=run.decision.should_notify,
            priority=run.decision.priority,
            **run.outcome,
        )
        return run.decision

    def _fallback(self, run: _Run) -> None:
        context = self.assembler.minimal_context(
            run.user_id,
            run.conversation,
            run.messages,
            run.preferences or NotificationPreferences(),
            run.now,
        )
        run.decision = fallback_decision(context, run.now)
        run.source = DecisionSource.FALLBACK

    async def _decide_within_budget(self, run: _Run) -> None:
        try:
            async with asyncio.timeout_at(run.deadline):
                await self._decide(run)
        except TimeoutError:
            logger.warning(
                "Pipeline budget exhausted before a decision",
                user_id=run.user_id,
                conversation_id=run.conversation.id,
                decided=run.decision is not None,
            )
            if run.decision is None:
                self._fallback(run)

    async def _decide(self, run: _Run) -> None:
        conversation_id = run.conversation.id

        if not run.messages:
            run.decision = NotificationDecision(
                should_notify=False,
                reason="No unread messages",
                notification_text=None,
                priority="low",
                timestamp=run.now,
                conversation_id=conversation_id,
                message_ids=[],
            )
            run.source = DecisionSource.SHORT_CIRCUIT
            return

        message_ids = [m.id for m in run.messages]

        cached = await self.cache.get(conversation_id, message_ids, run.now)
        if cached is not None:
            run.decision = cached
            run.source = DecisionSource.CACHE
            return

        run.preferences = await self.assembler.load_preferences(run.user_id)
        if not run.preferences.enabled:
            run.decision = NotificationDecision(
                should_notify=False,
                reason="Notifications disabled",
                notification_text=None,
                priority="low",
                timestamp=run.now,
                conversation_id=conversation_id,
                message_ids=message_ids,
            )
            run.source = DecisionSource.SHORT_CIRCUIT
            return

        context_timeout = max(0.0, min(self.context_timeout_seconds, self._remaining(run)))
        try:
            context = await asyncio.wait_for(
                self.assembler.assemble(
                    run.user_id, run.conversation, run.messages, run.preferences, run.now
                ),
                timeout=context_timeout,
            )
        except TimeoutError:
            logger.warning(
                "Context assembly timed out, using minimal context",
                user_id=run.user_id,
                conversation_id=conversation_id,
                timeout=context_timeout,
            )
            context = self.assembler.minimal_context(
                run.user_id, run.conversation, run.messages, run.preferences, run.now
            )

        run.decision, run.source = await self.reasoning.decide(
            context, run.now, timeout=self._remaining(run)
        )
        await self.cache.put(run.decision, message_ids, run.now)

    async def _journal(self, run: _Run) -> None:
        run.journal_task = asyncio.ensure_future(
            self.journal.record(
                run.user_id, run.decision, run.source, len(run.messages), run.now
            )
        )
        run.entry_id = await asyncio.shield(run.journal_task)
        run.journaled = True

    async def _journal_on_abort(self, run: _Run) -> None:
        """Best-effort journal write after cancellation or an unexpected error."""
        if run.decision is None:
            self._fallback(run)

        if run.journal_task is None:
            run.journal_task = asyncio.ensure_future(
                self.journal.record(
                    run.user_id, run.decision, run.source, len(run.messages), run.now
                )
            )

        try:
            await asyncio.shield(run.journal_task)
            run.journaled = True
        except asyncio.CancelledError:
            logger.warning(
                "Journal write interrupted",
                user_id=run.user_id,
                conversation_id=run.conversation.id,
            )
            raise

    async def _deliver_within_budget(self, run: _Run) -> None:
        if not run.decision.should_notify:
            run.outcome = {"delivery": "not_requested"}
            return

        remaining = self._remaining(run)
        if remaining <= 0:
            logger.warning(
                "Pipeline budget exhausted, abandoning delivery",
                user_id=run.user_id,
                conversation_id=run.conversation.id,
            )
            run.outcome = {"delivery": "budget_exhausted"}
            return

        try:
            await asyncio.wait_for(self._deliver(run), timeout=remaining)
        except TimeoutError:
            logger.warning(
                "Pipeline budget exhausted during delivery",
                user_id=run.user_id,
                conversation_id=run.conversation.id,
            )
            run.outcome = {"delivery": "budget_exhausted"}

    async def _deliver(self, run: _Run) -> None:
        if run.preferences is None:
            run.preferences = await self.assembler.load_preferences(run.user_id)

        suppression = await self.suppressor.check(
            run.user_id, run.conversation.id, run.preferences, run.now
        )
        if suppression.suppressed:
            run.outcome = {"delivery": "suppressed", "suppression_reason": suppression.reason}
            return

        outcome = await self.dispatcher.dispatch(
            run.user_id, run.decision, run.conversation, run.messages
        )
        run.outcome = {"delivery": outcome.status}
        if outcome.delivered:
            await self.journal.mark_delivered(run.entry_id)


# Singleton instance for application use
notification_pipeline = NotificationPipelineService()


async def analyze_for_notification(user_id: str, conversation_id: str) -> NotificationDecision:
    """Convenience wrapper around the shared pipeline instance."""
    return await notification_pipeline.analyze(user_id, conversation_id)
