"""
Push delivery for decisions that survived suppression.

Presentation is a pure function of priority; payload construction is pure
given the decision and conversation. Only ``DeliveryDispatcher`` does I/O.
"""

from dataclasses import dataclass
from typing import Any

from smart_notify.features.smart_notifications.domain import (
    Conversation,
    NotificationDecision,
    UnreadMessage,
)
from smart_notify.features.smart_notifications.repository.user_repository import UserRepository
from smart_notify.infrastructure.observability.logging import get_logger
from smart_notify.services.push_service import (
    InvalidPushTokenError,
    PushDeliveryError,
    push_service,
)

logger = get_logger(__name__)

NOTIFICATION_TYPE = "smart_notification"
APNS_CATEGORY = "SMART_NOTIFICATION_CATEGORY"


@dataclass(frozen=True, slots=True)
class Presentation:
    alert: bool
    sound: bool
    badge: bool


_PRESENTATIONS = {
    "high": Presentation(alert=True, sound=True, badge=True),
    "medium": Presentation(alert=True, sound=False, badge=True),
    "low": Presentation(alert=False, sound=False, badge=True),
}


def presentation_for_priority(priority: str) -> Presentation:
    """high: alert+sound+badge, medium: alert+badge, low: badge only."""
    return _PRESENTATIONS[priority]


def notification_title(conversation: Conversation, sender_name: str | None) -> str:
    sender = sender_name or "Someone"
    if conversation.is_group:
        return f"{sender} in {conversation.group_name or 'Group'}"
    return sender


def build_push_payload(
    token: str,
    decision: NotificationDecision,
    conversation: Conversation,
    newest: UnreadMessage | None,
    sender_name: str | None = None,
) -> dict[str, Any]:
    """
    FCM v1 message body for one decision.

    The data keys are camelCase because the mobile client deep-links from
    `conversationId` and `messageId`.
    """
    presentation = presentation_for_priority(decision.priority)

    message_id = newest.id if newest else (decision.message_ids or [""])[0]
    data = {
        "conversationId": conversation.id,
        "messageId": message_id,
        "priority": decision.priority,
        "type": NOTIFICATION_TYPE,
    }

    aps: dict[str, Any] = {"category": APNS_CATEGORY, "thread-id": conversation.id}
    if presentation.badge:
        aps["badge"] = 1
    if presentation.sound:
        aps["sound"] = "default"

    message: dict[str, Any] = {
        "token": token,
        "data": data,
        "android": {"priority": "HIGH" if decision.priority == "high" else "NORMAL"},
        "apns": {"payload": {"aps": aps}},
    }

    if sender_name is None and newest is not None:
        sender_name = newest.sender_name

    if presentation.alert:
        body = decision.notification_text or (newest.text if newest else "") or "New message"
        message["notification"] = {
            "title": notification_title(conversation, sender_name),
            "body": body,
        }
    else:
        aps["content-available"] = 1
        message["apns"]["headers"] = {"apns-push-type": "background", "apns-priority": "5"}

    return message


@dataclass(slots=True)
class DeliveryOutcome:
    delivered: bool
    status: str


class DeliveryDispatcher:
    def __init__(self, users=UserRepository, push=None):
        self.users = users
        self.push = push or push_service

    async def _sender_name(self, newest: UnreadMessage) -> str | None:
        if newest.sender_name and newest.sender_name != "Unknown":
            return newest.sender_name
        try:
            names = await self.users.get_display_names([newest.sender_id])
        except Exception as e:
            logger.warning("Sender name lookup failed", sender_id=newest.sender_id, error=str(e))
            return None
        return names.get(newest.sender_id)

    async def dispatch(
        self,
        user_id: str,
        decision: NotificationDecision,
        conversation: Conversation,
        messages: list[UnreadMessage],
    ) -> DeliveryOutcome:
        """Best effort. Never raises for delivery failures."""
        try:
            token = await self.users.get_push_token(user_id)
        except Exception as e:
            logger.error("Push token lookup failed", user_id=user_id, error=str(e))
            return DeliveryOutcome(delivered=False, status="token_lookup_failed")

        if not token:
            logger.info("No push token registered, skipping delivery", user_id=user_id)
            return DeliveryOutcome(delivered=False, status="no_token")

        newest = messages[0] if messages else None
        sender_name = await self._sender_name(newest) if newest is not None else None

        payload = build_push_payload(token, decision, conversation, newest, sender_name)

        try:
            receipt = await self.push.send(payload)
        except InvalidPushTokenError as e:
            logger.warning("Push token rejected, removing", user_id=user_id, error=str(e))
            try:
                await self.users.delete_push_token(user_id, token)
            except Exception as cleanup_error:
                logger.error(
                    "Failed to delete invalid push token",
                    user_id=user_id,
                    error=str(cleanup_error),
                )
            return DeliveryOutcome(delivered=False, status="invalid_token")
        except PushDeliveryError as e:
            logger.error(
                "Push delivery failed",
                user_id=user_id,
                conversation_id=conversation.id,
                status_code=e.status_code,
                error=str(e),
            )
            return DeliveryOutcome(delivered=False, status="failed")
        except Exception as e:
            logger.error(
                "Unexpected push delivery error",
                user_id=user_id,
                conversation_id=conversation.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return DeliveryOutcome(delivered=False, status="failed")

        logger.info(
            "Push notification delivered",
            user_id=user_id,
            conversation_id=conversation.id,
            priority=decision.priority,
            message_name=receipt.message_name,
        )
        return DeliveryOutcome(delivered=True, status="delivered")
