# smart_notify/services/push_service.py
"""
Push delivery over the FCM HTTP v1 API.
"""

import asyncio
from dataclasses import dataclass
from typing import Any

import httpx

from smart_notify.config import settings
from smart_notify.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

MAX_RETRIES = 3
BACKOFF_FACTOR = 2  # 2, 4 seconds
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}

# FCM error codes meaning the registration token will never work again
INVALID_TOKEN_ERROR_CODES = {"UNREGISTERED", "INVALID_ARGUMENT"}


class PushDeliveryError(Exception):
    """Push send failed for a reason other than a dead token."""

    def __init__(
        self, message: str, status_code: int | None = None, recoverable: bool = True
    ):
        super().__init__(message)
        self.status_code = status_code
        self.recoverable = recoverable


class InvalidPushTokenError(PushDeliveryError):
    """The registration token is unregistered or malformed and should be removed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message, status_code=status_code, recoverable=False)


@dataclass(slots=True)
class DeliveryReceipt:
    message_name: str | None
    status_code: int


class PushService:
    """Sends one FCM message per call, with retry on transient statuses."""

    def __init__(self, send_url: str | None = None, access_token: str | None = None):
        self.send_url = send_url or settings.fcm_send_url()
        self.access_token = access_token or settings.FCM_ACCESS_TOKEN

    @property
    def configured(self) -> bool:
        return bool(self.send_url and self.access_token)

    async def send(self, message: dict[str, Any]) -> DeliveryReceipt:
        """
        Send an FCM v1 message body (the value of the top-level "message" key).

        Raises:
            InvalidPushTokenError: FCM reported the token as unregistered/invalid
            PushDeliveryError: Any other failure after retries
        """
        if not self.configured:
            raise PushDeliveryError("FCM is not configured", recoverable=False)

        response = await self._post_with_retry({"message": message})

        if response.status_code == 200:
            body = response.json()
            return DeliveryReceipt(message_name=body.get("name"), status_code=200)

        error_code = self._extract_error_code(response)
        if response.status_code == 404 or error_code in INVALID_TOKEN_ERROR_CODES:
            raise InvalidPushTokenError(
                f"FCM rejected registration token ({error_code or response.status_code})",
                status_code=response.status_code,
            )

        raise PushDeliveryError(
            f"FCM send failed with status {response.status_code} ({error_code or 'unknown'})",
            status_code=response.status_code,
        )

    @staticmethod
    def _extract_error_code(response: httpx.Response) -> str | None:
        """Pull the FCM error code out of a v1 error body."""
        try:
            error = response.json().get("error", {})
        except ValueError:
            return None

        for detail in error.get("details", []) or []:
            if detail.get("errorCode"):
                return detail["errorCode"]
        return error.get("status")

    async def _post_with_retry(self, payload: dict[str, Any]) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }
        last_error: Exception | None = None

        async with httpx.AsyncClient(timeout=settings.FCM_TIMEOUT_SECONDS) as client:
            for attempt in range(1, MAX_RETRIES + 1):
                try:
                    response = await client.post(self.send_url, json=payload, headers=headers)

                    if response.status_code in RETRY_STATUS_CODES and attempt < MAX_RETRIES:
                        wait_time = BACKOFF_FACTOR**attempt
                        logger.warning(
                            "FCM transient status",
                            status_code=response.status_code,
                            attempt=attempt,
                            wait_time=wait_time,
                        )
                        await asyncio.sleep(wait_time)
                        continue

                    return response

                except httpx.RequestError as exc:
                    last_error = exc

                    if attempt == MAX_RETRIES:
                        break

                    wait_time = BACKOFF_FACTOR**attempt
                    logger.warning(
                        "FCM request error, retrying",
                        attempt=attempt,
                        wait_time=wait_time,
                        error=str(exc),
                        error_type=type(exc).__name__,
                    )
                    await asyncio.sleep(wait_time)

        raise PushDeliveryError(f"FCM request failed: {last_error}") from last_error


# Global instance
push_service = PushService()
