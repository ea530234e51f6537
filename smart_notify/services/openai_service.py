# smart_notify/services/openai_service.py
"""
OpenAI Service for Notification Reasoning
Wraps chat completions (JSON mode) for notification decisions and the
embeddings endpoint used for semantic context retrieval.
"""

import asyncio
import json
from typing import Any

import openai
from openai import AsyncOpenAI

from smart_notify.config import settings
from smart_notify.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class ReasoningError(Exception):
    """Raised when the reasoning call fails or returns unusable output."""

    def __init__(self, message: str, api_error: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.api_error = api_error
        self.recoverable = recoverable


class OpenAIServiceError(Exception):
    """Base exception for OpenAI service errors."""

    def __init__(self, message: str, recoverable: bool = True):
        super().__init__(message)
        self.recoverable = recoverable


class OpenAIService:
    """
    OpenAI client wrapper for the notification pipeline.

    The client is created on first use so the service can be imported
    without an API key (tests, workers that never reason).
    """

    def __init__(self):
        self.client: AsyncOpenAI | None = None

    def _get_client(self) -> AsyncOpenAI:
        if self.client is not None:
            return self.client

        if not settings.OPENAI_API_KEY:
            raise OpenAIServiceError("OPENAI_API_KEY not configured in settings", recoverable=False)

        try:
            self.client = AsyncOpenAI(
                api_key=settings.OPENAI_API_KEY,
                timeout=settings.OPENAI_TIMEOUT_SECONDS,
            )
            logger.info(
                "OpenAI client initialized",
                model=settings.OPENAI_MODEL,
                embedding_model=settings.OPENAI_EMBEDDING_MODEL,
                timeout=settings.OPENAI_TIMEOUT_SECONDS,
            )
            return self.client
        except Exception as e:
            logger.error("Failed to initialize OpenAI client", error=str(e))
            raise OpenAIServiceError(f"OpenAI client initialization failed: {e}") from e

    @property
    def configured(self) -> bool:
        return bool(settings.OPENAI_API_KEY)

    async def reason(self, system_message: str, user_message: str) -> dict[str, Any]:
        """
        Ask the model for a JSON decision object.

        Returns:
            The decoded JSON object (not yet validated)

        Raises:
            ReasoningError: On transport failure, empty output or invalid JSON
        """
        try:
            raw = await self._call_openai_with_retry(system_message, user_message)
        except OpenAIServiceError as e:
            raise ReasoningError(str(e), recoverable=e.recoverable) from e

        try:
            result = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(
                "Failed to parse OpenAI response as JSON", error=str(e), raw_result=raw[:200]
            )
            raise ReasoningError("OpenAI returned invalid JSON") from e

        if not isinstance(result, dict):
            raise ReasoningError("OpenAI returned a non-object JSON document")

        return result

    async def _call_openai_with_retry(self, system_message: str, user_message: str) -> str:
        """Call OpenAI API with retry logic for transient failures."""
        client = self._get_client()

        last_error = None
        max_retries = max(1, settings.OPENAI_MAX_RETRIES)

        for attempt in range(max_retries):
            try:
                logger.debug(
                    "Calling OpenAI API for notification decision",
                    attempt=attempt + 1,
                    max_retries=max_retries,
                    model=settings.OPENAI_MODEL,
                )

                response = await client.chat.completions.create(
                    model=settings.OPENAI_MODEL,
                    messages=[
                        {"role": "system", "content": system_message},
                        {"role": "user", "content": user_message},
                    ],
                    max_tokens=settings.OPENAI_MAX_TOKENS,
                    temperature=settings.OPENAI_TEMPERATURE,
                    response_format={"type": "json_object"},
                )

                if not response.choices or not response.choices[0].message.content:
                    raise ReasoningError("Empty response from OpenAI API")

                result = response.choices[0].message.content.strip()

                logger.info(
                    "OpenAI API call successful",
                    attempt=attempt + 1,
                    response_length=len(result),
                    usage_tokens=response.usage.total_tokens if response.usage else 0,
                )

                return result

            except openai.RateLimitError as e:
                last_error = e
                wait_time = min(2**attempt, 10)

                logger.warning(
                    "OpenAI rate limit hit, retrying",
                    attempt=attempt + 1,
                    wait_time=wait_time,
                    error=str(e),
                )

                if attempt < max_retries - 1:
                    await asyncio.sleep(wait_time)

            except openai.APITimeoutError as e:
                last_error = e
                logger.warning(
                    "OpenAI API timeout, retrying",
                    attempt=attempt + 1,
                    timeout=settings.OPENAI_TIMEOUT_SECONDS,
                    error=str(e),
                )

            except openai.APIError as e:
                last_error = e
                # Don't retry on client errors (4xx)
                status_code = getattr(e, "status_code", None)
                if status_code is not None and 400 <= status_code < 500:
                    logger.error("OpenAI client error (not retrying)", error=str(e))
                    break

                logger.warning("OpenAI API error, retrying", attempt=attempt + 1, error=str(e))

            except ReasoningError as e:
                last_error = e
                logger.warning("OpenAI returned no content, retrying", attempt=attempt + 1)

        logger.error(
            "OpenAI API call failed after all retries",
            max_retries=max_retries,
            final_error=str(last_error),
        )

        raise ReasoningError(
            f"OpenAI API failed after {max_retries} attempts",
            api_error=str(last_error),
            recoverable=True,
        ) from last_error

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """
        Embed a batch of texts in one request.

        Returns:
            One vector per input text, in input order
        """
        if not texts:
            return []

        client = self._get_client()

        try:
            response = await client.embeddings.create(
                model=settings.OPENAI_EMBEDDING_MODEL,
                input=texts,
            )
        except openai.APIError as e:
            logger.error(
                "OpenAI embedding request failed",
                batch_size=len(texts),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise OpenAIServiceError(f"Embedding request failed: {e}") from e

        vectors = [item.embedding for item in sorted(response.data, key=lambda d: d.index)]
        if len(vectors) != len(texts):
            raise OpenAIServiceError(
                f"Embedding count mismatch: expected {len(texts)}, got {len(vectors)}"
            )

        logger.debug("Embeddings generated", batch_size=len(texts))
        return vectors

    async def health_check(self) -> dict[str, Any]:
        """Report configuration only; no API call is made."""
        return {
            "healthy": self.configured,
            "service": "openai_service",
            "configuration": {
                "model": settings.OPENAI_MODEL,
                "embedding_model": settings.OPENAI_EMBEDDING_MODEL,
                "max_tokens": settings.OPENAI_MAX_TOKENS,
                "timeout_seconds": settings.OPENAI_TIMEOUT_SECONDS,
                "max_retries": settings.OPENAI_MAX_RETRIES,
            },
        }


# Singleton instance for application use
openai_service = OpenAIService()
