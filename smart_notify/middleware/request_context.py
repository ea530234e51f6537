"""
RequestContext Middleware - Adds request tracking to all requests.

Adds to request.state:
- request_id: Unique ID for request tracing
- ip_address: Client IP address
- user_agent: Client user agent string

The request id is also bound into the structlog context so every log line
emitted while handling the request carries it, and is echoed back in the
X-Request-ID response header.
"""

import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from smart_notify.config import settings
from smart_notify.infrastructure.observability.logging import (
    bind_request_context,
    clear_request_context,
    get_logger,
)

logger = get_logger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        """Process request and add context."""

        # Honour a caller supplied id so traces can span services
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id

        ip_address = self._extract_client_ip(request)
        request.state.ip_address = ip_address

        user_agent = request.headers.get("user-agent")
        request.state.user_agent = user_agent

        clear_request_context()
        bind_request_context(request_id=request_id)

        logger.debug(
            "Request started",
            method=request.method,
            path=request.url.path,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        try:
            response = await call_next(request)
        finally:
            clear_request_context()

        response.headers["X-Request-ID"] = request_id
        return response

    def _extract_client_ip(self, request: Request) -> str | None:
        """
        Client IP with proxy spoofing protection.

        X-Forwarded-For is only trusted when enabled and the direct peer is a
        configured proxy.
        """
        if not settings.TRUST_X_FORWARDED_FOR:
            return request.client.host if request.client else None

        if request.client and request.client.host in settings.TRUSTED_PROXY_IPS:
            forwarded_for = request.headers.get("x-forwarded-for")
            if forwarded_for:
                # "client, proxy1, proxy2"
                return forwarded_for.split(",")[0].strip()

        return request.client.host if request.client else None
