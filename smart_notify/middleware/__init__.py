"""
Middleware components for request processing.

This package contains middleware for:
- Request context (request ID, IP address, user agent, structlog binding)
"""

from smart_notify.middleware.request_context import RequestContextMiddleware

__all__ = ["RequestContextMiddleware"]
