"""
FastAPI application for smart notification decisions.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from smart_notify.config import settings
from smart_notify.db.pool import db_pool
from smart_notify.features.smart_notifications import notifications_router
from smart_notify.infrastructure.observability.logging import get_logger, setup_logging
from smart_notify.middleware import RequestContextMiddleware
from smart_notify.routes import health
from smart_notify.services.redis_client import fast_redis

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


# Opened in order, closed in reverse
RESOURCES = (("database_pool", db_pool), ("redis", fast_redis))


async def _close_all(opened: list[tuple[str, object]]) -> list[str]:
    errors = []
    for name, resource in reversed(opened):
        try:
            await resource.close()
        except Exception as e:
            logger.error("Error closing resource", resource=name, error=str(e))
            errors.append(f"{name}: {e}")
    return errors


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    opened: list[tuple[str, object]] = []
    try:
        for name, resource in RESOURCES:
            await resource.initialize()
            opened.append((name, resource))
    except Exception as e:
        logger.error(
            "Startup failed", error=str(e), initialized=[name for name, _ in opened]
        )
        await _close_all(opened)
        raise

    logger.info("Resources initialized", resources=[name for name, _ in opened])

    yield

    logger.info("Application shutting down")
    errors = await _close_all(opened)
    if errors:
        logger.warning("Shutdown finished with errors", errors=errors)
    else:
        logger.info("Shutdown complete")


app = FastAPI(
    title="Smart Notify",
    description="AI-assisted push notification decisions for chat conversations",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(notifications_router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing."""
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    logger.info(
        "HTTP request completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(process_time, 2),
    )
    return response


# Added last so it wraps the timing middleware and binds the request id first
app.add_middleware(RequestContextMiddleware)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
