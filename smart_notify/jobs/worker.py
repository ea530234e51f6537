"""
Generic background worker runner.

Reads the desired job name from CLI args or the WORKER_JOB environment
variable and delegates to the appropriate scheduler.
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from smart_notify.config import settings
from smart_notify.db.pool import db_pool
from smart_notify.features.smart_notifications.jobs.profile_refresh_job import (
    run_profile_refresh,
    start_profile_refresh_scheduler,
)
from smart_notify.infrastructure.observability.logging import get_logger, setup_logging

logger = get_logger(__name__)

JobCoroutine = Callable[[], Awaitable[None]]


def _with_database(job: Callable[[], Awaitable[object]]) -> JobCoroutine:
    """Open the database pool around a job that needs it."""

    async def runner() -> None:
        await db_pool.initialize()
        try:
            await job()
        finally:
            await db_pool.close()

    runner.__name__ = getattr(job, "__name__", "job")
    return runner


JOB_REGISTRY: dict[str, JobCoroutine] = {
    "notification_profile_refresh": _with_database(start_profile_refresh_scheduler),
    "notification_profile_refresh_once": _with_database(run_profile_refresh),
}


def _resolve_job_name() -> str:
    """Pick the target job from CLI args or WORKER_JOB env variable."""
    if len(sys.argv) > 1:
        return sys.argv[1].strip().lower()
    return os.getenv("WORKER_JOB", "notification_profile_refresh").strip().lower()


async def run_worker(job_name: str | None = None) -> None:
    """Run the requested background job."""
    name = (job_name or _resolve_job_name()).strip().lower()
    if name not in JOB_REGISTRY:
        raise ValueError(
            f"Unknown worker job '{name}'. "
            f"Available jobs: {', '.join(sorted(JOB_REGISTRY.keys()))}"
        )

    logger.info("Starting background worker", job=name)
    await JOB_REGISTRY[name]()


def main() -> None:
    """CLI entrypoint."""
    setup_logging(log_level=settings.LOG_LEVEL)
    job_name = _resolve_job_name()
    asyncio.run(run_worker(job_name))


if __name__ == "__main__":
    main()
