"""
Weekly profile learning job.

Rebuilds every notification profile that has fresh feedback, then sleeps
until the next run.
"""

import asyncio
from typing import Any

from smart_notify.features.smart_notifications.services.profile_learning_service import (
    profile_learning_service,
)
from smart_notify.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

JOB_INTERVAL_HOURS = 24 * 7
ERROR_RETRY_SECONDS = 300


async def run_profile_refresh() -> dict[str, Any]:
    """One pass over all users with recent feedback."""
    logger.info("Profile refresh run starting")
    return await profile_learning_service.refresh_all_profiles()


async def start_profile_refresh_scheduler() -> None:
    """Run the refresh forever at a fixed weekly interval."""
    logger.info("Starting profile refresh scheduler", interval_hours=JOB_INTERVAL_HOURS)

    while True:
        try:
            stats = await run_profile_refresh()
            logger.info("Profile refresh cycle completed", **stats)
            await asyncio.sleep(JOB_INTERVAL_HOURS * 3600)

        except Exception as e:
            logger.error(
                "Error in profile refresh scheduler", error=str(e), error_type=type(e).__name__
            )
            # Avoid a tight error loop
            await asyncio.sleep(ERROR_RETRY_SECONDS)
