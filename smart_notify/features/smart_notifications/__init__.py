"""
Smart notification feature package.

Decides whether unread chat messages deserve a push notification and
delivers it. Domain models, repositories, pipeline stages, services, jobs
and the API router for that flow live together here.
"""

# Re-export the primary building blocks for easy access.
from .api.router import router as notifications_router  # noqa: F401
from .domain.models import NotificationDecision, NotificationPreferences  # noqa: F401
from .jobs.profile_refresh_job import start_profile_refresh_scheduler  # noqa: F401
from .services.pipeline_service import (  # noqa: F401
    NotificationPipelineService,
    notification_pipeline,
)
