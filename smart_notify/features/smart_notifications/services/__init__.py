"""
Service layer for the smart notification feature.
"""

from .analytics_service import NotificationAnalyticsService, analytics_service
from .history_service import NotificationHistoryService, history_service
from .pipeline_service import (
    NotificationPipelineService,
    analyze_for_notification,
    notification_pipeline,
)
from .profile_learning_service import ProfileLearningService, profile_learning_service

__all__ = [
    "NotificationAnalyticsService",
    "NotificationHistoryService",
    "NotificationPipelineService",
    "ProfileLearningService",
    "analytics_service",
    "analyze_for_notification",
    "history_service",
    "notification_pipeline",
    "profile_learning_service",
]
