"""
Smart notification routes.

All endpoints act on the authenticated caller; the analyze endpoint also
requires the body's user_id to match the token subject.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from smart_notify.auth.verify import auth_dependency
from smart_notify.features.smart_notifications.api.schemas import (
    ActivityRequest,
    ActivityResponse,
    AnalyticsResponse,
    AnalyzeRequest,
    FeedbackRequest,
    HistoryEntryResponse,
    HistoryResponse,
    ProfileResponse,
)
from smart_notify.features.smart_notifications.domain import (
    NotificationDecision,
    NotificationInputError,
    NotificationPermissionError,
    utcnow,
)
from smart_notify.features.smart_notifications.pipeline.suppression import ActivityTracker
from smart_notify.features.smart_notifications.services.analytics_service import (
    NotificationAnalyticsService,
    analytics_service,
)
from smart_notify.features.smart_notifications.services.history_service import (
    NotificationHistoryService,
    history_service,
)
from smart_notify.features.smart_notifications.services.pipeline_service import (
    NotificationPipelineService,
    notification_pipeline,
)
from smart_notify.features.smart_notifications.services.profile_learning_service import (
    ProfileLearningService,
    profile_learning_service,
)
from smart_notify.infrastructure.observability.logging import bind_request_context, get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])

_activity_tracker = ActivityTracker()


# Dependency providers, overridden in tests
def get_pipeline() -> NotificationPipelineService:
    return notification_pipeline


def get_history_service() -> NotificationHistoryService:
    return history_service


def get_profile_service() -> ProfileLearningService:
    return profile_learning_service


def get_analytics_service() -> NotificationAnalyticsService:
    return analytics_service


def get_activity_tracker() -> ActivityTracker:
    return _activity_tracker


def _require_user(claims: dict) -> str:
    user_id = claims.get("sub")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    bind_request_context(user_id=user_id)
    return user_id


@router.post("/analyze", response_model=NotificationDecision)
async def analyze_conversation(
    request: AnalyzeRequest,
    claims: dict = Depends(auth_dependency),
    pipeline: NotificationPipelineService = Depends(get_pipeline),
):
    """Decide whether the user should be notified about a conversation's unread messages."""
    user_id = _require_user(claims)
    if user_id != request.user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot analyze notifications for another user",
        )

    try:
        return await pipeline.analyze(request.user_id, request.conversation_id)

    except NotificationInputError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except NotificationPermissionError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e)) from e
    except Exception as e:
        logger.error(
            "Notification analysis failed",
            conversation_id=request.conversation_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to analyze notification",
        ) from e


@router.get("/history", response_model=HistoryResponse)
async def get_history(
    limit: int = Query(20, description="Entries to return, clamped to 1..100"),
    claims: dict = Depends(auth_dependency),
    history: NotificationHistoryService = Depends(get_history_service),
):
    user_id = _require_user(claims)
    entries = await history.list_history(user_id, limit)
    return HistoryResponse(
        entries=[HistoryEntryResponse.from_entry(e) for e in entries], count=len(entries)
    )


@router.post("/history/{entry_id}/feedback", response_model=HistoryEntryResponse)
async def submit_feedback(
    entry_id: str,
    request: FeedbackRequest,
    claims: dict = Depends(auth_dependency),
    history: NotificationHistoryService = Depends(get_history_service),
):
    user_id = _require_user(claims)
    try:
        entry = await history.submit_feedback(user_id, entry_id, request.feedback)
    except NotificationInputError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except NotificationPermissionError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e)) from e
    return HistoryEntryResponse.from_entry(entry)


@router.get("/analytics", response_model=AnalyticsResponse)
async def get_analytics(
    claims: dict = Depends(auth_dependency),
    analytics: NotificationAnalyticsService = Depends(get_analytics_service),
):
    user_id = _require_user(claims)
    return await analytics.get_analytics(user_id)


@router.post("/profile/refresh", response_model=ProfileResponse)
async def refresh_profile(
    claims: dict = Depends(auth_dependency),
    profiles: ProfileLearningService = Depends(get_profile_service),
):
    """Rebuild the caller's learned profile from their recent feedback."""
    user_id = _require_user(claims)
    profile = await profiles.refresh_profile(user_id)
    if profile is None:
        return ProfileResponse(updated=False)

    return ProfileResponse(
        updated=True,
        preferred_notification_rate=profile.preferred_notification_rate,
        learned_keywords=profile.learned_keywords,
        suppressed_topics=profile.suppressed_topics,
        accuracy=profile.accuracy,
    )


@router.post("/activity", response_model=ActivityResponse)
async def record_activity(
    request: ActivityRequest,
    claims: dict = Depends(auth_dependency),
    tracker: ActivityTracker = Depends(get_activity_tracker),
):
    """Record which conversation the caller is viewing (null when none)."""
    user_id = _require_user(claims)
    record = await tracker.record(user_id, request.conversation_id, utcnow())
    return ActivityResponse(
        user_id=record.user_id,
        active_conversation_id=record.active_conversation_id,
        timestamp=record.timestamp,
    )
