from datetime import UTC, datetime, time
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from smart_notify.features.smart_notifications.domain import NotificationPreferences
from smart_notify.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


def _parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def is_in_quiet_hours(preferences: NotificationPreferences, now: datetime) -> bool:
    """
    Whether ``now`` falls inside the user's quiet hours in their timezone.

    Windows where start > end wrap midnight (22:00-08:00). A bad timezone or
    time string counts as not quiet.
    """
    try:
        tz = ZoneInfo(preferences.timezone)
        start = _parse_hhmm(preferences.quiet_hours_start)
        end = _parse_hhmm(preferences.quiet_hours_end)
    except (ZoneInfoNotFoundError, ValueError, TypeError, AttributeError) as e:
        logger.warning(
            "Invalid quiet hours configuration",
            timezone=preferences.timezone,
            quiet_hours_start=preferences.quiet_hours_start,
            quiet_hours_end=preferences.quiet_hours_end,
            error=str(e),
        )
        return False

    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    local = now.astimezone(tz).time().replace(second=0, microsecond=0)

    if start == end:
        return False
    if start < end:
        return start <= local < end
    return local >= start or local < end
