"""Preference evaluation: should a user be notified, and through which channels.

Rules, first match wins:

1. Globally disabled preferences block everything.
2. An override for the event type replaces category rules entirely: a
   disabled override blocks, an enabled one supplies the channel set.
3. Otherwise the category must be enabled and the priority must reach the
   category's minimum.
4. Quiet hours block non-critical (or all, without ``allow_critical``)
   events inside the ``[start, end)`` window, wrapping past midnight when
   ``end < start``.
5. On the category path an active digest strips EMAIL from the channel set
   for anything below CRITICAL.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from zoneinfo import ZoneInfo

import structlog
from notifications.notification.types import (
    DigestFrequency,
    NotificationChannel,
    NotificationPriority,
    category_for,
    default_priority_for,
    priority_rank,
)
from notifications.preference.preference import NotificationPreferences, parse_time_of_day
from protean.utils.globals import current_domain

logger = structlog.get_logger(__name__)

_MINUTES_PER_DAY = 24 * 60


@dataclass(frozen=True)
class EvaluationResult:
    should_notify: bool
    channels: list[str] = field(default_factory=list)
    reason: str | None = None
    is_quiet_hours: bool = False
    is_digest_mode: bool = False


def _blocked(reason, **flags) -> EvaluationResult:
    return EvaluationResult(should_notify=False, channels=[], reason=reason, **flags)


def is_quiet_time(quiet_hours: dict, priority: str, timestamp: datetime) -> bool:
    """True when ``timestamp`` falls in the user's active quiet hours window."""
    if not quiet_hours.get("enabled"):
        return False

    if priority == NotificationPriority.CRITICAL.value and quiet_hours.get("allow_critical"):
        return False

    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=UTC)
    local = timestamp.astimezone(ZoneInfo(quiet_hours.get("timezone") or "UTC"))

    days = quiet_hours.get("days_of_week") or []
    # 0 = Sunday
    if days and local.isoweekday() % 7 not in days:
        return False

    start = parse_time_of_day(quiet_hours["start"])
    end = parse_time_of_day(quiet_hours["end"])
    minute = local.hour * 60 + local.minute

    if end < start:
        return start <= minute < _MINUTES_PER_DAY or 0 <= minute < end
    return start <= minute < end


def evaluate_preferences(preferences: dict, notification_type: str, priority: str, timestamp: datetime):
    """Evaluate a full preference document for one event. Pure function."""
    if not preferences.get("enabled", True):
        return _blocked("Notifications globally disabled")

    override = next(
        (o for o in preferences.get("event_overrides", []) if o.get("type") == notification_type),
        None,
    )

    if override is not None:
        if not override.get("enabled", True):
            return _blocked(f"Event type {notification_type} disabled by user")
        channels = list(override.get("channels", []))
        via_override = True
    else:
        category = category_for(notification_type)
        config = preferences.get("categories", {}).get(category)
        if not config or not config.get("enabled", True):
            return _blocked(f"Category {category} disabled by user")

        min_priority = config.get("min_priority")
        if min_priority and priority_rank(priority) < priority_rank(min_priority):
            return _blocked(f"Priority {priority} below minimum {min_priority}")
        channels = list(config.get("channels", []))
        via_override = False

    if is_quiet_time(preferences.get("quiet_hours", {}), priority, timestamp):
        return _blocked("Quiet hours active", is_quiet_hours=True)

    digest = preferences.get("email_digest", {})
    if (
        not via_override
        and digest.get("enabled")
        and digest.get("frequency") != DigestFrequency.IMMEDIATE.value
        and priority != NotificationPriority.CRITICAL.value
    ):
        return EvaluationResult(
            should_notify=True,
            channels=[c for c in channels if c != NotificationChannel.EMAIL.value],
            is_digest_mode=True,
        )

    return EvaluationResult(should_notify=True, channels=channels)


def evaluate(user_id, notification_type: str, priority: str | None = None, timestamp: datetime | None = None):
    """Resolve the user's preferences (creating defaults if needed) and evaluate."""
    priority = priority or default_priority_for(notification_type)
    timestamp = timestamp or datetime.now(UTC)

    repo = current_domain.repository_for(NotificationPreferences)
    preferences = repo.get_or_create(user_id)

    result = evaluate_preferences(preferences.to_dict(), notification_type, priority, timestamp)
    if not result.should_notify:
        logger.info(
            "Notification blocked by preferences",
            user_id=str(user_id),
            notification_type=notification_type,
            reason=result.reason,
        )
    return result
