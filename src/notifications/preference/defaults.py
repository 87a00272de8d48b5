"""Default notification preferences and the field-by-field merge."""

import copy

from notifications.notification.types import (
    DigestFrequency,
    NotificationCategory,
    NotificationChannel,
    NotificationPriority,
)

_IN_APP = NotificationChannel.IN_APP.value
_EMAIL = NotificationChannel.EMAIL.value


def default_preferences() -> dict:
    """A fresh copy of the preferences every new user starts with."""
    return {
        "enabled": True,
        "default_channels": {
            "in_app": True,
            "email": True,
            "push": False,
            "sms": False,
        },
        "categories": {
            NotificationCategory.HR_ACTIVITIES.value: {
                "enabled": True,
                "channels": [_IN_APP, _EMAIL],
                "min_priority": NotificationPriority.LOW.value,
            },
            NotificationCategory.SECURITY_ALERTS.value: {
                "enabled": True,
                "channels": [_IN_APP, _EMAIL],
                "min_priority": NotificationPriority.MEDIUM.value,
            },
            NotificationCategory.SYSTEM_UPDATES.value: {
                "enabled": True,
                "channels": [_IN_APP],
                "min_priority": NotificationPriority.MEDIUM.value,
            },
            NotificationCategory.COMMENTS.value: {
                "enabled": True,
                "channels": [_IN_APP],
                "min_priority": NotificationPriority.LOW.value,
            },
            NotificationCategory.INTERVIEWS.value: {
                "enabled": True,
                "channels": [_IN_APP, _EMAIL],
                "min_priority": NotificationPriority.MEDIUM.value,
            },
            NotificationCategory.ADMIN.value: {
                "enabled": True,
                "channels": [_IN_APP, _EMAIL],
                "min_priority": NotificationPriority.MEDIUM.value,
            },
        },
        "event_overrides": [],
        "email_digest": {
            "enabled": False,
            "frequency": DigestFrequency.DAILY.value,
            "time": "09:00",
            "day_of_week": None,
            "timezone": "UTC",
            "include_categories": [
                NotificationCategory.HR_ACTIVITIES.value,
                NotificationCategory.INTERVIEWS.value,
            ],
            "min_priority": NotificationPriority.LOW.value,
        },
        "quiet_hours": {
            "enabled": False,
            "start": "22:00",
            "end": "08:00",
            "timezone": "UTC",
            "allow_critical": True,
            "days_of_week": [],
        },
        "batch_notifications": True,
        "sound_enabled": True,
        "desktop_notifications": True,
    }


def merge_defaults(partial: dict | None, defaults: dict) -> dict:
    """Overlay ``partial`` onto ``defaults`` without mutating either.

    Nested dicts merge key by key; lists and scalars from ``partial``
    replace the default outright. ``None`` in ``partial`` keeps the default.
    """
    merged = copy.deepcopy(defaults)
    for key, value in (partial or {}).items():
        if value is None:
            continue
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_defaults(value, merged[key])
        else:
            merged[key] = copy.deepcopy(value)
    return merged
