"""Domain events for the NotificationPreferences aggregate."""

from notifications.domain import notifications
from protean.fields import Boolean, DateTime, Identifier, String, Text


@notifications.event(part_of="NotificationPreferences")
class PreferencesCreated:
    """Default preferences were created for a user."""

    __version__ = 1

    preference_id: Identifier(required=True)
    user_id: Identifier(required=True)
    created_at: DateTime(required=True)


@notifications.event(part_of="NotificationPreferences")
class PreferencesUpdated:
    """One or more preference sections were replaced by a partial update."""

    __version__ = 1

    preference_id: Identifier(required=True)
    user_id: Identifier(required=True)
    sections: Text(required=True)  # JSON list of updated section names
    updated_at: DateTime(required=True)


@notifications.event(part_of="NotificationPreferences")
class CategoryPreferencesUpdated:
    """A category's channel/priority settings changed."""

    __version__ = 1

    preference_id: Identifier(required=True)
    user_id: Identifier(required=True)
    category: String(required=True)
    updated_at: DateTime(required=True)


@notifications.event(part_of="NotificationPreferences")
class EventOverrideSet:
    """A per-type override was added or replaced."""

    __version__ = 1

    preference_id: Identifier(required=True)
    user_id: Identifier(required=True)
    notification_type: String(required=True)
    enabled: Boolean(required=True)
    updated_at: DateTime(required=True)


@notifications.event(part_of="NotificationPreferences")
class EventOverrideRemoved:
    """A per-type override was removed."""

    __version__ = 1

    preference_id: Identifier(required=True)
    user_id: Identifier(required=True)
    notification_type: String(required=True)
    updated_at: DateTime(required=True)


@notifications.event(part_of="NotificationPreferences")
class EmailDigestUpdated:
    """Digest email settings changed."""

    __version__ = 1

    preference_id: Identifier(required=True)
    user_id: Identifier(required=True)
    enabled: Boolean(required=True)
    frequency: String(required=True)
    updated_at: DateTime(required=True)


@notifications.event(part_of="NotificationPreferences")
class QuietHoursUpdated:
    """Quiet hours window changed."""

    __version__ = 1

    preference_id: Identifier(required=True)
    user_id: Identifier(required=True)
    enabled: Boolean(required=True)
    start: String()
    end: String()
    updated_at: DateTime(required=True)


@notifications.event(part_of="NotificationPreferences")
class NotificationsToggled:
    """The user switched all notifications on or off."""

    __version__ = 1

    preference_id: Identifier(required=True)
    user_id: Identifier(required=True)
    enabled: Boolean(required=True)
    updated_at: DateTime(required=True)
