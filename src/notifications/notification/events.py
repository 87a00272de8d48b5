"""Domain events for the Notification aggregate."""

from notifications.domain import notifications
from protean.fields import DateTime, Identifier, Integer, String, Text


@notifications.event(part_of="Notification")
class NotificationCreated:
    """A notification passed preference evaluation and was recorded."""

    __version__ = 1

    notification_id: Identifier(required=True)
    user_id: Identifier(required=True)
    notification_type: String(required=True)
    category: String(required=True)
    priority: String(required=True)
    channels: Text(required=True)  # JSON list
    created_at: DateTime(required=True)


@notifications.event(part_of="Notification")
class ChannelDeliveryUpdated:
    """A channel's delivery status changed."""

    __version__ = 1

    notification_id: Identifier(required=True)
    user_id: Identifier(required=True)
    channel: String(required=True)
    status: String(required=True)
    retry_count: Integer(required=True)
    error: String()
    updated_at: DateTime(required=True)


@notifications.event(part_of="Notification")
class NotificationRead:
    """The recipient read the notification."""

    __version__ = 1

    notification_id: Identifier(required=True)
    user_id: Identifier(required=True)
    read_at: DateTime(required=True)


@notifications.event(part_of="Notification")
class NotificationArchived:
    """The recipient archived the notification."""

    __version__ = 1

    notification_id: Identifier(required=True)
    user_id: Identifier(required=True)
    archived_at: DateTime(required=True)


@notifications.event(part_of="Notification")
class NotificationDigested:
    """The notification was included in (or filtered out of) a digest run."""

    __version__ = 1

    notification_id: Identifier(required=True)
    user_id: Identifier(required=True)
    digested_at: DateTime(required=True)
