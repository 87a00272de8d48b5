"""Notification aggregate (CQRS): one message to one user over a set of channels.

A notification exists only when preference evaluation approved it. Its
``channels`` hold the evaluated channel set and ``delivery_status`` keeps
one entry per channel, keyed by the lowercase channel key::

    {"inApp": {"status": "DELIVERED", "retryCount": 0, "deliveredAt": "..."},
     "email": {"status": "PENDING", "retryCount": 0}}

Per-channel state machine:
    PENDING → SENT → DELIVERED
    PENDING → DELIVERED
    PENDING → FAILED
    SENT → FAILED
    FAILED → (retry) → PENDING | SENT | DELIVERED | FAILED
"""

import json
from datetime import UTC, datetime

from notifications.domain import notifications
from notifications.notification.events import (
    ChannelDeliveryUpdated,
    NotificationArchived,
    NotificationCreated,
    NotificationDigested,
    NotificationRead,
)
from notifications.notification.types import (
    DeliveryStatus,
    NotificationCategory,
    NotificationChannel,
    NotificationPriority,
    NotificationType,
    category_for,
    channel_key,
    default_priority_for,
    values_of,
)
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Identifier, String, Text

# ---------------------------------------------------------------------------
# State Machine
# ---------------------------------------------------------------------------
_VALID_TRANSITIONS = {
    DeliveryStatus.PENDING: {
        DeliveryStatus.SENT,
        DeliveryStatus.DELIVERED,
        DeliveryStatus.FAILED,
    },
    DeliveryStatus.SENT: {
        DeliveryStatus.DELIVERED,
        DeliveryStatus.FAILED,
    },
    DeliveryStatus.FAILED: {
        DeliveryStatus.PENDING,  # Via retry
        DeliveryStatus.SENT,
        DeliveryStatus.DELIVERED,
        DeliveryStatus.FAILED,
    },
    DeliveryStatus.DELIVERED: set(),  # Terminal
}


def as_aware(value: datetime | None) -> datetime | None:
    """Treat naive datetimes coming back from storage as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@notifications.aggregate
class Notification:
    """A notification for one user, tracked per delivery channel."""

    user_id: Identifier(required=True)

    # Classification
    notification_type: String(choices=NotificationType, required=True)
    category: String(choices=NotificationCategory, required=True)
    priority: String(choices=NotificationPriority, required=True)

    # Content
    title: String(required=True, max_length=500)
    message: Text(required=True)
    data: Text()  # JSON payload
    action_label: String(max_length=100)
    action_url: String(max_length=1000)

    # Delivery
    channels: Text(required=True)  # JSON list of channels
    delivery_status: Text(required=True)  # JSON map keyed by channel key

    # Reader state
    is_read: Boolean(default=False)
    read_at: DateTime()
    is_archived: Boolean(default=False)
    archived_at: DateTime()

    # Correlation
    group_key: String(max_length=200)
    source_id: String(max_length=200)
    source_type: String(max_length=100)

    # Lifecycle
    expires_at: DateTime()
    digested_at: DateTime()
    created_at: DateTime()
    updated_at: DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        user_id,
        notification_type,
        title,
        message,
        channels,
        priority=None,
        category=None,
        data=None,
        action=None,
        expires_at=None,
        group_key=None,
        source_id=None,
        source_type=None,
    ):
        """Record a new notification with every channel PENDING."""
        channels = list(dict.fromkeys(channels or []))
        if not channels:
            raise ValidationError({"channels": ["At least one channel is required"]})
        unknown = [c for c in channels if c not in values_of(NotificationChannel)]
        if unknown:
            raise ValidationError({"channels": [f"Unknown channel: {', '.join(unknown)}"]})

        now = datetime.now(UTC)
        category = category or category_for(notification_type)
        priority = priority or default_priority_for(notification_type)
        action = action or {}

        notification = cls(
            user_id=user_id,
            notification_type=notification_type,
            category=category,
            priority=priority,
            title=title,
            message=message,
            data=json.dumps(data or {}),
            action_label=action.get("label"),
            action_url=action.get("url"),
            channels=json.dumps(channels),
            delivery_status=json.dumps(
                {channel_key(c): {"status": DeliveryStatus.PENDING.value, "retryCount": 0} for c in channels}
            ),
            is_read=False,
            is_archived=False,
            group_key=group_key,
            source_id=source_id,
            source_type=source_type,
            expires_at=expires_at,
            created_at=now,
            updated_at=now,
        )

        notification.raise_(
            NotificationCreated(
                notification_id=str(notification.id),
                user_id=str(user_id),
                notification_type=notification_type,
                category=category,
                priority=priority,
                channels=json.dumps(channels),
                created_at=now,
            )
        )

        return notification

    # -------------------------------------------------------------------
    # Readers
    # -------------------------------------------------------------------
    def get_channels(self) -> list[str]:
        return json.loads(self.channels) if self.channels else []

    def get_data(self) -> dict:
        return json.loads(self.data) if self.data else {}

    def get_action(self) -> dict | None:
        if not self.action_label and not self.action_url:
            return None
        return {"label": self.action_label, "url": self.action_url}

    def get_delivery_status(self) -> dict:
        return json.loads(self.delivery_status) if self.delivery_status else {}

    def status_for(self, channel: str) -> dict:
        """Delivery entry for a channel (``IN_APP``, ``EMAIL`` ...)."""
        entry = self.get_delivery_status().get(channel_key(channel))
        if entry is None:
            raise ValidationError({"delivery_status": [f"Channel {channel} is not part of this notification"]})
        return entry

    def is_expired(self, as_of: datetime | None = None) -> bool:
        expires_at = as_aware(self.expires_at)
        return expires_at is not None and expires_at <= (as_of or datetime.now(UTC))

    def to_dict(self) -> dict:
        return {
            "notification_id": str(self.id),
            "user_id": str(self.user_id),
            "notification_type": self.notification_type,
            "category": self.category,
            "priority": self.priority,
            "title": self.title,
            "message": self.message,
            "data": self.get_data(),
            "action": self.get_action(),
            "channels": self.get_channels(),
            "delivery_status": self.get_delivery_status(),
            "is_read": bool(self.is_read),
            "is_archived": bool(self.is_archived),
            "group_key": self.group_key,
            "source_id": self.source_id,
            "source_type": self.source_type,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
            "digested_at": self.digested_at,
        }

    # -------------------------------------------------------------------
    # Delivery tracking
    # -------------------------------------------------------------------
    def update_delivery_status(self, channel: str, status: str, error: str | None = None, at=None):
        """Move one channel's delivery entry to ``status``.

        SENT stamps ``sentAt``, DELIVERED stamps ``deliveredAt``, FAILED
        records the error, stamps ``lastRetryAt`` and bumps ``retryCount``.
        """
        entry = self.status_for(channel)
        current = DeliveryStatus(entry["status"])
        target = DeliveryStatus(status)
        if target not in _VALID_TRANSITIONS[current]:
            raise ValidationError(
                {"delivery_status": [f"Cannot transition {channel} from {current.value} to {target.value}"]}
            )

        now = at or datetime.now(UTC)
        entry["status"] = target.value
        if target == DeliveryStatus.SENT:
            entry["sentAt"] = now.isoformat()
        elif target == DeliveryStatus.DELIVERED:
            entry["deliveredAt"] = now.isoformat()
            entry.pop("error", None)
        elif target == DeliveryStatus.FAILED:
            entry["error"] = error or "Unknown delivery error"
            entry["lastRetryAt"] = now.isoformat()
            entry["retryCount"] = entry.get("retryCount", 0) + 1

        statuses = self.get_delivery_status()
        statuses[channel_key(channel)] = entry
        self.delivery_status = json.dumps(statuses)
        self.updated_at = now

        self.raise_(
            ChannelDeliveryUpdated(
                notification_id=str(self.id),
                user_id=str(self.user_id),
                channel=channel,
                status=target.value,
                retry_count=entry["retryCount"],
                error=entry.get("error"),
                updated_at=now,
            )
        )

    def mark_channel_sent(self, channel: str):
        self.update_delivery_status(channel, DeliveryStatus.SENT.value)

    def mark_channel_delivered(self, channel: str):
        self.update_delivery_status(channel, DeliveryStatus.DELIVERED.value)

    def mark_channel_failed(self, channel: str, error: str):
        self.update_delivery_status(channel, DeliveryStatus.FAILED.value, error=error)

    # -------------------------------------------------------------------
    # Reader state
    # -------------------------------------------------------------------
    def mark_read(self):
        if self.is_read:
            return
        now = datetime.now(UTC)
        self.is_read = True
        self.read_at = now
        self.updated_at = now

        self.raise_(
            NotificationRead(
                notification_id=str(self.id),
                user_id=str(self.user_id),
                read_at=now,
            )
        )

    def archive(self):
        if self.is_archived:
            return
        now = datetime.now(UTC)
        self.is_archived = True
        self.archived_at = now
        self.updated_at = now

        self.raise_(
            NotificationArchived(
                notification_id=str(self.id),
                user_id=str(self.user_id),
                archived_at=now,
            )
        )

    def mark_digested(self, digested_at=None):
        """Stamp ``digested_at`` once; later calls leave the first stamp."""
        if self.digested_at is not None:
            return
        now = digested_at or datetime.now(UTC)
        self.digested_at = now
        self.updated_at = now

        self.raise_(
            NotificationDigested(
                notification_id=str(self.id),
                user_id=str(self.user_id),
                digested_at=now,
            )
        )
