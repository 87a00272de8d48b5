"""Channel senders: one delivery strategy per notification channel.

A sender turns a notification into an ``Outcome``: the delivery status to
record for its channel plus an error message on failure. Work that has
not happened yet, such as email waiting for a digest, reports PENDING.
Senders report transport problems through the outcome; the orchestrator
also converts anything they raise.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

import structlog
from notifications.background import get_background_tasks
from notifications.channel import get_channel, get_recipient_directory
from notifications.email.queue import EmailJob, get_email_queue
from notifications.notification.notification import Notification
from notifications.notification.types import (
    DeliveryStatus,
    DigestFrequency,
    NotificationChannel,
    NotificationPriority,
)
from notifications.preference.preference import NotificationPreferences
from protean.utils.globals import current_domain

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Outcome:
    status: str
    error: str | None = None

    @classmethod
    def delivered(cls):
        return cls(DeliveryStatus.DELIVERED.value)

    @classmethod
    def sent(cls):
        return cls(DeliveryStatus.SENT.value)

    @classmethod
    def failed(cls, error: str):
        return cls(DeliveryStatus.FAILED.value, error=error)

    @classmethod
    def pending(cls):
        return cls(DeliveryStatus.PENDING.value)


class ChannelSender(ABC):
    channel: str

    @abstractmethod
    def send(self, notification: Notification) -> Outcome: ...


def realtime_payload(notification: Notification) -> dict:
    return {
        "notification_id": str(notification.id),
        "type": notification.notification_type,
        "category": notification.category,
        "priority": notification.priority,
        "title": notification.title,
        "message": notification.message,
        "data": notification.get_data(),
        "action": notification.get_action(),
        "created_at": notification.created_at.isoformat() if notification.created_at else None,
    }


def _push_to_user(user_id: str, payload: dict):
    result = get_channel(NotificationChannel.IN_APP.value).push(user_id, payload)
    if result.get("status") != "pushed":
        raise RuntimeError(result.get("error") or "Realtime push failed")


class InAppSender(ChannelSender):
    """Best-effort realtime push. There is no receipt, so the channel counts as delivered."""

    channel = NotificationChannel.IN_APP.value

    def send(self, notification: Notification) -> Outcome:
        get_background_tasks().submit(
            "realtime-push",
            _push_to_user,
            str(notification.user_id),
            realtime_payload(notification),
        )
        return Outcome.delivered()


class EmailSender(ChannelSender):
    """Immediate email through the dispatch queue, unless the user batches into digests."""

    channel = NotificationChannel.EMAIL.value

    def __init__(self, queue=None):
        self._queue = queue

    @property
    def queue(self):
        return self._queue or get_email_queue()

    def _sends_immediately(self, notification: Notification) -> bool:
        if notification.priority == NotificationPriority.CRITICAL.value:
            return True
        repo = current_domain.repository_for(NotificationPreferences)
        digest = repo.get_or_create(notification.user_id).get_email_digest()
        return not digest.get("enabled") or digest.get("frequency") == DigestFrequency.IMMEDIATE.value

    def send(self, notification: Notification) -> Outcome:
        if not self._sends_immediately(notification):
            logger.info("Email deferred to digest", notification_id=str(notification.id))
            return Outcome.pending()

        data = notification.get_data()
        to = data.get("email") or get_recipient_directory().email_for(str(notification.user_id))
        job = EmailJob(
            notification_id=str(notification.id),
            user_id=str(notification.user_id),
            to=to,
            title=notification.title,
            message=notification.message,
            notification_type=notification.notification_type,
            priority=notification.priority,
            data=data,
            action=notification.get_action(),
        )

        result = self.queue.queue_email(job)
        if result.get("job_id") or result.get("sent"):
            return Outcome.sent()

        logger.warning("Email not sent, left pending", notification_id=str(notification.id))
        return Outcome.pending()


class WebhookSender(ChannelSender):
    channel = NotificationChannel.WEBHOOK.value

    def send(self, notification: Notification) -> Outcome:
        payload = {
            "event": notification.notification_type,
            "notification": {
                "notification_id": str(notification.id),
                "user_id": str(notification.user_id),
                "type": notification.notification_type,
                "category": notification.category,
                "priority": notification.priority,
                "title": notification.title,
                "message": notification.message,
                "data": notification.get_data(),
            },
        }
        result = get_channel(self.channel).deliver(notification.notification_type, payload)
        if result.get("status") == "delivered":
            return Outcome.delivered()
        return Outcome.failed(result.get("error") or "Webhook delivery failed")


class ReservedSender(ChannelSender):
    """Channels without a transport yet; their entries stay PENDING."""

    def __init__(self, channel: str):
        self.channel = channel

    def send(self, notification: Notification) -> Outcome:
        return Outcome.pending()


def default_senders() -> dict[str, ChannelSender]:
    return {
        NotificationChannel.IN_APP.value: InAppSender(),
        NotificationChannel.EMAIL.value: EmailSender(),
        NotificationChannel.PUSH.value: ReservedSender(NotificationChannel.PUSH.value),
        NotificationChannel.SMS.value: ReservedSender(NotificationChannel.SMS.value),
        NotificationChannel.WEBHOOK.value: WebhookSender(),
    }
