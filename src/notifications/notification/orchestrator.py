"""Delivery orchestration: evaluate, record, and fan out notifications.

``create_notification`` asks the preference evaluator first; a blocked
evaluation returns ``None`` and records nothing. Approved notifications
are persisted with every channel PENDING and then handed to ``deliver``,
which runs one ChannelSender per channel. A channel that fails (or whose
sender raises) is recorded as such and never stops the other channels.
"""

import dataclasses
from dataclasses import dataclass
from datetime import datetime

import structlog
from notifications.background import get_background_tasks
from notifications.notification.notification import Notification
from notifications.notification.senders import ChannelSender, Outcome, default_senders
from notifications.notification.types import (
    DeliveryStatus,
    NotificationChannel,
    NotificationPriority,
    NotificationType,
    default_priority_for,
)
from notifications.preference.evaluator import evaluate
from notifications.preference.preference import NotificationPreferences
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

logger = structlog.get_logger(__name__)

_PREVIEW_LENGTH = 100


@dataclass
class NotificationRequest:
    user_id: str | None
    notification_type: str
    title: str
    message: str
    priority: str | None = None
    category: str | None = None
    channels: list[str] | None = None
    data: dict | None = None
    action: dict | None = None
    expires_at: datetime | None = None
    group_key: str | None = None
    source_id: str | None = None
    source_type: str | None = None


# ---------------------------------------------------------------------------
# Create + deliver
# ---------------------------------------------------------------------------
def create_notification(request: NotificationRequest, timestamp: datetime | None = None) -> Notification | None:
    """Evaluate preferences, persist the notification and deliver it.

    Returns None when the user's preferences block the event.
    """
    if not request.user_id:
        raise ValidationError({"user_id": ["user_id is required"]})

    priority = request.priority or default_priority_for(request.notification_type)
    result = evaluate(request.user_id, request.notification_type, priority, timestamp)
    if not result.should_notify:
        return None

    channels = result.channels or request.channels or [NotificationChannel.IN_APP.value]

    notification = Notification.create(
        user_id=str(request.user_id),
        notification_type=request.notification_type,
        title=request.title,
        message=request.message,
        channels=channels,
        priority=priority,
        category=request.category,
        data=request.data,
        action=request.action,
        expires_at=request.expires_at,
        group_key=request.group_key,
        source_id=request.source_id,
        source_type=request.source_type,
    )
    repo = current_domain.repository_for(Notification)
    repo.add(notification)

    logger.info(
        "Notification created",
        notification_id=str(notification.id),
        user_id=str(request.user_id),
        notification_type=request.notification_type,
        channels=channels,
        digest_mode=result.is_digest_mode,
    )

    return deliver(notification)


def _apply(notification: Notification, channel: str, outcome: Outcome):
    current = notification.status_for(channel)["status"]
    if outcome.status == current and outcome.status != DeliveryStatus.FAILED.value:
        return
    notification.update_delivery_status(channel, outcome.status, error=outcome.error)


def deliver(
    notification: Notification,
    senders: dict[str, ChannelSender] | None = None,
    channels: list[str] | None = None,
) -> Notification:
    """Dispatch to every channel (or the given subset) and persist the outcomes."""
    senders = senders or default_senders()

    for channel in channels or notification.get_channels():
        sender = senders.get(channel)
        if sender is None:
            logger.warning("No sender for channel", channel=channel, notification_id=str(notification.id))
            continue

        try:
            outcome = sender.send(notification)
        except Exception as e:
            logger.error(
                "Channel delivery failed",
                notification_id=str(notification.id),
                channel=channel,
                error=str(e),
            )
            outcome = Outcome.failed(str(e))

        try:
            _apply(notification, channel, outcome)
        except ValidationError as e:
            logger.warning(
                "Delivery status not updated",
                notification_id=str(notification.id),
                channel=channel,
                error=str(e),
            )

    current_domain.repository_for(Notification).add(notification)
    return notification


# ---------------------------------------------------------------------------
# Fan-out
# ---------------------------------------------------------------------------
def create_bulk_notifications(user_ids, request: NotificationRequest) -> list[Notification]:
    """Create the same notification for several users; blocked users are skipped."""
    user_ids = list(user_ids)
    created = []
    for user_id in user_ids:
        try:
            notification = create_notification(dataclasses.replace(request, user_id=str(user_id)))
        except Exception as e:
            logger.error(
                "Bulk notification failed for user",
                user_id=str(user_id),
                notification_type=request.notification_type,
                error=str(e),
            )
            continue
        if notification is not None:
            created.append(notification)

    logger.info(
        "Bulk notifications created",
        notification_type=request.notification_type,
        requested=len(user_ids),
        created=len(created),
    )
    return created


def broadcast_notification(request: NotificationRequest, exclude_user_ids=()) -> list[Notification]:
    """Notify every user with notifications enabled, minus ``exclude_user_ids``."""
    excluded = {str(u) for u in exclude_user_ids}
    repo = current_domain.repository_for(NotificationPreferences)
    user_ids = [u for u in repo.enabled_user_ids() if u not in excluded]
    return create_bulk_notifications(user_ids, request)


# ---------------------------------------------------------------------------
# Event helpers
# ---------------------------------------------------------------------------
_CANDIDATE_CONTENT = {
    NotificationType.CANDIDATE_APPLIED.value: ("New Candidate Application", "{name} has applied for a position"),
    NotificationType.CANDIDATE_STATUS_CHANGED.value: ("Candidate Status Updated", "Status changed for candidate {name}"),
    NotificationType.CANDIDATE_DOCUMENT_UPLOADED.value: ("Document Uploaded", "New document uploaded for {name}"),
    NotificationType.CANDIDATE_AI_ANALYSIS_COMPLETE.value: ("AI Analysis Complete", "Analysis completed for {name}"),
}

_JOB_CONTENT = {
    NotificationType.JOB_POSTED.value: ("New Job Posted", 'Job "{name}" has been posted'),
    NotificationType.JOB_APPLICATION_RECEIVED.value: ("New Application", 'New application received for "{name}"'),
    NotificationType.JOB_UPDATED.value: ("Job Updated", 'Job "{name}" has been updated'),
    NotificationType.JOB_CLOSED.value: ("Job Closed", 'Job "{name}" has been closed'),
}


def notify_candidate_event(notification_type, user_id, candidate_id, candidate_name, extra=None):
    title, message = _CANDIDATE_CONTENT.get(notification_type, ("Candidate Update", "Update for candidate {name}"))
    return create_notification(
        NotificationRequest(
            user_id=user_id,
            notification_type=notification_type,
            title=title,
            message=message.format(name=candidate_name),
            data={"candidate_id": candidate_id, "candidate_name": candidate_name, **(extra or {})},
            action={"label": "View Candidate", "url": f"/candidates/{candidate_id}"},
            source_id=str(candidate_id),
            source_type="candidate",
        )
    )


def notify_job_event(notification_type, user_id, job_id, job_name, extra=None):
    title, message = _JOB_CONTENT.get(notification_type, ("Job Update", "Update for job {name}"))
    return create_notification(
        NotificationRequest(
            user_id=user_id,
            notification_type=notification_type,
            title=title,
            message=message.format(name=job_name),
            data={"job_id": job_id, "job_name": job_name, **(extra or {})},
            action={"label": "View Job", "url": f"/jobs/{job_id}"},
            source_id=str(job_id),
            source_type="job",
        )
    )


def notify_security_event(notification_type, user_id, message, extra=None):
    """Security alerts are always CRITICAL and go to both in-app and email."""
    return create_notification(
        NotificationRequest(
            user_id=user_id,
            notification_type=notification_type,
            title="Security Alert",
            message=message,
            priority=NotificationPriority.CRITICAL.value,
            channels=[NotificationChannel.IN_APP.value, NotificationChannel.EMAIL.value],
            data=extra or {},
        )
    )


def _preview(text: str) -> str:
    return text[:_PREVIEW_LENGTH] + ("..." if len(text) > _PREVIEW_LENGTH else "")


def notify_comment_mention(mentioned_user_ids, comment: dict):
    """Queue COMMENT_MENTION notifications without blocking the comment write.

    ``comment`` carries comment_id, author_id, author_name, text,
    entity_type and entity_id.
    """
    tasks = get_background_tasks()
    futures = []
    for user_id in mentioned_user_ids:
        request = NotificationRequest(
            user_id=str(user_id),
            notification_type=NotificationType.COMMENT_MENTION.value,
            title="You were mentioned in a comment",
            message=f'{comment["author_name"]} mentioned you in a comment: "{_preview(comment["text"])}"',
            action={"label": "View Comment", "url": f"/comments/{comment['comment_id']}"},
            data={
                "comment_id": comment["comment_id"],
                "author_id": comment["author_id"],
                "author_name": comment["author_name"],
                "entity_type": comment.get("entity_type"),
                "entity_id": comment.get("entity_id"),
                "comment_preview": comment["text"][:200],
            },
            source_id=comment["comment_id"],
            source_type="comment",
        )
        futures.append(tasks.submit("comment-mention", create_notification, request))
    return futures


def notify_comment_reply(comment: dict, parent_comment: dict):
    """Queue a COMMENT_REPLY notification for the parent comment's author.

    Replying to your own comment notifies nobody.
    """
    if comment["author_id"] == parent_comment["author_id"]:
        return None

    request = NotificationRequest(
        user_id=str(parent_comment["author_id"]),
        notification_type=NotificationType.COMMENT_REPLY.value,
        title="New reply to your comment",
        message=f'{comment["author_name"]} replied to your comment: "{_preview(comment["text"])}"',
        action={"label": "View Reply", "url": f"/comments/{comment['comment_id']}"},
        data={
            "comment_id": comment["comment_id"],
            "parent_comment_id": parent_comment["comment_id"],
            "author_id": comment["author_id"],
            "author_name": comment["author_name"],
            "entity_type": comment.get("entity_type"),
            "entity_id": comment.get("entity_id"),
            "comment_preview": comment["text"][:200],
            "parent_comment_preview": parent_comment["text"][:200],
        },
        source_id=comment["comment_id"],
        source_type="comment",
    )
    return get_background_tasks().submit("comment-reply", create_notification, request)
