"""Digest aggregation: batch a user's undigested notifications into one email.

Every notification fetched for a window is marked digested, including the
ones the user's digest filters leave out, so re-running a window never
picks the same item up twice.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import structlog
from notifications.channel import get_channel, get_recipient_directory
from notifications.config import get_settings
from notifications.notification.notification import Notification, as_aware
from notifications.notification.types import DigestFrequency, NotificationChannel, priority_rank
from notifications.preference.preference import NotificationPreferences
from notifications.templates import get_template
from protean.utils.globals import current_domain

logger = structlog.get_logger(__name__)

LOOKBACK_HOURS = {
    DigestFrequency.HOURLY.value: 1,
    DigestFrequency.DAILY.value: 24,
    DigestFrequency.WEEKLY.value: 168,
}


@dataclass
class DigestRunReport:
    frequency: str
    users_processed: int = 0
    digests_sent: int = 0
    notifications_digested: int = 0
    failures: list[str] = field(default_factory=list)


def filter_for_digest(items: list[Notification], digest: dict) -> list[Notification]:
    """Apply the ``include_categories`` allow-list and ``min_priority`` floor."""
    include = digest.get("include_categories")
    min_priority = digest.get("min_priority")
    kept = []
    for n in items:
        if include and n.category not in include:
            continue
        if min_priority and priority_rank(n.priority) < priority_rank(min_priority):
            continue
        kept.append(n)
    return kept


def group_by_category(items: list[Notification]) -> dict[str, list[Notification]]:
    """Category → notifications, most urgent first and newest first within a priority."""
    groups: dict[str, list[Notification]] = {}
    for n in items:
        groups.setdefault(n.category, []).append(n)
    for group in groups.values():
        group.sort(key=lambda n: (priority_rank(n.priority), as_aware(n.created_at)), reverse=True)
    return groups


def digest_stats(items: list[Notification]) -> dict:
    return {
        "total": len(items),
        "by_category": dict(Counter(n.category for n in items)),
        "by_priority": dict(Counter(n.priority for n in items)),
    }


def _item(n: Notification) -> dict:
    return {
        "notification_id": str(n.id),
        "type": n.notification_type,
        "priority": n.priority,
        "title": n.title,
        "message": n.message,
        "created_at": n.created_at,
        "action": n.get_action(),
    }


def _send_digest(user_id: str, frequency: str, items: list[Notification], start: datetime, end: datetime) -> bool:
    to = get_recipient_directory().email_for(user_id)
    if not to:
        logger.warning("No email address for digest recipient", user_id=user_id)
        return False

    settings = get_settings()
    groups = group_by_category(items)
    rendered = get_template("digest").render(
        {
            "frequency": frequency,
            "groups": {category: [_item(n) for n in group] for category, group in groups.items()},
            "stats": digest_stats(items),
            "period_start": start,
            "period_end": end,
            "app_name": settings.app_name,
            "app_url": settings.app_url,
        }
    )
    result = get_channel(NotificationChannel.EMAIL.value).send(
        to=to,
        subject=rendered["subject"],
        body=rendered["body"],
        html_body=rendered["html_body"],
    )
    if result.get("status") != "sent":
        raise RuntimeError(result.get("error") or "Digest email not sent")
    return True


def process_user_digest(user_id: str, frequency: str, start: datetime, end: datetime) -> tuple[int, bool]:
    """Digest one user's window. Returns (notifications marked, email sent)."""
    notification_repo = current_domain.repository_for(Notification)
    fetched = notification_repo.get_undigested(user_id, start, end)
    if not fetched:
        return 0, False

    preferences = current_domain.repository_for(NotificationPreferences).get_or_create(user_id)
    kept = filter_for_digest(fetched, preferences.get_email_digest())

    marked = notification_repo.mark_digested([n.id for n in fetched], end)

    sent = False
    if kept:
        sent = _send_digest(user_id, frequency, kept, start, end)

    logger.info(
        "Digest processed",
        user_id=user_id,
        frequency=frequency,
        fetched=len(fetched),
        included=len(kept),
        sent=sent,
    )
    return marked, sent


def process_digests(frequency: str, lookback_hours: int | None = None, now: datetime | None = None) -> DigestRunReport:
    """Run one digest window for every user subscribed to ``frequency``."""
    if lookback_hours is None:
        lookback_hours = LOOKBACK_HOURS[frequency]
    end = as_aware(now) if now else datetime.now(UTC)
    start = end - timedelta(hours=lookback_hours)

    report = DigestRunReport(frequency=frequency)
    user_ids = current_domain.repository_for(NotificationPreferences).users_for_digest(frequency)

    for user_id in user_ids:
        report.users_processed += 1
        try:
            marked, sent = process_user_digest(user_id, frequency, start, end)
        except Exception as e:
            logger.error("Digest failed for user", user_id=user_id, frequency=frequency, error=str(e))
            report.failures.append(user_id)
            continue
        report.notifications_digested += marked
        report.digests_sent += int(sent)

    logger.info(
        "Digest run finished",
        frequency=frequency,
        users=report.users_processed,
        sent=report.digests_sent,
        digested=report.notifications_digested,
        failures=len(report.failures),
    )
    return report


def send_hourly_digests(now: datetime | None = None) -> DigestRunReport:
    return process_digests(DigestFrequency.HOURLY.value, now=now)


def send_daily_digests(now: datetime | None = None) -> DigestRunReport:
    return process_digests(DigestFrequency.DAILY.value, now=now)


def send_weekly_digests(now: datetime | None = None) -> DigestRunReport:
    return process_digests(DigestFrequency.WEEKLY.value, now=now)
