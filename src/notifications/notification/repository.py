"""Custom repository for Notification: filtered queries and bulk reader actions.

Equality and substring filters go to the DAO; date ranges, list filters,
JSON delivery state and ordering are applied in Python on the narrowed
result so the same code runs against every provider.
"""

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog
from notifications.domain import notifications
from notifications.notification.notification import Notification, as_aware
from notifications.notification.types import DeliveryStatus, channel_key, priority_rank
from notifications.utils.paging import iterate_all
from protean.exceptions import ObjectNotFoundError

logger = structlog.get_logger(__name__)

_EPOCH = datetime.min.replace(tzinfo=UTC)


@dataclass
class NotificationFilter:
    """Criteria for ``NotificationRepository.find``.

    List-valued criteria match any of the values. Pages start at 1.
    """

    user_id: str | None = None
    notification_type: str | list[str] | None = None
    category: str | list[str] | None = None
    priority: str | list[str] | None = None
    is_read: bool | None = None
    is_archived: bool | None = None
    group_key: str | None = None
    source_id: str | None = None
    source_type: str | None = None
    created_after: datetime | None = None
    created_before: datetime | None = None
    expires_after: datetime | None = None
    expires_before: datetime | None = None
    page: int = 1
    limit: int = 20
    sort_by: str = "created_at"
    sort_order: str = "desc"


@dataclass
class NotificationPage:
    items: list
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages


@dataclass
class NotificationSummary:
    unread_count: int = 0
    total_count: int = 0
    count_by_category: dict = field(default_factory=dict)
    count_by_priority: dict = field(default_factory=dict)
    latest_notification: Notification | None = None
    oldest_unread: Notification | None = None


def _status_fragment(channel: str, status: str) -> str:
    """Leading text of a channel's entry in the serialized ``delivery_status``."""
    return json.dumps({channel_key(channel): {"status": status}})[1:-2]


def _matches(value, expected) -> bool:
    if expected is None:
        return True
    if isinstance(expected, (list, tuple, set)):
        return value in expected
    return value == expected


def _in_range(value, after, before) -> bool:
    if after is None and before is None:
        return True
    value = as_aware(value)
    if value is None:
        return False
    if after is not None and value < as_aware(after):
        return False
    if before is not None and value > as_aware(before):
        return False
    return True


def _sort_key(sort_by):
    if sort_by == "priority":
        return lambda n: priority_rank(n.priority)

    def key(n):
        value = getattr(n, sort_by)
        if isinstance(value, datetime):
            return as_aware(value)
        return _EPOCH if value is None and sort_by.endswith("_at") else value

    return key


def _by_urgency_then_age(n):
    return (-priority_rank(n.priority), as_aware(n.created_at))


@notifications.repository(part_of=Notification)
class NotificationRepository:
    # -------------------------------------------------------------------
    # Scans
    # -------------------------------------------------------------------
    def _scan(self, **equality):
        query = self._dao.query
        if equality:
            query = query.filter(**equality)
        return iterate_all(query.order_by("created_at"))

    def for_user(self, user_id) -> list[Notification]:
        return list(self._scan(user_id=str(user_id)))

    # -------------------------------------------------------------------
    # Find
    # -------------------------------------------------------------------
    def find(self, criteria: NotificationFilter | None = None) -> NotificationPage:
        criteria = criteria or NotificationFilter()
        equality = {}
        if criteria.user_id is not None:
            equality["user_id"] = str(criteria.user_id)

        matched = [
            n
            for n in self._scan(**equality)
            if _matches(n.notification_type, criteria.notification_type)
            and _matches(n.category, criteria.category)
            and _matches(n.priority, criteria.priority)
            and _matches(bool(n.is_read), criteria.is_read)
            and _matches(bool(n.is_archived), criteria.is_archived)
            and _matches(n.group_key, criteria.group_key)
            and _matches(n.source_id, criteria.source_id)
            and _matches(n.source_type, criteria.source_type)
            and _in_range(n.created_at, criteria.created_after, criteria.created_before)
            and _in_range(n.expires_at, criteria.expires_after, criteria.expires_before)
        ]

        matched.sort(key=_sort_key(criteria.sort_by), reverse=criteria.sort_order == "desc")

        page = max(criteria.page, 1)
        start = (page - 1) * criteria.limit
        return NotificationPage(
            items=matched[start : start + criteria.limit],
            total=len(matched),
            page=page,
            limit=criteria.limit,
        )

    def get_for_display(self, user_id, include_archived=False, page=1, limit=20) -> NotificationPage:
        """Newest-first page of a user's non-expired notifications."""
        now = datetime.now(UTC)
        visible = [
            n
            for n in self._scan(user_id=str(user_id))
            if (include_archived or not n.is_archived) and not n.is_expired(now)
        ]
        visible.sort(key=lambda n: as_aware(n.created_at), reverse=True)
        start = (max(page, 1) - 1) * limit
        return NotificationPage(items=visible[start : start + limit], total=len(visible), page=max(page, 1), limit=limit)

    def get_owned(self, notification_id, user_id) -> Notification:
        """Load a notification, treating another user's record as missing."""
        notification = self.get(notification_id)
        if str(notification.user_id) != str(user_id):
            raise ObjectNotFoundError(f"Notification {notification_id} not found for user {user_id}")
        return notification

    # -------------------------------------------------------------------
    # Summary
    # -------------------------------------------------------------------
    def get_summary(self, user_id) -> NotificationSummary:
        """Counts over the user's non-archived notifications."""
        summary = NotificationSummary()
        active = [n for n in self._scan(user_id=str(user_id)) if not n.is_archived]

        for n in active:
            summary.total_count += 1
            summary.count_by_category[n.category] = summary.count_by_category.get(n.category, 0) + 1
            summary.count_by_priority[n.priority] = summary.count_by_priority.get(n.priority, 0) + 1
            if not n.is_read:
                summary.unread_count += 1

        if active:
            summary.latest_notification = max(active, key=lambda n: as_aware(n.created_at))
            unread = [n for n in active if not n.is_read]
            if unread:
                summary.oldest_unread = min(unread, key=lambda n: as_aware(n.created_at))
        return summary

    def get_unread_count(self, user_id) -> int:
        return sum(1 for n in self._scan(user_id=str(user_id)) if not n.is_read and not n.is_archived)

    # -------------------------------------------------------------------
    # Delivery queries
    # -------------------------------------------------------------------
    def _with_channel_status(self, channel, status):
        candidates = self._scan(
            channels__contains=json.dumps(channel),
            delivery_status__contains=_status_fragment(channel, status),
        )
        for n in candidates:
            if channel not in n.get_channels():
                continue
            entry = n.status_for(channel)
            if entry["status"] == status:
                yield n, entry

    def get_pending_for_channel(self, channel: str, limit: int = 100) -> list[Notification]:
        pending = [n for n, _ in self._with_channel_status(channel, DeliveryStatus.PENDING.value)]
        pending.sort(key=_by_urgency_then_age)
        return pending[:limit]

    def get_failed_for_retry(self, channel: str, max_retries: int = 3, limit: int = 100) -> list[Notification]:
        failed = [
            n
            for n, entry in self._with_channel_status(channel, DeliveryStatus.FAILED.value)
            if entry.get("retryCount", 0) < max_retries
        ]
        failed.sort(key=_by_urgency_then_age)
        return failed[:limit]

    def update_delivery_status(self, notification_id, channel, status, error=None) -> Notification:
        notification = self.get(notification_id)
        notification.update_delivery_status(channel, status, error=error)
        self.add(notification)
        return notification

    # -------------------------------------------------------------------
    # Digest support
    # -------------------------------------------------------------------
    def get_undigested(self, user_id, start: datetime, end: datetime) -> list[Notification]:
        """User's notifications created in ``[start, end]`` and not yet digested."""
        return [
            n
            for n in self._scan(user_id=str(user_id))
            if n.digested_at is None and _in_range(n.created_at, start, end)
        ]

    def mark_digested(self, notification_ids, digested_at: datetime | None = None) -> int:
        digested_at = digested_at or datetime.now(UTC)
        marked = 0
        for notification_id in notification_ids:
            notification = self.get(notification_id)
            if notification.digested_at is None:
                notification.mark_digested(digested_at)
                self.add(notification)
                marked += 1
        return marked

    # -------------------------------------------------------------------
    # Reader actions
    # -------------------------------------------------------------------
    def mark_as_read(self, notification_id, user_id) -> Notification:
        notification = self.get_owned(notification_id, user_id)
        notification.mark_read()
        self.add(notification)
        return notification

    def mark_many_as_read(self, notification_ids, user_id) -> int:
        count = 0
        for notification_id in notification_ids:
            try:
                notification = self.get_owned(notification_id, user_id)
            except ObjectNotFoundError:
                logger.warning("Skipping unknown notification", notification_id=str(notification_id))
                continue
            if not notification.is_read:
                notification.mark_read()
                self.add(notification)
                count += 1
        return count

    def mark_all_as_read(self, user_id) -> int:
        count = 0
        for notification in self.for_user(user_id):
            if not notification.is_read:
                notification.mark_read()
                self.add(notification)
                count += 1
        return count

    def archive(self, notification_id, user_id) -> Notification:
        notification = self.get_owned(notification_id, user_id)
        notification.archive()
        self.add(notification)
        return notification

    def delete_owned(self, notification_id, user_id) -> bool:
        try:
            notification = self.get_owned(notification_id, user_id)
        except ObjectNotFoundError:
            return False
        self._dao.delete(notification)
        return True

    def delete_many(self, notification_ids, user_id) -> int:
        return sum(1 for notification_id in notification_ids if self.delete_owned(notification_id, user_id))

    def delete_expired(self, as_of: datetime | None = None) -> int:
        as_of = as_of or datetime.now(UTC)
        expired = [n for n in self._scan() if n.is_expired(as_of)]
        for notification in expired:
            self._dao.delete(notification)
        if expired:
            logger.info("Expired notifications deleted", count=len(expired))
        return len(expired)
