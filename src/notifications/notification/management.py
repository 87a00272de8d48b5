"""Reader-side commands: read, archive and delete a user's notifications.

Every command is scoped to ``user_id``; another user's notification is
treated as missing.
"""

from datetime import UTC, datetime

from notifications.domain import notifications
from notifications.notification.notification import Notification
from protean.fields import DateTime, Identifier, List, String
from protean.utils.globals import current_domain
from protean.utils.mixins import handle


@notifications.command(part_of="Notification")
class MarkNotificationRead:
    notification_id: Identifier(required=True)
    user_id: Identifier(required=True)


@notifications.command(part_of="Notification")
class MarkNotificationsRead:
    notification_ids: List(content_type=String, required=True)
    user_id: Identifier(required=True)


@notifications.command(part_of="Notification")
class MarkAllNotificationsRead:
    user_id: Identifier(required=True)


@notifications.command(part_of="Notification")
class ArchiveNotification:
    notification_id: Identifier(required=True)
    user_id: Identifier(required=True)


@notifications.command(part_of="Notification")
class DeleteNotification:
    notification_id: Identifier(required=True)
    user_id: Identifier(required=True)


@notifications.command(part_of="Notification")
class DeleteNotifications:
    notification_ids: List(content_type=String, required=True)
    user_id: Identifier(required=True)


@notifications.command(part_of="Notification")
class DeleteExpiredNotifications:
    """Housekeeping: drop everything past its expiry."""

    as_of: DateTime()


@notifications.command_handler(part_of=Notification)
class ManageNotificationsHandler:
    @staticmethod
    def _repo():
        return current_domain.repository_for(Notification)

    @handle(MarkNotificationRead)
    def mark_read(self, command: MarkNotificationRead):
        return self._repo().mark_as_read(command.notification_id, command.user_id)

    @handle(MarkNotificationsRead)
    def mark_many_read(self, command: MarkNotificationsRead):
        return self._repo().mark_many_as_read(command.notification_ids, command.user_id)

    @handle(MarkAllNotificationsRead)
    def mark_all_read(self, command: MarkAllNotificationsRead):
        return self._repo().mark_all_as_read(command.user_id)

    @handle(ArchiveNotification)
    def archive(self, command: ArchiveNotification):
        return self._repo().archive(command.notification_id, command.user_id)

    @handle(DeleteNotification)
    def delete(self, command: DeleteNotification):
        return self._repo().delete_owned(command.notification_id, command.user_id)

    @handle(DeleteNotifications)
    def delete_many(self, command: DeleteNotifications):
        return self._repo().delete_many(command.notification_ids, command.user_id)

    @handle(DeleteExpiredNotifications)
    def delete_expired(self, command: DeleteExpiredNotifications):
        return self._repo().delete_expired(command.as_of or datetime.now(UTC))
