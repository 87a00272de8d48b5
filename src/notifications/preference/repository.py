"""Custom repository for NotificationPreferences: lazy creation and lookups."""

import structlog
from notifications.domain import notifications
from notifications.preference.preference import NotificationPreferences
from notifications.utils.paging import iterate_all

logger = structlog.get_logger(__name__)


@notifications.repository(part_of=NotificationPreferences)
class NotificationPreferencesRepository:
    def get_for_user(self, user_id) -> NotificationPreferences | None:
        items = self._dao.query.filter(user_id=str(user_id)).all().items
        return items[0] if items else None

    def get_or_create(self, user_id) -> NotificationPreferences:
        """Return the user's preferences, creating defaults on first access."""
        preference = self.get_for_user(user_id)
        if preference is None:
            preference = NotificationPreferences.create_default(user_id=str(user_id))
            self.add(preference)
            logger.info("Default notification preferences created", user_id=str(user_id))
        return preference

    def users_for_digest(self, frequency: str) -> list[str]:
        """User ids subscribed to digest emails at ``frequency``."""
        query = self._dao.query.filter(digest_frequency=frequency).order_by("created_at")
        return [str(p.user_id) for p in iterate_all(query) if p.enabled]

    def enabled_user_ids(self) -> list[str]:
        """User ids with notifications switched on."""
        query = self._dao.query.filter(enabled=True).order_by("created_at")
        return [str(p.user_id) for p in iterate_all(query)]

    def delete_for_user(self, user_id) -> bool:
        preference = self.get_for_user(user_id)
        if preference is None:
            return False
        self._dao.delete(preference)
        logger.info("Notification preferences deleted", user_id=str(user_id))
        return True
