"""Preference management commands + handlers.

Every handler resolves the user's preferences with get-or-create, so the
first write for a user starts from the defaults. Handlers return the
resulting preference document.
"""

from notifications.domain import notifications
from notifications.preference.preference import NotificationPreferences
from protean.fields import Boolean, Dict, Identifier, List, String
from protean.utils.globals import current_domain
from protean.utils.mixins import handle


@notifications.command(part_of="NotificationPreferences")
class UpdatePreferences:
    """Partially update any preference sections."""

    user_id: Identifier(required=True)
    changes: Dict(required=True)


@notifications.command(part_of="NotificationPreferences")
class UpdateCategoryPreferences:
    """Update one category's enabled flag, channels, or minimum priority."""

    user_id: Identifier(required=True)
    category: String(required=True, max_length=50)
    changes: Dict(required=True)


@notifications.command(part_of="NotificationPreferences")
class SetEventOverride:
    """Add or replace a per-type override."""

    user_id: Identifier(required=True)
    notification_type: String(required=True, max_length=50)
    enabled: Boolean(default=True)
    channels: List(content_type=String)
    priority: String(max_length=20)


@notifications.command(part_of="NotificationPreferences")
class RemoveEventOverride:
    """Remove a per-type override."""

    user_id: Identifier(required=True)
    notification_type: String(required=True, max_length=50)


@notifications.command(part_of="NotificationPreferences")
class UpdateEmailDigest:
    """Update digest email settings."""

    user_id: Identifier(required=True)
    changes: Dict(required=True)


@notifications.command(part_of="NotificationPreferences")
class UpdateQuietHours:
    """Update the quiet hours window."""

    user_id: Identifier(required=True)
    changes: Dict(required=True)


@notifications.command(part_of="NotificationPreferences")
class ToggleNotifications:
    """Switch all notifications on or off."""

    user_id: Identifier(required=True)
    enabled: Boolean(required=True)


@notifications.command(part_of="NotificationPreferences")
class DeletePreferences:
    """Administrative removal of a user's preferences."""

    user_id: Identifier(required=True)


@notifications.command_handler(part_of=NotificationPreferences)
class ManagePreferencesHandler:
    @handle(UpdatePreferences)
    def update_preferences(self, command: UpdatePreferences):
        repo = current_domain.repository_for(NotificationPreferences)
        preference = repo.get_or_create(command.user_id)
        preference.update(command.changes)
        repo.add(preference)
        return preference.to_dict()

    @handle(UpdateCategoryPreferences)
    def update_category(self, command: UpdateCategoryPreferences):
        repo = current_domain.repository_for(NotificationPreferences)
        preference = repo.get_or_create(command.user_id)
        preference.update_category(command.category, command.changes)
        repo.add(preference)
        return preference.to_dict()

    @handle(SetEventOverride)
    def set_event_override(self, command: SetEventOverride):
        repo = current_domain.repository_for(NotificationPreferences)
        preference = repo.get_or_create(command.user_id)
        preference.set_event_override(
            {
                "type": command.notification_type,
                "enabled": command.enabled,
                "channels": list(command.channels or []),
                "priority": command.priority,
            }
        )
        repo.add(preference)
        return preference.to_dict()

    @handle(RemoveEventOverride)
    def remove_event_override(self, command: RemoveEventOverride):
        repo = current_domain.repository_for(NotificationPreferences)
        preference = repo.get_or_create(command.user_id)
        preference.remove_event_override(command.notification_type)
        repo.add(preference)
        return preference.to_dict()

    @handle(UpdateEmailDigest)
    def update_email_digest(self, command: UpdateEmailDigest):
        repo = current_domain.repository_for(NotificationPreferences)
        preference = repo.get_or_create(command.user_id)
        preference.update_email_digest(command.changes)
        repo.add(preference)
        return preference.to_dict()

    @handle(UpdateQuietHours)
    def update_quiet_hours(self, command: UpdateQuietHours):
        repo = current_domain.repository_for(NotificationPreferences)
        preference = repo.get_or_create(command.user_id)
        preference.update_quiet_hours(command.changes)
        repo.add(preference)
        return preference.to_dict()

    @handle(ToggleNotifications)
    def toggle_notifications(self, command: ToggleNotifications):
        repo = current_domain.repository_for(NotificationPreferences)
        preference = repo.get_or_create(command.user_id)
        preference.toggle(command.enabled)
        repo.add(preference)
        return preference.to_dict()

    @handle(DeletePreferences)
    def delete_preferences(self, command: DeletePreferences):
        repo = current_domain.repository_for(NotificationPreferences)
        return repo.delete_for_user(command.user_id)
