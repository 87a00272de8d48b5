"""NotificationPreferences aggregate: per-user notification configuration.

One record per user. Holds the global toggle, per-category channel and
priority rules, per-type overrides, digest email settings, quiet hours,
and a few client-side flags. Nested sections are stored as JSON text and
always merged over the defaults, so a record never has missing keys.
"""

import json
from datetime import UTC, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from notifications.domain import notifications
from notifications.notification.types import (
    DigestFrequency,
    NotificationCategory,
    NotificationChannel,
    NotificationPriority,
    NotificationType,
    values_of,
)
from notifications.preference.defaults import default_preferences, merge_defaults
from notifications.preference.events import (
    CategoryPreferencesUpdated,
    EmailDigestUpdated,
    EventOverrideRemoved,
    EventOverrideSet,
    NotificationsToggled,
    PreferencesCreated,
    PreferencesUpdated,
    QuietHoursUpdated,
)
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Identifier, String, Text

_JSON_SECTIONS = ("default_channels", "categories", "event_overrides", "email_digest", "quiet_hours")
_FLAG_SECTIONS = ("enabled", "batch_notifications", "sound_enabled", "desktop_notifications")


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------
def parse_time_of_day(value: str) -> int:
    """Convert "HH:MM" to minutes since midnight. Raises ValueError."""
    parts = str(value).split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise ValueError(f"Invalid time format: {value}. Use HH:MM")
    hour, minute = int(parts[0]), int(parts[1])
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Invalid time format: {value}. Use HH:MM")
    return hour * 60 + minute


def _check_time(field, value):
    try:
        parse_time_of_day(value)
    except ValueError as exc:
        raise ValidationError({field: [str(exc)]}) from None


def _check_timezone(field, value):
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError({field: [f"Unknown timezone: {value}"]}) from None


def _check_member(field, value, enum_cls):
    if value not in values_of(enum_cls):
        raise ValidationError({field: [f"Invalid value: {value}"]})


def _check_channels(field, channels):
    if not isinstance(channels, list):
        raise ValidationError({field: ["Channels must be a list"]})
    for channel in channels:
        _check_member(field, channel, NotificationChannel)


def _check_days(field, days):
    if not isinstance(days, list) or any(not isinstance(d, int) or not 0 <= d <= 6 for d in days):
        raise ValidationError({field: ["Days of week must be integers 0 (Sunday) to 6 (Saturday)"]})


def _validate_category(category, config):
    _check_member("categories", category, NotificationCategory)
    if "channels" in config and config["channels"] is not None:
        _check_channels(f"categories.{category}.channels", config["channels"])
    if config.get("min_priority") is not None:
        _check_member(f"categories.{category}.min_priority", config["min_priority"], NotificationPriority)


def _validate_override(override):
    if not isinstance(override, dict) or not override.get("type"):
        raise ValidationError({"event_overrides": ["Override must name a notification type"]})
    _check_member("event_overrides.type", override["type"], NotificationType)
    _check_channels("event_overrides.channels", override.get("channels", []))
    if override.get("priority") is not None:
        _check_member("event_overrides.priority", override["priority"], NotificationPriority)


def _validate_email_digest(digest):
    if digest.get("frequency") is not None:
        _check_member("email_digest.frequency", digest["frequency"], DigestFrequency)
    if digest.get("time") is not None:
        _check_time("email_digest.time", digest["time"])
    if digest.get("day_of_week") is not None:
        _check_days("email_digest.day_of_week", [digest["day_of_week"]])
    if digest.get("timezone") is not None:
        _check_timezone("email_digest.timezone", digest["timezone"])
    for category in digest.get("include_categories") or []:
        _check_member("email_digest.include_categories", category, NotificationCategory)
    if digest.get("min_priority") is not None:
        _check_member("email_digest.min_priority", digest["min_priority"], NotificationPriority)


def _validate_quiet_hours(quiet_hours):
    for key in ("start", "end"):
        if quiet_hours.get(key) is not None:
            _check_time(f"quiet_hours.{key}", quiet_hours[key])
    if quiet_hours.get("timezone") is not None:
        _check_timezone("quiet_hours.timezone", quiet_hours["timezone"])
    if quiet_hours.get("days_of_week") is not None:
        _check_days("quiet_hours.days_of_week", quiet_hours["days_of_week"])


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@notifications.aggregate
class NotificationPreferences:
    """A user's notification preferences.

    ``digest_frequency`` mirrors ``email_digest`` (frequency when the digest
    is enabled, otherwise empty) so the digest scheduler can select
    subscribers with a plain equality filter.
    """

    user_id: Identifier(required=True, unique=True)

    # Global toggle
    enabled: Boolean(default=True)

    # JSON sections
    default_channels: Text()
    categories: Text()
    event_overrides: Text()
    email_digest: Text()
    quiet_hours: Text()

    # Denormalized digest subscription
    digest_frequency: String(max_length=20)

    # Client flags
    batch_notifications: Boolean(default=True)
    sound_enabled: Boolean(default=True)
    desktop_notifications: Boolean(default=True)

    created_at: DateTime()
    updated_at: DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create_default(cls, user_id, overrides=None):
        """Create preferences for a user, starting from the defaults.

        ``overrides`` is a partial preference dict merged field by field.
        """
        values = merge_defaults(overrides, default_preferences())
        _validate_all(values)
        now = datetime.now(UTC)

        preference = cls(
            user_id=user_id,
            enabled=values["enabled"],
            batch_notifications=values["batch_notifications"],
            sound_enabled=values["sound_enabled"],
            desktop_notifications=values["desktop_notifications"],
            created_at=now,
            updated_at=now,
        )
        for section in _JSON_SECTIONS:
            setattr(preference, section, json.dumps(values[section]))
        preference._sync_digest_frequency()

        preference.raise_(
            PreferencesCreated(
                preference_id=str(preference.id),
                user_id=str(user_id),
                created_at=now,
            )
        )

        return preference

    # -------------------------------------------------------------------
    # Readers
    # -------------------------------------------------------------------
    def _section(self, name):
        defaults = default_preferences()[name]
        raw = getattr(self, name)
        stored = json.loads(raw) if raw else None
        if isinstance(defaults, dict):
            return merge_defaults(stored, defaults)
        return stored if stored is not None else defaults

    def get_default_channels(self) -> dict:
        return self._section("default_channels")

    def get_categories(self) -> dict:
        return self._section("categories")

    def get_category(self, category: str) -> dict:
        return self.get_categories().get(category) or default_preferences()["categories"].get(category, {})

    def get_event_overrides(self) -> list:
        return self._section("event_overrides")

    def get_event_override(self, notification_type: str) -> dict | None:
        for override in self.get_event_overrides():
            if override.get("type") == notification_type:
                return override
        return None

    def get_email_digest(self) -> dict:
        return self._section("email_digest")

    def get_quiet_hours(self) -> dict:
        return self._section("quiet_hours")

    def to_dict(self) -> dict:
        """Full preference document, the shape the evaluator consumes."""
        return {
            "user_id": str(self.user_id),
            "enabled": bool(self.enabled),
            "default_channels": self.get_default_channels(),
            "categories": self.get_categories(),
            "event_overrides": self.get_event_overrides(),
            "email_digest": self.get_email_digest(),
            "quiet_hours": self.get_quiet_hours(),
            "batch_notifications": bool(self.batch_notifications),
            "sound_enabled": bool(self.sound_enabled),
            "desktop_notifications": bool(self.desktop_notifications),
        }

    def is_subscribed_to_digest(self, frequency: str) -> bool:
        return bool(self.enabled) and self.digest_frequency == frequency

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------
    def _touch(self):
        now = datetime.now(UTC)
        self.updated_at = now
        return now

    def _sync_digest_frequency(self):
        digest = self.get_email_digest()
        self.digest_frequency = digest["frequency"] if digest.get("enabled") else None

    def update(self, partial: dict):
        """Apply a partial update across any preference sections."""
        if not partial:
            raise ValidationError({"preferences": ["At least one preference must be provided"]})

        unknown = set(partial) - set(_JSON_SECTIONS) - set(_FLAG_SECTIONS)
        if unknown:
            raise ValidationError({"preferences": [f"Unknown preference fields: {', '.join(sorted(unknown))}"]})

        current = self.to_dict()
        merged = merge_defaults(partial, current)
        _validate_all(merged)

        for section in _JSON_SECTIONS:
            if section in partial:
                setattr(self, section, json.dumps(merged[section]))
        for flag in _FLAG_SECTIONS:
            if flag in partial and partial[flag] is not None:
                setattr(self, flag, bool(partial[flag]))
        self._sync_digest_frequency()
        now = self._touch()

        self.raise_(
            PreferencesUpdated(
                preference_id=str(self.id),
                user_id=str(self.user_id),
                sections=json.dumps(sorted(partial)),
                updated_at=now,
            )
        )

    def update_category(self, category: str, partial: dict):
        """Update one category's enabled flag, channels, or min priority."""
        _validate_category(category, partial or {})

        categories = self.get_categories()
        categories[category] = merge_defaults(partial, categories.get(category, {}))
        self.categories = json.dumps(categories)
        now = self._touch()

        self.raise_(
            CategoryPreferencesUpdated(
                preference_id=str(self.id),
                user_id=str(self.user_id),
                category=category,
                updated_at=now,
            )
        )

    def set_event_override(self, override: dict):
        """Add or replace the override for a notification type (last write wins)."""
        _validate_override(override)

        entry = {
            "type": override["type"],
            "enabled": bool(override.get("enabled", True)),
            "channels": list(override.get("channels", [])),
            "priority": override.get("priority"),
        }
        overrides = [o for o in self.get_event_overrides() if o.get("type") != entry["type"]]
        overrides.append(entry)
        self.event_overrides = json.dumps(overrides)
        now = self._touch()

        self.raise_(
            EventOverrideSet(
                preference_id=str(self.id),
                user_id=str(self.user_id),
                notification_type=entry["type"],
                enabled=entry["enabled"],
                updated_at=now,
            )
        )

    def remove_event_override(self, notification_type: str):
        """Drop the override for a notification type."""
        overrides = self.get_event_overrides()
        remaining = [o for o in overrides if o.get("type") != notification_type]
        if len(remaining) == len(overrides):
            raise ValidationError({"event_overrides": [f"No override set for {notification_type}"]})

        self.event_overrides = json.dumps(remaining)
        now = self._touch()

        self.raise_(
            EventOverrideRemoved(
                preference_id=str(self.id),
                user_id=str(self.user_id),
                notification_type=notification_type,
                updated_at=now,
            )
        )

    def update_email_digest(self, partial: dict):
        """Update digest email settings."""
        _validate_email_digest(partial or {})

        digest = merge_defaults(partial, self.get_email_digest())
        self.email_digest = json.dumps(digest)
        self._sync_digest_frequency()
        now = self._touch()

        self.raise_(
            EmailDigestUpdated(
                preference_id=str(self.id),
                user_id=str(self.user_id),
                enabled=bool(digest["enabled"]),
                frequency=digest["frequency"],
                updated_at=now,
            )
        )

    def update_quiet_hours(self, partial: dict):
        """Update the quiet hours window."""
        _validate_quiet_hours(partial or {})

        quiet_hours = merge_defaults(partial, self.get_quiet_hours())
        self.quiet_hours = json.dumps(quiet_hours)
        now = self._touch()

        self.raise_(
            QuietHoursUpdated(
                preference_id=str(self.id),
                user_id=str(self.user_id),
                enabled=bool(quiet_hours["enabled"]),
                start=quiet_hours["start"],
                end=quiet_hours["end"],
                updated_at=now,
            )
        )

    def toggle(self, enabled: bool):
        """Switch all notifications on or off."""
        self.enabled = bool(enabled)
        now = self._touch()

        self.raise_(
            NotificationsToggled(
                preference_id=str(self.id),
                user_id=str(self.user_id),
                enabled=self.enabled,
                updated_at=now,
            )
        )


def _validate_all(values: dict):
    for category, config in values["categories"].items():
        _validate_category(category, config)
    for override in values["event_overrides"]:
        _validate_override(override)
    types = [o["type"] for o in values["event_overrides"]]
    if len(types) != len(set(types)):
        raise ValidationError({"event_overrides": ["Only one override per notification type is allowed"]})
    _validate_email_digest(values["email_digest"])
    _validate_quiet_hours(values["quiet_hours"])
