"""Tests for the NotificationPreferences aggregate."""

import json

import pytest
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
from notifications.preference.preference import NotificationPreferences, parse_time_of_day
from protean.exceptions import ValidationError


def _make_prefs(user_id="user-pref-1", overrides=None):
    prefs = NotificationPreferences.create_default(user_id=user_id, overrides=overrides)
    prefs._events.clear()
    return prefs


class TestParseTimeOfDay:
    def test_valid(self):
        assert parse_time_of_day("00:00") == 0
        assert parse_time_of_day("09:30") == 570
        assert parse_time_of_day("23:59") == 1439

    @pytest.mark.parametrize("value", ["24:00", "12:60", "9", "ab:cd", "12:00:00", ""])
    def test_invalid(self, value):
        with pytest.raises(ValueError, match="Invalid time format"):
            parse_time_of_day(value)


class TestCreateDefault:
    def test_full_defaults(self):
        prefs = NotificationPreferences.create_default(user_id="user-pref-defaults")
        doc = prefs.to_dict()
        assert doc["enabled"] is True
        assert doc["categories"]["SECURITY_ALERTS"]["min_priority"] == "MEDIUM"
        assert doc["event_overrides"] == []
        assert doc["quiet_hours"]["start"] == "22:00"
        assert prefs.digest_frequency is None

    def test_raises_created_event(self):
        prefs = NotificationPreferences.create_default(user_id="user-pref-event")
        assert len(prefs._events) == 1
        event = prefs._events[0]
        assert isinstance(event, PreferencesCreated)
        assert event.user_id == "user-pref-event"

    def test_overrides_merged(self):
        prefs = NotificationPreferences.create_default(
            user_id="user-pref-over",
            overrides={"email_digest": {"enabled": True, "frequency": "WEEKLY"}},
        )
        digest = prefs.get_email_digest()
        assert digest["enabled"] is True
        assert digest["frequency"] == "WEEKLY"
        assert digest["time"] == "09:00"
        assert prefs.digest_frequency == "WEEKLY"

    def test_invalid_overrides_rejected(self):
        with pytest.raises(ValidationError):
            NotificationPreferences.create_default(
                user_id="user-pref-bad",
                overrides={"quiet_hours": {"start": "25:00"}},
            )

    def test_missing_stored_keys_filled_from_defaults(self):
        prefs = _make_prefs()
        prefs.quiet_hours = json.dumps({"enabled": True})
        quiet = prefs.get_quiet_hours()
        assert quiet["enabled"] is True
        assert quiet["end"] == "08:00"


class TestUpdate:
    def test_partial_update_merges(self):
        prefs = _make_prefs()
        prefs.update({"quiet_hours": {"enabled": True, "start": "23:00"}})
        quiet = prefs.get_quiet_hours()
        assert quiet["enabled"] is True
        assert quiet["start"] == "23:00"
        assert quiet["end"] == "08:00"
        assert isinstance(prefs._events[-1], PreferencesUpdated)

    def test_flags(self):
        prefs = _make_prefs()
        prefs.update({"sound_enabled": False, "enabled": False})
        assert prefs.sound_enabled is False
        assert prefs.enabled is False

    def test_empty_update_rejected(self):
        with pytest.raises(ValidationError):
            _make_prefs().update({})

    def test_unknown_section_rejected(self):
        with pytest.raises(ValidationError) as exc:
            _make_prefs().update({"colour": "blue"})
        assert "colour" in str(exc.value)

    def test_invalid_channel_rejected(self):
        with pytest.raises(ValidationError):
            _make_prefs().update({"categories": {"COMMENTS": {"channels": ["FAX"]}}})

    def test_digest_update_syncs_frequency(self):
        prefs = _make_prefs()
        prefs.update({"email_digest": {"enabled": True, "frequency": "HOURLY"}})
        assert prefs.digest_frequency == "HOURLY"
        assert prefs.is_subscribed_to_digest("HOURLY") is True


class TestUpdateCategory:
    def test_updates_one_category(self):
        prefs = _make_prefs()
        prefs.update_category("COMMENTS", {"enabled": False})
        assert prefs.get_category("COMMENTS")["enabled"] is False
        assert prefs.get_category("COMMENTS")["channels"] == ["IN_APP"]
        assert prefs.get_category("INTERVIEWS")["enabled"] is True
        assert isinstance(prefs._events[-1], CategoryPreferencesUpdated)

    def test_unknown_category_rejected(self):
        with pytest.raises(ValidationError):
            _make_prefs().update_category("GOSSIP", {"enabled": False})

    def test_invalid_min_priority_rejected(self):
        with pytest.raises(ValidationError):
            _make_prefs().update_category("COMMENTS", {"min_priority": "URGENT"})


class TestEventOverrides:
    def test_set_override(self):
        prefs = _make_prefs()
        prefs.set_event_override({"type": "JOB_POSTED", "enabled": False})
        override = prefs.get_event_override("JOB_POSTED")
        assert override == {"type": "JOB_POSTED", "enabled": False, "channels": [], "priority": None}
        assert isinstance(prefs._events[-1], EventOverrideSet)

    def test_last_write_wins(self):
        prefs = _make_prefs()
        prefs.set_event_override({"type": "JOB_POSTED", "enabled": False})
        prefs.set_event_override({"type": "JOB_POSTED", "enabled": True, "channels": ["IN_APP"]})
        overrides = prefs.get_event_overrides()
        assert len(overrides) == 1
        assert overrides[0]["enabled"] is True
        assert overrides[0]["channels"] == ["IN_APP"]

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            _make_prefs().set_event_override({"type": "NOT_A_TYPE"})

    def test_remove_override(self):
        prefs = _make_prefs()
        prefs.set_event_override({"type": "JOB_POSTED", "enabled": False})
        prefs.remove_event_override("JOB_POSTED")
        assert prefs.get_event_override("JOB_POSTED") is None
        assert isinstance(prefs._events[-1], EventOverrideRemoved)

    def test_remove_missing_override_rejected(self):
        with pytest.raises(ValidationError):
            _make_prefs().remove_event_override("JOB_POSTED")

    def test_duplicate_types_rejected_on_update(self):
        duplicate = [
            {"type": "JOB_POSTED", "enabled": True, "channels": []},
            {"type": "JOB_POSTED", "enabled": False, "channels": []},
        ]
        with pytest.raises(ValidationError):
            _make_prefs().update({"event_overrides": duplicate})


class TestEmailDigest:
    def test_enable_digest(self):
        prefs = _make_prefs()
        prefs.update_email_digest({"enabled": True, "frequency": "DAILY", "time": "18:00"})
        digest = prefs.get_email_digest()
        assert digest["time"] == "18:00"
        assert prefs.digest_frequency == "DAILY"
        event = prefs._events[-1]
        assert isinstance(event, EmailDigestUpdated)
        assert event.enabled is True

    def test_disable_clears_subscription(self):
        prefs = _make_prefs(overrides={"email_digest": {"enabled": True}})
        prefs.update_email_digest({"enabled": False})
        assert prefs.digest_frequency is None
        assert prefs.is_subscribed_to_digest("DAILY") is False

    @pytest.mark.parametrize(
        "partial",
        [
            {"frequency": "MONTHLY"},
            {"time": "9am"},
            {"timezone": "Mars/Olympus"},
            {"day_of_week": 7},
            {"include_categories": ["GOSSIP"]},
        ],
    )
    def test_invalid_digest_rejected(self, partial):
        with pytest.raises(ValidationError):
            _make_prefs().update_email_digest(partial)


class TestQuietHours:
    def test_update_quiet_hours(self):
        prefs = _make_prefs()
        prefs.update_quiet_hours({"enabled": True, "timezone": "Europe/Berlin", "days_of_week": [1, 2]})
        quiet = prefs.get_quiet_hours()
        assert quiet["timezone"] == "Europe/Berlin"
        assert quiet["days_of_week"] == [1, 2]
        assert isinstance(prefs._events[-1], QuietHoursUpdated)

    @pytest.mark.parametrize(
        "partial",
        [{"start": "7:5pm"}, {"end": "24:30"}, {"timezone": "Nowhere"}, {"days_of_week": [7]}],
    )
    def test_invalid_quiet_hours_rejected(self, partial):
        with pytest.raises(ValidationError):
            _make_prefs().update_quiet_hours(partial)


class TestToggle:
    def test_toggle_off_and_on(self):
        prefs = _make_prefs()
        prefs.toggle(False)
        assert prefs.enabled is False
        assert prefs.is_subscribed_to_digest("DAILY") is False
        prefs.toggle(True)
        assert prefs.enabled is True
        assert all(isinstance(e, NotificationsToggled) for e in prefs._events)
