"""Shared BDD fixtures and step definitions for the notifications engine."""

from notifications.channel import get_channel, get_recipient_directory
from notifications.preference.preference import NotificationPreferences
from protean import current_domain
from pytest_bdd import given, parsers, then


def split_channels(channels: str) -> list[str]:
    return [c.strip() for c in channels.split(",") if c.strip()]


def _preferences_repo():
    return current_domain.repository_for(NotificationPreferences)


# ---------------------------------------------------------------------------
# Given steps: users and their preferences
# ---------------------------------------------------------------------------
@given(parsers.cfparse('user "{user_id}" receives email at "{email}"'))
def user_with_email(user_id, email):
    get_recipient_directory().register(user_id, email)


@given(parsers.cfparse('user "{user_id}" subscribes to a "{frequency}" digest'))
def user_subscribes_to_digest(user_id, frequency):
    repo = _preferences_repo()
    prefs = repo.get_or_create(user_id)
    prefs.update_email_digest({"enabled": True, "frequency": frequency})
    repo.add(prefs)


@given(parsers.cfparse('user "{user_id}" has switched notifications off'))
def user_switched_off(user_id):
    repo = _preferences_repo()
    prefs = repo.get_or_create(user_id)
    prefs.toggle(False)
    repo.add(prefs)


@given(parsers.cfparse('user "{user_id}" routes "{notification_type}" to "{channels}"'))
def user_routes_type(user_id, notification_type, channels):
    repo = _preferences_repo()
    prefs = repo.get_or_create(user_id)
    prefs.set_event_override({"type": notification_type, "enabled": True, "channels": split_channels(channels)})
    repo.add(prefs)


# ---------------------------------------------------------------------------
# Then steps: outgoing email
# ---------------------------------------------------------------------------
@then(parsers.cfparse('an email titled "{subject}" was sent to "{email}"'))
def email_sent(subject, email):
    assert [e["subject"] for e in get_channel("EMAIL").sent_to(email)] == [subject]


@then("no email was sent")
def no_email_sent():
    assert get_channel("EMAIL").sent_emails == []

