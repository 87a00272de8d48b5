"""Channel adapter registry: pluggable delivery transports.

Provides singleton access to the adapters behind each delivery channel.
Fake adapters are used by default; the SMTP email adapter and the HTTP
webhook adapter are selected through ``EMAIL_ADAPTER=smtp`` and
``WEBHOOK_ADAPTER=http``. PUSH and SMS have no transport yet.
"""

from notifications.config import get_settings
from notifications.notification.types import NotificationChannel

_channel_instances: dict[str, object] = {}
_directory_instance = None


def _build_email_adapter(settings):
    if settings.email_adapter == "smtp":
        from notifications.channel.smtp_email import SMTPEmailAdapter

        return SMTPEmailAdapter.from_settings(settings)
    if settings.email_adapter == "fake":
        from notifications.channel.fake_email import FakeEmailAdapter

        return FakeEmailAdapter()
    raise ValueError(f"Unknown email adapter: {settings.email_adapter}")


def _build_webhook_adapter(settings):
    if settings.webhook_adapter == "http":
        from notifications.channel.http_webhook import HttpWebhookAdapter

        return HttpWebhookAdapter.from_settings(settings)
    if settings.webhook_adapter == "fake":
        from notifications.channel.fake_webhook import FakeWebhookAdapter

        return FakeWebhookAdapter()
    raise ValueError(f"Unknown webhook adapter: {settings.webhook_adapter}")


def get_channel(channel_type: str):
    """Return the configured adapter for a channel (singleton per channel type).

    Args:
        channel_type: One of NotificationChannel values ("IN_APP", "EMAIL", "WEBHOOK")
    """
    if channel_type not in _channel_instances:
        settings = get_settings()
        if channel_type == NotificationChannel.IN_APP.value:
            from notifications.channel.fake_realtime import FakeRealtimeAdapter

            _channel_instances[channel_type] = FakeRealtimeAdapter()
        elif channel_type == NotificationChannel.EMAIL.value:
            _channel_instances[channel_type] = _build_email_adapter(settings)
        elif channel_type == NotificationChannel.WEBHOOK.value:
            _channel_instances[channel_type] = _build_webhook_adapter(settings)
        else:
            raise ValueError(f"No transport configured for channel: {channel_type}")

    return _channel_instances[channel_type]


def get_recipient_directory():
    """Return the recipient directory singleton."""
    global _directory_instance
    if _directory_instance is None:
        from notifications.channel.directory import InMemoryRecipientDirectory

        _directory_instance = InMemoryRecipientDirectory()
    return _directory_instance


def reset_channels():
    """Reset all channel singletons (useful for testing)."""
    global _directory_instance
    _channel_instances.clear()
    _directory_instance = None
