"""Application tests for retrying failed channel deliveries."""

from datetime import UTC, datetime, timedelta

import pytest
from notifications.channel import get_channel, get_recipient_directory
from notifications.notification.notification import Notification
from notifications.notification.retry import RetryFailedDeliveries, retry_failed_deliveries
from notifications.preference.preference import NotificationPreferences
from protean import current_domain
from protean.exceptions import ValidationError


def _failed_webhook(user_id, failures=1, notification_type="JOB_POSTED"):
    n = Notification.create(
        user_id=user_id,
        notification_type=notification_type,
        title="Job posted",
        message="Backend Engineer is live",
        channels=["IN_APP", "WEBHOOK"],
    )
    n.mark_channel_delivered("IN_APP")
    for _ in range(failures):
        n.mark_channel_failed("WEBHOOK", "HTTP 503: Service Unavailable")
    current_domain.repository_for(Notification).add(n)
    return n


def _failed_email(user_id, notification_type="CANDIDATE_APPLIED", created_at=None):
    n = Notification.create(
        user_id=user_id,
        notification_type=notification_type,
        title="New application",
        message="Ada Lovelace applied for Backend Engineer",
        channels=["IN_APP", "EMAIL"],
    )
    if created_at is not None:
        n.created_at = created_at
    n.mark_channel_delivered("IN_APP")
    n.mark_channel_failed("EMAIL", "SMTP timeout")
    current_domain.repository_for(Notification).add(n)
    return n


def _subscribe_to_digest(user_id, frequency="DAILY"):
    repo = current_domain.repository_for(NotificationPreferences)
    prefs = repo.get_or_create(user_id)
    prefs.update_email_digest({"enabled": True, "frequency": frequency})
    repo.add(prefs)


def _stored(n):
    return current_domain.repository_for(Notification).get(str(n.id))


class TestRetryFailedDeliveries:
    def test_recovers_when_transport_is_back(self, user_id):
        n = _failed_webhook(user_id)

        report = retry_failed_deliveries("WEBHOOK")

        assert report.attempted == 1
        assert report.recovered == 1
        assert report.still_failed == 0
        stored = _stored(n)
        assert stored.status_for("WEBHOOK")["status"] == "DELIVERED"
        assert "error" not in stored.status_for("WEBHOOK")
        assert stored.status_for("IN_APP")["status"] == "DELIVERED"

    def test_failing_retry_bumps_count(self, user_id):
        n = _failed_webhook(user_id)
        get_channel("WEBHOOK").configure(should_succeed=False)

        report = retry_failed_deliveries("WEBHOOK")

        assert report.still_failed == 1
        assert _stored(n).status_for("WEBHOOK")["retryCount"] == 2

    def test_stops_at_retry_limit(self, user_id):
        _failed_webhook(user_id, failures=3)
        report = retry_failed_deliveries("WEBHOOK", max_retries=3)
        assert report.attempted == 0
        assert get_channel("WEBHOOK").deliveries == []

    def test_limit(self, user_id):
        for _ in range(3):
            _failed_webhook(user_id)
        assert retry_failed_deliveries("WEBHOOK", limit=2).attempted == 2

    def test_only_the_requested_channel_is_resent(self, user_id):
        _failed_webhook(user_id)
        retry_failed_deliveries("WEBHOOK")
        assert get_channel("IN_APP").pushed == []

    def test_unknown_channel(self):
        with pytest.raises(ValidationError) as exc:
            retry_failed_deliveries("CARRIER_PIGEON")
        assert "Unknown channel" in str(exc.value)


class TestEmailRetry:
    def test_failed_email_is_resent(self, user_id):
        get_recipient_directory().register(user_id, "recruiter@example.com")
        n = _failed_email(user_id)

        report = retry_failed_deliveries("EMAIL")

        assert report.recovered == 1
        assert _stored(n).status_for("EMAIL")["status"] == "SENT"
        assert len(get_channel("EMAIL").sent_to("recruiter@example.com")) == 1

    def test_digest_subscriber_goes_back_to_pending(self, user_id):
        n = _failed_email(user_id)
        _subscribe_to_digest(user_id)

        report = retry_failed_deliveries("EMAIL")

        assert report.attempted == 1
        assert report.deferred == 1
        assert report.still_failed == 0
        entry = _stored(n).status_for("EMAIL")
        assert entry["status"] == "PENDING"
        assert entry["retryCount"] == 1
        assert get_channel("EMAIL").sent_emails == []
        assert retry_failed_deliveries("EMAIL").attempted == 0

    def test_deferred_entries_do_not_crowd_out_newer_failures(self, user_id):
        _subscribe_to_digest(user_id)
        deferred = _failed_email(user_id, created_at=datetime.now(UTC) - timedelta(hours=1))
        get_recipient_directory().register("other-recruiter", "other@example.com")
        newer = _failed_email("other-recruiter")

        first = retry_failed_deliveries("EMAIL", limit=1)
        second = retry_failed_deliveries("EMAIL", limit=1)

        assert (first.deferred, second.recovered) == (1, 1)
        assert _stored(deferred).status_for("EMAIL")["status"] == "PENDING"
        assert _stored(newer).status_for("EMAIL")["status"] == "SENT"


class TestRetryCommand:
    def test_command_returns_report(self, user_id):
        _failed_webhook(user_id)
        report = current_domain.process(RetryFailedDeliveries(channel="WEBHOOK"), asynchronous=False)
        assert report.channel == "WEBHOOK"
        assert report.recovered == 1

    def test_max_retries_must_be_positive(self):
        with pytest.raises(ValidationError):
            RetryFailedDeliveries(channel="WEBHOOK", max_retries=0)
