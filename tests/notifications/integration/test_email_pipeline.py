"""End to end: notification → email queue → worker → email transport."""

import time

import pytest
from notifications.channel import get_channel, get_recipient_directory
from notifications.domain import notifications
from notifications.email.queue import EmailDispatchQueue, set_email_queue
from notifications.email.worker import EmailWorker, RateLimiter
from notifications.notification.notification import Notification
from notifications.notification.orchestrator import NotificationRequest, create_notification, notify_security_event
from protean import current_domain
from server import _mark_email_failed


@pytest.fixture()
def email_queue(redis_client):
    queue = EmailDispatchQueue(client=redis_client)
    set_email_queue(queue)
    return queue


@pytest.fixture()
def worker(email_queue):
    return EmailWorker(
        email_queue,
        rate_limiter=RateLimiter(1000),
        on_permanent_failure=_mark_email_failed(notifications),
    )


def _stored(notification):
    return current_domain.repository_for(Notification).get(str(notification.id))


def _request(user_id, notification_type="INTERVIEW_REMINDER"):
    return NotificationRequest(
        user_id=user_id,
        notification_type=notification_type,
        title="Interview in 30 minutes",
        message="Ada Lovelace, Backend Engineer, room 4",
        action={"label": "Open interview", "url": "/interviews/42"},
    )


class TestQueuedEmailDelivery:
    def test_queued_then_sent_by_worker(self, user_id, email_queue, worker):
        get_recipient_directory().register(user_id, "interviewer@example.com")

        notification = create_notification(_request(user_id))

        # Queued, not yet sent
        assert _stored(notification).status_for("EMAIL")["status"] == "SENT"
        assert email_queue.queue_stats()["waiting"] == 1
        assert get_channel("EMAIL").sent_emails == []

        assert worker.process_available() == 1

        (email,) = get_channel("EMAIL").sent_to("interviewer@example.com")
        assert email["subject"] == "Interview in 30 minutes"
        assert "/interviews/42" in email["body"]
        assert email_queue.queue_stats()["completed"] == 1

    def test_critical_jobs_jump_the_queue(self, email_queue, worker):
        for uid in ("q-low", "q-critical"):
            get_recipient_directory().register(uid, f"{uid}@example.com")

        create_notification(_request("q-low", "CANDIDATE_APPLIED"))
        notify_security_event("ACCOUNT_LOCKED", "q-critical", "Your account was locked")

        queued = email_queue.reserve()
        assert queued.job.user_id == "q-critical"
        assert queued.job.priority == "CRITICAL"

    def test_permanent_failure_marks_email_failed(self, user_id, email_queue, worker):
        get_recipient_directory().register(user_id, "interviewer@example.com")
        get_channel("EMAIL").configure(should_succeed=False, failure_reason="Mailbox unavailable")

        notification = create_notification(_request(user_id))
        later = int(time.time() * 1000) + 60_000
        for _ in range(3):
            worker.process_job(email_queue.reserve(now_ms=later))

        entry = _stored(notification).status_for("EMAIL")
        assert entry["status"] == "FAILED"
        assert entry["error"] == "Mailbox unavailable"
        assert _stored(notification).status_for("IN_APP")["status"] == "DELIVERED"

    def test_failure_for_deleted_notification_is_logged(self, user_id, email_queue, worker):
        get_recipient_directory().register(user_id, "interviewer@example.com")
        get_channel("EMAIL").configure(should_succeed=False)

        notification = create_notification(_request(user_id))
        current_domain.repository_for(Notification).delete_owned(str(notification.id), user_id)

        later = int(time.time() * 1000) + 60_000
        for _ in range(3):
            assert worker.process_job(email_queue.reserve(now_ms=later)) is False
        assert email_queue.queue_stats()["failed"] == 1


class TestDirectSendFallback:
    def test_unreachable_redis_sends_inline(self, user_id, unreachable_redis):
        set_email_queue(EmailDispatchQueue(client=unreachable_redis, sleep=lambda s: None))
        get_recipient_directory().register(user_id, "inline@example.com")

        notification = create_notification(_request(user_id))

        assert _stored(notification).status_for("EMAIL")["status"] == "SENT"
        assert len(get_channel("EMAIL").sent_to("inline@example.com")) == 1
