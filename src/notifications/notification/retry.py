"""RetryFailedDeliveries command + handler: re-send FAILED channel deliveries.

Invoked by a background job. Picks FAILED entries for one channel whose
retry count is still below the limit (most urgent first, then oldest) and
runs that channel's sender again. A failing retry bumps the retry count,
so entries stop being picked once they reach the limit. An entry the
sender now defers (email for a digest subscriber) goes back to PENDING
and leaves the retry set.
"""

from dataclasses import dataclass

import structlog
from notifications.config import get_settings
from notifications.domain import notifications
from notifications.notification.notification import Notification
from notifications.notification.orchestrator import deliver
from notifications.notification.types import DeliveryStatus, NotificationChannel, values_of
from protean.exceptions import ValidationError
from protean.fields import Integer, String
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

logger = structlog.get_logger(__name__)


@dataclass
class RetryReport:
    channel: str
    attempted: int = 0
    recovered: int = 0
    deferred: int = 0
    still_failed: int = 0


def retry_failed_deliveries(channel: str, max_retries: int | None = None, limit: int = 100, senders=None) -> RetryReport:
    if channel not in values_of(NotificationChannel):
        raise ValidationError({"channel": [f"Unknown channel: {channel}"]})
    if max_retries is None:
        max_retries = get_settings().max_delivery_retries

    repo = current_domain.repository_for(Notification)
    report = RetryReport(channel=channel)

    for notification in repo.get_failed_for_retry(channel, max_retries=max_retries, limit=limit):
        report.attempted += 1
        deliver(notification, senders=senders, channels=[channel])
        status = notification.status_for(channel)["status"]
        if status == DeliveryStatus.FAILED.value:
            report.still_failed += 1
        elif status == DeliveryStatus.PENDING.value:
            report.deferred += 1
        else:
            report.recovered += 1

    if report.attempted:
        logger.info(
            "Failed deliveries retried",
            channel=channel,
            attempted=report.attempted,
            recovered=report.recovered,
            deferred=report.deferred,
            still_failed=report.still_failed,
        )
    return report


@notifications.command(part_of="Notification")
class RetryFailedDeliveries:
    """Request to retry failed deliveries on one channel."""

    channel: String(required=True, max_length=20)
    max_retries: Integer(min_value=1)
    limit: Integer(default=100, min_value=1)


@notifications.command_handler(part_of=Notification)
class RetryFailedDeliveriesHandler:
    @handle(RetryFailedDeliveries)
    def retry_failed(self, command: RetryFailedDeliveries):
        return retry_failed_deliveries(command.channel, max_retries=command.max_retries, limit=command.limit)
