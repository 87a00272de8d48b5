"""Background runner for the notifications engine.

Starts the long-running parts of the engine under one event loop:
- DigestScheduler: hourly/daily/weekly digest emails
- EmailWorker: drains the Redis-backed email queue

Usage:
    python src/server.py                # Run scheduler and email worker
    python src/server.py --scheduler    # Run only the digest scheduler
    python src/server.py --worker       # Run only the email worker
"""

import argparse
import asyncio
import signal

import structlog
from protean.exceptions import ObjectNotFoundError

logger = structlog.get_logger(__name__)


def _init_domain():
    from notifications.domain import notifications

    notifications.init()
    return notifications


def _mark_email_failed(domain):
    """Callback for jobs that exhausted their attempts: record EMAIL as FAILED."""
    from notifications.notification.notification import Notification

    def on_permanent_failure(job, error):
        with domain.domain_context():
            repo = domain.repository_for(Notification)
            try:
                repo.update_delivery_status(job.notification_id, "EMAIL", "FAILED", error=error)
            except ObjectNotFoundError:
                logger.warning("Failed email for unknown notification", notification_id=job.notification_id)

    return on_permanent_failure


async def run(with_scheduler: bool, with_worker: bool):
    domain = _init_domain()

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    jobs = []
    scheduler = None
    if with_scheduler:
        from notifications.digest.scheduler import DigestScheduler

        scheduler = DigestScheduler(domain=domain)
        scheduler.start()
        jobs.append(scheduler.wait())

    if with_worker:
        from notifications.email.queue import get_email_queue
        from notifications.email.worker import EmailWorker

        worker = EmailWorker(get_email_queue(), on_permanent_failure=_mark_email_failed(domain))
        jobs.append(worker.run(stop_event))

    async def _stop_on_signal():
        await stop_event.wait()
        if scheduler is not None:
            await scheduler.stop()

    await asyncio.gather(_stop_on_signal(), *jobs)


def main():
    parser = argparse.ArgumentParser(description="Notifications engine runner")
    parser.add_argument("--scheduler", action="store_true", help="Run only the digest scheduler")
    parser.add_argument("--worker", action="store_true", help="Run only the email worker")
    args = parser.parse_args()

    run_all = not (args.scheduler or args.worker)
    asyncio.run(run(args.scheduler or run_all, args.worker or run_all))


if __name__ == "__main__":
    main()
