"""DigestScheduler: hourly, daily and weekly digest triggers.

Each frequency has one PeriodicTask, registered as a job on an APScheduler
``AsyncIOScheduler``, and one asyncio lock. A firing that finds the
previous run of the same frequency still in progress is skipped. Runs
execute in a worker thread inside a domain context.

Mutual exclusion is per process only; two scheduler processes would each
send their own digests.
"""

import asyncio
from datetime import UTC

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from notifications.config import get_settings
from notifications.digest.aggregator import LOOKBACK_HOURS, DigestRunReport, process_digests
from notifications.digest.periodic import PeriodicTask, daily_at, hourly, weekly_at
from notifications.domain import notifications
from notifications.notification.types import DigestFrequency
from notifications.utils.logging import add_context, clear_context

logger = structlog.get_logger(__name__)


class DigestScheduler:
    def __init__(self, domain=notifications, settings=None, runner=process_digests):
        settings = settings or get_settings()
        self.domain = domain
        self._runner = runner
        self._locks = {frequency: asyncio.Lock() for frequency in LOOKBACK_HOURS}
        self._scheduler: AsyncIOScheduler | None = None
        self._stopped: asyncio.Event | None = None

        self.tasks = {
            DigestFrequency.HOURLY.value: PeriodicTask(
                "hourly-digest", hourly(), lambda: self._run(DigestFrequency.HOURLY.value)
            ),
            DigestFrequency.DAILY.value: PeriodicTask(
                "daily-digest", daily_at(settings.daily_digest_time), lambda: self._run(DigestFrequency.DAILY.value)
            ),
            DigestFrequency.WEEKLY.value: PeriodicTask(
                "weekly-digest", weekly_at(settings.weekly_digest_time), lambda: self._run(DigestFrequency.WEEKLY.value)
            ),
        }

    def _run_in_context(self, frequency: str) -> DigestRunReport:
        with self.domain.domain_context():
            add_context(digest_frequency=frequency)
            try:
                return self._runner(frequency, LOOKBACK_HOURS[frequency])
            finally:
                clear_context()

    async def _run(self, frequency: str) -> DigestRunReport | None:
        lock = self._locks[frequency]
        if lock.locked():
            logger.warning("Digest run already in progress, skipping", frequency=frequency)
            return None
        async with lock:
            logger.info("Digest run starting", frequency=frequency)
            return await asyncio.to_thread(self._run_in_context, frequency)

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    @property
    def is_running(self) -> bool:
        return self._scheduler is not None

    def start(self):
        """Schedule all three tasks on the running event loop."""
        if self._scheduler is not None:
            return
        self._scheduler = AsyncIOScheduler(timezone=UTC)
        for task in self.tasks.values():
            task.schedule(self._scheduler)
        self._scheduler.start()
        self._stopped = asyncio.Event()
        logger.info("Digest scheduler started", tasks=[task.name for task in self.tasks.values()])

    async def stop(self):
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        self._stopped.set()
        logger.info("Digest scheduler stopped")

    async def wait(self):
        """Block until the scheduler is stopped."""
        if self._stopped is not None:
            await self._stopped.wait()

    def status(self) -> dict:
        return {
            "running": self.is_running,
            "tasks": {frequency: task.status() for frequency, task in self.tasks.items()},
        }

    # -------------------------------------------------------------------
    # Manual triggers
    # -------------------------------------------------------------------
    async def trigger_hourly(self):
        return await self.tasks[DigestFrequency.HOURLY.value].trigger_now()

    async def trigger_daily(self):
        return await self.tasks[DigestFrequency.DAILY.value].trigger_now()

    async def trigger_weekly(self):
        return await self.tasks[DigestFrequency.WEEKLY.value].trigger_now()
