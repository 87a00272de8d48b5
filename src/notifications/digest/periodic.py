"""PeriodicTask: a named job on an APScheduler ``AsyncIOScheduler``.

Schedules are keyword-built ``CronTrigger`` objects in UTC. The task keeps
the slot it last fired for; a slot is run at most once, however the
scheduler and the wall clock disagree about when it came due.
"""

from datetime import UTC, datetime, timedelta

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from notifications.preference.preference import parse_time_of_day

logger = structlog.get_logger(__name__)

MONDAY = "mon"
MISFIRE_GRACE_SECONDS = 300
CLOCK_SKEW = timedelta(seconds=1)


def hourly() -> CronTrigger:
    """Every hour at minute 0."""
    return CronTrigger(minute=0, timezone=UTC)


def daily_at(time_of_day: str) -> CronTrigger:
    """Every day at ``HH:MM``."""
    minutes = parse_time_of_day(time_of_day)
    return CronTrigger(hour=minutes // 60, minute=minutes % 60, timezone=UTC)


def weekly_at(time_of_day: str, day_of_week: str = MONDAY) -> CronTrigger:
    """Every week on ``day_of_week`` (``mon`` .. ``sun``) at ``HH:MM``."""
    minutes = parse_time_of_day(time_of_day)
    return CronTrigger(day_of_week=day_of_week, hour=minutes // 60, minute=minutes % 60, timezone=UTC)


def next_fire_after(trigger: CronTrigger, moment: datetime) -> datetime:
    """First fire time of ``trigger`` strictly after ``moment``."""
    return trigger.get_next_fire_time(moment, moment)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class PeriodicTask:
    def __init__(self, name: str, trigger: CronTrigger, action, clock=_utc_now):
        """``action`` is an async callable taking no arguments."""
        self.name = name
        self.trigger = trigger
        self.action = action
        self._clock = clock
        self.last_run: datetime | None = None
        self.last_slot: datetime | None = None
        self.next_run: datetime | None = None
        self.runs = 0

    def _advance(self):
        now = self._clock()
        after = max(now, self.last_slot) if self.last_slot else now
        self.next_run = next_fire_after(self.trigger, after)

    def schedule(self, scheduler: AsyncIOScheduler):
        """Register this task as a job on ``scheduler``."""
        self._advance()
        scheduler.add_job(
            self.fire,
            self.trigger,
            id=self.name,
            name=self.name,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=MISFIRE_GRACE_SECONDS,
        )

    async def trigger_now(self):
        """Run the action once, now. Errors propagate to the caller."""
        self.last_run = self._clock()
        self.runs += 1
        return await self.action()

    async def fire(self, slot: datetime | None = None):
        """Scheduled firing for ``slot`` (default: the slot that is due).

        A slot at or before the last one fired, or one that is still more
        than ``CLOCK_SKEW`` away, is skipped. Errors are logged so the job
        stays scheduled.
        """
        now = self._clock()
        slot = slot or self.next_run or now
        if self.last_slot is not None and slot <= self.last_slot:
            logger.warning("Periodic task slot already ran, skipping", task=self.name, slot=slot.isoformat())
            return None
        if slot > now + CLOCK_SKEW:
            logger.warning("Periodic task fired before its slot, skipping", task=self.name, slot=slot.isoformat())
            return None

        self.last_slot = slot
        self._advance()
        try:
            return await self.trigger_now()
        except Exception as e:
            logger.error("Periodic task failed", task=self.name, slot=slot.isoformat(), error=str(e))
            return None

    def status(self) -> dict:
        return {
            "name": self.name,
            "runs": self.runs,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "next_run": self.next_run.isoformat() if self.next_run else None,
        }
