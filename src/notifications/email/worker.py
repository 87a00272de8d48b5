"""EmailWorker: drains the email queue through the email channel adapter.

Up to ``concurrency`` jobs are sent in parallel (thread pool) and job
starts are throttled to ``rate_limit`` per second. Failed attempts go back
to the queue with backoff; once a job runs out of attempts the optional
``on_permanent_failure`` callback is told about it. Each pass first puts
back jobs a dead worker left active.
"""

import asyncio
import threading
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor

import structlog
from notifications.email.queue import STALLED_ERROR, EmailDispatchQueue, QueuedJob, render_job

logger = structlog.get_logger(__name__)

DEFAULT_CONCURRENCY = 5
DEFAULT_RATE_LIMIT = 10  # jobs per second


class RateLimiter:
    """Sliding one-second window limiter."""

    def __init__(self, max_per_second: int, clock=time.monotonic, sleep=time.sleep):
        self.max_per_second = max_per_second
        self._clock = clock
        self._sleep = sleep
        self._starts: deque[float] = deque()
        self._lock = threading.Lock()

    def acquire(self):
        with self._lock:
            while True:
                now = self._clock()
                while self._starts and now - self._starts[0] >= 1.0:
                    self._starts.popleft()
                if len(self._starts) < self.max_per_second:
                    self._starts.append(now)
                    return
                self._sleep(1.0 - (now - self._starts[0]))


class EmailWorker:
    def __init__(
        self,
        queue: EmailDispatchQueue,
        email_adapter=None,
        concurrency: int = DEFAULT_CONCURRENCY,
        rate_limit: int = DEFAULT_RATE_LIMIT,
        on_permanent_failure=None,
        poll_interval: float = 1.0,
        rate_limiter: RateLimiter | None = None,
    ):
        self.queue = queue
        self._email_adapter = email_adapter
        self.concurrency = concurrency
        self.poll_interval = poll_interval
        self.on_permanent_failure = on_permanent_failure
        self.rate_limiter = rate_limiter or RateLimiter(rate_limit)
        self.processed = 0
        self.failed = 0

    @property
    def email_adapter(self):
        return self._email_adapter or self.queue.email_adapter

    def process_job(self, queued: QueuedJob) -> bool:
        """Send one job. Returns True when the email went out."""
        job = queued.job
        self.rate_limiter.acquire()

        if not job.to:
            error = "No recipient address"
            result = {"status": "failed", "error": error}
        else:
            try:
                rendered = render_job(job)
                result = self.email_adapter.send(
                    to=job.to,
                    subject=rendered["subject"],
                    body=rendered["body"],
                    html_body=rendered["html_body"],
                )
            except Exception as e:
                result = {"status": "failed", "error": str(e)}

        if result.get("status") == "sent":
            self.queue.complete(queued.job_id)
            self.processed += 1
            logger.info(
                "Email job completed",
                job_id=queued.job_id,
                notification_id=job.notification_id,
                attempts=queued.attempts,
            )
            return True

        error = result.get("error") or "Unknown email error"
        retrying = self.queue.fail(queued.job_id, error)
        self.failed += 1
        logger.warning(
            "Email job failed",
            job_id=queued.job_id,
            notification_id=job.notification_id,
            attempts=queued.attempts,
            retrying=retrying,
            error=error,
        )
        if not retrying:
            self._report_permanent_failure(job, error)
        return False

    def _report_permanent_failure(self, job, error: str):
        if self.on_permanent_failure is None:
            return
        try:
            self.on_permanent_failure(job, error)
        except Exception as e:
            logger.error(
                "Permanent failure callback raised",
                notification_id=job.notification_id,
                error=str(e),
            )

    def process_available(self, max_jobs: int | None = None) -> int:
        """Reserve and send waiting jobs in batches of ``concurrency``. Returns jobs handled."""
        for stalled in self.queue.recover_stalled():
            self._report_permanent_failure(stalled.job, STALLED_ERROR)

        handled = 0
        with ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="email-worker") as pool:
            while max_jobs is None or handled < max_jobs:
                batch_size = self.concurrency if max_jobs is None else min(self.concurrency, max_jobs - handled)
                batch = []
                for _ in range(batch_size):
                    queued = self.queue.reserve()
                    if queued is None:
                        break
                    batch.append(queued)
                if not batch:
                    break
                list(pool.map(self.process_job, batch))
                handled += len(batch)
        return handled

    async def run(self, stop_event: asyncio.Event):
        """Poll the queue until ``stop_event`` is set."""
        if not self.queue.is_available():
            logger.warning("Email worker not started: queue unavailable")
            return

        logger.info("Email worker started", concurrency=self.concurrency)
        while not stop_event.is_set():
            handled = await asyncio.to_thread(self.process_available)
            if handled == 0:
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=self.poll_interval)
                except TimeoutError:
                    pass
        logger.info("Email worker stopped", processed=self.processed, failed=self.failed)
