"""EmailDispatchQueue: redis-backed email jobs with a direct-send fallback.

On construction the queue pings redis a bounded number of times. If redis
cannot be reached the instance runs in direct-send mode for the rest of
its life: ``queue_email`` renders and sends the message synchronously.
``queue_email`` and ``queue_bulk_emails`` never raise; callers get
``{"job_id": ...}`` when a job was queued or ``{"sent": bool}`` when it was
sent (or attempted) directly.

Jobs are claimed under WATCH/MULTI, so a job is either still waiting or
active with its attempt counted. A job left active longer than
``STALLED_AFTER_MS`` (its worker died) is put back by ``recover_stalled``.

Redis layout (``<name>`` defaults to ``email-notifications``)::

    <name>:id                  INCR counter for job ids
    <name>:job:<id>            hash: payload, priority, attempts, state, error
    <name>:waiting             zset, score = priority * 1e13 + enqueued_ms
    <name>:delayed             zset, score = ready_at_ms (backoff)
    <name>:active              zset, score = started_ms
    <name>:completed           zset, score = finished_ms
    <name>:failed              zset, score = finished_ms
"""

import json
import time
from dataclasses import asdict, dataclass, field

import redis
import structlog
from notifications.config import get_settings
from notifications.templates import get_template
from redis.exceptions import RedisError, WatchError
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_incrementing

logger = structlog.get_logger(__name__)

QUEUE_NAME = "email-notifications"

PRIORITY_MAP = {
    "CRITICAL": 1,
    "HIGH": 2,
    "MEDIUM": 3,
    "LOW": 4,
}
DEFAULT_JOB_PRIORITY = 3

MAX_ATTEMPTS = 3
BACKOFF_BASE_MS = 2000
STALLED_AFTER_MS = 5 * 60 * 1000
STALLED_ERROR = "Job stalled"

COMPLETED_MAX_AGE = 24 * 3600
COMPLETED_MAX_COUNT = 1000
FAILED_MAX_AGE = 7 * 24 * 3600

PING_ATTEMPTS = 3
SOCKET_TIMEOUT = 5

_SCORE_SCALE = 10**13


def job_priority(notification_priority: str | None) -> int:
    """Numeric queue priority; lower is served first."""
    return PRIORITY_MAP.get(notification_priority, DEFAULT_JOB_PRIORITY)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _log_failed_ping(retry_state):
    logger.warning(
        "Email queue ping failed",
        attempt=retry_state.attempt_number,
        error=str(retry_state.outcome.exception()),
    )


@dataclass
class EmailJob:
    notification_id: str
    user_id: str
    to: str | None
    title: str
    message: str
    notification_type: str
    priority: str
    data: dict = field(default_factory=dict)
    action: dict | None = None

    def to_json(self) -> str:
        return json.dumps(asdict(self), default=str)

    @classmethod
    def from_json(cls, raw: str) -> "EmailJob":
        return cls(**json.loads(raw))


@dataclass
class QueuedJob:
    job_id: str
    job: EmailJob
    attempts: int


def render_job(job: EmailJob) -> dict:
    """Render the single-notification email for a job."""
    settings = get_settings()
    return get_template("notification").render(
        {
            "title": job.title,
            "message": job.message,
            "priority": job.priority,
            "action": job.action,
            "app_name": settings.app_name,
            "app_url": settings.app_url,
        }
    )


class EmailDispatchQueue:
    def __init__(
        self,
        redis_url: str | None = None,
        client=None,
        email_adapter=None,
        name: str = QUEUE_NAME,
        sleep=time.sleep,
    ):
        self.name = name
        self._sleep = sleep
        self._email_adapter = email_adapter
        self.client = client
        if self.client is None:
            redis_url = redis_url or get_settings().redis_url
            if redis_url:
                self.client = redis.from_url(
                    redis_url,
                    decode_responses=True,
                    socket_connect_timeout=SOCKET_TIMEOUT,
                    socket_timeout=SOCKET_TIMEOUT,
                )

        self.direct_mode = not self._ping()
        if self.direct_mode:
            logger.warning("Email queue unavailable, using direct send", queue=self.name)
        else:
            logger.info("Email queue connected", queue=self.name)

    # -------------------------------------------------------------------
    # Connection
    # -------------------------------------------------------------------
    def _ping(self) -> bool:
        if self.client is None:
            return False
        try:
            for attempt in Retrying(
                stop=stop_after_attempt(PING_ATTEMPTS),
                wait=wait_incrementing(start=0.1, increment=0.1, max=3),
                retry=retry_if_exception_type((RedisError, OSError)),
                sleep=self._sleep,
                after=_log_failed_ping,
                reraise=True,
            ):
                with attempt:
                    self.client.ping()
        except (RedisError, OSError):
            return False
        return True

    def is_available(self) -> bool:
        return not self.direct_mode

    def close(self):
        if self.client is not None:
            self.client.close()
        logger.info("Email queue closed", queue=self.name)

    def _key(self, suffix: str) -> str:
        return f"{self.name}:{suffix}"

    def _job_key(self, job_id) -> str:
        return f"{self.name}:job:{job_id}"

    @property
    def email_adapter(self):
        if self._email_adapter is None:
            from notifications.channel import get_channel

            self._email_adapter = get_channel("EMAIL")
        return self._email_adapter

    # -------------------------------------------------------------------
    # Producer
    # -------------------------------------------------------------------
    def queue_email(self, job: EmailJob) -> dict:
        """Queue an email, or send it directly when the queue is unusable."""
        if self.direct_mode:
            return {"sent": self.send_direct(job)}

        try:
            job_id = self._enqueue(job)
        except (RedisError, OSError) as e:
            logger.warning(
                "Email enqueue failed, sending directly",
                notification_id=job.notification_id,
                error=str(e),
            )
            return {"sent": self.send_direct(job)}

        logger.info(
            "Email queued",
            job_id=job_id,
            notification_id=job.notification_id,
            priority=job_priority(job.priority),
        )
        return {"job_id": job_id}

    def queue_bulk_emails(self, jobs: list[EmailJob]) -> list[dict]:
        """Queue many emails in one round trip.

        Results line up with ``jobs`` and take the same shapes as
        ``queue_email``. If the batch cannot be queued every job is sent
        directly instead.
        """
        if not jobs:
            return []
        if self.direct_mode:
            return [{"sent": self.send_direct(job)} for job in jobs]

        try:
            job_ids = self._enqueue_many(jobs)
        except (RedisError, OSError) as e:
            logger.warning("Bulk email enqueue failed, sending directly", count=len(jobs), error=str(e))
            return [{"sent": self.send_direct(job)} for job in jobs]

        logger.info("Emails queued", count=len(job_ids), first_job_id=job_ids[0], last_job_id=job_ids[-1])
        return [{"job_id": job_id} for job_id in job_ids]

    def _enqueue(self, job: EmailJob) -> str:
        return self._enqueue_many([job])[0]

    def _enqueue_many(self, jobs: list[EmailJob]) -> list[str]:
        ids = self.client.pipeline()
        for _ in jobs:
            ids.incr(self._key("id"))
        job_ids = [str(job_id) for job_id in ids.execute()]

        now = _now_ms()
        pipe = self.client.pipeline()
        # offset keeps a batch FIFO within its priority
        for offset, (job_id, job) in enumerate(zip(job_ids, jobs)):
            priority = job_priority(job.priority)
            pipe.hset(
                self._job_key(job_id),
                mapping={
                    "payload": job.to_json(),
                    "priority": priority,
                    "attempts": 0,
                    "state": "waiting",
                    "enqueued_at": now,
                },
            )
            pipe.zadd(self._key("waiting"), {job_id: priority * _SCORE_SCALE + now + offset})
        pipe.execute()
        return job_ids

    def send_direct(self, job: EmailJob) -> bool:
        """Render and send synchronously. Reports failure instead of raising."""
        if not job.to:
            logger.warning("No recipient address for email", notification_id=job.notification_id)
            return False

        try:
            rendered = render_job(job)
            result = self.email_adapter.send(
                to=job.to,
                subject=rendered["subject"],
                body=rendered["body"],
                html_body=rendered["html_body"],
            )
        except Exception as e:
            logger.error("Direct email send failed", notification_id=job.notification_id, error=str(e))
            return False

        if result.get("status") != "sent":
            logger.error(
                "Direct email send failed",
                notification_id=job.notification_id,
                error=result.get("error"),
            )
            return False
        return True

    # -------------------------------------------------------------------
    # Consumer
    # -------------------------------------------------------------------
    def promote_delayed(self, now_ms: int | None = None) -> int:
        """Move delayed jobs whose backoff has elapsed back to waiting."""
        now_ms = now_ms if now_ms is not None else _now_ms()
        due = self.client.zrangebyscore(self._key("delayed"), 0, now_ms)
        for job_id in due:
            priority = int(self.client.hget(self._job_key(job_id), "priority") or DEFAULT_JOB_PRIORITY)
            pipe = self.client.pipeline()
            pipe.zrem(self._key("delayed"), job_id)
            pipe.zadd(self._key("waiting"), {job_id: priority * _SCORE_SCALE + now_ms})
            pipe.hset(self._job_key(job_id), "state", "waiting")
            pipe.execute()
        return len(due)

    def reserve(self, now_ms: int | None = None) -> QueuedJob | None:
        """Claim the highest-priority waiting job, or None.

        The claim runs under WATCH on the waiting set; losing it to another
        worker moves on to the next head.
        """
        now_ms = now_ms if now_ms is not None else _now_ms()
        self.promote_delayed(now_ms)
        waiting = self._key("waiting")

        while True:
            with self.client.pipeline() as pipe:
                try:
                    pipe.watch(waiting)
                    head = pipe.zrange(waiting, 0, 0)
                    if not head:
                        return None
                    job_id = head[0]

                    pipe.multi()
                    pipe.zrem(waiting, job_id)
                    pipe.zadd(self._key("active"), {job_id: now_ms})
                    pipe.hincrby(self._job_key(job_id), "attempts", 1)
                    pipe.hset(self._job_key(job_id), "state", "active")
                    pipe.hget(self._job_key(job_id), "payload")
                    _, _, attempts, _, payload = pipe.execute()
                except WatchError:
                    logger.debug("Email job claimed elsewhere, retrying", queue=self.name)
                    continue
            return QueuedJob(job_id=job_id, job=EmailJob.from_json(payload), attempts=int(attempts))

    def recover_stalled(self, now_ms: int | None = None) -> list[QueuedJob]:
        """Put back jobs that stayed active past ``STALLED_AFTER_MS``.

        A stalled job with attempts left goes back to waiting; one that has
        used them all is failed. Returns the failed ones.
        """
        now_ms = now_ms if now_ms is not None else _now_ms()
        active = self._key("active")
        exhausted = []

        for job_id in self.client.zrangebyscore(active, 0, now_ms - STALLED_AFTER_MS):
            job_key = self._job_key(job_id)
            with self.client.pipeline() as pipe:
                try:
                    pipe.watch(active, job_key)
                    state = pipe.hgetall(job_key)
                    if not state:
                        pipe.multi()
                        pipe.zrem(active, job_id)
                        pipe.execute()
                        continue
                    attempts = int(state.get("attempts") or 0)
                    priority = int(state.get("priority") or DEFAULT_JOB_PRIORITY)

                    pipe.multi()
                    pipe.zrem(active, job_id)
                    if attempts < MAX_ATTEMPTS:
                        pipe.zadd(self._key("waiting"), {job_id: priority * _SCORE_SCALE + now_ms})
                        pipe.hset(job_key, mapping={"state": "waiting", "error": STALLED_ERROR})
                    else:
                        pipe.zadd(self._key("failed"), {job_id: now_ms})
                        pipe.hset(job_key, mapping={"state": "failed", "error": STALLED_ERROR, "finished_at": now_ms})
                    pipe.execute()
                except WatchError:
                    # Finished or recovered by another worker meanwhile
                    continue

            logger.warning(
                "Stalled email job recovered",
                job_id=job_id,
                attempts=attempts,
                requeued=attempts < MAX_ATTEMPTS,
            )
            if attempts >= MAX_ATTEMPTS:
                exhausted.append(QueuedJob(job_id=job_id, job=EmailJob.from_json(state["payload"]), attempts=attempts))

        if exhausted:
            self.collect_garbage(now_ms)
        return exhausted

    def complete(self, job_id: str, now_ms: int | None = None):
        now_ms = now_ms if now_ms is not None else _now_ms()
        pipe = self.client.pipeline()
        pipe.zrem(self._key("active"), job_id)
        pipe.zadd(self._key("completed"), {job_id: now_ms})
        pipe.hset(self._job_key(job_id), mapping={"state": "completed", "finished_at": now_ms})
        pipe.execute()
        self.collect_garbage(now_ms)

    def fail(self, job_id: str, error: str, now_ms: int | None = None) -> bool:
        """Record a failed attempt. Returns True when the job will be retried."""
        now_ms = now_ms if now_ms is not None else _now_ms()
        attempts = int(self.client.hget(self._job_key(job_id), "attempts") or 0)

        pipe = self.client.pipeline()
        pipe.zrem(self._key("active"), job_id)
        if attempts < MAX_ATTEMPTS:
            delay = BACKOFF_BASE_MS * 2 ** (attempts - 1)
            pipe.zadd(self._key("delayed"), {job_id: now_ms + delay})
            pipe.hset(self._job_key(job_id), mapping={"state": "delayed", "error": error})
            retrying = True
        else:
            pipe.zadd(self._key("failed"), {job_id: now_ms})
            pipe.hset(self._job_key(job_id), mapping={"state": "failed", "error": error, "finished_at": now_ms})
            retrying = False
        pipe.execute()

        if not retrying:
            self.collect_garbage(now_ms)
        return retrying

    def collect_garbage(self, now_ms: int | None = None) -> int:
        """Drop completed/failed job records past their retention window."""
        now_ms = now_ms if now_ms is not None else _now_ms()
        expired = list(self.client.zrangebyscore(self._key("completed"), 0, now_ms - COMPLETED_MAX_AGE * 1000))
        expired += self.client.zrangebyscore(self._key("failed"), 0, now_ms - FAILED_MAX_AGE * 1000)

        overflow = self.client.zcard(self._key("completed")) - COMPLETED_MAX_COUNT
        if overflow > 0:
            expired += self.client.zrange(self._key("completed"), 0, overflow - 1)

        expired = list(dict.fromkeys(expired))
        if expired:
            pipe = self.client.pipeline()
            pipe.zrem(self._key("completed"), *expired)
            pipe.zrem(self._key("failed"), *expired)
            pipe.delete(*[self._job_key(job_id) for job_id in expired])
            pipe.execute()
        return len(expired)

    def job_state(self, job_id: str) -> dict:
        return self.client.hgetall(self._job_key(job_id))

    def queue_stats(self) -> dict | None:
        """Job counts per state, or None in direct-send mode."""
        if self.direct_mode:
            return None
        try:
            return {
                state: self.client.zcard(self._key(state))
                for state in ("waiting", "active", "completed", "failed", "delayed")
            }
        except (RedisError, OSError) as e:
            logger.error("Failed to read email queue stats", error=str(e))
            return None


_queue_instance: EmailDispatchQueue | None = None


def get_email_queue() -> EmailDispatchQueue:
    """Return the process-wide email queue (pinged once, on first use)."""
    global _queue_instance
    if _queue_instance is None:
        _queue_instance = EmailDispatchQueue()
    return _queue_instance


def set_email_queue(queue: EmailDispatchQueue | None):
    """Install a specific queue instance (tests, custom wiring)."""
    global _queue_instance
    _queue_instance = queue
