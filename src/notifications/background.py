"""Background task submission for fire-and-forget side effects.

Realtime pushes and comment notifications are not awaited by their
callers. They run on a small thread pool; the submitting thread's
context (including the active protean domain context) is copied into
the task, and any exception is handed to an error sink instead of
disappearing.
"""

import contextvars
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait

import structlog

logger = structlog.get_logger(__name__)


def log_task_error(task_name: str, exc: BaseException):
    """Default error sink: log the failure with its task name."""
    logger.error("Background task failed", task=task_name, error=str(exc), exc_info=exc)


class BackgroundTasks:
    def __init__(self, max_workers: int = 4, error_sink=log_task_error):
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="notifications-bg")
        self._error_sink = error_sink
        self._pending: set[Future] = set()
        self._lock = threading.Lock()

    def submit(self, task_name: str, fn, *args, **kwargs) -> Future:
        ctx = contextvars.copy_context()
        future = self._executor.submit(ctx.run, fn, *args, **kwargs)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(lambda f: self._on_done(task_name, f))
        return future

    def _on_done(self, task_name: str, future: Future):
        with self._lock:
            self._pending.discard(future)
        exc = future.exception()
        if exc is not None:
            self._error_sink(task_name, exc)

    def drain(self, timeout: float | None = None):
        """Block until every submitted task has finished."""
        with self._lock:
            pending = list(self._pending)
        wait(pending, timeout=timeout)

    def shutdown(self):
        self._executor.shutdown(wait=True)


_tasks: BackgroundTasks | None = None


def get_background_tasks() -> BackgroundTasks:
    global _tasks
    if _tasks is None:
        _tasks = BackgroundTasks()
    return _tasks


def reset_background_tasks():
    """Drain and discard the shared task pool (useful for testing)."""
    global _tasks
    if _tasks is not None:
        _tasks.drain()
        _tasks.shutdown()
    _tasks = None
