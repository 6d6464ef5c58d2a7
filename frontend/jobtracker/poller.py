from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

import requests

from .api_client import JobNotFound, JobStatus, JobStatusSource
from .config import MAX_POLL_SECONDS, POLL_INTERVAL_SECONDS
from .scheduler import ScheduledTask, Scheduler

logger = logging.getLogger(__name__)

PENDING = "pending"
POLLING = "polling"
COMPLETE = "complete"
FAILED = "failed"
TIMED_OUT = "timed_out"
STOPPED = "stopped"

FINISHED_STATES = frozenset({COMPLETE, FAILED, TIMED_OUT, STOPPED})

# Eviction reasons passed to on_evict
EVICT_FAILED = "failed"
EVICT_NOT_FOUND = "not_found"
EVICT_TIMEOUT = "timeout"


class JobPoller:
    """Polls one job until it finishes, disappears, or runs out of time.

    pending -> polling -> complete | failed | timed_out. ``stop()`` from
    any state ends in ``stopped``. Each poller owns its own timers, so
    pollers for different jobs never share state.

    The timeout only bounds how long this client waits. The job may still
    finish on the server afterwards.
    """

    def __init__(
        self,
        job_id: str,
        *,
        status_source: JobStatusSource,
        scheduler: Scheduler,
        is_live: Callable[[str], bool],
        on_complete: Callable[[str, JobStatus], None],
        on_evict: Callable[[str, str], None],
        interval: float = POLL_INTERVAL_SECONDS,
        max_poll_time: float = MAX_POLL_SECONDS,
    ):
        self.job_id = job_id
        self.status_source = status_source
        self.scheduler = scheduler
        self.is_live = is_live
        self.on_complete = on_complete
        self.on_evict = on_evict
        self.interval = interval
        self.max_poll_time = max_poll_time

        self.state = PENDING
        self.queries = 0
        self._started_at: Optional[float] = None
        self._tick_task: Optional[ScheduledTask] = None
        self._timeout_task: Optional[ScheduledTask] = None
        self._lock = threading.Lock()

    @property
    def finished(self) -> bool:
        return self.state in FINISHED_STATES

    def start(self) -> None:
        with self._lock:
            if self.state != PENDING:
                return
            self.state = POLLING
            self._started_at = self.scheduler.now()
            self._timeout_task = self.scheduler.call_later(self.max_poll_time, self._on_timeout)
            self._tick_task = self.scheduler.call_later(self.interval, self._tick)
        logger.info(f"[jobs] polling started for {self.job_id}")

    def stop(self) -> None:
        with self._lock:
            if self.finished:
                return
            self.state = STOPPED
            self._cancel_timers()

    def _cancel_timers(self) -> None:
        if self._tick_task is not None:
            self._tick_task.cancel()
        if self._timeout_task is not None:
            self._timeout_task.cancel()

    def _finish(self, state: str) -> bool:
        with self._lock:
            if self.finished:
                return False
            self.state = state
            self._cancel_timers()
            return True

    def _expired(self) -> bool:
        return self._started_at is not None and self.scheduler.now() - self._started_at >= self.max_poll_time

    def _on_timeout(self) -> None:
        if self._finish(TIMED_OUT):
            logger.info(f"[jobs] job {self.job_id} timed out after {self.max_poll_time:.0f}s")
            self.on_evict(self.job_id, EVICT_TIMEOUT)

    def _schedule_next(self) -> None:
        with self._lock:
            if not self.finished:
                self._tick_task = self.scheduler.call_later(self.interval, self._tick)

    def _tick(self) -> None:
        if self.finished:
            return
        if not self.is_live(self.job_id):
            self.stop()
            return
        if self._expired():
            self._on_timeout()
            return

        self.queries += 1
        try:
            status = self.status_source.get_status(self.job_id)
        except JobNotFound:
            self._evict(EVICT_NOT_FOUND, "job not found")
            return
        except requests.RequestException as e:
            logger.error(f"[jobs] poll error for {self.job_id}: {e}")
            self._schedule_next()
            return
        except Exception as e:
            logger.error(f"[jobs] unexpected poll error for {self.job_id}: {type(e).__name__}: {e}", exc_info=True)
            self._schedule_next()
            return

        # The registry may have dropped the job while the request was in flight.
        if self.finished or not self.is_live(self.job_id):
            self.stop()
            return

        if status.status == "completed" and status.asset:
            if self._finish(COMPLETE):
                logger.info(f"[jobs] job completed: {self.job_id}")
                self.on_complete(self.job_id, status)
        elif status.status == "failed":
            self._evict(EVICT_FAILED, status.error_message or "failed")
        else:
            self._schedule_next()

    def _evict(self, reason: str, detail: str) -> None:
        if self._finish(FAILED):
            logger.error(f"[jobs] job {self.job_id} evicted ({reason}): {detail}")
            self.on_evict(self.job_id, reason)
