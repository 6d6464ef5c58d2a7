from __future__ import annotations

import heapq
import itertools
import threading
import time
from typing import Callable, List, Optional, Tuple


class ScheduledTask:
    def __init__(self) -> None:
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class Scheduler:
    """Source of time and one-shot timers for pollers."""

    def now(self) -> float:
        raise NotImplementedError

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        raise NotImplementedError


class _TimerTask(ScheduledTask):
    def __init__(self, timer: threading.Timer) -> None:
        super().__init__()
        self._timer = timer

    def cancel(self) -> None:
        super().cancel()
        self._timer.cancel()


class ThreadTimerScheduler(Scheduler):
    """Wall-clock scheduler backed by daemon ``threading.Timer`` threads."""

    def now(self) -> float:
        return time.time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        task: Optional[_TimerTask] = None

        def _run() -> None:
            if task is not None and not task.cancelled:
                callback()

        timer = threading.Timer(delay, _run)
        timer.daemon = True
        task = _TimerTask(timer)
        timer.start()
        return task


class ManualScheduler(Scheduler):
    """Virtual clock that only moves when :meth:`advance` is called.

    Due callbacks fire in time order on the caller's thread, so hosts that
    drive their own loop (and tests) get deterministic timing.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._seq = itertools.count()
        self._queue: List[Tuple[float, int, ScheduledTask, Callable[[], None]]] = []

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        task = ScheduledTask()
        heapq.heappush(self._queue, (self._now + max(delay, 0.0), next(self._seq), task, callback))
        return task

    def advance(self, seconds: float) -> None:
        target = self._now + seconds
        while self._queue and self._queue[0][0] <= target:
            due, _, task, callback = heapq.heappop(self._queue)
            self._now = due
            if not task.cancelled:
                callback()
        self._now = target

    def pending(self) -> int:
        return sum(1 for _, _, task, _ in self._queue if not task.cancelled)
