"""
Scheduled tasks and debouncing.

The sync layer never talks to timers directly: it asks a Scheduler to run a
callback later and may cancel it. ThreadingScheduler is used by the running
service, ManualScheduler drives time by hand (tests, deterministic replays).
"""
import heapq
import itertools
import logging
import threading
from typing import Callable, List, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)


class ScheduledTask(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        ...


class _TimerTask:
    def __init__(self, timer: threading.Timer):
        self._timer = timer

    def cancel(self) -> None:
        self._timer.cancel()


class ThreadingScheduler:
    """Runs callbacks on daemon threading.Timer threads."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return _TimerTask(timer)


class _ManualTask:
    def __init__(self, due: float, callback: Callable[[], None]):
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """
    Virtual-clock scheduler. Nothing runs until advance() moves time forward.

    Tasks due at the same instant run in the order they were scheduled.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self._queue: List[Tuple[float, int, _ManualTask]] = []
        self._counter = itertools.count()

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        task = _ManualTask(self.now + max(delay, 0.0), callback)
        heapq.heappush(self._queue, (task.due, next(self._counter), task))
        return task

    @property
    def pending(self) -> int:
        return sum(1 for _, _, task in self._queue if not task.cancelled)

    def advance(self, seconds: float) -> int:
        """Move the clock forward, running every task that falls due. Returns how many ran."""
        target = self.now + seconds
        ran = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, task = heapq.heappop(self._queue)
            self.now = due
            if task.cancelled:
                continue
            task.callback()
            ran += 1
        self.now = target
        return ran

    def run_all(self) -> int:
        """Run everything currently scheduled, including tasks scheduled while running."""
        ran = 0
        while self._queue:
            ran += self.advance(self._queue[0][0] - self.now)
        return ran


class Debouncer:
    """
    Coalesces bursts of triggers into one call after `delay` seconds of quiet.

    Each trigger cancels the pending call and schedules a new one.
    """

    def __init__(self, scheduler: Scheduler, delay: float, name: str = "debounce"):
        self.scheduler = scheduler
        self.delay = delay
        self.name = name
        self._task: Optional[ScheduledTask] = None
        self._lock = threading.Lock()

    @property
    def pending(self) -> bool:
        return self._task is not None

    def trigger(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if self._task is not None:
                self._task.cancel()
            task_ref: List[ScheduledTask] = []

            def fire() -> None:
                with self._lock:
                    if not task_ref or self._task is not task_ref[0]:
                        return
                    self._task = None
                callback()

            task = self.scheduler.call_later(self.delay, fire)
            task_ref.append(task)
            self._task = task
        logger.debug(f"{self.name}: armed for {self.delay:.1f}s")

    def cancel(self) -> None:
        with self._lock:
            if self._task is not None:
                self._task.cancel()
                self._task = None
