"""Periodic job scheduling.

The monitoring components never create timers themselves; they receive a
Scheduler.  ThreadScheduler runs jobs on background threads for live use,
ManualScheduler fires them from explicit ``advance()`` calls so tests and
offline replay can drive ticks without waiting on the wall clock.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Protocol

logger = logging.getLogger(__name__)


class Job(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def schedule_repeating(self, interval: float, callback: Callable[[], None]) -> Job: ...


# ---------------------------------------------------------------------------
# Threaded
# ---------------------------------------------------------------------------


class ThreadJob:
    """A repeating callback on its own daemon thread."""

    def __init__(self, interval: float, callback: Callable[[], None], name: str = "hrvwatch-tick") -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.interval = interval
        self._callback = callback
        self._stopped = threading.Event()
        # Held while the callback runs so cancel() can wait for it to finish
        self._running = threading.Lock()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stopped.wait(self.interval):
            with self._running:
                if self._stopped.is_set():
                    return
                try:
                    self._callback()
                except Exception:
                    logger.exception("Scheduled job failed")

    def cancel(self) -> None:
        """Stop the job; no callback starts after this returns."""
        self._stopped.set()
        if threading.current_thread() is self._thread:
            return
        # Wait out a callback already in flight
        with self._running:
            pass
        self._thread.join(timeout=self.interval + 1.0)

    @property
    def cancelled(self) -> bool:
        return self._stopped.is_set()


class ThreadScheduler:
    def schedule_repeating(self, interval: float, callback: Callable[[], None]) -> ThreadJob:
        return ThreadJob(interval, callback)


# ---------------------------------------------------------------------------
# Manual (deterministic)
# ---------------------------------------------------------------------------


class ManualJob:
    def __init__(self, scheduler: "ManualScheduler", interval: float, callback: Callable[[], None]) -> None:
        self.interval = interval
        self.callback = callback
        self.next_due = scheduler.now + interval
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler with a virtual clock.

    ``now`` doubles as the clock for components under test: pass
    ``scheduler.clock`` wherever a ``clock`` callable is expected.
    """

    def __init__(self, start: float = 0.0) -> None:
        self.now = float(start)
        self._jobs: list[ManualJob] = []

    def clock(self) -> float:
        return self.now

    def schedule_repeating(self, interval: float, callback: Callable[[], None]) -> ManualJob:
        if interval <= 0:
            raise ValueError("interval must be positive")
        job = ManualJob(self, interval, callback)
        self._jobs.append(job)
        return job

    @property
    def pending(self) -> int:
        return sum(1 for j in self._jobs if not j.cancelled)

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing every job that falls due.

        Returns the number of callbacks fired.
        """
        target = self.now + seconds
        fired = 0
        while True:
            live = [j for j in self._jobs if not j.cancelled and j.next_due <= target]
            if not live:
                break
            job = min(live, key=lambda j: j.next_due)
            self.now = job.next_due
            job.next_due += job.interval
            job.callback()
            fired += 1
        self._jobs = [j for j in self._jobs if not j.cancelled]
        self.now = target
        return fired

    def advance_to(self, timestamp: float) -> int:
        if timestamp <= self.now:
            return 0
        return self.advance(timestamp - self.now)
