"""Bounded, thread-safe buffer of recent samples.

Keeps at most ``capacity`` items in arrival order.  When an append brings
the fill level to the flush threshold, a snapshot of the contents is handed
to the ``on_flush`` listeners through a dispatcher, never awaited by the
producer.  The flush is advisory: trimming to capacity is a separate step
that drops the oldest excess items after the flush check.

Mutations take the write side of a readers-writer lock, so readers always
see a complete buffer state.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from typing import Callable, Generic, Iterable, Iterator, Protocol, Sequence, TypeVar

from hrvwatch.monitoring.events import Signal

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 600
DEFAULT_FLUSH_THRESHOLD = 0.8

T = TypeVar("T")

Dispatcher = Callable[[Callable[[], None]], None]

_flush_executor: ThreadPoolExecutor | None = None
_executor_lock = threading.Lock()


def background_dispatch(task: Callable[[], None]) -> None:
    """Run *task* on a shared single-worker executor (fire and forget)."""
    global _flush_executor
    with _executor_lock:
        if _flush_executor is None:
            _flush_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="hrvwatch-flush")
        executor = _flush_executor
    executor.submit(task)


def inline_dispatch(task: Callable[[], None]) -> None:
    """Run *task* immediately on the calling thread."""
    task()


class Timestamped(Protocol):
    @property
    def timestamp(self) -> float: ...


class ReadWriteLock:
    """Many concurrent readers or one writer; waiting writers block new readers."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class ContinuousBuffer(Generic[T]):
    """Fixed-capacity ring buffer with threshold-triggered flush notifications."""

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        flush_threshold: float = DEFAULT_FLUSH_THRESHOLD,
        dispatch: Dispatcher | None = None,
    ) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        if not 0.0 < flush_threshold <= 1.0:
            raise ValueError("flush_threshold must be in (0, 1]")
        self.capacity = capacity
        self.flush_threshold = flush_threshold
        self.on_flush: Signal[tuple[T, ...]] = Signal("buffer.flush")
        self._dispatch = dispatch or background_dispatch
        self._items: deque[T] = deque()
        self._lock = ReadWriteLock()
        self.flush_count = 0

    # -- writers ------------------------------------------------------------

    def append(self, item: T) -> None:
        """Add one item."""
        self.extend((item,))

    def extend(self, items: Iterable[T]) -> None:
        """Add items in order, flush-check, then trim the oldest excess."""
        batch = list(items)
        if not batch:
            return
        snapshot = None
        with self._lock.write():
            self._items.extend(batch)
            if len(self._items) / self.capacity >= self.flush_threshold:
                snapshot = tuple(self._items)
            while len(self._items) > self.capacity:
                self._items.popleft()
        if snapshot is not None:
            self._trigger_flush(snapshot)

    def clear(self) -> None:
        with self._lock.write():
            self._items.clear()

    def force_flush(self) -> None:
        """Flush the current contents regardless of fill level."""
        with self._lock.read():
            snapshot = tuple(self._items)
        if snapshot:
            self._trigger_flush(snapshot)

    # -- readers ------------------------------------------------------------

    @property
    def items(self) -> list[T]:
        """Copy of all buffered items, oldest first."""
        with self._lock.read():
            return list(self._items)

    def last(self, count: int) -> list[T]:
        if count <= 0:
            return []
        with self._lock.read():
            n = len(self._items)
            return [self._items[i] for i in range(max(0, n - count), n)]

    def items_since(self, timestamp: float) -> list[T]:
        """Items whose ``timestamp`` attribute is at or after *timestamp*."""
        with self._lock.read():
            return [item for item in self._items if item.timestamp >= timestamp]  # type: ignore[attr-defined]

    def items_between(self, start: float, end: float) -> list[T]:
        with self._lock.read():
            return [
                item for item in self._items
                if start <= item.timestamp <= end  # type: ignore[attr-defined]
            ]

    @property
    def count(self) -> int:
        with self._lock.read():
            return len(self._items)

    def __len__(self) -> int:
        return self.count

    @property
    def is_empty(self) -> bool:
        return self.count == 0

    @property
    def fill_level(self) -> float:
        return self.count / self.capacity

    # -- internals ----------------------------------------------------------

    def _trigger_flush(self, snapshot: Sequence[T]) -> None:
        self.flush_count += 1
        logger.debug("Flushing %d buffered items", len(snapshot))
        payload = tuple(snapshot)
        self._dispatch(lambda: self.on_flush.emit(payload))
