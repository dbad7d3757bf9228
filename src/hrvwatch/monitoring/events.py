"""Callback channels and shared state enums for the monitoring components."""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SleepState(str, Enum):
    """Coarse sleep state consulted by the stress monitor."""

    AWAKE = "awake"
    SLEEPING = "sleeping"


class Signal(Generic[T]):
    """A minimal callback channel.

    Listeners are called synchronously, in registration order, with an
    immutable payload.  A listener that raises is logged and skipped so one
    bad consumer cannot stall the pipeline.
    """

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._listeners: list[Callable[[T], None]] = []
        self._lock = threading.Lock()

    def connect(self, listener: Callable[[T], None]) -> Callable[[T], None]:
        """Register *listener*; returns it so this can be used as a decorator."""
        with self._lock:
            self._listeners.append(listener)
        return listener

    def disconnect(self, listener: Callable[[T], None]) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def emit(self, payload: T) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(payload)
            except Exception:
                logger.exception("Listener for signal %r failed", self.name)

    def __len__(self) -> int:
        return len(self._listeners)
