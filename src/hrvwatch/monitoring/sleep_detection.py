"""Sleep onset / offset detection with hysteresis.

Each 30-second update compares heart rate and RMSSD to the waking baseline.
A sleep signal (HR below 85% and RMSSD above 110% of waking) moves the
detector from awake to maybe-asleep; it confirms as sleeping once the signal
has held for 15 minutes.  Waking works the same way with the wake signal
(HR above 95% and RMSSD below 95%).  Any contrary tick during a transition
falls back to the previous stable state.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

import numpy as np

from hrvwatch.monitoring.events import SleepState

logger = logging.getLogger(__name__)

SLEEP_HR_RATIO = 0.85
SLEEP_RMSSD_RATIO = 1.10
WAKE_HR_RATIO = 0.95
WAKE_RMSSD_RATIO = 0.95

SLEEP_CONFIRM_SEC = 15 * 60.0
WAKE_CONFIRM_SEC = 15 * 60.0
MIN_SLEEP_SEC = 3600.0

MIN_BASELINE_SAMPLES = 10


class DetectionState(str, Enum):
    AWAKE = "awake"
    MAYBE_ASLEEP = "maybe_asleep"
    SLEEPING = "sleeping"
    WAKING = "waking"


@dataclass(frozen=True)
class MetricSample:
    hr: float
    rmssd: float
    timestamp: float


def waking_baseline(samples: Sequence[MetricSample]) -> tuple[float, float] | None:
    """Mean (hr, rmssd) of daytime samples; None with fewer than 10."""
    if len(samples) < MIN_BASELINE_SAMPLES:
        return None
    hr = float(np.mean([s.hr for s in samples]))
    rmssd = float(np.mean([s.rmssd for s in samples]))
    return hr, rmssd


class SleepDetectionEngine:
    def __init__(self, sleep_confirm_sec: float = SLEEP_CONFIRM_SEC, wake_confirm_sec: float = WAKE_CONFIRM_SEC):
        self.sleep_confirm_sec = sleep_confirm_sec
        self.wake_confirm_sec = wake_confirm_sec
        self._lock = threading.Lock()
        self._baseline_hr: float | None = None
        self._baseline_rmssd: float | None = None
        self._reset_state()

    def _reset_state(self) -> None:
        self.state = DetectionState.AWAKE
        self.manual_mode = False
        self._transition_start: float | None = None
        self.sleep_start: float | None = None
        self.last_sleep_period: tuple[float, float] | None = None
        self.transition_count = 0

    # -- baseline -----------------------------------------------------------

    def set_waking_baseline(self, hr: float, rmssd: float) -> None:
        with self._lock:
            self._baseline_hr = hr
            self._baseline_rmssd = rmssd
        logger.info("Waking baseline set: hr=%.1f rmssd=%.1f", hr, rmssd)

    def calculate_waking_baseline(self, samples: Sequence[MetricSample]) -> bool:
        """Set the baseline from daytime samples; False when there are too few."""
        result = waking_baseline(samples)
        if result is None:
            logger.warning("Not enough samples for a waking baseline (%d)", len(samples))
            return False
        self.set_waking_baseline(*result)
        return True

    @property
    def has_baseline(self) -> bool:
        return bool(self._baseline_hr) and bool(self._baseline_rmssd)

    @property
    def waking_baseline(self) -> tuple[float | None, float | None]:
        return self._baseline_hr, self._baseline_rmssd

    # -- manual mode --------------------------------------------------------

    def start_manual_sleep(self, timestamp: float) -> None:
        with self._lock:
            self.manual_mode = True
            self._transition(DetectionState.SLEEPING, timestamp)
            if self.sleep_start is None:
                self.sleep_start = timestamp
        logger.info("Manual sleep mode started")

    def stop_manual_sleep(self, timestamp: float) -> None:
        with self._lock:
            self.manual_mode = False
            if self.state is DetectionState.SLEEPING:
                self._transition(DetectionState.AWAKE, timestamp)
        logger.info("Manual sleep mode stopped")

    def reset(self) -> None:
        with self._lock:
            self._reset_state()

    # -- queries ------------------------------------------------------------

    def current_sleep_state(self) -> SleepState:
        """SLEEPING only in the confirmed sleeping state."""
        if self.state is DetectionState.SLEEPING:
            return SleepState.SLEEPING
        return SleepState.AWAKE

    def should_stop_recording(self) -> bool:
        """True after waking from a sleep period of at least an hour."""
        if self.state is not DetectionState.AWAKE or self.last_sleep_period is None:
            return False
        start, end = self.last_sleep_period
        return end - start >= MIN_SLEEP_SEC

    # -- updates ------------------------------------------------------------

    def update(self, hr: float, rmssd: float, timestamp: float) -> DetectionState:
        with self._lock:
            if not self.has_baseline:
                return self.state
            if self.manual_mode:
                if self.state is not DetectionState.SLEEPING:
                    self._transition(DetectionState.SLEEPING, timestamp)
                return self.state

            hr_ratio = hr / self._baseline_hr
            rmssd_ratio = rmssd / self._baseline_rmssd
            sleep_signal = hr_ratio < SLEEP_HR_RATIO and rmssd_ratio > SLEEP_RMSSD_RATIO
            wake_signal = hr_ratio > WAKE_HR_RATIO and rmssd_ratio < WAKE_RMSSD_RATIO
            self._step(sleep_signal, wake_signal, timestamp)
            return self.state

    def _step(self, sleep_signal: bool, wake_signal: bool, timestamp: float) -> None:
        if self.state is DetectionState.AWAKE:
            if sleep_signal:
                self._transition(DetectionState.MAYBE_ASLEEP, timestamp)
                self._transition_start = timestamp

        elif self.state is DetectionState.MAYBE_ASLEEP:
            if not sleep_signal:
                self._transition(DetectionState.AWAKE, timestamp)
            elif timestamp - self._transition_start >= self.sleep_confirm_sec:
                onset = self._transition_start
                self._transition(DetectionState.SLEEPING, timestamp)
                self.sleep_start = onset

        elif self.state is DetectionState.SLEEPING:
            if wake_signal:
                self._transition(DetectionState.WAKING, timestamp)
                self._transition_start = timestamp

        elif self.state is DetectionState.WAKING:
            if not wake_signal:
                self._transition(DetectionState.SLEEPING, timestamp)
            elif timestamp - self._transition_start >= self.wake_confirm_sec:
                self._transition(DetectionState.AWAKE, timestamp)
                self.manual_mode = False

    def _transition(self, new_state: DetectionState, timestamp: float) -> None:
        if new_state is self.state:
            return
        logger.info("Sleep detection: %s -> %s", self.state.value, new_state.value)
        self.state = new_state
        self.transition_count += 1
        if new_state in (DetectionState.AWAKE, DetectionState.SLEEPING):
            self._transition_start = None
        if new_state is DetectionState.AWAKE and self.sleep_start is not None:
            self.last_sleep_period = (self.sleep_start, timestamp)
            self.sleep_start = None
