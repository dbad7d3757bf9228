"""Real-time stress episode detection.

Fed roughly every 30 seconds with the current heart rate and RMSSD.  A tick
is a stress tick when RMSSD has dropped below 70% of the 7-day baseline and
heart rate sits more than 10% above resting.  Stress has to hold for the
sustained duration (default 5 minutes) before an alert fires, and alerts are
rate limited by a cooldown (default 10 minutes).  When the condition clears
after an alert the episode is closed into a StressEvent.

States:
    calm     -> onset      first stress tick
    onset    -> alerting   sustained and outside the cooldown
    onset    -> calm       condition cleared (no event)
    alerting -> calm       condition cleared (StressEvent emitted)
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from hrvwatch.monitoring.events import Signal, SleepState

logger = logging.getLogger(__name__)

RMSSD_DROP_THRESHOLD = 0.70
HR_ELEVATION_THRESHOLD = 0.10
SUSTAINED_SEC = 300.0
COOLDOWN_SEC = 600.0


class StressSeverity(str, Enum):
    MILD = "mild"
    MODERATE = "moderate"
    HIGH = "high"

    @classmethod
    def from_ratios(cls, rmssd_ratio: float, hr_elevation: float) -> "StressSeverity":
        if rmssd_ratio < 0.60:
            return cls.HIGH
        if rmssd_ratio < 0.70 and hr_elevation > 0.15:
            return cls.HIGH
        if rmssd_ratio < 0.70:
            return cls.MODERATE
        return cls.MILD

    @property
    def recommendation(self) -> str:
        return {
            StressSeverity.MILD: "Take a few deep breaths when you have a moment.",
            StressSeverity.MODERATE: "Consider taking a short break to relax.",
            StressSeverity.HIGH: "Stress is elevated. Take a break and try some slow breathing.",
        }[self]


class StressState(str, Enum):
    CALM = "calm"
    ONSET = "onset"
    ALERTING = "alerting"


@dataclass(frozen=True)
class StressConfig:
    rmssd_drop_threshold: float = RMSSD_DROP_THRESHOLD
    hr_elevation_threshold: float = HR_ELEVATION_THRESHOLD
    sustained_sec: float = SUSTAINED_SEC
    cooldown_sec: float = COOLDOWN_SEC


@dataclass(frozen=True)
class StressAlert:
    """Sent when an episode is confirmed."""

    timestamp: float
    onset: float
    severity: StressSeverity
    rmssd_ratio: float
    hr_elevation: float


@dataclass(frozen=True)
class StressEvent:
    """A closed stress episode.  ``timestamp`` is the onset time."""

    timestamp: float
    duration: float
    average_hr: float
    average_rmssd: float
    baseline_rmssd: float
    severity: StressSeverity

    @property
    def rmssd_ratio(self) -> float:
        if self.baseline_rmssd <= 0:
            return 1.0
        return self.average_rmssd / self.baseline_rmssd

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "duration": self.duration,
            "average_hr": self.average_hr,
            "average_rmssd": self.average_rmssd,
            "baseline_rmssd": self.baseline_rmssd,
            "rmssd_ratio": self.rmssd_ratio,
            "severity": self.severity.value,
        }

    def __repr__(self) -> str:
        return (
            f"StressEvent({self.severity.value}, {self.duration / 60:.1f}min, "
            f"hr={self.average_hr:.0f}, rmssd={self.average_rmssd:.1f})"
        )


def _always_awake() -> SleepState:
    return SleepState.AWAKE


class StressMonitor:
    """Calm / onset / alerting state machine over periodic HR + RMSSD updates.

    ``sleep_state`` is queried on every update; nothing is tracked while it
    reports SLEEPING.
    """

    def __init__(
        self,
        config: StressConfig | None = None,
        sleep_state: Callable[[], SleepState] = _always_awake,
    ):
        self.config = config or StressConfig()
        self._sleep_state = sleep_state
        self._lock = threading.Lock()

        self.on_alert: Signal[StressAlert] = Signal("stress.alert")
        self.on_event: Signal[StressEvent] = Signal("stress.event")

        self._baseline_rmssd: float | None = None
        self._baseline_hr: float | None = None
        self._last_alert: float | None = None
        self._clear_episode()

    def _clear_episode(self) -> None:
        self.state = StressState.CALM
        self._onset: float | None = None
        self._severity: StressSeverity | None = None
        # (hr, rmssd) collected since onset
        self._samples: list[tuple[float, float]] = []
        self.current_duration = 0.0

    # -- configuration ------------------------------------------------------

    def set_baseline(self, rmssd: float, resting_hr: float) -> None:
        with self._lock:
            self._baseline_rmssd = rmssd
            self._baseline_hr = resting_hr
        logger.info("Stress baseline set: rmssd=%.1f resting_hr=%.1f", rmssd, resting_hr)

    @property
    def has_baseline(self) -> bool:
        return bool(self._baseline_rmssd) and bool(self._baseline_hr)

    def reset(self) -> None:
        """Drop the in-flight episode without emitting anything."""
        with self._lock:
            self._clear_episode()
        logger.info("Stress monitor reset")

    @property
    def is_stressed(self) -> bool:
        return self.state is StressState.ALERTING

    @property
    def current_severity(self) -> StressSeverity | None:
        return self._severity

    # -- updates ------------------------------------------------------------

    def update(self, hr: float, rmssd: float, timestamp: float) -> None:
        """Feed one metrics sample (expected every ~30 s)."""
        if self._sleep_state() is SleepState.SLEEPING:
            return
        alert = event = None
        with self._lock:
            if not self.has_baseline:
                return
            rmssd_ratio = rmssd / self._baseline_rmssd
            hr_elevation = (hr - self._baseline_hr) / self._baseline_hr
            stressed = (
                rmssd_ratio < self.config.rmssd_drop_threshold
                and hr_elevation > self.config.hr_elevation_threshold
            )
            if stressed:
                alert = self._on_stressed(hr, rmssd, rmssd_ratio, hr_elevation, timestamp)
            elif self.state is StressState.ALERTING:
                event = self._close_episode(timestamp)
            elif self.state is StressState.ONSET:
                logger.debug("Stress onset cleared after %.0fs", self.current_duration)
                self._clear_episode()

        if alert is not None:
            self.on_alert.emit(alert)
        if event is not None:
            self.on_event.emit(event)

    def finalize(self, timestamp: float) -> StressEvent | None:
        """Close an alerting episode as a regular close (session end)."""
        with self._lock:
            if self.state is StressState.ALERTING:
                event = self._close_episode(timestamp)
            else:
                self._clear_episode()
                event = None
        if event is not None:
            self.on_event.emit(event)
        return event

    def _on_stressed(
        self,
        hr: float,
        rmssd: float,
        rmssd_ratio: float,
        hr_elevation: float,
        timestamp: float,
    ) -> StressAlert | None:
        if self._onset is None:
            self._onset = timestamp
            self.state = StressState.ONSET
            logger.debug("Stress onset at %.0f", timestamp)
        self._samples.append((hr, rmssd))
        self.current_duration = timestamp - self._onset

        if self.state is StressState.ALERTING or self.current_duration < self.config.sustained_sec:
            return None
        if self._last_alert is not None and timestamp - self._last_alert < self.config.cooldown_sec:
            logger.info("Stress alert suppressed by cooldown")
            return None

        self._severity = StressSeverity.from_ratios(rmssd_ratio, hr_elevation)
        self._last_alert = timestamp
        self.state = StressState.ALERTING
        logger.info("Stress alert: %s", self._severity.value)
        return StressAlert(
            timestamp=timestamp,
            onset=self._onset,
            severity=self._severity,
            rmssd_ratio=rmssd_ratio,
            hr_elevation=hr_elevation,
        )

    def _close_episode(self, timestamp: float) -> StressEvent:
        onset = self._onset if self._onset is not None else timestamp
        n = len(self._samples)
        event = StressEvent(
            timestamp=onset,
            duration=timestamp - onset,
            average_hr=sum(s[0] for s in self._samples) / n if n else 0.0,
            average_rmssd=sum(s[1] for s in self._samples) / n if n else 0.0,
            baseline_rmssd=self._baseline_rmssd or 0.0,
            severity=self._severity or StressSeverity.MILD,
        )
        logger.info("Stress episode ended after %.1f min", event.duration / 60.0)
        self._clear_episode()
        return event
