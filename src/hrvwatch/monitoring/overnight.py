"""Windowed sleep-phase classification.

Every tick (default 5 minutes) the processor takes the trailing window
(default 5.5 minutes) of beat samples from a shared buffer, conditions the
intervals, computes the metric set and heart-rate statistics, and classifies
the window against the waking baselines:

    HR ratio < 0.85 and RMSSD ratio > 1.15            -> deep
    LF/HF > 2.0 and 0.9 < RMSSD ratio < 1.1           -> rem
    HR ratio > 0.95 and RMSSD ratio < 0.9             -> awake
    otherwise                                         -> light

Rules are checked in that order.  Without a baseline every window is light.
A window with too few intervals is skipped entirely.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Sequence

import numpy as np

from hrvwatch.analytics.conditioning import ConditioningConfig, condition_intervals
from hrvwatch.analytics.hrv import HRVMetricSet, compute_metrics, hr_stats
from hrvwatch.decoders.hr import BeatSample
from hrvwatch.monitoring.buffer import ContinuousBuffer, inline_dispatch
from hrvwatch.monitoring.events import Signal, SleepState
from hrvwatch.monitoring.scheduler import Job, Scheduler

logger = logging.getLogger(__name__)

TICK_INTERVAL_SEC = 300.0
WINDOW_SEC = 330.0
MIN_INTERVALS_PER_TICK = 30

# Phase classification ratios against the waking baseline
DEEP_HR_RATIO = 0.85
DEEP_RMSSD_RATIO = 1.15
REM_LF_HF = 2.0
REM_RMSSD_BAND = (0.9, 1.1)
AWAKE_HR_RATIO = 0.95
AWAKE_RMSSD_RATIO = 0.9

PARASYMPATHETIC_RMSSD_RATIO = 1.10
PARASYMPATHETIC_LF_HF = 1.0
# Used when no waking baseline is available
PARASYMPATHETIC_RMSSD_FALLBACK_MS = 50.0

DEEP_WINDOW_HR_RATIO = 0.80
DEEP_WINDOW_RMSSD_RATIO = 1.25


class SleepPhase(str, Enum):
    AWAKE = "awake"
    LIGHT = "light"
    DEEP = "deep"
    REM = "rem"


@dataclass(frozen=True)
class OvernightConfig:
    tick_interval_sec: float = TICK_INTERVAL_SEC
    window_sec: float = WINDOW_SEC
    min_intervals: int = MIN_INTERVALS_PER_TICK


@dataclass(frozen=True)
class Timeslice:
    """One processed window."""

    timestamp: float
    window_start: float
    window_end: float
    metrics: HRVMetricSet
    average_hr: float
    min_hr: float
    max_hr: float
    sample_count: int
    quality_score: float
    phase: SleepPhase
    is_parasympathetic_dominant: bool
    is_deep_sleep_window: bool

    @property
    def rmssd(self) -> float:
        return self.metrics.rmssd

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "window_start": self.window_start,
            "window_end": self.window_end,
            **self.metrics.to_dict(),
            "average_hr": self.average_hr,
            "min_hr": self.min_hr,
            "max_hr": self.max_hr,
            "sample_count": self.sample_count,
            "quality_score": self.quality_score,
            "phase": self.phase.value,
            "is_parasympathetic_dominant": self.is_parasympathetic_dominant,
            "is_deep_sleep_window": self.is_deep_sleep_window,
        }

    def __repr__(self) -> str:
        return (
            f"Timeslice({self.phase.value}, rmssd={self.metrics.rmssd:.1f}ms, "
            f"hr={self.average_hr:.0f}bpm, n={self.sample_count})"
        )


@dataclass(frozen=True)
class OvernightSummary:
    total_timeslices: int
    average_rmssd: float
    max_rmssd: float
    min_rmssd: float
    average_hr: float
    min_hr: float
    max_hr: float
    deep_sleep_window_count: int
    parasympathetic_dominant_count: int
    phase_transition_count: int = 0
    recovery_intensity_curve: tuple[float, ...] = field(default=())

    def to_dict(self) -> dict:
        return {
            "total_timeslices": self.total_timeslices,
            "average_rmssd": round(self.average_rmssd, 1),
            "max_rmssd": round(self.max_rmssd, 1),
            "min_rmssd": round(self.min_rmssd, 1),
            "average_hr": round(self.average_hr, 1),
            "min_hr": round(self.min_hr, 1),
            "max_hr": round(self.max_hr, 1),
            "deep_sleep_window_count": self.deep_sleep_window_count,
            "parasympathetic_dominant_count": self.parasympathetic_dominant_count,
            "phase_transition_count": self.phase_transition_count,
            "recovery_intensity_curve": [round(v, 3) for v in self.recovery_intensity_curve],
        }


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def classify_phase(
    rmssd: float,
    average_hr: float,
    lf_hf_ratio: float | None,
    baseline_hr: float | None,
    baseline_rmssd: float | None,
) -> SleepPhase:
    """Sleep phase for one window.  LIGHT when no usable baseline is set."""
    if not baseline_hr or not baseline_rmssd:
        return SleepPhase.LIGHT

    hr_ratio = average_hr / baseline_hr
    rmssd_ratio = rmssd / baseline_rmssd

    if hr_ratio < DEEP_HR_RATIO and rmssd_ratio > DEEP_RMSSD_RATIO:
        return SleepPhase.DEEP
    lo, hi = REM_RMSSD_BAND
    if lf_hf_ratio is not None and lf_hf_ratio > REM_LF_HF and lo < rmssd_ratio < hi:
        return SleepPhase.REM
    if hr_ratio > AWAKE_HR_RATIO and rmssd_ratio < AWAKE_RMSSD_RATIO:
        return SleepPhase.AWAKE
    return SleepPhase.LIGHT


def is_parasympathetic_dominant(
    rmssd: float,
    lf_hf_ratio: float | None,
    baseline_rmssd: float | None,
) -> bool:
    if not baseline_rmssd:
        return rmssd > PARASYMPATHETIC_RMSSD_FALLBACK_MS
    elevated = rmssd > baseline_rmssd * PARASYMPATHETIC_RMSSD_RATIO
    lf_hf_low = lf_hf_ratio is None or lf_hf_ratio < PARASYMPATHETIC_LF_HF
    return elevated and lf_hf_low


def is_deep_sleep_window(
    rmssd: float,
    average_hr: float,
    baseline_hr: float | None,
    baseline_rmssd: float | None,
) -> bool:
    if not baseline_hr or not baseline_rmssd:
        return False
    return (
        average_hr < baseline_hr * DEEP_WINDOW_HR_RATIO
        and rmssd > baseline_rmssd * DEEP_WINDOW_RMSSD_RATIO
    )


def summarize_timeslices(
    timeslices: Sequence[Timeslice],
    phase_transition_count: int = 0,
) -> OvernightSummary | None:
    """Session-level statistics across processed windows; None when empty."""
    if not timeslices:
        return None
    rmssd = np.asarray([t.metrics.rmssd for t in timeslices], dtype=np.float64)
    hr = np.asarray([t.average_hr for t in timeslices], dtype=np.float64)
    peak = float(np.max(rmssd))
    curve = rmssd / peak if peak > 0 else np.zeros_like(rmssd)
    return OvernightSummary(
        total_timeslices=len(timeslices),
        average_rmssd=float(np.mean(rmssd)),
        max_rmssd=peak,
        min_rmssd=float(np.min(rmssd)),
        average_hr=float(np.mean(hr)),
        min_hr=float(np.min(hr)),
        max_hr=float(np.max(hr)),
        deep_sleep_window_count=sum(1 for t in timeslices if t.is_deep_sleep_window),
        parasympathetic_dominant_count=sum(1 for t in timeslices if t.is_parasympathetic_dominant),
        phase_transition_count=phase_transition_count,
        recovery_intensity_curve=tuple(float(v) for v in curve),
    )


# ---------------------------------------------------------------------------
# Processor
# ---------------------------------------------------------------------------


class OvernightProcessor:
    """Periodic sleep-phase classifier over a shared beat buffer.

    Signals:
        on_timeslice:    every processed window (Timeslice)
        on_phase_change: the new SleepPhase, only when it differs from the
                         last emitted phase
        on_deep_sleep:   the Timeslice of each deep-sleep window
    """

    def __init__(
        self,
        config: OvernightConfig | None = None,
        buffer: ContinuousBuffer[BeatSample] | None = None,
        scheduler: Scheduler | None = None,
        clock: Callable[[], float] = time.time,
        conditioning: ConditioningConfig | None = None,
    ):
        self.config = config or OvernightConfig()
        self.buffer = buffer if buffer is not None else ContinuousBuffer(dispatch=inline_dispatch)
        self.conditioning = conditioning or ConditioningConfig(min_intervals=self.config.min_intervals)
        self._scheduler = scheduler
        self._clock = clock
        self._job: Job | None = None
        self._lock = threading.RLock()

        self.on_timeslice: Signal[Timeslice] = Signal("overnight.timeslice")
        self.on_phase_change: Signal[SleepPhase] = Signal("overnight.phase_change")
        self.on_deep_sleep: Signal[Timeslice] = Signal("overnight.deep_sleep")

        self._timeslices: list[Timeslice] = []
        self._phase = SleepPhase.AWAKE
        self._transitions = 0
        self._baseline_hr: float | None = None
        self._baseline_rmssd: float | None = None
        self.is_running = False

    # -- lifecycle ----------------------------------------------------------

    def start(self) -> None:
        with self._lock:
            if self.is_running:
                logger.info("Overnight processor already running")
                return
            self.is_running = True
            self._timeslices.clear()
            self._phase = SleepPhase.AWAKE
            self._transitions = 0
        if self._scheduler is not None:
            self._job = self._scheduler.schedule_repeating(self.config.tick_interval_sec, self._tick)
        logger.info("Overnight processor started, tick every %ds", int(self.config.tick_interval_sec))

    def stop(self) -> None:
        """Cancel the tick; idempotent."""
        job, self._job = self._job, None
        if job is not None:
            job.cancel()
        with self._lock:
            if not self.is_running:
                return
            self.is_running = False
        logger.info("Overnight processor stopped after %d timeslices", len(self._timeslices))

    def _tick(self) -> None:
        self.process_window()

    # -- inputs -------------------------------------------------------------

    def add_sample(self, sample: BeatSample) -> None:
        self.buffer.append(sample)

    def set_waking_baselines(self, hr: float, rmssd: float) -> None:
        with self._lock:
            self._baseline_hr = hr
            self._baseline_rmssd = rmssd
        logger.info("Waking baselines set: hr=%.1f rmssd=%.1f", hr, rmssd)

    @property
    def waking_baselines(self) -> tuple[float | None, float | None]:
        return self._baseline_hr, self._baseline_rmssd

    # -- state --------------------------------------------------------------

    @property
    def timeslices(self) -> list[Timeslice]:
        with self._lock:
            return list(self._timeslices)

    @property
    def current_phase(self) -> SleepPhase:
        return self._phase

    @property
    def phase_transition_count(self) -> int:
        return self._transitions

    def current_sleep_state(self) -> SleepState:
        """SLEEPING once a window has been classified as anything but awake."""
        with self._lock:
            if self._timeslices and self._phase is not SleepPhase.AWAKE:
                return SleepState.SLEEPING
        return SleepState.AWAKE

    def summary(self) -> OvernightSummary | None:
        with self._lock:
            return summarize_timeslices(self._timeslices, self._transitions)

    # -- processing ---------------------------------------------------------

    def process_window(self, now: float | None = None) -> Timeslice | None:
        """Process the trailing window ending at *now*.

        Returns the new Timeslice, or None when the window was skipped.
        """
        now = self._clock() if now is None else now
        window_start = now - self.config.window_sec
        samples = [s for s in self.buffer.items_since(window_start) if s.timestamp <= now]

        raw_intervals = [rr for s in samples for rr in s.rr_intervals_ms]
        if len(raw_intervals) < self.config.min_intervals:
            logger.debug("Skipping window: %d intervals", len(raw_intervals))
            return None

        window = condition_intervals(raw_intervals, self.conditioning)
        if not window.is_valid:
            logger.debug("Skipping window: %r", window)
            return None

        metrics = compute_metrics(window.clean_intervals)
        stats = hr_stats([s.heart_rate_bpm for s in samples], window.clean_intervals)
        if metrics is None or stats is None:
            logger.warning("Could not compute metrics for window ending %.0f", now)
            return None

        with self._lock:
            base_hr, base_rmssd = self._baseline_hr, self._baseline_rmssd
            phase = classify_phase(metrics.rmssd, stats.mean_hr, metrics.lf_hf_ratio, base_hr, base_rmssd)
            timeslice = Timeslice(
                timestamp=now,
                window_start=window_start,
                window_end=now,
                metrics=metrics,
                average_hr=stats.mean_hr,
                min_hr=stats.min_hr,
                max_hr=stats.max_hr,
                sample_count=len(window.clean_intervals),
                quality_score=window.quality_score,
                phase=phase,
                is_parasympathetic_dominant=is_parasympathetic_dominant(
                    metrics.rmssd, metrics.lf_hf_ratio, base_rmssd
                ),
                is_deep_sleep_window=is_deep_sleep_window(
                    metrics.rmssd, stats.mean_hr, base_hr, base_rmssd
                ),
            )
            self._timeslices.append(timeslice)
            changed = phase is not self._phase
            if changed:
                logger.info("Phase changed: %s -> %s", self._phase.value, phase.value)
                self._phase = phase
                self._transitions += 1

        if changed:
            self.on_phase_change.emit(phase)
        if timeslice.is_deep_sleep_window:
            self.on_deep_sleep.emit(timeslice)
        self.on_timeslice.emit(timeslice)

        logger.info(
            "Timeslice: rmssd=%.1f hr=%.0f phase=%s",
            metrics.rmssd, stats.mean_hr, phase.value,
        )
        return timeslice
