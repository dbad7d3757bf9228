"""Monitoring session: wires decoding, buffering and the state machines.

    transport payload --> HeartRateDecoder --> ContinuousBuffer --+--> OvernightProcessor (tick)
                                         +--> CoverageTracker    +--> metrics tick --> StressMonitor
                                                                                  +--> SleepDetectionEngine

Two independent periodic paths share the buffer: the overnight tick
(default every 5 minutes) and the metrics tick (default every 30 seconds)
that feeds the stress monitor and sleep detector.  A third job polls the
coverage tracker for gaps.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable

from hrvwatch.analytics.baseline import baseline_7d, enrich_with_baselines
from hrvwatch.analytics.conditioning import ConditioningConfig, condition_intervals
from hrvwatch.analytics.confidence import ConfidenceResult, score_confidence
from hrvwatch.analytics.hrv import compute_rmssd, hr_stats
from hrvwatch.analytics.summary import DailySummary, build_daily_summary
from hrvwatch.config import MonitorConfig
from hrvwatch.decoders.hr import BeatSample, HeartRateDecoder
from hrvwatch.monitoring.buffer import ContinuousBuffer, Dispatcher
from hrvwatch.monitoring.coverage import CoverageReport, CoverageTracker
from hrvwatch.monitoring.events import SleepState
from hrvwatch.monitoring.overnight import OvernightProcessor, OvernightSummary, Timeslice
from hrvwatch.monitoring.scheduler import Job, Scheduler, ThreadScheduler
from hrvwatch.monitoring.sleep_detection import MetricSample, SleepDetectionEngine
from hrvwatch.monitoring.stress import StressEvent, StressMonitor
from hrvwatch.storage import LoggingNotifier, Notifier, SummaryStore

logger = logging.getLogger(__name__)

# RMSSD for the metrics tick only needs a couple of clean beats
METRICS_MIN_INTERVALS = 2


@dataclass(frozen=True)
class SessionReport:
    started_at: float
    ended_at: float
    sample_count: int
    disconnect_count: int
    coverage: CoverageReport
    confidence: ConfidenceResult
    overnight: OvernightSummary | None = None
    timeslices: tuple[Timeslice, ...] = ()
    stress_events: tuple[StressEvent, ...] = ()
    daily_summary: DailySummary | None = None
    flush_count: int = 0

    @property
    def duration_minutes(self) -> float:
        return (self.ended_at - self.started_at) / 60.0

    def to_dict(self) -> dict:
        return {
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "duration_minutes": round(self.duration_minutes, 1),
            "sample_count": self.sample_count,
            "disconnect_count": self.disconnect_count,
            "coverage": self.coverage.to_dict(),
            "confidence": self.confidence.to_dict(),
            "overnight": self.overnight.to_dict() if self.overnight else None,
            "timeslices": [t.to_dict() for t in self.timeslices],
            "stress_events": [e.to_dict() for e in self.stress_events],
            "daily_summary": self.daily_summary.to_dict() if self.daily_summary else None,
            "flush_count": self.flush_count,
        }

    def __repr__(self) -> str:
        return (
            f"SessionReport({self.duration_minutes:.0f}min, samples={self.sample_count}, "
            f"timeslices={len(self.timeslices)}, stress_events={len(self.stress_events)}, "
            f"confidence={self.confidence.score})"
        )


@dataclass
class _Counters:
    samples: int = 0
    disconnects: int = 0
    hr_values: list[float] = field(default_factory=list)
    metric_samples: list[MetricSample] = field(default_factory=list)


class MonitoringSession:
    """One continuous monitoring run.

    Args:
        config: Monitoring options.
        scheduler: Drives the periodic jobs (threads by default).
        clock: POSIX-seconds clock; pass ``ManualScheduler.clock`` in tests.
        store: Receives stress events, the daily summary and the session
            report; its history feeds the stress baseline and summary
            enrichment.
        notifier: Receives phase-change, deep-sleep and stress signals.
        dispatch: Buffer flush dispatcher (background executor by default).
    """

    def __init__(
        self,
        config: MonitorConfig | None = None,
        scheduler: Scheduler | None = None,
        clock: Callable[[], float] = time.time,
        store: SummaryStore | None = None,
        notifier: Notifier | None = None,
        dispatch: Dispatcher | None = None,
    ):
        self.config = config or MonitorConfig()
        self.scheduler = scheduler or ThreadScheduler()
        self.clock = clock
        self.store = store
        self.notifier = notifier or LoggingNotifier()

        self.decoder = HeartRateDecoder()
        self.buffer: ContinuousBuffer[BeatSample] = ContinuousBuffer(
            capacity=self.config.buffer.capacity,
            flush_threshold=self.config.buffer.flush_threshold,
            dispatch=dispatch,
        )
        self.coverage = CoverageTracker(self.config.coverage, clock=clock)
        self.overnight = OvernightProcessor(
            self.config.overnight,
            buffer=self.buffer,
            scheduler=self.scheduler,
            clock=clock,
        )
        self.sleep_detector = SleepDetectionEngine()
        self.stress = StressMonitor(self.config.stress, sleep_state=self.current_sleep_state)

        self.stress_events: list[StressEvent] = []
        self._counters = _Counters()
        self._lock = threading.Lock()
        self._jobs: list[Job] = []
        self._started_at: float | None = None
        self._report: SessionReport | None = None

        self.overnight.on_phase_change.connect(self.notifier.phase_changed)
        self.overnight.on_deep_sleep.connect(self.notifier.deep_sleep_detected)
        self.stress.on_alert.connect(self.notifier.stress_alert)
        self.stress.on_event.connect(self._on_stress_event)

    # -- lifecycle ----------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._started_at is not None and self._report is None

    def start(self, now: float | None = None) -> None:
        if self._started_at is not None:
            logger.info("Session already started")
            return
        now = self.clock() if now is None else now
        self._started_at = now
        self.coverage.start_tracking(now)
        self.overnight.start()
        cfg = self.config.session
        self._jobs = [
            self.scheduler.schedule_repeating(cfg.metrics_interval_sec, self._metrics_tick),
            self.scheduler.schedule_repeating(cfg.gap_check_interval_sec, self._gap_tick),
        ]
        logger.info("Monitoring session started")

    def stop(self, now: float | None = None) -> SessionReport:
        """Stop all jobs and build the report.  Idempotent."""
        if self._report is not None:
            return self._report
        if self._started_at is None:
            self.start(now)

        # Cancel before taking the session lock; jobs may be waiting on it
        jobs, self._jobs = self._jobs, []
        for job in jobs:
            job.cancel()
        self.overnight.stop()

        with self._lock:
            if self._report is not None:
                return self._report
            now = self.clock() if now is None else now
            coverage = self.coverage.stop_tracking(now)
            self.stress.finalize(now)
            self._report = self._build_report(now, coverage)

        if self.store is not None:
            if self._report.daily_summary is not None:
                self.store.save_daily_summary(self._report.daily_summary)
            self.store.save_session_report(self._report)
        logger.info("Session stopped: %r", self._report)
        return self._report

    # -- inputs -------------------------------------------------------------

    def set_baselines(
        self,
        waking_hr: float,
        waking_rmssd: float,
        baseline_rmssd: float | None = None,
        resting_hr: float | None = None,
    ) -> None:
        """Set the waking baselines and the stress baseline.

        The stress RMSSD baseline defaults to the stored 7-day baseline, then
        to *waking_rmssd*; resting HR defaults to *waking_hr*.
        """
        self.overnight.set_waking_baselines(waking_hr, waking_rmssd)
        self.sleep_detector.set_waking_baseline(waking_hr, waking_rmssd)
        if baseline_rmssd is None:
            history = self._history()
            if history:
                baseline_rmssd = baseline_7d(history)
        self.stress.set_baseline(
            baseline_rmssd if baseline_rmssd is not None else waking_rmssd,
            resting_hr if resting_hr is not None else waking_hr,
        )

    def calibrate_waking_baseline(self) -> bool:
        """Derive waking baselines from the metric samples collected so far."""
        with self._lock:
            samples = list(self._counters.metric_samples)
        if not self.sleep_detector.calculate_waking_baseline(samples):
            return False
        hr, rmssd = self.sleep_detector.waking_baseline
        self.set_baselines(hr, rmssd)
        return True

    def ingest_payload(self, data: bytes | bytearray, timestamp: float | None = None) -> BeatSample | None:
        """Decode one Heart Rate Measurement payload and feed it in.

        Returns the decoded sample, or None for a malformed payload.
        """
        timestamp = self.clock() if timestamp is None else timestamp
        sample = self.decoder.decode(data, timestamp_ms=int(round(timestamp * 1000)))
        if sample is None:
            return None
        self.ingest_sample(sample)
        return sample

    def ingest_sample(self, sample: BeatSample) -> None:
        if self._report is not None:
            return
        self.buffer.append(sample)
        if sample.has_rr_intervals:
            self.coverage.record_samples(len(sample.rr_intervals_ms), sample.timestamp)
        with self._lock:
            self._counters.samples += 1
            if sample.heart_rate_bpm > 0:
                self._counters.hr_values.append(float(sample.heart_rate_bpm))

    def record_disconnect(self) -> None:
        with self._lock:
            self._counters.disconnects += 1
        logger.warning("Transport disconnected (%d so far)", self._counters.disconnects)

    # -- state --------------------------------------------------------------

    def current_sleep_state(self) -> SleepState:
        """SLEEPING when either the overnight processor or the detector says so."""
        if self.overnight.current_sleep_state() is SleepState.SLEEPING:
            return SleepState.SLEEPING
        return self.sleep_detector.current_sleep_state()

    @property
    def disconnect_count(self) -> int:
        return self._counters.disconnects

    # -- periodic jobs ------------------------------------------------------

    def _metrics_tick(self) -> None:
        now = self.clock()
        samples = [
            s for s in self.buffer.items_since(now - self.config.session.metrics_window_sec)
            if s.timestamp <= now
        ]
        rr = [v for s in samples for v in s.rr_intervals_ms]
        window = condition_intervals(rr, ConditioningConfig(min_intervals=METRICS_MIN_INTERVALS))
        if not window.is_valid:
            return
        rmssd = compute_rmssd(window.clean_intervals)
        stats = hr_stats([s.heart_rate_bpm for s in samples], window.clean_intervals)
        if rmssd is None or stats is None:
            return

        with self._lock:
            self._counters.metric_samples.append(MetricSample(stats.mean_hr, rmssd, now))
        self.sleep_detector.update(stats.mean_hr, rmssd, now)
        self.stress.update(stats.mean_hr, rmssd, now)

    def _gap_tick(self) -> None:
        self.coverage.check_for_gap(self.clock())

    def _history(self, end: date | None = None) -> list[DailySummary] | None:
        """Stored summaries up to *end*; None without a store or when it fails."""
        if self.store is None:
            return None
        try:
            return self.store.daily_summaries(end=end)
        except Exception:
            logger.exception("Could not read summary history")
            return None

    def _on_stress_event(self, event: StressEvent) -> None:
        self.stress_events.append(event)
        if self.store is not None:
            self.store.save_stress_event(event)

    # -- report -------------------------------------------------------------

    def _build_report(self, now: float, coverage: CoverageReport) -> SessionReport:
        started = self._started_at if self._started_at is not None else now
        minutes = max(0.0, now - started) / 60.0
        transitions = self.overnight.phase_transition_count + self.sleep_detector.transition_count

        confidence = score_confidence(
            disconnect_count=self._counters.disconnects,
            rr_coverage_percent=coverage.coverage_percent,
            hr_samples=self._counters.hr_values,
            state_transition_count=transitions,
            session_minutes=minutes,
        )

        timeslices = self.overnight.timeslices
        daily = build_daily_summary(
            session_day(now),
            timeslices,
            tick_minutes=self.config.overnight.tick_interval_sec / 60.0,
        )
        if daily is not None:
            history = self._history(end=daily.date)
            if history is not None:
                daily = enrich_with_baselines(daily, history)

        return SessionReport(
            started_at=started,
            ended_at=now,
            sample_count=self._counters.samples,
            disconnect_count=self._counters.disconnects,
            coverage=coverage,
            confidence=confidence,
            overnight=self.overnight.summary(),
            timeslices=tuple(timeslices),
            stress_events=tuple(self.stress_events),
            daily_summary=daily,
            flush_count=self.buffer.flush_count,
        )


def session_day(timestamp: float) -> date:
    """Local calendar day a session ending at *timestamp* is filed under."""
    return datetime.fromtimestamp(timestamp).date()
