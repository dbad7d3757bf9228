"""RR-interval coverage and gap tracking.

Sensors that drop the radio link do not buffer beats, so anything missed
during a disconnect is gone.  The tracker counts what arrives, polls for
silences longer than the gap threshold, and reports received versus
expected samples for the session.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import asdict, dataclass
from typing import Callable

from hrvwatch.analytics.conditioning import DataQuality

logger = logging.getLogger(__name__)

GAP_THRESHOLD_SEC = 30.0
EXPECTED_SAMPLES_PER_MIN = 60.0
MIN_COVERAGE = 0.80


@dataclass(frozen=True)
class CoverageConfig:
    gap_threshold_sec: float = GAP_THRESHOLD_SEC
    expected_samples_per_min: float = EXPECTED_SAMPLES_PER_MIN
    min_coverage: float = MIN_COVERAGE


@dataclass(frozen=True)
class DataGap:
    """A period without samples.  ``end`` is None while the gap is open."""

    start: float
    end: float | None = None

    def duration(self, now: float | None = None) -> float:
        end = self.end if self.end is not None else now
        if end is None:
            return 0.0
        return max(0.0, end - self.start)

    @property
    def is_open(self) -> bool:
        return self.end is None


@dataclass(frozen=True)
class CoverageReport:
    duration_minutes: float
    received_samples: int
    expected_samples: int
    coverage_percent: float
    gap_count: int
    total_gap_seconds: float
    longest_gap_seconds: float
    is_low_coverage: bool

    @property
    def data_quality(self) -> DataQuality:
        return DataQuality.from_percent(self.coverage_percent)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["data_quality"] = self.data_quality.value
        return d

    def __repr__(self) -> str:
        return (
            f"CoverageReport({self.coverage_percent:.1f}% of {self.expected_samples} expected, "
            f"gaps={self.gap_count}, longest={self.longest_gap_seconds:.0f}s)"
        )


class CoverageTracker:
    """Normal / in-gap state machine over received sample counts.

    All timestamps are POSIX seconds.  Methods that need "now" take it as an
    argument and fall back to the injected clock.
    """

    def __init__(self, config: CoverageConfig | None = None, clock: Callable[[], float] = time.time):
        self.config = config or CoverageConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._reset_state()

    def _reset_state(self) -> None:
        self._start: float | None = None
        self._stop: float | None = None
        self._last_sample: float | None = None
        self._received = 0
        self._closed: list[DataGap] = []
        self._open: DataGap | None = None

    # -- lifecycle ----------------------------------------------------------

    def start_tracking(self, now: float | None = None) -> None:
        now = self._clock() if now is None else now
        with self._lock:
            self._reset_state()
            self._start = now
            self._last_sample = now
        logger.info("Coverage tracking started")

    def stop_tracking(self, now: float | None = None) -> CoverageReport:
        """Close any open gap, freeze the end time and return the final report."""
        now = self._clock() if now is None else now
        with self._lock:
            if self._stop is None:
                if self._open is not None:
                    self._closed.append(DataGap(self._open.start, now))
                    self._open = None
                self._stop = now
            report = self._report(self._stop)
        logger.info("Coverage tracking stopped: %.1f%%", report.coverage_percent)
        return report

    def reset(self) -> None:
        with self._lock:
            self._reset_state()

    @property
    def is_tracking(self) -> bool:
        return self._start is not None and self._stop is None

    @property
    def in_gap(self) -> bool:
        return self._open is not None

    # -- inputs -------------------------------------------------------------

    def record_samples(self, count: int, timestamp: float | None = None) -> None:
        """Count *count* received RR samples; closes an open gap."""
        timestamp = self._clock() if timestamp is None else timestamp
        with self._lock:
            if self._start is None or self._stop is not None:
                return
            self._received += max(0, count)
            if self._open is not None:
                gap = DataGap(self._open.start, timestamp)
                self._closed.append(gap)
                self._open = None
                logger.debug("Gap closed after %.0fs", gap.duration())
            self._last_sample = timestamp

    def check_for_gap(self, now: float | None = None) -> bool:
        """Poll for silence; opens a gap starting at the last sample.

        Returns True while a gap is open.
        """
        now = self._clock() if now is None else now
        with self._lock:
            if self._last_sample is None or self._stop is not None:
                return False
            silence = now - self._last_sample
            if silence > self.config.gap_threshold_sec and self._open is None:
                self._open = DataGap(self._last_sample)
                logger.warning("Data gap detected: no samples for %ds", int(silence))
            return self._open is not None

    # -- outputs ------------------------------------------------------------

    @property
    def gaps(self) -> list[DataGap]:
        """Closed gaps followed by the open one, if any."""
        with self._lock:
            result = list(self._closed)
            if self._open is not None:
                result.append(self._open)
            return result

    def snapshot(self, now: float | None = None) -> CoverageReport:
        """Report as of *now* without stopping (frozen once stopped)."""
        now = self._clock() if now is None else now
        with self._lock:
            return self._report(self._stop if self._stop is not None else now)

    def _report(self, end: float) -> CoverageReport:
        if self._start is None:
            minutes = 0.0
        else:
            minutes = max(0.0, end - self._start) / 60.0
        expected_exact = minutes * self.config.expected_samples_per_min
        coverage = self._received / expected_exact * 100.0 if expected_exact > 0 else 0.0

        durations = [g.duration() for g in self._closed]
        longest = max(durations, default=0.0)
        if self._open is not None:
            longest = max(longest, self._open.duration(end))

        return CoverageReport(
            duration_minutes=minutes,
            received_samples=self._received,
            expected_samples=int(expected_exact),
            coverage_percent=min(100.0, coverage),
            gap_count=len(self._closed),
            total_gap_seconds=sum(durations),
            longest_gap_seconds=longest,
            is_low_coverage=coverage < self.config.min_coverage * 100.0,
        )
