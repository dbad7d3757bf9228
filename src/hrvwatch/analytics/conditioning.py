"""Beat-interval conditioning: artifact rejection and ectopic correction.

Steps:
1. Drop intervals outside the physiological range [200, 2500] ms.
2. Optionally flag ectopic beats: an interval that differs from the previous
   accepted interval by more than 20% of that interval.
3. Replace flagged beats by cubic-spline interpolation over the unflagged
   neighbours (linear when fewer than four anchors exist), clipped to the
   physiological range.

Only rejection (step 1) lowers the quality score; corrected beats still count
as retained.  The whole pass is deterministic for a given input.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

import numpy as np
from scipy.interpolate import CubicSpline

from hrvwatch.decoders.hr import RR_MAX_MS, RR_MIN_MS

logger = logging.getLogger(__name__)

# Largest tolerated beat-to-beat change before a beat is treated as ectopic
ECTOPIC_THRESHOLD = 0.20

# Default minimum clean intervals per 5.5-minute window
DEFAULT_MIN_INTERVALS = 30


class DataQuality(str, Enum):
    """Quality band for a conditioned window (or coverage report)."""

    EXCELLENT = "excellent"
    GOOD = "good"
    ACCEPTABLE = "acceptable"
    POOR = "poor"
    UNUSABLE = "unusable"

    @classmethod
    def from_percent(cls, percent: float) -> "DataQuality":
        if percent >= 95:
            return cls.EXCELLENT
        if percent >= 85:
            return cls.GOOD
        if percent >= 70:
            return cls.ACCEPTABLE
        if percent >= 50:
            return cls.POOR
        return cls.UNUSABLE

    @property
    def is_usable(self) -> bool:
        return self is not DataQuality.UNUSABLE


@dataclass(frozen=True)
class ConditioningConfig:
    min_rr_ms: float = RR_MIN_MS
    max_rr_ms: float = RR_MAX_MS
    min_intervals: int = DEFAULT_MIN_INTERVALS
    correct_ectopic: bool = True
    ectopic_threshold: float = ECTOPIC_THRESHOLD


@dataclass(frozen=True)
class CleanIntervalWindow:
    """Result of conditioning one window of raw beat intervals."""

    clean_intervals: tuple[float, ...]
    quality_score: float  # fraction of input intervals retained (0-1)
    is_valid: bool
    original_count: int = 0
    rejected_count: int = 0
    corrected_count: int = 0

    @property
    def clean_duration_sec(self) -> float:
        return float(sum(self.clean_intervals)) / 1000.0

    @property
    def quality(self) -> DataQuality:
        return DataQuality.from_percent(self.quality_score * 100.0)

    def __repr__(self) -> str:
        return (
            f"CleanIntervalWindow(n={len(self.clean_intervals)}/{self.original_count}, "
            f"quality={self.quality_score:.2f}, corrected={self.corrected_count}, "
            f"valid={self.is_valid})"
        )


def _flag_ectopic(values: np.ndarray, threshold: float) -> np.ndarray:
    """Boolean mask of beats that jump more than *threshold* from their predecessor."""
    flags = np.zeros(len(values), dtype=bool)
    if len(values) < 2:
        return flags
    change = np.abs(np.diff(values)) / values[:-1]
    flags[1:] = change > threshold
    return flags


def _interpolate_flagged(
    values: np.ndarray,
    flags: np.ndarray,
    lo: float,
    hi: float,
) -> np.ndarray:
    """Replace flagged beats from their unflagged neighbours (by beat index)."""
    good_idx = np.flatnonzero(~flags)
    bad_idx = np.flatnonzero(flags)
    if len(bad_idx) == 0 or len(good_idx) == 0:
        return values

    result = values.copy()
    if len(good_idx) >= 4:
        spline = CubicSpline(good_idx, values[good_idx], extrapolate=False)
        estimates = spline(bad_idx)
        # Outside the anchor span the spline yields NaN; hold the edge value
        linear = np.interp(bad_idx, good_idx, values[good_idx])
        estimates = np.where(np.isnan(estimates), linear, estimates)
    else:
        estimates = np.interp(bad_idx, good_idx, values[good_idx])
    result[bad_idx] = np.clip(estimates, lo, hi)
    return result


def condition_intervals(
    intervals: Sequence[float],
    config: ConditioningConfig | None = None,
) -> CleanIntervalWindow:
    """Clean a window of raw beat intervals.

    Args:
        intervals: Raw RR intervals in milliseconds, in arrival order.
        config: Bounds, minimum count and ectopic handling.

    Returns:
        CleanIntervalWindow; ``is_valid`` is False when fewer than
        ``config.min_intervals`` intervals survive.
    """
    cfg = config or ConditioningConfig()
    raw = np.asarray(intervals, dtype=np.float64)
    original = len(raw)

    if original == 0:
        return CleanIntervalWindow(clean_intervals=(), quality_score=0.0, is_valid=False)

    in_range = (raw >= cfg.min_rr_ms) & (raw <= cfg.max_rr_ms)
    values = raw[in_range]
    rejected = original - len(values)
    if rejected:
        logger.debug("Rejected %d of %d RR intervals out of range", rejected, original)

    corrected = 0
    if cfg.correct_ectopic and len(values) >= 2:
        flags = _flag_ectopic(values, cfg.ectopic_threshold)
        corrected = int(np.sum(flags))
        if corrected:
            values = _interpolate_flagged(values, flags, cfg.min_rr_ms, cfg.max_rr_ms)
            logger.debug("Corrected %d ectopic beats", corrected)

    return CleanIntervalWindow(
        clean_intervals=tuple(float(v) for v in values),
        quality_score=len(values) / original,
        is_valid=len(values) >= cfg.min_intervals,
        original_count=original,
        rejected_count=rejected,
        corrected_count=corrected,
    )
