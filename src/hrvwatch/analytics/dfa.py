"""Detrended fluctuation analysis (short-term scaling exponent alpha1).

The RR series is integrated into a profile, split into non-overlapping
boxes of n beats (n = 4..16), each box is detrended with a least-squares
line, and the RMS residual F(n) is computed.  alpha1 is the slope of
log F(n) against log n.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

import numpy as np

logger = logging.getLogger(__name__)

MIN_BOX = 4
MAX_BOX = 16
MIN_INTERVALS = 100
MIN_BOX_SIZES = 3


class DFAInterpretation(str, Enum):
    UNCORRELATED = "uncorrelated"
    FATIGUE = "fatigue_signal"
    HEALTHY = "healthy_complexity"
    RIGID = "rigid_pattern"
    HIGHLY_CORRELATED = "highly_correlated"

    @classmethod
    def from_alpha1(cls, alpha1: float) -> "DFAInterpretation":
        if alpha1 < 0.5:
            return cls.UNCORRELATED
        if alpha1 < 0.75:
            return cls.FATIGUE
        if alpha1 < 1.0:
            return cls.HEALTHY
        if alpha1 < 1.2:
            return cls.RIGID
        return cls.HIGHLY_CORRELATED


@dataclass(frozen=True)
class DFAResult:
    alpha1: float
    r_squared: float
    box_sizes: tuple[int, ...]
    fluctuations: tuple[float, ...]

    @property
    def interpretation(self) -> DFAInterpretation:
        return DFAInterpretation.from_alpha1(self.alpha1)


def _fluctuation(profile: np.ndarray, box: int) -> float:
    """RMS of linear-detrended residuals over all complete boxes."""
    n_boxes = len(profile) // box
    if n_boxes < 1:
        return 0.0
    segments = profile[: n_boxes * box].reshape(n_boxes, box)
    x = np.arange(box, dtype=np.float64)
    # polyfit accepts a 2-D y with one column per segment
    coeffs = np.polyfit(x, segments.T, 1)
    trend = np.outer(coeffs[0], x) + coeffs[1][:, None]
    residuals = segments - trend
    return float(np.sqrt(np.mean(residuals ** 2)))


def dfa_alpha1(
    rr_intervals: Sequence[float],
    min_box: int = MIN_BOX,
    max_box: int = MAX_BOX,
    min_intervals: int = MIN_INTERVALS,
) -> DFAResult | None:
    """Compute DFA alpha1 for a clean RR window.

    Returns None if fewer than *min_intervals* beats are given or fewer than
    three box sizes produce a non-zero fluctuation.
    """
    if len(rr_intervals) < min_intervals:
        logger.debug("Insufficient RR intervals for DFA: %d < %d", len(rr_intervals), min_intervals)
        return None

    rr = np.asarray(rr_intervals, dtype=np.float64)
    profile = np.cumsum(rr - np.mean(rr))

    sizes: list[int] = []
    flucts: list[float] = []
    for box in range(min_box, min(max_box, len(rr) // 4) + 1):
        f = _fluctuation(profile, box)
        if f > 0:
            sizes.append(box)
            flucts.append(f)

    if len(sizes) < MIN_BOX_SIZES:
        logger.debug("Insufficient box sizes for DFA regression: %d", len(sizes))
        return None

    log_n = np.log(np.asarray(sizes, dtype=np.float64))
    log_f = np.log(np.asarray(flucts, dtype=np.float64))
    slope, intercept = np.polyfit(log_n, log_f, 1)

    predicted = slope * log_n + intercept
    ss_tot = float(np.sum((log_f - np.mean(log_f)) ** 2))
    ss_res = float(np.sum((log_f - predicted) ** 2))
    r_squared = max(0.0, 1.0 - ss_res / ss_tot) if ss_tot > 0 else 0.0

    return DFAResult(
        alpha1=float(slope),
        r_squared=r_squared,
        box_sizes=tuple(sizes),
        fluctuations=tuple(flucts),
    )
