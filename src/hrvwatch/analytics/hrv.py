"""Time-domain HRV metrics and the combined metric set.

This is the shared foundation for the monitoring state machines.  It
provides:
  - RMSSD, SDNN, pNN50 over a clean interval window
  - HRVMetricSet bundling time, frequency and non-linear metrics
  - Heart rate statistics with a fallback derived from beat intervals

Every function here is pure; nothing is retained between calls.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Sequence

import numpy as np

from hrvwatch.analytics.dfa import dfa_alpha1
from hrvwatch.analytics.spectral import analyze_frequency_domain

# Successive-difference threshold for pNN50 (ms)
NN50_THRESHOLD_MS = 50.0


# ---------------------------------------------------------------------------
# Time domain
# ---------------------------------------------------------------------------


def compute_rmssd(rr_intervals: Sequence[float]) -> float | None:
    """Root mean square of successive RR-interval differences (ms).

    Returns None if fewer than 2 intervals are provided.
    """
    if len(rr_intervals) < 2:
        return None
    diffs = np.diff(np.asarray(rr_intervals, dtype=np.float64))
    return float(np.sqrt(np.mean(diffs ** 2)))


def sdnn(rr_intervals: Sequence[float]) -> float | None:
    """Sample standard deviation (N-1) of RR intervals (ms).

    Returns None if fewer than 2 intervals.
    """
    if len(rr_intervals) < 2:
        return None
    return float(np.std(np.asarray(rr_intervals, dtype=np.float64), ddof=1))


def pnn50(rr_intervals: Sequence[float]) -> float | None:
    """Fraction (0-1) of successive RR differences larger than 50 ms.

    Returns None if fewer than 2 intervals.
    """
    if len(rr_intervals) < 2:
        return None
    diffs = np.abs(np.diff(np.asarray(rr_intervals, dtype=np.float64)))
    return float(np.sum(diffs > NN50_THRESHOLD_MS) / len(diffs))


# ---------------------------------------------------------------------------
# Metric set
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HRVMetricSet:
    """HRV metrics for one clean interval window.

    Frequency-domain and DFA fields are None when the window is too short
    for a meaningful estimate.
    """

    rmssd: float
    sdnn: float
    pnn50: float
    lf_power: float | None = None
    hf_power: float | None = None
    lf_hf_ratio: float | None = None
    dfa_alpha1: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def __repr__(self) -> str:
        extra = ""
        if self.lf_hf_ratio is not None:
            extra += f", lf/hf={self.lf_hf_ratio:.2f}"
        if self.dfa_alpha1 is not None:
            extra += f", a1={self.dfa_alpha1:.2f}"
        return (
            f"HRVMetricSet(rmssd={self.rmssd:.1f}ms, sdnn={self.sdnn:.1f}ms, "
            f"pnn50={self.pnn50:.0%}{extra})"
        )


def compute_metrics(rr_intervals: Sequence[float]) -> HRVMetricSet | None:
    """Compute the full metric set for a clean interval window.

    Returns None when the time-domain metrics themselves cannot be computed
    (fewer than 2 intervals).
    """
    rmssd_val = compute_rmssd(rr_intervals)
    sdnn_val = sdnn(rr_intervals)
    pnn50_val = pnn50(rr_intervals)
    if rmssd_val is None or sdnn_val is None or pnn50_val is None:
        return None

    freq = analyze_frequency_domain(rr_intervals)
    dfa = dfa_alpha1(rr_intervals)

    return HRVMetricSet(
        rmssd=rmssd_val,
        sdnn=sdnn_val,
        pnn50=pnn50_val,
        lf_power=freq.lf_power if freq else None,
        hf_power=freq.hf_power if freq else None,
        lf_hf_ratio=freq.lf_hf_ratio if freq else None,
        dfa_alpha1=dfa.alpha1 if dfa else None,
    )


# ---------------------------------------------------------------------------
# Heart rate statistics
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HRStats:
    """Mean / min / max heart rate over a window."""

    mean_hr: float
    min_hr: float
    max_hr: float
    derived_from_rr: bool = False


def hr_stats(
    hr_values: Sequence[float],
    rr_intervals: Sequence[float] = (),
) -> HRStats | None:
    """Heart rate statistics for a window.

    Uses direct HR samples when any are present (non-positive readings are
    ignored).  Otherwise derives HR from the beat intervals as
    ``60000 / RR``: mean HR from the mean interval, min HR from the longest
    interval and max HR from the shortest.  Returns None when neither source
    has data.
    """
    hr = np.asarray([v for v in hr_values if v > 0], dtype=np.float64)
    if len(hr) > 0:
        return HRStats(
            mean_hr=float(np.mean(hr)),
            min_hr=float(np.min(hr)),
            max_hr=float(np.max(hr)),
        )

    rr = np.asarray(rr_intervals, dtype=np.float64)
    rr = rr[rr > 0]
    if len(rr) == 0:
        return None
    return HRStats(
        mean_hr=60000.0 / float(np.mean(rr)),
        min_hr=60000.0 / float(np.max(rr)),
        max_hr=60000.0 / float(np.min(rr)),
        derived_from_rr=True,
    )
