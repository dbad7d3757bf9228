"""Rolling baselines and day-over-day statistics for RMSSD.

All functions take the historical DailySummary sequence returned by storage.
Summaries are ordered by date here, so callers may pass them in any order.
"""

from __future__ import annotations

import math
from dataclasses import replace
from enum import Enum
from typing import Sequence

import numpy as np

from hrvwatch.analytics.summary import DailySummary

BASELINE_SHORT_DAYS = 7
BASELINE_LONG_DAYS = 30

# Minimum history before a z-score is meaningful
Z_SCORE_MIN_DAYS = 7

TREND_DAYS = 7

NEUTRAL_RECOVERY = 100


class ZScoreBand(str, Enum):
    """Interpretation of today's RMSSD z-score."""

    ELEVATED_RECOVERY = "elevated_recovery"
    NORMAL = "normal"
    STRESSED = "stressed"
    OVERREACHING_RISK = "overreaching_risk"


def _ordered(summaries: Sequence[DailySummary]) -> list[DailySummary]:
    return sorted(summaries, key=lambda s: s.date)


def _recent_rmssd(summaries: Sequence[DailySummary], days: int) -> list[float]:
    return [s.rmssd for s in _ordered(summaries)[-days:]] if days > 0 else []


# ---------------------------------------------------------------------------
# Basic statistics
# ---------------------------------------------------------------------------


def standard_deviation(values: Sequence[float], mean: float | None = None) -> float:
    """Sample standard deviation (N-1 denominator); 0 for fewer than 2 values."""
    if len(values) < 2:
        return 0.0
    arr = np.asarray(values, dtype=np.float64)
    avg = float(np.mean(arr)) if mean is None else mean
    return math.sqrt(float(np.sum((arr - avg) ** 2)) / (len(arr) - 1))


# ---------------------------------------------------------------------------
# Baselines
# ---------------------------------------------------------------------------


def baseline(summaries: Sequence[DailySummary], days: int) -> float | None:
    """Mean RMSSD of the most recent *days* summaries (fewer is allowed).

    Returns None for an empty history.
    """
    values = _recent_rmssd(summaries, days)
    if not values:
        return None
    return float(np.mean(values))


def baseline_7d(summaries: Sequence[DailySummary]) -> float | None:
    return baseline(summaries, BASELINE_SHORT_DAYS)


def baseline_30d(summaries: Sequence[DailySummary]) -> float | None:
    return baseline(summaries, BASELINE_LONG_DAYS)


def z_score(today_rmssd: float, summaries: Sequence[DailySummary]) -> float | None:
    """``(today - mean30d) / sd30d``.

    Requires at least 7 historical days and a non-zero standard deviation.
    """
    values = _recent_rmssd(summaries, BASELINE_LONG_DAYS)
    if len(values) < Z_SCORE_MIN_DAYS:
        return None
    mean = float(np.mean(values))
    sd = standard_deviation(values, mean)
    if sd <= 0:
        return None
    return (today_rmssd - mean) / sd


def recovery_score(today_rmssd: float, baseline_7d_value: float | None) -> int:
    """Today's RMSSD as a rounded percentage of the 7-day baseline.

    Without a usable baseline the score is neutral (100).
    """
    if baseline_7d_value is None or baseline_7d_value <= 0:
        return NEUTRAL_RECOVERY
    return int(round(today_rmssd / baseline_7d_value * 100.0))


def trend_slope(summaries: Sequence[DailySummary], days: int = TREND_DAYS) -> float:
    """Least-squares slope of RMSSD against day index over the last *days*.

    Zero with fewer than 2 points or a degenerate regression.
    """
    values = _recent_rmssd(summaries, days)
    n = len(values)
    if n < 2:
        return 0.0
    x = np.arange(n, dtype=np.float64)
    y = np.asarray(values, dtype=np.float64)
    denominator = n * float(np.sum(x * x)) - float(np.sum(x)) ** 2
    if denominator == 0:
        return 0.0
    return (n * float(np.sum(x * y)) - float(np.sum(x)) * float(np.sum(y))) / denominator


def interpret_z_score(z: float) -> ZScoreBand:
    """Half-open bands; a tie at 1.0 or -1.0 goes to the higher band."""
    if z >= 1.0:
        return ZScoreBand.ELEVATED_RECOVERY
    if z >= -1.0:
        return ZScoreBand.NORMAL
    if z >= -2.0:
        return ZScoreBand.STRESSED
    return ZScoreBand.OVERREACHING_RISK


# ---------------------------------------------------------------------------
# Enrichment
# ---------------------------------------------------------------------------


def enrich_with_baselines(
    summary: DailySummary,
    history: Sequence[DailySummary],
) -> DailySummary:
    """Return a copy of *summary* with baselines, z-score and recovery filled.

    Only days strictly before ``summary.date`` are used, so a summary never
    contributes to its own baseline.
    """
    prior = [s for s in history if s.date < summary.date]
    b7 = baseline_7d(prior)
    return replace(
        summary,
        baseline_7d=b7,
        baseline_30d=baseline_30d(prior),
        z_score=z_score(summary.rmssd, prior),
        recovery_score=recovery_score(summary.rmssd, b7),
    )
