"""Daily summary record.

One DailySummary per calendar day, JSON-serializable and handed to storage
by value.  Baseline fields are filled by
:func:`hrvwatch.analytics.baseline.enrich_with_baselines`.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, asdict
from datetime import date
from typing import TYPE_CHECKING, Any, Sequence

import numpy as np

from hrvwatch.analytics.hrv import sdnn as compute_sdnn

if TYPE_CHECKING:
    from hrvwatch.monitoring.overnight import Timeslice


@dataclass(frozen=True)
class DailySummary:
    """A single day's HRV and sleep report."""

    date: date
    rmssd: float
    sdnn: float = 0.0
    mean_hr: float = 0.0
    min_hr: float = 0.0
    max_hr: float = 0.0

    # Sleep breakdown (minutes)
    sleep_total_min: float = 0.0
    deep_min: float = 0.0
    light_min: float = 0.0
    rem_min: float = 0.0
    awake_min: float = 0.0

    # Filled from strictly earlier days
    baseline_7d: float | None = None
    baseline_30d: float | None = None
    z_score: float | None = None
    recovery_score: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dict (JSON-friendly)."""
        d = asdict(self)
        d["date"] = self.date.isoformat()
        return d

    def to_json(self, indent: int = 2) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DailySummary":
        fields = dict(data)
        day = fields.pop("date")
        if isinstance(day, str):
            day = date.fromisoformat(day)
        known = {k: v for k, v in fields.items() if k in cls.__dataclass_fields__}
        return cls(date=day, **known)

    def __repr__(self) -> str:
        recovery = f", recovery={self.recovery_score}" if self.recovery_score is not None else ""
        return (
            f"DailySummary({self.date.isoformat()}: "
            f"rmssd={self.rmssd:.1f}ms, hr={self.mean_hr:.0f}bpm, "
            f"sleep={self.sleep_total_min:.0f}min{recovery})"
        )


def build_daily_summary(
    day: date | str,
    timeslices: Sequence["Timeslice"],
    tick_minutes: float = 5.0,
    rr_intervals: Sequence[float] | None = None,
) -> DailySummary | None:
    """Build a daily summary from a session's timeslices.

    Args:
        day: The calendar day the session belongs to.
        timeslices: Ordered timeslices from the overnight processor.
        tick_minutes: Minutes represented by each timeslice.
        rr_intervals: Optional full-night clean intervals for an overall
            SDNN; otherwise the mean per-window SDNN is used.

    Returns:
        A DailySummary, or None when there are no timeslices.
    """
    if not timeslices:
        return None
    if isinstance(day, str):
        day = date.fromisoformat(day)

    rmssd = np.asarray([t.metrics.rmssd for t in timeslices], dtype=np.float64)
    mean_hr = np.asarray([t.average_hr for t in timeslices], dtype=np.float64)

    overall_sdnn = compute_sdnn(rr_intervals) if rr_intervals is not None else None
    if overall_sdnn is None:
        overall_sdnn = float(np.mean([t.metrics.sdnn for t in timeslices]))

    minutes: dict[str, float] = {"awake": 0.0, "light": 0.0, "deep": 0.0, "rem": 0.0}
    for t in timeslices:
        minutes[t.phase.value] += tick_minutes

    return DailySummary(
        date=day,
        rmssd=float(np.mean(rmssd)),
        sdnn=overall_sdnn,
        mean_hr=float(np.mean(mean_hr)),
        min_hr=float(min(t.min_hr for t in timeslices)),
        max_hr=float(max(t.max_hr for t in timeslices)),
        sleep_total_min=minutes["light"] + minutes["deep"] + minutes["rem"],
        deep_min=minutes["deep"],
        light_min=minutes["light"],
        rem_min=minutes["rem"],
        awake_min=minutes["awake"],
    )
