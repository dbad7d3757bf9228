"""HRV analytics computed from decoded beat data.

Modules:
    conditioning -- Artifact rejection and ectopic-beat correction
    hrv          -- Time-domain metrics and the combined metric set
    spectral     -- LF / HF power via Welch's method
    dfa          -- Detrended fluctuation analysis (alpha1)
    baseline     -- Rolling baselines, z-scores, recovery, trends
    confidence   -- Session confidence scoring
    summary      -- Daily summary record
"""

from hrvwatch.analytics.conditioning import (
    condition_intervals,
    CleanIntervalWindow,
    ConditioningConfig,
    DataQuality,
)
from hrvwatch.analytics.hrv import (
    compute_rmssd,
    sdnn,
    pnn50,
    compute_metrics,
    hr_stats,
    HRVMetricSet,
    HRStats,
)
from hrvwatch.analytics.spectral import analyze_frequency_domain, FrequencyDomainResult
from hrvwatch.analytics.dfa import dfa_alpha1, DFAResult
from hrvwatch.analytics.baseline import (
    baseline_7d,
    baseline_30d,
    z_score,
    recovery_score,
    trend_slope,
    standard_deviation,
    interpret_z_score,
    enrich_with_baselines,
    ZScoreBand,
)
from hrvwatch.analytics.confidence import score_confidence, ConfidenceResult, ConfidenceLevel
from hrvwatch.analytics.summary import build_daily_summary, DailySummary

__all__ = [
    # conditioning
    "condition_intervals",
    "CleanIntervalWindow",
    "ConditioningConfig",
    "DataQuality",
    # hrv
    "compute_rmssd",
    "sdnn",
    "pnn50",
    "compute_metrics",
    "hr_stats",
    "HRVMetricSet",
    "HRStats",
    # spectral / dfa
    "analyze_frequency_domain",
    "FrequencyDomainResult",
    "dfa_alpha1",
    "DFAResult",
    # baseline
    "baseline_7d",
    "baseline_30d",
    "z_score",
    "recovery_score",
    "trend_slope",
    "standard_deviation",
    "interpret_z_score",
    "enrich_with_baselines",
    "ZScoreBand",
    # confidence
    "score_confidence",
    "ConfidenceResult",
    "ConfidenceLevel",
    # summary
    "build_daily_summary",
    "DailySummary",
]
