"""Session confidence scoring.

Combines four independently scored inputs (each 0-100) into one
session-quality score:

    BLE connectivity     30%   disconnects per hour
    RR coverage          35%   received / expected samples
    HR smoothness        20%   coefficient of variation minus spike penalty
    Detection stability  15%   state transitions per hour

Warnings are advisory and never block the score.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

import numpy as np

logger = logging.getLogger(__name__)

W_BLE = 0.30
W_COVERAGE = 0.35
W_SMOOTHNESS = 0.20
W_STABILITY = 0.15

# HR jump between consecutive samples counted as a spike (bpm)
SPIKE_BPM = 20.0
MIN_HR_SAMPLES = 10
NEUTRAL_SMOOTHNESS = 50.0

RELIABLE_SCORE = 40

# Warning thresholds
WARN_COVERAGE_PERCENT = 80.0
WARN_SPIKES = 10
WARN_TRANSITIONS = 20


class ConfidenceLevel(str, Enum):
    HIGH = "high"
    MODERATE = "moderate"
    LOW = "low"
    VERY_LOW = "very_low"

    @classmethod
    def from_score(cls, score: int) -> "ConfidenceLevel":
        if score >= 85:
            return cls.HIGH
        if score >= 65:
            return cls.MODERATE
        if score >= 40:
            return cls.LOW
        return cls.VERY_LOW


@dataclass(frozen=True)
class ConfidenceComponents:
    ble: int
    rr_coverage: int
    hr_smoothness: int
    detection_stability: int


@dataclass(frozen=True)
class ConfidenceResult:
    score: int
    components: ConfidenceComponents
    level: ConfidenceLevel
    warnings: tuple[str, ...] = ()

    @property
    def is_reliable(self) -> bool:
        return self.score >= RELIABLE_SCORE

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "components": {
                "ble": self.components.ble,
                "rr_coverage": self.components.rr_coverage,
                "hr_smoothness": self.components.hr_smoothness,
                "detection_stability": self.components.detection_stability,
            },
            "level": self.level.value,
            "warnings": list(self.warnings),
            "is_reliable": self.is_reliable,
        }

    def __repr__(self) -> str:
        return (
            f"ConfidenceResult(score={self.score}, level={self.level.value}, "
            f"warnings={len(self.warnings)})"
        )


# ---------------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------------


def _session_hours(session_minutes: float) -> float:
    # Short sessions are scored as if they lasted one hour
    return max(1.0, session_minutes / 60.0)


def connectivity_score(disconnects: int, session_minutes: float) -> float:
    """100 minus 20 points per disconnect per hour, clamped to [0, 100]."""
    if disconnects <= 0:
        return 100.0
    per_hour = disconnects / _session_hours(session_minutes)
    return max(0.0, min(100.0, 100.0 - per_hour * 20.0))


def coverage_score(coverage_percent: float) -> float:
    if coverage_percent >= 80.0:
        return coverage_percent
    if coverage_percent >= 50.0:
        return 50.0 + (coverage_percent - 50.0)
    return coverage_percent * 0.5


def count_hr_spikes(hr_samples: Sequence[float], threshold: float = SPIKE_BPM) -> int:
    """Consecutive-sample HR jumps larger than *threshold* bpm."""
    if len(hr_samples) < 2:
        return 0
    diffs = np.abs(np.diff(np.asarray(hr_samples, dtype=np.float64)))
    return int(np.sum(diffs > threshold))


def smoothness_score(hr_samples: Sequence[float]) -> float:
    """CV-banded smoothness minus a spike penalty; neutral 50 below 10 samples."""
    if len(hr_samples) < MIN_HR_SAMPLES:
        return NEUTRAL_SMOOTHNESS
    arr = np.asarray(hr_samples, dtype=np.float64)
    mean = float(np.mean(arr))
    if mean <= 0:
        return NEUTRAL_SMOOTHNESS
    cv = float(np.std(arr)) / mean

    if cv <= 0.05:
        cv_score = 100.0
    elif cv <= 0.20:
        cv_score = 100.0 - (cv - 0.05) / 0.15 * 50.0
    elif cv <= 0.35:
        cv_score = 50.0 - (cv - 0.20) / 0.15 * 50.0
    else:
        cv_score = 0.0

    penalty = min(30.0, 2.0 * count_hr_spikes(hr_samples))
    return max(0.0, cv_score - penalty)


def stability_score(transitions: int, session_minutes: float) -> float:
    per_hour = transitions / _session_hours(session_minutes)
    if per_hour <= 1:
        return 100.0
    if per_hour <= 2:
        return 90.0 - (per_hour - 1) * 10.0
    if per_hour <= 5:
        return 80.0 - (per_hour - 2) * 10.0
    if per_hour <= 10:
        return 50.0 - (per_hour - 5) * 10.0
    return 0.0


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def score_confidence(
    disconnect_count: int,
    rr_coverage_percent: float,
    hr_samples: Sequence[float],
    state_transition_count: int,
    session_minutes: float,
) -> ConfidenceResult:
    """Score the reliability of a monitoring session.

    Args:
        disconnect_count: Transport disconnects during the session.
        rr_coverage_percent: Received / expected RR samples (0-100).
        hr_samples: Heart rate samples for the smoothness component.
        state_transition_count: Sleep-phase transitions during the session.
        session_minutes: Session duration.

    Returns:
        ConfidenceResult with the weighted score, components and warnings.
    """
    warnings: list[str] = []

    ble = connectivity_score(disconnect_count, session_minutes)
    if disconnect_count > 0:
        warnings.append(f"Device disconnected {disconnect_count} time(s) during the session")

    coverage = coverage_score(rr_coverage_percent)
    if rr_coverage_percent < WARN_COVERAGE_PERCENT:
        warnings.append(f"Only {int(rr_coverage_percent)}% of expected heart data received")

    smoothness = smoothness_score(hr_samples)
    spikes = count_hr_spikes(hr_samples)
    if spikes > WARN_SPIKES:
        warnings.append(f"Detected {spikes} abnormal HR spikes")

    stability = stability_score(state_transition_count, session_minutes)
    if state_transition_count > WARN_TRANSITIONS:
        warnings.append(f"Unstable state detection ({state_transition_count} state changes)")

    raw = (
        W_BLE * ble
        + W_COVERAGE * coverage
        + W_SMOOTHNESS * smoothness
        + W_STABILITY * stability
    )
    score = int(min(100.0, max(0.0, raw)))
    level = ConfidenceLevel.from_score(score)

    logger.info(
        "Session confidence %d (%s): ble=%d coverage=%d smoothness=%d stability=%d",
        score, level.value, int(ble), int(coverage), int(smoothness), int(stability),
    )

    return ConfidenceResult(
        score=score,
        components=ConfidenceComponents(
            ble=int(ble),
            rr_coverage=int(coverage),
            hr_smoothness=int(smoothness),
            detection_stability=int(stability),
        ),
        level=level,
        warnings=tuple(warnings),
    )


def quick_assessment(disconnect_count: int, rr_coverage_percent: float) -> ConfidenceLevel:
    """Coarse level from connectivity and coverage alone."""
    if disconnect_count == 0 and rr_coverage_percent >= 90:
        return ConfidenceLevel.HIGH
    if disconnect_count <= 2 and rr_coverage_percent >= 75:
        return ConfidenceLevel.MODERATE
    if disconnect_count <= 5 and rr_coverage_percent >= 50:
        return ConfidenceLevel.LOW
    return ConfidenceLevel.VERY_LOW
