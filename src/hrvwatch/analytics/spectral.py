"""Frequency-domain HRV from RR intervals.

Algorithm:
1. Interpolate the (irregularly sampled) RR series onto a uniform 4 Hz grid.
2. Remove the mean.
3. Estimate the power spectral density with Welch's method
   (Hamming window, 256-sample segments, 50% overlap).
4. Integrate power in the LF (0.04-0.15 Hz) and HF (0.15-0.40 Hz) bands.

Short windows do not resolve the LF band, so at least two minutes of beats
are required; shorter input yields None.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

import numpy as np
from scipy import signal as sig
from scipy.integrate import trapezoid

logger = logging.getLogger(__name__)

# Frequency bands (Hz)
LF_LO = 0.04
LF_HI = 0.15
HF_LO = 0.15
HF_HI = 0.40

# Interpolation target sample rate
INTERP_FS = 4.0  # Hz

WELCH_SEGMENT = 256
WELCH_OVERLAP = 0.5

# Minimum span of beats for a frequency estimate
MIN_DURATION_SEC = 120.0


class LFHFBalance(str, Enum):
    """Sympathovagal balance read from the LF/HF ratio."""

    PARASYMPATHETIC = "parasympathetic_dominant"
    BALANCED = "balanced"
    SYMPATHETIC = "sympathetic_dominant"
    HIGHLY_STRESSED = "highly_stressed"

    @classmethod
    def from_ratio(cls, ratio: float) -> "LFHFBalance":
        if ratio < 0.5:
            return cls.PARASYMPATHETIC
        if ratio < 2.0:
            return cls.BALANCED
        if ratio < 4.0:
            return cls.SYMPATHETIC
        return cls.HIGHLY_STRESSED


@dataclass(frozen=True)
class FrequencyDomainResult:
    """Band powers (ms^2) and their ratio."""

    lf_power: float
    hf_power: float
    lf_hf_ratio: float | None

    @property
    def total_power(self) -> float:
        return self.lf_power + self.hf_power

    @property
    def lf_normalized(self) -> float:
        """LF share of LF+HF in percent."""
        total = self.total_power
        return self.lf_power / total * 100.0 if total > 0 else 0.0

    @property
    def hf_normalized(self) -> float:
        """HF share of LF+HF in percent."""
        total = self.total_power
        return self.hf_power / total * 100.0 if total > 0 else 0.0

    @property
    def balance(self) -> LFHFBalance | None:
        if self.lf_hf_ratio is None:
            return None
        return LFHFBalance.from_ratio(self.lf_hf_ratio)

    def __repr__(self) -> str:
        ratio = f"{self.lf_hf_ratio:.2f}" if self.lf_hf_ratio is not None else "n/a"
        return (
            f"FrequencyDomainResult(lf={self.lf_power:.1f}, "
            f"hf={self.hf_power:.1f}, lf/hf={ratio})"
        )


def interpolate_rr(
    rr_intervals_ms: Sequence[float],
    fs: float = INTERP_FS,
) -> tuple[np.ndarray, np.ndarray]:
    """Interpolate RR intervals to a uniform sample rate.

    Args:
        rr_intervals_ms: Successive RR intervals in milliseconds.
        fs: Target sample rate in Hz.

    Returns:
        (time_uniform, rr_uniform) arrays, RR values still in milliseconds.
    """
    rr = np.asarray(rr_intervals_ms, dtype=np.float64)
    if len(rr) < 2:
        return np.array([]), np.array([])

    # Each interval is stamped at the beat that ends it
    t_beats = np.cumsum(rr) / 1000.0
    t_beats = t_beats - t_beats[0]

    t_uniform = np.arange(0.0, t_beats[-1], 1.0 / fs)
    rr_uniform = np.interp(t_uniform, t_beats, rr)
    return t_uniform, rr_uniform


def band_power(
    freqs: np.ndarray,
    psd: np.ndarray,
    lo: float,
    hi: float,
    include_hi: bool = False,
) -> float:
    """Trapezoidal integral of the PSD over ``[lo, hi)`` (or ``[lo, hi]``)."""
    if include_hi:
        mask = (freqs >= lo) & (freqs <= hi)
    else:
        mask = (freqs >= lo) & (freqs < hi)
    if np.sum(mask) < 2:
        # A single bin has no width to integrate; fall back to bin * df
        if np.any(mask) and len(freqs) > 1:
            return float(psd[mask].sum() * (freqs[1] - freqs[0]))
        return 0.0
    return float(trapezoid(psd[mask], freqs[mask]))


def analyze_frequency_domain(
    rr_intervals_ms: Sequence[float],
    min_duration_sec: float = MIN_DURATION_SEC,
    fs: float = INTERP_FS,
) -> FrequencyDomainResult | None:
    """Compute LF / HF power from clean RR intervals.

    Returns None when the beats span less than *min_duration_sec*.
    """
    if len(rr_intervals_ms) < 2:
        return None

    duration = float(np.sum(rr_intervals_ms)) / 1000.0
    if duration < min_duration_sec:
        logger.debug(
            "Window too short for frequency analysis: %.0fs < %.0fs",
            duration, min_duration_sec,
        )
        return None

    _, rr_uniform = interpolate_rr(rr_intervals_ms, fs)
    if len(rr_uniform) < 16:
        return None

    rr_uniform = rr_uniform - np.mean(rr_uniform)

    nperseg = min(WELCH_SEGMENT, len(rr_uniform))
    freqs, psd = sig.welch(
        rr_uniform,
        fs=fs,
        window="hamming",
        nperseg=nperseg,
        noverlap=int(nperseg * WELCH_OVERLAP),
        detrend="constant",
        scaling="density",
    )

    lf = band_power(freqs, psd, LF_LO, LF_HI)
    hf = band_power(freqs, psd, HF_LO, HF_HI, include_hi=True)
    ratio = lf / hf if hf > 0 else None

    logger.debug("Frequency analysis: LF=%.2f HF=%.2f ratio=%s", lf, hf, ratio)
    return FrequencyDomainResult(lf_power=lf, hf_power=hf, lf_hf_ratio=ratio)
