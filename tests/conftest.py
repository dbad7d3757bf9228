"""Shared fixtures and helpers for the hrvwatch test suite."""

from __future__ import annotations

import json
from datetime import date, timedelta
from pathlib import Path

import numpy as np
import pytest

from hrvwatch.analytics.summary import DailySummary
from hrvwatch.decoders.hr import HR_MEASUREMENT_UUID, BeatSample, encode_heart_rate
from hrvwatch.monitoring.scheduler import ManualScheduler


# ---------------------------------------------------------------------------
# Payload helpers
# ---------------------------------------------------------------------------


def rr_ticks_to_ms(ticks: list[int]) -> list[float]:
    """RR values that survive a 1/1024 s encode/decode exactly."""
    return [t * 1000.0 / 1024.0 for t in ticks]


def make_hr_payload(
    hr_bpm: int = 60,
    rr_intervals_ms: list[float] | tuple[float, ...] = (),
    energy_expended_kj: int | None = None,
    contact: bool | None = None,
) -> bytes:
    """Build a 0x2A37 Heart Rate Measurement payload."""
    return encode_heart_rate(hr_bpm, rr_intervals_ms, energy_expended_kj, contact)


# ---------------------------------------------------------------------------
# Synthetic beat series
# ---------------------------------------------------------------------------


def alternating_rr(n: int, low: float, high: float) -> list[float]:
    """low, high, low, high, ... (n values)."""
    return [low if i % 2 == 0 else high for i in range(n)]


def synthetic_rr(
    n: int = 300,
    mean_rr: float = 1000.0,
    rsa_amplitude: float = 40.0,
    rsa_freq_hz: float = 0.25,
    noise_ms: float = 5.0,
    seed: int = 42,
) -> list[float]:
    """RR series with respiratory sinus arrhythmia plus white noise."""
    rng = np.random.default_rng(seed)
    rr = []
    t = 0.0
    for _ in range(n):
        value = mean_rr + rsa_amplitude * np.sin(2 * np.pi * rsa_freq_hz * t) + rng.normal(0.0, noise_ms)
        rr.append(float(value))
        t += value / 1000.0
    return rr


def beat_samples(
    rr_intervals_ms: list[float],
    start: float = 0.0,
    hr_bpm: int | None = None,
) -> list[BeatSample]:
    """One BeatSample per beat, stamped at the end of its interval.

    HR defaults to the instantaneous rate of each beat.
    """
    samples = []
    t = start
    for rr in rr_intervals_ms:
        t += rr / 1000.0
        hr = hr_bpm if hr_bpm is not None else int(round(60000.0 / rr))
        samples.append(BeatSample(
            timestamp_ms=int(round(t * 1000)),
            heart_rate_bpm=hr,
            rr_intervals_ms=(rr,),
        ))
    return samples


def samples_for_duration(
    seconds: float,
    rr_pattern: list[float],
    start: float = 0.0,
    hr_bpm: int | None = None,
) -> list[BeatSample]:
    """Repeat *rr_pattern* until the beats span *seconds*."""
    rr = []
    total = 0.0
    i = 0
    while total < seconds * 1000.0:
        value = rr_pattern[i % len(rr_pattern)]
        rr.append(value)
        total += value
        i += 1
    return beat_samples(rr, start=start, hr_bpm=hr_bpm)


# ---------------------------------------------------------------------------
# Daily summaries
# ---------------------------------------------------------------------------


def make_summary(day: date, rmssd: float, **kwargs) -> DailySummary:
    return DailySummary(date=day, rmssd=rmssd, **kwargs)


def summary_history(values: list[float], end: date = date(2026, 3, 1)) -> list[DailySummary]:
    """Consecutive daily summaries, the last one dated *end*."""
    first = end - timedelta(days=len(values) - 1)
    return [make_summary(first + timedelta(days=i), v) for i, v in enumerate(values)]


# ---------------------------------------------------------------------------
# JSONL helpers
# ---------------------------------------------------------------------------


def write_jsonl(path: Path, entries: list[dict]) -> Path:
    """Write a list of dicts as JSONL to the given path."""
    with open(path, "w") as f:
        for entry in entries:
            f.write(json.dumps(entry) + "\n")
    return path


def make_capture_entry(
    hex_data: str,
    timestamp: float | str = 0.0,
    uuid: str = HR_MEASUREMENT_UUID,
) -> dict:
    """Create a single JSONL capture entry."""
    return {
        "uuid": uuid,
        "hex_data": hex_data,
        "timestamp": timestamp,
    }


def capture_from_samples(samples: list[BeatSample]) -> list[dict]:
    """Capture entries carrying each sample as an encoded payload."""
    return [
        make_capture_entry(
            make_hr_payload(s.heart_rate_bpm, s.rr_intervals_ms).hex(),
            s.timestamp,
        )
        for s in samples
    ]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler(start=1_000_000.0)


class RecordingNotifier:
    """Notifier that keeps everything it receives."""

    def __init__(self):
        self.phases = []
        self.deep_sleep = []
        self.alerts = []

    def phase_changed(self, phase) -> None:
        self.phases.append(phase)

    def deep_sleep_detected(self, timeslice) -> None:
        self.deep_sleep.append(timeslice)

    def stress_alert(self, alert) -> None:
        self.alerts.append(alert)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()
