"""Monitoring configuration.

Every option has a default; a TOML file only needs the keys it changes::

    [overnight]
    tick_interval_sec = 300
    window_sec = 330
    min_intervals = 30

    [coverage]
    gap_threshold_sec = 30
    expected_samples_per_min = 60
    min_coverage = 0.80

    [stress]
    rmssd_drop_threshold = 0.70
    hr_elevation_threshold = 0.10
    sustained_sec = 300
    cooldown_sec = 600

    [buffer]
    capacity = 600
    flush_threshold = 0.8

    [session]
    metrics_interval_sec = 30
    metrics_window_sec = 300
    gap_check_interval_sec = 5
"""

from __future__ import annotations

import dataclasses
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from hrvwatch.errors import ConfigError
from hrvwatch.monitoring.buffer import DEFAULT_CAPACITY, DEFAULT_FLUSH_THRESHOLD
from hrvwatch.monitoring.coverage import CoverageConfig
from hrvwatch.monitoring.overnight import OvernightConfig
from hrvwatch.monitoring.stress import StressConfig


@dataclass(frozen=True)
class BufferConfig:
    capacity: int = DEFAULT_CAPACITY
    flush_threshold: float = DEFAULT_FLUSH_THRESHOLD


@dataclass(frozen=True)
class SessionConfig:
    # Cadence of stress / sleep-detection updates
    metrics_interval_sec: float = 30.0
    # Trailing window of beats for the RMSSD fed to those updates
    metrics_window_sec: float = 300.0
    gap_check_interval_sec: float = 5.0


@dataclass(frozen=True)
class MonitorConfig:
    overnight: OvernightConfig = field(default_factory=OvernightConfig)
    coverage: CoverageConfig = field(default_factory=CoverageConfig)
    stress: StressConfig = field(default_factory=StressConfig)
    buffer: BufferConfig = field(default_factory=BufferConfig)
    session: SessionConfig = field(default_factory=SessionConfig)

    def __post_init__(self) -> None:
        _validate(self)

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MonitorConfig":
        sections = {f.name: f for f in dataclasses.fields(cls)}
        unknown = set(data) - set(sections)
        if unknown:
            raise ConfigError(f"Unknown config section(s): {', '.join(sorted(unknown))}")

        kwargs = {}
        for name, values in data.items():
            if not isinstance(values, dict):
                raise ConfigError(f"[{name}] must be a table")
            section_cls = sections[name].default_factory  # type: ignore[misc]
            allowed = {f.name: f for f in dataclasses.fields(section_cls)}
            bad = set(values) - set(allowed)
            if bad:
                raise ConfigError(f"Unknown key(s) in [{name}]: {', '.join(sorted(bad))}")
            for key, value in values.items():
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    raise ConfigError(f"{name}.{key} must be a number, got {value!r}")
            kwargs[name] = section_cls(**values)
        return cls(**kwargs)

    @classmethod
    def load(cls, path: str | Path) -> "MonitorConfig":
        """Load from a TOML file."""
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except FileNotFoundError as e:
            raise ConfigError(f"Config file not found: {path}") from e
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {path}: {e}") from e
        return cls.from_dict(data)


def _validate(config: MonitorConfig) -> None:
    positive = {
        "overnight.tick_interval_sec": config.overnight.tick_interval_sec,
        "overnight.window_sec": config.overnight.window_sec,
        "overnight.min_intervals": config.overnight.min_intervals,
        "coverage.gap_threshold_sec": config.coverage.gap_threshold_sec,
        "coverage.expected_samples_per_min": config.coverage.expected_samples_per_min,
        "stress.sustained_sec": config.stress.sustained_sec,
        "buffer.capacity": config.buffer.capacity,
        "session.metrics_interval_sec": config.session.metrics_interval_sec,
        "session.metrics_window_sec": config.session.metrics_window_sec,
        "session.gap_check_interval_sec": config.session.gap_check_interval_sec,
    }
    for name, value in positive.items():
        if value <= 0:
            raise ConfigError(f"{name} must be positive, got {value}")

    fractions = {
        "coverage.min_coverage": config.coverage.min_coverage,
        "stress.rmssd_drop_threshold": config.stress.rmssd_drop_threshold,
        "buffer.flush_threshold": config.buffer.flush_threshold,
    }
    for name, value in fractions.items():
        if not 0.0 < value <= 1.0:
            raise ConfigError(f"{name} must be in (0, 1], got {value}")

    if config.stress.hr_elevation_threshold < 0:
        raise ConfigError("stress.hr_elevation_threshold must not be negative")
    if config.stress.cooldown_sec < 0:
        raise ConfigError("stress.cooldown_sec must not be negative")
    if config.overnight.window_sec < config.overnight.tick_interval_sec:
        raise ConfigError("overnight.window_sec must cover at least one tick interval")
