"""Stateful monitoring components.

Modules:
    events           -- Signal callback channel and SleepState
    scheduler        -- Threaded and manual periodic schedulers
    buffer           -- Bounded readers-writer-locked sample buffer
    coverage         -- RR coverage and gap tracking
    overnight        -- Windowed sleep-phase classification
    stress           -- Stress episode state machine
    sleep_detection  -- Sleep onset / offset detection
    session          -- MonitoringSession wiring everything together

``session`` is not re-exported here because it depends on
:mod:`hrvwatch.config`, which itself imports the component configs below.
"""

from hrvwatch.monitoring.events import Signal, SleepState
from hrvwatch.monitoring.scheduler import ManualScheduler, ThreadScheduler
from hrvwatch.monitoring.buffer import ContinuousBuffer
from hrvwatch.monitoring.coverage import CoverageReport, CoverageTracker
from hrvwatch.monitoring.overnight import OvernightProcessor, OvernightSummary, SleepPhase, Timeslice
from hrvwatch.monitoring.stress import StressEvent, StressMonitor, StressSeverity
from hrvwatch.monitoring.sleep_detection import DetectionState, SleepDetectionEngine

__all__ = [
    "Signal",
    "SleepState",
    "ManualScheduler",
    "ThreadScheduler",
    "ContinuousBuffer",
    "CoverageReport",
    "CoverageTracker",
    "OvernightProcessor",
    "OvernightSummary",
    "SleepPhase",
    "Timeslice",
    "StressEvent",
    "StressMonitor",
    "StressSeverity",
    "DetectionState",
    "SleepDetectionEngine",
]
