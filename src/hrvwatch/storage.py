"""Storage and notification collaborators.

The core hands finished records to a SummaryStore by value and reads back
ordered DailySummary history for baselines.  Notifications go to a Notifier;
rate limiting and presentation are the notifier's business.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from datetime import date
from pathlib import Path
from typing import Any, Protocol, Sequence

from hrvwatch.analytics.summary import DailySummary

logger = logging.getLogger(__name__)


class SummaryStore(Protocol):
    def save_daily_summary(self, summary: DailySummary) -> None: ...

    def save_stress_event(self, event: Any) -> None: ...

    def save_session_report(self, report: Any) -> None: ...

    def daily_summaries(self, start: date | None = None, end: date | None = None) -> list[DailySummary]: ...


class Notifier(Protocol):
    def phase_changed(self, phase: Any) -> None: ...

    def deep_sleep_detected(self, timeslice: Any) -> None: ...

    def stress_alert(self, alert: Any) -> None: ...


def _in_range(day: date, start: date | None, end: date | None) -> bool:
    if start is not None and day < start:
        return False
    if end is not None and day > end:
        return False
    return True


class InMemoryStore:
    """Keeps everything in process; one summary per date (last write wins)."""

    def __init__(self, summaries: Sequence[DailySummary] = ()):
        self._lock = threading.Lock()
        self._summaries: dict[date, DailySummary] = {s.date: s for s in summaries}
        self.stress_events: list[Any] = []
        self.session_reports: list[Any] = []

    def save_daily_summary(self, summary: DailySummary) -> None:
        with self._lock:
            self._summaries[summary.date] = summary

    def save_stress_event(self, event: Any) -> None:
        with self._lock:
            self.stress_events.append(event)

    def save_session_report(self, report: Any) -> None:
        with self._lock:
            self.session_reports.append(report)

    def daily_summaries(self, start: date | None = None, end: date | None = None) -> list[DailySummary]:
        with self._lock:
            days = sorted(d for d in self._summaries if _in_range(d, start, end))
            return [self._summaries[d] for d in days]


class JsonDirectoryStore:
    """Persists records as JSON files under a directory.

    Layout::

        <root>/summaries/YYYY-MM-DD.json
        <root>/stress_events.jsonl
        <root>/sessions.jsonl
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)
        self._summary_dir = self.root / "summaries"
        self._summary_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def save_daily_summary(self, summary: DailySummary) -> None:
        path = self._summary_dir / f"{summary.date.isoformat()}.json"
        tmp = path.with_name(path.name + ".tmp")
        with self._lock:
            tmp.write_text(summary.to_json())
            os.replace(tmp, path)
        logger.debug("Saved %s", path)

    def _append_line(self, name: str, record: dict) -> None:
        with self._lock, open(self.root / name, "a") as f:
            f.write(json.dumps(record) + "\n")

    def save_stress_event(self, event: Any) -> None:
        self._append_line("stress_events.jsonl", event.to_dict())

    def save_session_report(self, report: Any) -> None:
        self._append_line("sessions.jsonl", report.to_dict())

    def daily_summaries(self, start: date | None = None, end: date | None = None) -> list[DailySummary]:
        result = []
        for path in sorted(self._summary_dir.glob("*.json")):
            try:
                day = date.fromisoformat(path.stem)
            except ValueError:
                logger.warning("Ignoring unexpected file %s", path)
                continue
            if not _in_range(day, start, end):
                continue
            try:
                with open(path) as f:
                    result.append(DailySummary.from_dict(json.load(f)))
            except (OSError, KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping unreadable summary %s: %s", path, e)
        return result


class LoggingNotifier:
    """Default notifier: writes each signal to the log."""

    def phase_changed(self, phase: Any) -> None:
        logger.info("Sleep phase: %s", getattr(phase, "value", phase))

    def deep_sleep_detected(self, timeslice: Any) -> None:
        logger.info("Deep sleep window detected: %r", timeslice)

    def stress_alert(self, alert: Any) -> None:
        logger.warning("Stress alert: %s", getattr(alert.severity, "value", alert.severity))
