"""Replay captured Heart Rate Measurement logs through a monitoring session.

Captures are JSON Lines, one notification per line::

    {"timestamp": "2026-03-01T23:14:05.120000+00:00",
     "uuid": "00002a37-0000-1000-8000-00805f9b34fb",
     "hex_data": "1640...", "raw_bytes_b64": "FkA..."}

``timestamp`` may also be POSIX seconds.  Lines that are not valid JSON, have
no payload, or carry a different characteristic are skipped.  The session is
driven by a ManualScheduler so ticks fire at capture time, not wall time.
"""

from __future__ import annotations

import base64
import binascii
import itertools
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterator

from hrvwatch.config import MonitorConfig
from hrvwatch.decoders.hr import HR_MEASUREMENT_UUID, BeatSample, HeartRateDecoder
from hrvwatch.errors import CaptureFormatError
from hrvwatch.monitoring.buffer import inline_dispatch
from hrvwatch.monitoring.scheduler import ManualScheduler
from hrvwatch.monitoring.session import MonitoringSession, SessionReport
from hrvwatch.storage import Notifier, SummaryStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CaptureEntry:
    line: int
    timestamp: float
    uuid: str
    data: bytes


def parse_timestamp(value: object) -> float | None:
    """POSIX seconds from a numeric or ISO-8601 timestamp."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(value).timestamp()
        except ValueError:
            return None
    return None


def _payload(entry: dict) -> bytes | None:
    try:
        if "raw_bytes_b64" in entry:
            return base64.b64decode(entry["raw_bytes_b64"], validate=True)
        if "hex_data" in entry:
            return bytes.fromhex(entry["hex_data"])
    except (binascii.Error, ValueError, TypeError):
        return None
    return None


def _is_heart_rate(uuid: str) -> bool:
    # Captures without a uuid are assumed to be heart rate only
    return not uuid or uuid.lower() == HR_MEASUREMENT_UUID or uuid.lower() in ("2a37", "0x2a37")


def iter_capture(path: str | Path) -> Iterator[CaptureEntry]:
    """Yield heart rate entries from a capture file.

    Raises:
        CaptureFormatError: The file does not exist or cannot be read.
    """
    path = Path(path)
    try:
        f = open(path)
    except OSError as e:
        raise CaptureFormatError(f"Cannot open capture {path}: {e}") from e

    with f:
        try:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entry = json.loads(line)
                except json.JSONDecodeError:
                    logger.debug("[line %d] invalid JSON, skipping", line_num)
                    continue
                if not isinstance(entry, dict):
                    continue

                uuid = str(entry.get("uuid", ""))
                if not _is_heart_rate(uuid):
                    continue
                timestamp = parse_timestamp(entry.get("timestamp"))
                data = _payload(entry)
                if timestamp is None or data is None:
                    logger.debug("[line %d] missing timestamp or payload, skipping", line_num)
                    continue
                yield CaptureEntry(line=line_num, timestamp=timestamp, uuid=uuid, data=data)
        except UnicodeDecodeError as e:
            raise CaptureFormatError(f"{path} is not a text capture: {e}") from e


def decode_capture(path: str | Path) -> list[BeatSample]:
    """Decode every heart rate entry in a capture, dropping malformed payloads."""
    decoder = HeartRateDecoder()
    samples = []
    for entry in iter_capture(path):
        sample = decoder.decode(entry.data, timestamp_ms=int(round(entry.timestamp * 1000)))
        if sample is not None:
            samples.append(sample)
    return samples


def replay_capture(
    path: str | Path,
    config: MonitorConfig | None = None,
    store: SummaryStore | None = None,
    notifier: Notifier | None = None,
    waking_baseline: tuple[float, float] | None = None,
) -> SessionReport:
    """Run a capture through a full MonitoringSession.

    Args:
        path: JSONL capture file.
        config: Monitoring options.
        store: Optional store for history and results.
        notifier: Optional notifier for phase / stress signals.
        waking_baseline: Optional (hr, rmssd) waking baseline.

    Returns:
        The SessionReport produced when the session stops at the last entry.
    """
    entries = iter_capture(path)
    first = next(entries, None)
    if first is None:
        raise CaptureFormatError(f"No heart rate entries in {path}")

    scheduler = ManualScheduler(start=first.timestamp)
    session = MonitoringSession(
        config=config,
        scheduler=scheduler,
        clock=scheduler.clock,
        store=store,
        notifier=notifier,
        dispatch=inline_dispatch,
    )
    session.start(first.timestamp)
    if waking_baseline is not None:
        session.set_baselines(*waking_baseline)

    malformed = 0
    last = first.timestamp
    for entry in itertools.chain((first,), entries):
        scheduler.advance_to(entry.timestamp)
        if session.ingest_payload(entry.data, entry.timestamp) is None:
            malformed += 1
        last = max(last, entry.timestamp)

    if malformed:
        logger.info("Skipped %d malformed payload(s)", malformed)
    return session.stop(last)
