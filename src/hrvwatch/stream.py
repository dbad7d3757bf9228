"""Live streaming from a BLE heart rate sensor into a MonitoringSession.

Subscribes to the standard Heart Rate Measurement characteristic (0x2A37),
feeds every notification to the session and reconnects after drops until
the requested duration has elapsed.  Each drop is counted against the
session's connectivity score.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import IO

from bleak import BleakClient
from bleak.backends.characteristic import BleakGATTCharacteristic
from bleak.exc import BleakError

from hrvwatch.config import MonitorConfig
from hrvwatch.decoders.hr import HR_MEASUREMENT_UUID
from hrvwatch.monitoring.session import MonitoringSession, SessionReport
from hrvwatch.scanner import find_sensor
from hrvwatch.storage import SummaryStore

logger = logging.getLogger(__name__)

RECONNECT_DELAY_SEC = 5.0


def capture_record(data: bytes, timestamp: float) -> dict:
    """A capture line in the format read by :mod:`hrvwatch.replay`."""
    return {
        "timestamp": datetime.fromtimestamp(timestamp, timezone.utc).isoformat(),
        "uuid": HR_MEASUREMENT_UUID,
        "hex_data": data.hex(),
        "raw_bytes_b64": base64.b64encode(data).decode("ascii"),
        "length": len(data),
    }


async def stream_session(
    address: str | None = None,
    duration: float | None = None,
    config: MonitorConfig | None = None,
    store: SummaryStore | None = None,
    record: str | None = None,
    waking_baseline: tuple[float, float] | None = None,
) -> SessionReport | None:
    """Stream live heart rate into a session until *duration* or Ctrl+C.

    Args:
        address: BLE address.  If None, scans for a heart rate sensor.
        duration: Seconds to monitor.  None = run until cancelled.
        config: Monitoring options.
        store: Optional store for history and results.
        record: Optional path; every notification is appended as a capture line.
        waking_baseline: Optional (hr, rmssd) waking baseline.

    Returns:
        The SessionReport, or None when no sensor was found.
    """
    if address is None:
        device = await find_sensor()
        if device is None:
            print("No heart rate sensor found.")
            return None
        address = device.address

    session = MonitoringSession(config=config, store=store)
    if waking_baseline is not None:
        session.set_baselines(*waking_baseline)

    out: IO[str] | None = None
    if record:
        path = Path(record)
        path.parent.mkdir(parents=True, exist_ok=True)
        out = open(path, "a")

    count = 0

    def _on_notification(_char: BleakGATTCharacteristic, data: bytearray) -> None:
        nonlocal count
        now = time.time()
        payload = bytes(data)
        if out is not None:
            out.write(json.dumps(capture_record(payload, now)) + "\n")
            out.flush()
        sample = session.ingest_payload(payload, now)
        if sample is None:
            return
        count += 1
        line = f"[{datetime.now().strftime('%H:%M:%S')}] HR: {sample.heart_rate_bpm} bpm"
        if sample.rr_intervals_ms:
            line += "  RR: [" + ", ".join(f"{v:.0f}" for v in sample.rr_intervals_ms) + "] ms"
        if sample.sensor_contact is False:
            line += "  [NO CONTACT]"
        print(line, flush=True)

    deadline = None if duration is None else time.monotonic() + duration
    session.start()
    print(f"Monitoring {address} (Ctrl+C to stop)...")

    try:
        while deadline is None or time.monotonic() < deadline:
            disconnected = asyncio.Event()
            try:
                async with BleakClient(
                    address,
                    disconnected_callback=lambda _c: disconnected.set(),
                ) as client:
                    await client.start_notify(HR_MEASUREMENT_UUID, _on_notification)
                    logger.info("Subscribed to heart rate notifications on %s", address)
                    remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
                    try:
                        await asyncio.wait_for(disconnected.wait(), timeout=remaining)
                    except asyncio.TimeoutError:
                        break
            except (BleakError, OSError) as e:
                logger.warning("Connection to %s failed: %s", address, e)
            session.record_disconnect()
            print(f"Disconnected; retrying in {RECONNECT_DELAY_SEC:.0f}s...")
            await asyncio.sleep(RECONNECT_DELAY_SEC)
    except asyncio.CancelledError:
        logger.info("Streaming cancelled")
    finally:
        report = session.stop()
        if out is not None:
            out.close()
        print(f"\nStopped after {count} samples.")

    return report
