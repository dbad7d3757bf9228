"""Scan for BLE devices exposing the standard Heart Rate service."""

from __future__ import annotations

import asyncio
import logging

from bleak import BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData

from hrvwatch.decoders.hr import HR_SERVICE_UUID

logger = logging.getLogger(__name__)


def advertises_heart_rate(adv: AdvertisementData) -> bool:
    return any(u.lower() == HR_SERVICE_UUID for u in adv.service_uuids or ())


async def scan(timeout: float = 10.0, name_prefix: str | None = None) -> list[tuple[BLEDevice, AdvertisementData]]:
    """Scan for heart rate sensors.

    Returns (device, advertisement_data) tuples for devices advertising the
    Heart Rate service, optionally restricted to names starting with
    *name_prefix*.
    """
    results: list[tuple[BLEDevice, AdvertisementData]] = []

    def _callback(device: BLEDevice, adv: AdvertisementData) -> None:
        if not advertises_heart_rate(adv):
            return
        name = adv.local_name or device.name or ""
        if name_prefix and not name.upper().startswith(name_prefix.upper()):
            return
        if any(d.address == device.address for d, _ in results):
            return
        results.append((device, adv))
        print(f"  Found: {name or '(unnamed)'} [{device.address}] RSSI={adv.rssi} dBm")

    scanner = BleakScanner(detection_callback=_callback)
    print(f"Scanning for heart rate sensors ({timeout}s)...")
    await scanner.start()
    await asyncio.sleep(timeout)
    await scanner.stop()

    if not results:
        print("No heart rate sensors found.")
    else:
        print(f"\n{len(results)} sensor(s) found.")
    logger.debug("Scan finished with %d result(s)", len(results))
    return results


async def find_sensor(timeout: float = 10.0, name_prefix: str | None = None) -> BLEDevice | None:
    """First heart rate sensor found, or None."""
    results = await scan(timeout, name_prefix)
    if results:
        return results[0][0]
    return None
