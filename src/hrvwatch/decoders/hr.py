"""Standard BLE Heart Rate Measurement (0x2A37) decoder.

Payload layout per the Bluetooth SIG Heart Rate Service:
    [0]     Flags
              bit 0   HR format (0 = uint8, 1 = uint16 LE)
              bit 1   Sensor contact detected
              bit 2   Sensor contact supported
              bit 3   Energy expended present (uint16 LE, kJ)
              bit 4   RR intervals present
    [1(:3)] Heart rate value
    [..]    Optional energy expended (2 bytes)
    [..]    Optional RR intervals, uint16 LE each, in 1/1024 s units

Decoding fails closed: a payload that is empty or shorter than its own
flag field implies yields None rather than raising.
"""

from __future__ import annotations

import logging
import struct
import time
from dataclasses import dataclass

logger = logging.getLogger(__name__)

HR_SERVICE_UUID = "0000180d-0000-1000-8000-00805f9b34fb"
HR_MEASUREMENT_UUID = "00002a37-0000-1000-8000-00805f9b34fb"

FLAG_HR_UINT16 = 0x01
FLAG_CONTACT_DETECTED = 0x02
FLAG_CONTACT_SUPPORTED = 0x04
FLAG_ENERGY_EXPENDED = 0x08
FLAG_RR_PRESENT = 0x10

# Physiologically plausible beat interval range (ms)
RR_MIN_MS = 200.0
RR_MAX_MS = 2500.0

RR_UNITS_PER_SECOND = 1024.0


@dataclass(frozen=True)
class BeatSample:
    """One decoded heart-rate measurement."""

    timestamp_ms: int
    heart_rate_bpm: int
    rr_intervals_ms: tuple[float, ...] = ()
    sensor_contact: bool | None = None
    energy_expended_kj: int | None = None

    @property
    def timestamp(self) -> float:
        """Receipt time in POSIX seconds."""
        return self.timestamp_ms / 1000.0

    @property
    def has_rr_intervals(self) -> bool:
        return len(self.rr_intervals_ms) > 0

    def __repr__(self) -> str:
        rr = ""
        if self.rr_intervals_ms:
            rr = ", rr=[" + ", ".join(f"{v:.0f}" for v in self.rr_intervals_ms) + "]"
        return f"BeatSample(t={self.timestamp_ms}, hr={self.heart_rate_bpm}bpm{rr})"


def rr_raw_to_ms(raw: int) -> float:
    """Convert a 1/1024 s RR tick count to milliseconds."""
    return raw * 1000.0 / RR_UNITS_PER_SECOND


def min_payload_size(flags: int) -> int:
    """Smallest payload length that the given flag byte allows."""
    size = 1 + (2 if flags & FLAG_HR_UINT16 else 1)
    if flags & FLAG_ENERGY_EXPENDED:
        size += 2
    return size


class HeartRateDecoder:
    """Decode 0x2A37 payloads into BeatSample values."""

    @staticmethod
    def decode(
        data: bytes | bytearray,
        timestamp_ms: int | None = None,
    ) -> BeatSample | None:
        """Parse one Heart Rate Measurement payload.

        Args:
            data: Raw characteristic value.
            timestamp_ms: Receipt time in milliseconds; defaults to now.

        Returns:
            A BeatSample, or None when the payload is malformed.
        """
        data = bytes(data)
        if not data:
            logger.debug("Empty heart rate payload")
            return None

        flags = data[0]
        if len(data) < min_payload_size(flags):
            logger.debug("Heart rate payload too short for flags 0x%02X: %s", flags, data.hex())
            return None

        offset = 1
        if flags & FLAG_HR_UINT16:
            hr_value = struct.unpack_from("<H", data, offset)[0]
            offset += 2
        else:
            hr_value = data[offset]
            offset += 1

        sensor_contact = None
        if flags & FLAG_CONTACT_SUPPORTED:
            sensor_contact = bool(flags & FLAG_CONTACT_DETECTED)
            if not sensor_contact:
                logger.debug("Sensor contact not detected")

        energy_expended = None
        if flags & FLAG_ENERGY_EXPENDED:
            energy_expended = struct.unpack_from("<H", data, offset)[0]
            offset += 2

        rr_intervals: list[float] = []
        if flags & FLAG_RR_PRESENT:
            while offset + 1 < len(data):
                rr_ms = rr_raw_to_ms(struct.unpack_from("<H", data, offset)[0])
                if RR_MIN_MS <= rr_ms <= RR_MAX_MS:
                    rr_intervals.append(rr_ms)
                else:
                    logger.debug("Dropping out-of-range RR interval %.1f ms", rr_ms)
                offset += 2

        if timestamp_ms is None:
            timestamp_ms = int(time.time() * 1000)

        return BeatSample(
            timestamp_ms=int(timestamp_ms),
            heart_rate_bpm=int(hr_value),
            rr_intervals_ms=tuple(rr_intervals),
            sensor_contact=sensor_contact,
            energy_expended_kj=energy_expended,
        )


def encode_heart_rate(
    hr_bpm: int,
    rr_intervals_ms: list[float] | tuple[float, ...] = (),
    energy_expended_kj: int | None = None,
    contact: bool | None = None,
) -> bytes:
    """Build a 0x2A37 payload (used by replay fixtures and simulators)."""
    flags = 0
    body = bytearray()
    if hr_bpm > 0xFF:
        flags |= FLAG_HR_UINT16
        body += struct.pack("<H", hr_bpm)
    else:
        body.append(hr_bpm)
    if contact is not None:
        flags |= FLAG_CONTACT_SUPPORTED
        if contact:
            flags |= FLAG_CONTACT_DETECTED
    if energy_expended_kj is not None:
        flags |= FLAG_ENERGY_EXPENDED
        body += struct.pack("<H", energy_expended_kj)
    if rr_intervals_ms:
        flags |= FLAG_RR_PRESENT
        for rr in rr_intervals_ms:
            body += struct.pack("<H", int(round(rr * RR_UNITS_PER_SECOND / 1000.0)))
    return bytes([flags]) + bytes(body)
