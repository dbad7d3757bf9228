"""Wire-format decoders for heart rate sensor payloads."""

from hrvwatch.decoders.hr import BeatSample, HeartRateDecoder, encode_heart_rate

__all__ = [
    "BeatSample",
    "HeartRateDecoder",
    "encode_heart_rate",
]
