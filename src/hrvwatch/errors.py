"""Exceptions raised at the package edges.

The monitoring core itself never raises for bad data: malformed payloads
decode to None and thin windows are skipped.
"""


class HRVWatchError(Exception):
    """Base class for hrvwatch errors."""


class ConfigError(HRVWatchError, ValueError):
    """Invalid or unknown configuration."""


class CaptureFormatError(HRVWatchError):
    """A capture file could not be read at all."""
