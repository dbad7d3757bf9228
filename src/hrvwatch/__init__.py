"""hrvwatch - continuous HRV monitoring from BLE heart rate sensors."""

__version__ = "0.1.0"
