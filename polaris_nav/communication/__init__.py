"""Sensor input for the orientation engine."""

from .sensors import SensorSource, SyntheticSensorSource, read_sample
from .uart import SerialSensorSource, UartError, crc16_ccitt

__all__ = [
    "SensorSource",
    "SyntheticSensorSource",
    "read_sample",
    "SerialSensorSource",
    "UartError",
    "crc16_ccitt",
]
