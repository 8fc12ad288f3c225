"""Sensor calibration sessions and their persistence."""

from .session import CalibrationSessionManager, CalibrationState, StepResult
from .mag_calibration import MagCalibrationManager, compute_calibration
from .accel_calibration import AccelCalibrationManager, compute_accel_calibration
from .store import CalibrationStore, JsonFileStore, MemoryStore, KeyValueStore

__all__ = [
    "CalibrationSessionManager",
    "MagCalibrationManager",
    "AccelCalibrationManager",
    "CalibrationState",
    "StepResult",
    "compute_calibration",
    "compute_accel_calibration",
    "CalibrationStore",
    "JsonFileStore",
    "MemoryStore",
    "KeyValueStore",
]
