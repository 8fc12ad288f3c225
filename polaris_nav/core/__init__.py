"""Core module for the orientation engine."""

from .types import (
    SensorSample,
    Quaternion,
    EulerAngles,
    CalibrationQuality,
    CalibrationVector,
    AccelCalibration,
    CalibrationStatus,
    OrientationState,
    ValidationResult,
    SensorStats,
    wrap_180,
    wrap_360,
)
from .errors import PolarisNavError, ConfigError, CalibrationError, SensorReadError
from .validation import SampleValidator, sanitize_dt
from .quaternion import QuaternionOps
from .config import Config, load_config

__all__ = [
    "SensorSample",
    "Quaternion",
    "EulerAngles",
    "CalibrationQuality",
    "CalibrationVector",
    "AccelCalibration",
    "CalibrationStatus",
    "OrientationState",
    "ValidationResult",
    "SensorStats",
    "wrap_180",
    "wrap_360",
    "PolarisNavError",
    "ConfigError",
    "CalibrationError",
    "SensorReadError",
    "SampleValidator",
    "sanitize_dt",
    "QuaternionOps",
    "Config",
    "load_config",
]
