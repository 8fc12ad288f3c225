"""Input validation for sensor samples and loop timing."""

import logging
import math
from typing import Optional, Tuple
import numpy as np

from .types import SensorSample, ValidationResult, Vector3
from .config import Config, FilterConfig

logger = logging.getLogger(__name__)


def sanitize_dt(dt: float, config: FilterConfig) -> Tuple[float, bool]:
    """Replace an implausible time step with the fallback.

    A dt that is non-finite, non-positive or larger than ``max_dt_s``
    (a stall or a clock glitch) is replaced by ``fallback_dt_s``.

    Args:
        dt: Measured time step in seconds.
        config: Filter configuration.

    Returns:
        (dt to use, whether the fallback was substituted).
    """
    if dt is None or not math.isfinite(dt) or dt <= 0.0 or dt > config.max_dt_s:
        return config.fallback_dt_s, True
    return dt, False


class SampleValidator:
    """Drops implausible modalities from sensor samples.

    A modality holding a non-finite value or a component beyond the
    sensor's full-scale range is treated as unavailable for the tick.
    Validation never raises.
    """

    def __init__(self, config: Config):
        """Initialize validator with configuration.

        Args:
            config: System configuration with sensor ranges.
        """
        self._config = config

    def validate(self, sample: SensorSample) -> Tuple[SensorSample, ValidationResult]:
        """Validate a sample.

        Args:
            sample: Sample as read from the source.

        Returns:
            The sanitized sample and a ValidationResult describing what
            was dropped.
        """
        result = ValidationResult(is_valid=True)
        cfg = self._config.sensor

        accel = self._check("accel", sample.accel, cfg.accelerometer.range_g, "g", result)
        gyro = self._check("gyro", sample.gyro, cfg.gyroscope.range_dps, "deg/s", result)
        mag = self._check("mag", sample.mag, cfg.magnetometer.range_counts, "counts", result)

        if result.warnings:
            logger.debug("Sample validation: %s", "; ".join(result.warnings))

        return SensorSample(accel=accel, gyro=gyro, mag=mag), result

    @staticmethod
    def _check(
        name: str,
        values: Optional[Vector3],
        limit: float,
        unit: str,
        result: ValidationResult
    ) -> Optional[Vector3]:
        if values is None:
            result.add_warning(f"{name} unavailable")
            return None

        arr = np.asarray(values, dtype=np.float64)
        if arr.shape != (3,):
            result.add_warning(f"{name} malformed: {values!r}")
            return None
        if not np.all(np.isfinite(arr)):
            result.add_warning(f"{name} non-finite: {values!r}")
            return None
        if np.any(np.abs(arr) > limit):
            result.add_warning(f"{name} out of range: max |v|={np.max(np.abs(arr)):.1f} {unit}")
            return None

        return (float(arr[0]), float(arr[1]), float(arr[2]))
