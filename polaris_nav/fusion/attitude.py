"""Common interface of the attitude fusion filters."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence
import numpy as np
from numpy.typing import NDArray

from ..core.config import FilterConfig
from ..core.quaternion import QuaternionOps, unit_vector
from ..core.types import AccelCalibration, CalibrationVector, EulerAngles, Quaternion
from ..core.validation import sanitize_dt
from .heading import tilt_compensated_heading

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FilterUpdate:
    """What one filter update did."""
    dt: float
    dt_substituted: bool
    accel_used: bool
    mag_used: bool
    correction_skipped: bool


def _vector(values: Optional[Sequence[float]]) -> Optional[NDArray[np.float64]]:
    if values is None:
        return None
    arr = np.asarray(values, dtype=np.float64)
    if arr.shape != (3,) or not np.all(np.isfinite(arr)):
        return None
    return arr


class AttitudeFilter(ABC):
    """Base class holding the orientation quaternion.

    Subclasses implement ``_step`` for one guarded update. The base
    class owns the dt guard, the corrections applied to raw
    accelerometer and magnetometer readings and the accessors.
    """

    name = "base"

    def __init__(self, config: FilterConfig):
        """Initialize filter.

        Args:
            config: Filter gains and timing guards.
        """
        self._config = config
        self._q = np.array([1.0, 0.0, 0.0, 0.0])
        self._calibration = CalibrationVector.identity()
        self._accel_calibration = AccelCalibration.identity()

    @property
    def config(self) -> FilterConfig:
        return self._config

    @property
    def calibration(self) -> CalibrationVector:
        return self._calibration

    @property
    def accel_calibration(self) -> AccelCalibration:
        return self._accel_calibration

    def set_calibration(self, vector: CalibrationVector) -> None:
        """Use a new magnetometer calibration from the next update on."""
        self._calibration = vector

    def set_accel_calibration(self, accel: AccelCalibration) -> None:
        """Use a new accelerometer calibration from the next update on."""
        self._accel_calibration = accel

    def corrected_mag(self, mag: Optional[Sequence[float]]) -> Optional[NDArray[np.float64]]:
        """Calibrated field, or None when mag must not be used."""
        raw = _vector(mag)
        if raw is None or not self._calibration.calibrated:
            return None
        return self._calibration.apply(raw)

    def corrected_accel(self, accel: Optional[Sequence[float]]) -> Optional[NDArray[np.float64]]:
        """Accelerometer reading with the calibration applied when trusted."""
        raw = _vector(accel)
        if raw is None or not self._accel_calibration.calibrated:
            return raw
        return self._accel_calibration.apply(raw)

    def initialize(
        self,
        accel: Optional[Sequence[float]],
        mag: Optional[Sequence[float]] = None
    ) -> bool:
        """Seed the orientation from a gravity and field measurement.

        Pitch and roll come from the accelerometer; yaw from the
        tilt-compensated heading when the magnetometer is calibrated,
        else 0.

        Returns:
            True if the accelerometer was usable. A degenerate reading
            leaves the identity orientation.
        """
        self.reset()
        acc = self.corrected_accel(accel)
        tilt = QuaternionOps.tilt_from_accel(acc) if acc is not None else None
        if tilt is None:
            logger.warning("Cannot initialize orientation: accelerometer unusable")
            return False

        pitch, roll = tilt
        yaw = 0.0
        mag_corr = self.corrected_mag(mag)
        if mag_corr is not None:
            heading = tilt_compensated_heading(mag_corr, pitch, roll)
            if heading is not None:
                yaw = heading

        self._q = QuaternionOps.from_euler(yaw, pitch, roll).to_array()
        logger.info("Orientation initialized: yaw=%.1f pitch=%.1f roll=%.1f", yaw, pitch, roll)
        return True

    def update(
        self,
        dt: float,
        accel: Optional[Sequence[float]],
        gyro: Optional[Sequence[float]],
        mag: Optional[Sequence[float]] = None
    ) -> FilterUpdate:
        """Advance the orientation by one tick.

        Args:
            dt: Time since the previous update in seconds.
            accel: Accelerometer reading in g, or None.
            gyro: Gyroscope reading in deg/s, or None.
            mag: Raw magnetometer reading, or None.

        Returns:
            FilterUpdate describing which corrections were applied.
        """
        dt, substituted = sanitize_dt(dt, self._config)
        if substituted:
            logger.debug("Implausible dt, using fallback %.3fs", dt)

        gyr = _vector(gyro)
        omega = np.radians(gyr) if gyr is not None else np.zeros(3)

        acc = self.corrected_accel(accel)
        acc_unit = unit_vector(acc)
        mag_corr = self.corrected_mag(mag)
        mag_unit = unit_vector(mag_corr)

        skipped = ((acc is not None and acc_unit is None)
                   or (mag_corr is not None and mag_unit is None))
        if skipped:
            logger.debug("Degenerate vector, correction skipped this tick")

        mag_used = self._step(dt, omega, acc_unit, mag_unit)

        return FilterUpdate(
            dt=dt,
            dt_substituted=substituted,
            accel_used=acc_unit is not None,
            mag_used=mag_used,
            correction_skipped=skipped,
        )

    @abstractmethod
    def _step(
        self,
        dt: float,
        omega: NDArray[np.float64],
        acc: Optional[NDArray[np.float64]],
        mag: Optional[NDArray[np.float64]]
    ) -> bool:
        """One update with unit vectors; returns whether mag was used.

        Either reference may be None; each term is applied independently.
        """

    def reset(self) -> None:
        """Return to the identity orientation."""
        self._q = np.array([1.0, 0.0, 0.0, 0.0])

    @property
    def quaternion(self) -> Quaternion:
        return Quaternion.from_array(self._q)

    @property
    def euler(self) -> EulerAngles:
        return QuaternionOps.to_euler(self.quaternion)

    def yaw(self) -> float:
        return self.euler.yaw

    def pitch(self) -> float:
        return self.euler.pitch

    def roll(self) -> float:
        return self.euler.roll


def create_filter(config: FilterConfig) -> AttitudeFilter:
    """Build the filter named by ``config.strategy``."""
    from .mahony import MahonyFilter
    from .complementary import ComplementaryFilter

    strategies = {
        MahonyFilter.name: MahonyFilter,
        ComplementaryFilter.name: ComplementaryFilter,
    }
    try:
        cls = strategies[config.strategy]
    except KeyError:
        raise ValueError(f"Unknown filter strategy: {config.strategy!r}") from None
    return cls(config)
