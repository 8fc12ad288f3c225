"""Accelerometer offset / scale calibration.

The user rests the device on each of its six faces in turn. Gravity then
drives every axis to about -1 g and +1 g; the centre of each span is the
zero-g offset and ``2 / span`` the scale that maps it back to ±1 g.
"""

import logging
from typing import List, Optional, Sequence, Tuple
import numpy as np
from numpy.typing import NDArray

from ..core.types import AccelCalibration, CalibrationQuality
from .session import AXES, CalibrationResult, CalibrationSession, CalibrationSessionManager

logger = logging.getLogger(__name__)


def compute_accel_calibration(
    mins: Sequence[float],
    maxs: Sequence[float],
    range_floor_g: float = 0.01
) -> Tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
    """Offset and scale from per-axis extremes in g.

    An axis whose span is not above ``range_floor_g`` keeps scale 1.

    Returns:
        (offset, scale, ranges) arrays.
    """
    mins = np.asarray(mins, dtype=np.float64)
    maxs = np.asarray(maxs, dtype=np.float64)

    offset = (mins + maxs) / 2.0
    ranges = maxs - mins
    scale = np.ones(3)
    usable = ranges > range_floor_g
    scale[usable] = 2.0 / ranges[usable]

    return offset, scale, ranges


def accel_quality_failures(
    ranges: Sequence[float],
    min_axis_range_g: float,
    max_axis_range_g: float
) -> List[str]:
    """Names of the checks a set of accelerometer spans fails."""
    failures = []
    for axis, span in zip(AXES, ranges):
        if span < min_axis_range_g:
            failures.append(f"{axis} range {span:.2f} g < {min_axis_range_g:.2f} g")
        elif span > max_axis_range_g:
            failures.append(f"{axis} range {span:.2f} g > {max_axis_range_g:.2f} g")
    return failures


class AccelCalibrationManager(CalibrationSessionManager):
    """Runs accelerometer sessions and owns the active AccelCalibration."""

    sensor = "accelerometer"
    instructions = "rest the device still on each of its six faces"

    def _identity(self) -> AccelCalibration:
        return AccelCalibration.identity()

    def _save(self, accel: AccelCalibration) -> None:
        self._store.save_accel(accel)

    def _load_stored(self) -> Optional[AccelCalibration]:
        return self._store.load_accel()

    def _evaluate(self, session: CalibrationSession, timestamp: float) -> CalibrationResult:
        cfg = self._config
        offset, scale, ranges = compute_accel_calibration(session.mins, session.maxs,
                                                          cfg.range_floor_g)
        failures = accel_quality_failures(ranges, cfg.min_axis_range_g, cfg.max_axis_range_g)
        passed = not failures

        accel = AccelCalibration(
            offset=tuple(float(v) for v in offset),
            scale=tuple(float(v) for v in scale),
            calibrated=passed,
            quality=CalibrationQuality.GOOD if passed else CalibrationQuality.POOR,
            timestamp=timestamp,
        )
        return CalibrationResult(
            vector=accel,
            ranges=tuple(float(r) for r in ranges),
            failures=tuple(failures),
        )
