"""Magnetometer hard-iron / soft-iron calibration.

A session collects raw magnetometer readings while the user waves the
device through every orientation, tracking per-axis extremes. The centre
of each axis span is the hard-iron offset; the ratio of the mean span to
each axis span is the soft-iron scale that maps the raw ellipsoid back
onto a sphere.

The manager is driven one reading at a time from the control loop and
never blocks.
"""

import logging
from typing import List, Optional, Sequence, Tuple
import numpy as np
from numpy.typing import NDArray

from ..core.types import CalibrationQuality, CalibrationVector
from .session import (
    AXES,
    CalibrationResult,
    CalibrationSession,
    CalibrationSessionManager,
    CalibrationState,
    StepResult,
)

logger = logging.getLogger(__name__)

__all__ = [
    "CalibrationState",
    "StepResult",
    "CalibrationResult",
    "compute_calibration",
    "quality_failures",
    "MagCalibrationManager",
]


def compute_calibration(
    mins: Sequence[float],
    maxs: Sequence[float],
    range_floor: float = 1.0
) -> Tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
    """Hard-iron offset and soft-iron scale from per-axis extremes.

    Args:
        mins: Per-axis minimum raw reading.
        maxs: Per-axis maximum raw reading.
        range_floor: Smallest span used for an axis, so a flat axis
            never divides by zero.

    Returns:
        (offset, scale, ranges) arrays.
    """
    mins = np.asarray(mins, dtype=np.float64)
    maxs = np.asarray(maxs, dtype=np.float64)

    offset = (mins + maxs) / 2.0
    ranges = np.maximum(maxs - mins, range_floor)
    avg_range = float(np.mean(ranges))
    scale = avg_range / ranges
    scale = np.where(np.isfinite(scale) & (scale > 0.0), scale, 1.0)

    return offset, scale, ranges


def quality_failures(
    ranges: Sequence[float],
    min_axis_range: float,
    min_range_ratio: float
) -> List[str]:
    """Names of the quality checks a set of axis spans fails."""
    failures = []
    for axis, span in zip(AXES, ranges):
        if span < min_axis_range:
            failures.append(f"{axis} range {span:.1f} < {min_axis_range:.1f}")

    ratio = float(min(ranges)) / float(max(ranges))
    if ratio < min_range_ratio:
        failures.append(f"range ratio {ratio:.2f} < {min_range_ratio:.2f}")

    return failures


class MagCalibrationManager(CalibrationSessionManager):
    """Runs magnetometer sessions and owns the active CalibrationVector."""

    sensor = "magnetometer"
    instructions = "rotate the device in all directions"

    def _identity(self) -> CalibrationVector:
        return CalibrationVector.identity()

    def _save(self, vector: CalibrationVector) -> None:
        self._store.save(vector)

    def _load_stored(self) -> Optional[CalibrationVector]:
        return self._store.load()

    def _evaluate(self, session: CalibrationSession, timestamp: float) -> CalibrationResult:
        cfg = self._config
        offset, scale, ranges = compute_calibration(session.mins, session.maxs,
                                                    cfg.range_floor)
        failures = quality_failures(ranges, cfg.min_axis_range, cfg.min_range_ratio)
        passed = not failures

        vector = CalibrationVector(
            hard_iron=tuple(float(v) for v in offset),
            scale=tuple(float(v) for v in scale),
            calibrated=passed,
            quality=CalibrationQuality.GOOD if passed else CalibrationQuality.POOR,
            timestamp=timestamp,
        )
        return CalibrationResult(
            vector=vector,
            ranges=tuple(float(r) for r in ranges),
            failures=tuple(failures),
        )
