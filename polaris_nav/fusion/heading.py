"""Compass heading post-processing."""

import logging
import math
from typing import Optional
import numpy as np
from numpy.typing import NDArray

from ..core.config import HeadingConfig
from ..core.types import wrap_360
from .declination import DeclinationEstimate, clamp_declination, estimate_declination

logger = logging.getLogger(__name__)

MIN_HORIZONTAL_FIELD = 1e-9


def tilt_compensated_heading(
    mag: NDArray[np.float64],
    pitch_deg: float,
    roll_deg: float
) -> Optional[float]:
    """Magnetic heading of a tilted device.

    Projects the calibrated field onto the horizontal plane using the
    accelerometer pitch and roll, so the heading does not change while
    the device is tilted.

    Args:
        mag: Calibrated magnetometer reading [mx, my, mz], body frame.
        pitch_deg: Pitch in degrees.
        roll_deg: Roll in degrees.

    Returns:
        Heading in degrees, [0, 360), or None if the horizontal field
        is degenerate.
    """
    mx, my, mz = (float(v) for v in mag)
    if not all(math.isfinite(v) for v in (mx, my, mz)):
        return None

    pitch = math.radians(pitch_deg)
    roll = math.radians(roll_deg)
    sin_p, cos_p = math.sin(pitch), math.cos(pitch)
    sin_r, cos_r = math.sin(roll), math.cos(roll)

    mx_comp = mx * cos_p + my * sin_p * sin_r + mz * sin_p * cos_r
    my_comp = mz * sin_r - my * cos_r

    if math.hypot(mx_comp, my_comp) < MIN_HORIZONTAL_FIELD:
        return None

    return wrap_360(math.degrees(math.atan2(my_comp, mx_comp)))


def apply_declination(heading_deg: float, declination_deg: float) -> float:
    """Convert a magnetic heading to a true heading, in [0, 360)."""
    return wrap_360(heading_deg + declination_deg)


class HeadingProcessor:
    """Resolves the declination and turns magnetic headings into reported ones."""

    def __init__(self, config: HeadingConfig):
        """Initialize heading processor.

        Args:
            config: Heading configuration.
        """
        self._config = config
        self._manual_deg = clamp_declination(config.declination_deg)
        self._estimate: Optional[DeclinationEstimate] = None

        if (config.declination_source == "regional"
                and config.latitude is not None and config.longitude is not None):
            self.set_location(config.latitude, config.longitude)

    @property
    def use_true_north(self) -> bool:
        return self._config.use_true_north

    @property
    def estimate(self) -> Optional[DeclinationEstimate]:
        """Regional estimate in use, if any."""
        return self._estimate

    @property
    def declination_deg(self) -> float:
        """Declination currently applied to headings."""
        if not self._config.use_true_north:
            return 0.0
        if self._config.declination_source == "regional" and self._estimate is not None:
            return self._estimate.value_deg
        return self._manual_deg

    def set_manual_declination(self, value_deg: float) -> None:
        """Set the manual declination, clamped to ±30 degrees."""
        clamped = clamp_declination(value_deg)
        if clamped != value_deg:
            logger.warning("Declination %.1f clamped to %.1f", value_deg, clamped)
        self._manual_deg = clamped

    def set_location(self, latitude: float, longitude: float) -> DeclinationEstimate:
        """Update the regional estimate from a position fix."""
        self._estimate = estimate_declination(latitude, longitude)
        logger.info(
            "Declination estimate %.1f deg (region=%s, +/-%.1f deg, approximate)",
            self._estimate.value_deg, self._estimate.region, self._estimate.uncertainty_deg
        )
        return self._estimate

    def apply(self, magnetic_heading_deg: float) -> float:
        """Heading to report for a magnetic heading."""
        return apply_declination(magnetic_heading_deg, self.declination_deg)
