"""Attitude fusion and heading processing."""

from .attitude import AttitudeFilter, FilterUpdate, create_filter
from .mahony import MahonyFilter
from .complementary import ComplementaryFilter
from .heading import HeadingProcessor, tilt_compensated_heading, apply_declination
from .declination import DeclinationEstimate, estimate_declination
from .engine import OrientationEngine

__all__ = [
    "AttitudeFilter",
    "FilterUpdate",
    "create_filter",
    "MahonyFilter",
    "ComplementaryFilter",
    "HeadingProcessor",
    "tilt_compensated_heading",
    "apply_declination",
    "DeclinationEstimate",
    "estimate_declination",
    "OrientationEngine",
]
