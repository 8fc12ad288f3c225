"""Coarse regional magnetic declination estimate.

This is a lookup of a few linear regional fits, not a geomagnetic
model. Results are always flagged approximate and carry an
uncertainty; locations outside every region get 0.0 with no region.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from ..core.config import MAX_DECLINATION_DEG

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeclinationEstimate:
    """Approximate declination in degrees, east positive."""
    value_deg: float
    region: Optional[str]
    approximate: bool = True
    uncertainty_deg: float = MAX_DECLINATION_DEG


@dataclass(frozen=True)
class _Region:
    name: str
    lat_range: Tuple[float, float]
    lon_range: Tuple[float, float]
    base_deg: float
    ref_lat: float
    ref_lon: float
    lat_gradient: float
    lon_gradient: float
    uncertainty_deg: float

    def contains(self, lat: float, lon: float) -> bool:
        return (self.lat_range[0] <= lat <= self.lat_range[1]
                and self.lon_range[0] <= lon <= self.lon_range[1])

    def evaluate(self, lat: float, lon: float) -> float:
        return (self.base_deg
                + (lat - self.ref_lat) * self.lat_gradient
                + (lon - self.ref_lon) * self.lon_gradient)


# Ordered most specific first.
_REGIONS = (
    _Region("japan", (30.0, 45.0), (125.0, 150.0),
            -7.5, 35.0, 135.0, 0.2, 0.1, 1.5),
    _Region("north_america", (20.0, 60.0), (-130.0, -60.0),
            0.0, 40.0, -95.0, 0.0, -0.5, 4.0),
    _Region("europe", (35.0, 70.0), (-10.0, 40.0),
            3.5, 50.0, 10.0, 0.0, 0.25, 3.0),
    _Region("australia", (-45.0, -10.0), (110.0, 155.0),
            5.0, -30.0, 135.0, 0.0, 0.35, 3.0),
)


def clamp_declination(value_deg: float) -> float:
    """Limit a declination to the supported ±30 degrees."""
    return max(-MAX_DECLINATION_DEG, min(MAX_DECLINATION_DEG, value_deg))


def estimate_declination(latitude: float, longitude: float) -> DeclinationEstimate:
    """Look up the approximate declination at a location.

    Args:
        latitude: Degrees, north positive.
        longitude: Degrees, east positive.

    Returns:
        DeclinationEstimate. Unknown regions yield 0.0 with region None.
    """
    for region in _REGIONS:
        if region.contains(latitude, longitude):
            value = clamp_declination(region.evaluate(latitude, longitude))
            return DeclinationEstimate(
                value_deg=value,
                region=region.name,
                uncertainty_deg=region.uncertainty_deg,
            )

    logger.warning(
        "No declination data for lat=%.2f lon=%.2f, using 0.0 (magnetic north)",
        latitude, longitude
    )
    return DeclinationEstimate(value_deg=0.0, region=None)
