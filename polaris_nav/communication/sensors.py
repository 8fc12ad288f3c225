"""Sensor sample sources."""

import logging
import math
import time
from typing import Callable, Optional, Protocol, Tuple
import numpy as np

from ..core.config import MockSensorConfig
from ..core.errors import SensorReadError
from ..core.quaternion import QuaternionOps
from ..core.types import Quaternion, SensorSample, Vector3

logger = logging.getLogger(__name__)

GRAVITY_REF = np.array([0.0, 0.0, 1.0])


class SensorSource(Protocol):
    """Anything that can read the three motion sensors.

    Each read returns an (x, y, z) triple, or None (or raises
    SensorReadError) when that sensor cannot be read this tick.
    """

    def read_accel(self) -> Optional[Vector3]:
        ...

    def read_gyro(self) -> Optional[Vector3]:
        ...

    def read_mag(self) -> Optional[Vector3]:
        ...


def _read(reader: Callable[[], Optional[Vector3]], name: str) -> Optional[Vector3]:
    try:
        return reader()
    except SensorReadError as e:
        logger.debug("%s unavailable: %s", name, e)
        return None


def read_sample(source: SensorSource) -> SensorSample:
    """Read every modality once; a failed read becomes None."""
    return SensorSample(
        accel=_read(source.read_accel, "accel"),
        gyro=_read(source.read_gyro, "gyro"),
        mag=_read(source.read_mag, "mag"),
    )


class SyntheticSensorSource:
    """Simulated device for development without hardware.

    Models a device held still at the configured heading, pitch and
    roll in a field of the configured strength and dip, plus a hard-iron
    offset and Gaussian noise. With ``tumble`` set the device sweeps
    through all orientations, which is what a calibration session needs.
    """

    def __init__(
        self,
        config: MockSensorConfig,
        clock: Callable[[], float] = time.monotonic
    ):
        """Initialize synthetic source.

        Args:
            config: Simulated pose, field and noise levels.
            clock: Time source driving the tumble motion.
        """
        self._config = config
        self._clock = clock
        self._rng = np.random.default_rng(config.seed)
        self._t0 = clock()

        dip = math.radians(config.dip_deg)
        self._field_ref = config.field_counts * np.array([math.cos(dip), 0.0, math.sin(dip)])
        self._hard_iron = np.asarray(config.hard_iron, dtype=np.float64)

        self._last_q: Optional[Quaternion] = None
        self._last_t: Optional[float] = None

    def _pose(self, t: float) -> Quaternion:
        cfg = self._config
        if not cfg.tumble:
            return QuaternionOps.from_euler(cfg.heading_deg, cfg.pitch_deg, cfg.roll_deg)
        return QuaternionOps.from_euler(
            cfg.heading_deg + 40.0 * t,
            cfg.pitch_deg + 80.0 * math.sin(0.5 * t),
            cfg.roll_deg + 170.0 * math.sin(0.23 * t),
        )

    def _to_body(self, v: np.ndarray) -> np.ndarray:
        q = self._pose(self._clock() - self._t0)
        return QuaternionOps.rotation_matrix(q).T @ v

    def _noise(self, sigma: float) -> np.ndarray:
        return self._rng.normal(0.0, sigma, 3) if sigma > 0 else np.zeros(3)

    def read_accel(self) -> Optional[Vector3]:
        acc = self._to_body(GRAVITY_REF) + self._noise(self._config.accel_noise_g)
        return tuple(float(v) for v in acc)

    def read_gyro(self) -> Optional[Vector3]:
        t = self._clock() - self._t0
        q = self._pose(t)
        rate = np.zeros(3)

        if self._config.tumble and self._last_q is not None and t > self._last_t:
            # Body rate from the change in orientation since the last read
            dq = QuaternionOps.multiply(QuaternionOps.conjugate(self._last_q), q)
            rate = np.degrees(2.0 * np.array([dq.x, dq.y, dq.z]) / (t - self._last_t))

        self._last_q, self._last_t = q, t
        gyr = rate + self._noise(self._config.gyro_noise_dps)
        return tuple(float(v) for v in gyr)

    def read_mag(self) -> Optional[Vector3]:
        mag = (self._to_body(self._field_ref) + self._hard_iron
               + self._noise(self._config.mag_noise_counts))
        return tuple(float(v) for v in mag)


def expected_reading(
    heading_deg: float,
    pitch_deg: float,
    roll_deg: float,
    field: Tuple[float, float, float]
) -> Tuple[Vector3, Vector3]:
    """Noise-free accel and mag readings of a device at a given pose.

    Args:
        heading_deg: Yaw in degrees.
        pitch_deg: Pitch in degrees.
        roll_deg: Roll in degrees.
        field: Field in the reference frame (north, east, down).

    Returns:
        (accel, mag) body-frame triples.
    """
    q = QuaternionOps.from_euler(heading_deg, pitch_deg, roll_deg)
    r_t = QuaternionOps.rotation_matrix(q).T
    acc = r_t @ GRAVITY_REF
    mag = r_t @ np.asarray(field, dtype=np.float64)
    return (tuple(float(v) for v in acc), tuple(float(v) for v in mag))
