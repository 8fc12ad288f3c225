"""Euler-angle complementary filter."""

import logging
from typing import Optional
import numpy as np
from numpy.typing import NDArray

from ..core.quaternion import QuaternionOps
from ..core.types import Quaternion, wrap_180, wrap_360
from .attitude import AttitudeFilter
from .heading import tilt_compensated_heading

logger = logging.getLogger(__name__)


class ComplementaryFilter(AttitudeFilter):
    """Blends gyro-integrated angles with accelerometer tilt and compass heading.

    Each angle becomes ``alpha * gyro + (1 - alpha) * reference``. Yaw
    and roll are blended along the shortest signed arc so the result
    does not jump across the ±180 seam. The quaternion is rebuilt from
    the blended angles every tick.
    """

    name = "complementary"

    def _step(
        self,
        dt: float,
        omega: NDArray[np.float64],
        acc: Optional[NDArray[np.float64]],
        mag: Optional[NDArray[np.float64]]
    ) -> bool:
        q_gyro = QuaternionOps.integrate(self._q, omega, dt)
        gyro_angles = QuaternionOps.to_euler(Quaternion.from_array(q_gyro))

        k = 1.0 - self._config.alpha
        pitch = gyro_angles.pitch
        roll = gyro_angles.roll
        yaw = gyro_angles.yaw

        # Without gravity the compass is tilt-compensated with the gyro angles
        tilt = QuaternionOps.tilt_from_accel(acc) if acc is not None else None
        ref_pitch, ref_roll = tilt if tilt is not None else (pitch, roll)
        if tilt is not None:
            pitch = pitch + k * (ref_pitch - pitch)
            roll = roll + k * wrap_180(ref_roll - roll)

        heading = tilt_compensated_heading(mag, ref_pitch, ref_roll) if mag is not None else None
        if heading is not None:
            yaw = wrap_360(yaw + k * wrap_180(heading - yaw))

        if tilt is None and heading is None:
            self._q = q_gyro
        else:
            self._q = QuaternionOps.from_euler(yaw, pitch, roll).to_array()
        return heading is not None
