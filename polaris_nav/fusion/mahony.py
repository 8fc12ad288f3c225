"""Mahony explicit complementary filter.

The gyro rate is corrected by the cross product between the measured
gravity (and field) direction and the direction predicted by the current
orientation, with a proportional and an optional integral term, then
integrated into the quaternion.
"""

import logging
from typing import Optional
import numpy as np
from numpy.typing import NDArray

from ..core.config import FilterConfig
from ..core.quaternion import QuaternionOps
from .attitude import AttitudeFilter

logger = logging.getLogger(__name__)


class MahonyFilter(AttitudeFilter):
    """Mahony AHRS with anti-windup on the integral term."""

    name = "mahony"

    def __init__(self, config: FilterConfig):
        super().__init__(config)
        self._integral = np.zeros(3)

    @property
    def integral(self) -> NDArray[np.float64]:
        """Integral feedback in rad/s."""
        return self._integral.copy()

    def reset(self) -> None:
        super().reset()
        self._integral = np.zeros(3)

    def _step(
        self,
        dt: float,
        omega: NDArray[np.float64],
        acc: Optional[NDArray[np.float64]],
        mag: Optional[NDArray[np.float64]]
    ) -> bool:
        q0, q1, q2, q3 = self._q
        error = np.zeros(3)
        mag_used = False

        if acc is not None:
            # Gravity direction predicted in the body frame
            v = np.array([
                2.0 * (q1 * q3 - q0 * q2),
                2.0 * (q0 * q1 + q2 * q3),
                q0 * q0 - q1 * q1 - q2 * q2 + q3 * q3,
            ])
            error += np.cross(acc, v)

        if mag is not None:
            # Earth field direction predicted in the body frame
            r = QuaternionOps.rotation_matrix(self.quaternion)
            h = r @ mag
            b = np.array([np.hypot(h[0], h[1]), 0.0, h[2]])
            w = r.T @ b
            error += np.cross(mag, w)
            mag_used = True

        cfg = self._config
        if cfg.ki > 0.0:
            self._integral = np.clip(
                self._integral + cfg.ki * error * dt,
                -cfg.integral_limit, cfg.integral_limit
            )
        else:
            self._integral = np.zeros(3)

        corrected = omega + cfg.kp * error + self._integral
        self._q = QuaternionOps.integrate(self._q, corrected, dt)
        return mag_used
