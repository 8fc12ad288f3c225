"""Quaternion operations and utilities."""

import math
from typing import Optional, Tuple
import numpy as np
from numpy.typing import NDArray

from .types import Quaternion, EulerAngles


def multiply_arrays(a: NDArray[np.float64], b: NDArray[np.float64]) -> NDArray[np.float64]:
    """Hamilton product of two [w, x, y, z] arrays."""
    return np.array([
        a[0]*b[0] - a[1]*b[1] - a[2]*b[2] - a[3]*b[3],
        a[0]*b[1] + a[1]*b[0] + a[2]*b[3] - a[3]*b[2],
        a[0]*b[2] - a[1]*b[3] + a[2]*b[0] + a[3]*b[1],
        a[0]*b[3] + a[1]*b[2] - a[2]*b[1] + a[3]*b[0],
    ])


def normalize_array(q: NDArray[np.float64]) -> NDArray[np.float64]:
    """Normalize a [w, x, y, z] array.

    Returns the input unchanged when its norm is non-positive or
    non-finite.
    """
    n = float(np.linalg.norm(q))
    if not math.isfinite(n) or n <= 0.0:
        return q
    return q / n


def unit_vector(v: Optional[NDArray[np.float64]]) -> Optional[NDArray[np.float64]]:
    """Normalize a 3-vector, or return None if it is degenerate."""
    if v is None:
        return None
    n = float(np.linalg.norm(v))
    if not math.isfinite(n) or n <= 0.0:
        return None
    return v / n


class QuaternionOps:
    """Static methods for quaternion operations."""

    @staticmethod
    def to_euler(q: Quaternion) -> EulerAngles:
        """Convert quaternion to Euler angles (ZYX convention).

        Args:
            q: Unit quaternion.

        Returns:
            Euler angles in degrees, yaw wrapped into [0, 360).
        """
        w, x, y, z = q.w, q.x, q.y, q.z

        sinr_cosp = 2.0 * (w * x + y * z)
        cosr_cosp = 1.0 - 2.0 * (x * x + y * y)
        roll = math.atan2(sinr_cosp, cosr_cosp)

        sinp = 2.0 * (w * y - z * x)
        if abs(sinp) >= 1:
            pitch = math.copysign(math.pi / 2, sinp)
        else:
            pitch = math.asin(sinp)

        siny_cosp = 2.0 * (w * z + x * y)
        cosy_cosp = 1.0 - 2.0 * (y * y + z * z)
        yaw = math.atan2(siny_cosp, cosy_cosp)

        return EulerAngles.from_radians(yaw=yaw, pitch=pitch, roll=roll)

    @staticmethod
    def from_euler(yaw_deg: float, pitch_deg: float, roll_deg: float) -> Quaternion:
        """Convert ZYX Euler angles in degrees to a unit quaternion."""
        cy = math.cos(math.radians(yaw_deg) * 0.5)
        sy = math.sin(math.radians(yaw_deg) * 0.5)
        cp = math.cos(math.radians(pitch_deg) * 0.5)
        sp = math.sin(math.radians(pitch_deg) * 0.5)
        cr = math.cos(math.radians(roll_deg) * 0.5)
        sr = math.sin(math.radians(roll_deg) * 0.5)

        q = Quaternion(
            w=cr * cp * cy + sr * sp * sy,
            x=sr * cp * cy - cr * sp * sy,
            y=cr * sp * cy + sr * cp * sy,
            z=cr * cp * sy - sr * sp * cy,
        )
        return q.normalized()

    @staticmethod
    def tilt_from_accel(acc: NDArray[np.float64]) -> Optional[Tuple[float, float]]:
        """Pitch and roll implied by a gravity measurement.

        Args:
            acc: Accelerometer reading [ax, ay, az], any scale.

        Returns:
            (pitch, roll) in degrees, or None for a zero-norm reading.
        """
        a = unit_vector(acc)
        if a is None:
            return None
        pitch = math.degrees(math.asin(float(np.clip(-a[0], -1.0, 1.0))))
        roll = math.degrees(math.atan2(a[1], a[2]))
        return pitch, roll

    @staticmethod
    def rotation_matrix(q: Quaternion) -> NDArray[np.float64]:
        """Body-to-reference rotation matrix for a unit quaternion."""
        w, x, y, z = q.w, q.x, q.y, q.z
        return np.array([
            [1 - 2*(y*y + z*z), 2*(x*y - w*z), 2*(x*z + w*y)],
            [2*(x*y + w*z), 1 - 2*(x*x + z*z), 2*(y*z - w*x)],
            [2*(x*z - w*y), 2*(y*z + w*x), 1 - 2*(x*x + y*y)],
        ])

    @staticmethod
    def rotate(q: Quaternion, v: NDArray[np.float64]) -> NDArray[np.float64]:
        """Rotate a body-frame vector into the reference frame."""
        return QuaternionOps.rotation_matrix(q) @ np.asarray(v, dtype=np.float64)

    @staticmethod
    def integrate(
        q: NDArray[np.float64],
        omega: NDArray[np.float64],
        dt: float
    ) -> NDArray[np.float64]:
        """First-order integration of q_dot = 0.5 * q * [0, omega].

        Args:
            q: Current quaternion [w, x, y, z].
            omega: Body angular rate [wx, wy, wz] in rad/s.
            dt: Time step in seconds.

        Returns:
            Normalized quaternion after the step.
        """
        q_dot = 0.5 * multiply_arrays(q, np.array([0.0, omega[0], omega[1], omega[2]]))
        return normalize_array(q + q_dot * dt)

    @staticmethod
    def multiply(q1: Quaternion, q2: Quaternion) -> Quaternion:
        """Multiply two quaternions (Hamilton product).

        Args:
            q1: First quaternion.
            q2: Second quaternion.

        Returns:
            Product quaternion q1 * q2.
        """
        return Quaternion.from_array(multiply_arrays(q1.to_array(), q2.to_array()))

    @staticmethod
    def conjugate(q: Quaternion) -> Quaternion:
        """Compute quaternion conjugate.

        Args:
            q: Input quaternion.

        Returns:
            Conjugate quaternion.
        """
        return Quaternion(w=q.w, x=-q.x, y=-q.y, z=-q.z)
