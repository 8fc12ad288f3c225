"""Tests for quaternion operations and angle types."""

import math
import pytest
import numpy as np
from numpy.testing import assert_allclose

from polaris_nav.core.types import Quaternion, EulerAngles, wrap_180, wrap_360
from polaris_nav.core.quaternion import (
    QuaternionOps,
    multiply_arrays,
    normalize_array,
    unit_vector,
)


class TestQuaternion:
    """Tests for Quaternion dataclass."""

    def test_identity(self):
        """Identity quaternion should have correct values."""
        q = Quaternion.identity()
        assert q.as_tuple() == (1.0, 0.0, 0.0, 0.0)

    def test_from_array(self):
        """Quaternion should be created from numpy array."""
        q = Quaternion.from_array(np.array([0.7071, 0.0, 0.7071, 0.0]))

        assert abs(q.w - 0.7071) < 1e-4
        assert abs(q.y - 0.7071) < 1e-4

    def test_norm_non_unit(self):
        """Non-unit quaternion should have correct norm."""
        q = Quaternion(w=2.0, x=0.0, y=0.0, z=0.0)
        assert abs(q.norm - 2.0) < 1e-10
        assert not q.is_valid()

    def test_normalized(self):
        """Normalized quaternion should have unit norm."""
        q = Quaternion(w=2.0, x=2.0, y=2.0, z=2.0).normalized()
        assert abs(q.norm - 1.0) < 1e-10

    def test_normalized_zero_quaternion_unchanged(self):
        """Zero quaternion should be left unchanged by normalization."""
        q = Quaternion(w=0.0, x=0.0, y=0.0, z=0.0).normalized()
        assert q.as_tuple() == (0.0, 0.0, 0.0, 0.0)

    def test_nan_is_invalid(self):
        """Quaternion with NaN should be invalid."""
        q = Quaternion(w=float("nan"), x=0.0, y=0.0, z=0.0)
        assert not q.is_valid()


class TestWrap:
    """Tests for angle wrapping helpers."""

    @pytest.mark.parametrize("angle,expected", [
        (0.0, 0.0), (360.0, 0.0), (-90.0, 270.0), (725.0, 5.0), (-1e-20, 0.0),
    ])
    def test_wrap_360(self, angle, expected):
        """Angles should wrap into [0, 360)."""
        wrapped = wrap_360(angle)
        assert 0.0 <= wrapped < 360.0
        assert abs(wrapped - expected) < 1e-9

    @pytest.mark.parametrize("angle,expected", [
        (190.0, -170.0), (-190.0, 170.0), (10.0, 10.0), (180.0, -180.0),
    ])
    def test_wrap_180(self, angle, expected):
        """Angles should wrap into [-180, 180)."""
        assert abs(wrap_180(angle) - expected) < 1e-9


class TestArrayHelpers:
    """Tests for array-level helpers."""

    def test_multiply_identity(self):
        """Multiplying by identity should return the same quaternion."""
        q = np.array([0.5, 0.5, 0.5, 0.5])
        assert_allclose(multiply_arrays(np.array([1.0, 0, 0, 0]), q), q)

    def test_normalize_zero_unchanged(self):
        """Zero array should be returned unchanged."""
        q = np.zeros(4)
        assert_allclose(normalize_array(q), q)

    def test_unit_vector_degenerate(self):
        """Zero and non-finite vectors have no direction."""
        assert unit_vector(np.zeros(3)) is None
        assert unit_vector(np.array([np.nan, 0.0, 1.0])) is None
        assert unit_vector(None) is None


class TestQuaternionOps:
    """Tests for QuaternionOps static methods."""

    def test_euler_round_trip(self):
        """from_euler and to_euler should agree away from gimbal lock."""
        q = QuaternionOps.from_euler(123.0, 20.0, -35.0)
        euler = QuaternionOps.to_euler(q)

        assert abs(euler.yaw - 123.0) < 1e-6
        assert abs(euler.pitch - 20.0) < 1e-6
        assert abs(euler.roll + 35.0) < 1e-6

    def test_to_euler_yaw_wrapped(self):
        """Negative yaw should be reported in [0, 360)."""
        euler = QuaternionOps.to_euler(QuaternionOps.from_euler(-30.0, 0.0, 0.0))
        assert abs(euler.yaw - 330.0) < 1e-6

    def test_to_euler_pitch_at_gimbal_lock(self):
        """Pitch of +90 should not raise."""
        euler = QuaternionOps.to_euler(QuaternionOps.from_euler(0.0, 90.0, 0.0))
        assert abs(euler.pitch - 90.0) < 1e-3

    def test_tilt_from_level_accel(self):
        """Level device should have zero pitch and roll."""
        pitch, roll = QuaternionOps.tilt_from_accel(np.array([0.0, 0.0, 1.0]))
        assert abs(pitch) < 1e-9
        assert abs(roll) < 1e-9

    def test_tilt_from_accel_matches_pose(self):
        """Gravity of a tilted pose should give back its pitch and roll."""
        q = QuaternionOps.from_euler(0.0, 25.0, -40.0)
        acc = QuaternionOps.rotation_matrix(q).T @ np.array([0.0, 0.0, 1.0])
        pitch, roll = QuaternionOps.tilt_from_accel(acc)

        assert abs(pitch - 25.0) < 1e-6
        assert abs(roll + 40.0) < 1e-6

    def test_tilt_from_zero_accel(self):
        """Zero accelerometer reading should give no tilt."""
        assert QuaternionOps.tilt_from_accel(np.zeros(3)) is None

    def test_rotate_yaw(self):
        """Yaw of 90 should rotate body x onto reference y."""
        q = QuaternionOps.from_euler(90.0, 0.0, 0.0)
        assert_allclose(QuaternionOps.rotate(q, np.array([1.0, 0, 0])), [0, 1, 0], atol=1e-9)

    def test_integrate_keeps_unit_norm(self):
        """Integration step should return a unit quaternion."""
        q = np.array([1.0, 0.0, 0.0, 0.0])
        for _ in range(50):
            q = QuaternionOps.integrate(q, np.array([0.3, -1.2, 2.0]), 0.02)
        assert abs(np.linalg.norm(q) - 1.0) < 1e-12

    def test_integrate_positive_z_rate_increases_yaw(self):
        """Positive z rate should increase yaw."""
        q = QuaternionOps.integrate(np.array([1.0, 0, 0, 0]), np.array([0, 0, 0.5]), 0.1)
        assert QuaternionOps.to_euler(Quaternion.from_array(q)).yaw > 0.0

    def test_conjugate_product_is_identity(self):
        """q times its conjugate should be identity."""
        q = QuaternionOps.from_euler(10.0, 20.0, 30.0)
        product = QuaternionOps.multiply(q, QuaternionOps.conjugate(q))
        assert_allclose(product.to_array(), [1, 0, 0, 0], atol=1e-12)


class TestEulerAngles:
    """Tests for EulerAngles."""

    def test_from_radians_wraps_yaw(self):
        """Yaw from radians should be wrapped."""
        e = EulerAngles.from_radians(yaw=-math.pi / 2, pitch=0.0, roll=0.0)
        assert abs(e.yaw - 270.0) < 1e-9

    def test_to_radians(self):
        """to_radians should convert every angle."""
        yaw, pitch, roll = EulerAngles(yaw=180.0, pitch=90.0, roll=-90.0).to_radians()
        assert abs(yaw - math.pi) < 1e-12
        assert abs(pitch - math.pi / 2) < 1e-12
        assert abs(roll + math.pi / 2) < 1e-12
