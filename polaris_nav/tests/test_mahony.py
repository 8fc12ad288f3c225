"""Tests for the Mahony attitude filter."""

import math
import pytest
import numpy as np
from numpy.testing import assert_allclose

from polaris_nav.communication.sensors import expected_reading
from polaris_nav.core.config import FilterConfig
from polaris_nav.core.types import CalibrationVector, wrap_180
from polaris_nav.fusion.attitude import AttitudeFilter, create_filter
from polaris_nav.fusion.mahony import MahonyFilter
from polaris_nav.fusion.complementary import ComplementaryFilter

LEVEL = (0.0, 0.0, 1.0)
STILL = (0.0, 0.0, 0.0)
NORTH = (300.0, 0.0, 0.0)
FIELD = (250.0, 0.0, 300.0)


@pytest.fixture
def mahony(calibrated_identity) -> MahonyFilter:
    """Create a Mahony filter with a calibrated pass-through vector."""
    f = MahonyFilter(FilterConfig())
    f.set_calibration(calibrated_identity)
    return f


class TestFixedPoint:
    """Tests for stationary, aligned input."""

    def test_identity_is_fixed_point(self, mahony):
        """Level, still, north-facing input should leave identity unchanged."""
        update = mahony.update(0.01, LEVEL, STILL, NORTH)

        assert_allclose(mahony.quaternion.to_array(), [1, 0, 0, 0], atol=1e-12)
        assert update.mag_used
        assert not update.correction_skipped
        assert abs(mahony.yaw()) < 1e-9

    def test_repeated_updates_stay_put(self, mahony):
        """Many stationary updates should not drift."""
        for _ in range(500):
            mahony.update(0.01, LEVEL, STILL, NORTH)
        assert abs(mahony.pitch()) < 1e-9
        assert abs(mahony.roll()) < 1e-9


class TestGyroIntegration:
    """Tests for gyro propagation."""

    def test_yaw_rate_integrates_to_ninety(self):
        """90 deg/s about z for one second should give yaw near 90."""
        f = MahonyFilter(FilterConfig(kp=0.0))
        for _ in range(100):
            f.update(0.01, LEVEL, (0.0, 0.0, 90.0), None)

        assert abs(f.yaw() - 90.0) < 1.0
        assert abs(f.quaternion.norm - 1.0) < 1e-9

    def test_missing_gyro_treated_as_zero_rate(self, mahony):
        """Unavailable gyro should not move the orientation."""
        mahony.update(0.01, LEVEL, None, NORTH)
        assert_allclose(mahony.quaternion.to_array(), [1, 0, 0, 0], atol=1e-12)


class TestCorrection:
    """Tests for the error feedback."""

    def test_converges_to_tilt(self, calibrated_identity):
        """Filter should converge to the pose implied by accel and mag."""
        f = MahonyFilter(FilterConfig(kp=2.0))
        f.set_calibration(calibrated_identity)
        acc, mag = expected_reading(60.0, 15.0, -20.0, FIELD)

        for _ in range(3000):
            f.update(0.01, acc, STILL, mag)

        euler = f.euler
        assert abs(euler.pitch - 15.0) < 0.5
        assert abs(euler.roll + 20.0) < 0.5
        assert abs(euler.yaw - 60.0) < 0.5

    def test_mag_corrects_yaw_without_accel(self, calibrated_identity):
        """Calibrated mag should pull yaw back to north while accel is missing."""
        f = MahonyFilter(FilterConfig(kp=2.0))
        f.set_calibration(calibrated_identity)
        acc, mag = expected_reading(30.0, 0.0, 0.0, FIELD)
        f.initialize(acc, mag)
        assert abs(f.yaw() - 30.0) < 1e-6

        for _ in range(500):
            update = f.update(0.01, None, STILL, NORTH)

        assert update.mag_used
        assert not update.accel_used
        assert not update.correction_skipped
        assert abs(wrap_180(f.yaw())) < 1.0

    def test_uncalibrated_mag_ignored(self):
        """Mag terms should be excluded when not calibrated."""
        f = MahonyFilter(FilterConfig())
        acc, mag = expected_reading(90.0, 0.0, 0.0, FIELD)

        for _ in range(200):
            update = f.update(0.01, acc, STILL, mag)

        assert not update.mag_used
        assert abs(f.yaw()) < 1e-6

    def test_norm_after_every_update(self, mahony):
        """Quaternion should stay normalized under arbitrary input."""
        rng = np.random.default_rng(3)
        for _ in range(300):
            mahony.update(0.01, rng.normal(size=3), rng.normal(scale=200, size=3),
                          rng.normal(scale=300, size=3))
            assert abs(mahony.quaternion.norm - 1.0) < 1e-9


class TestIntegralTerm:
    """Tests for integral feedback."""

    def test_integral_clamped(self, calibrated_identity):
        """Integral should never exceed the limit."""
        f = MahonyFilter(FilterConfig(ki=5.0, integral_limit=0.1))
        acc, _ = expected_reading(0.0, 40.0, 0.0, FIELD)
        for _ in range(200):
            f.update(0.01, acc, (0.0, 0.0, 0.0), None)
        assert np.all(np.abs(f.integral) <= 0.1 + 1e-12)

    def test_integral_reset_when_ki_zero(self):
        """Integral should stay zero with ki = 0."""
        f = MahonyFilter(FilterConfig(ki=0.0))
        acc, _ = expected_reading(0.0, 40.0, 0.0, FIELD)
        f.update(0.01, acc, STILL, None)
        assert_allclose(f.integral, [0, 0, 0])

    def test_reset_clears_integral(self):
        """reset() should return to identity and clear the integral."""
        f = MahonyFilter(FilterConfig(ki=1.0))
        acc, _ = expected_reading(0.0, 40.0, 0.0, FIELD)
        f.update(0.01, acc, STILL, None)
        f.reset()
        assert_allclose(f.integral, [0, 0, 0])
        assert_allclose(f.quaternion.to_array(), [1, 0, 0, 0])


class TestGuards:
    """Tests for dt and degenerate-vector guards."""

    @pytest.mark.parametrize("dt", [0.0, -0.5, math.nan, math.inf, 5.0])
    def test_bad_dt_uses_fallback(self, mahony, dt):
        """Implausible dt should be replaced by the fallback."""
        update = mahony.update(dt, LEVEL, STILL, NORTH)
        assert update.dt_substituted
        assert update.dt == 0.01

    def test_good_dt_kept(self, mahony):
        """Plausible dt should be used as is."""
        update = mahony.update(0.02, LEVEL, STILL, NORTH)
        assert not update.dt_substituted
        assert update.dt == 0.02

    def test_zero_accel_keeps_mag_term(self, mahony):
        """Zero accel should skip only the gravity term and still integrate gyro."""
        update = mahony.update(0.01, (0.0, 0.0, 0.0), (0.0, 0.0, 90.0), NORTH)

        assert update.correction_skipped
        assert not update.accel_used
        assert update.mag_used
        assert mahony.yaw() > 0.0
        assert np.all(np.isfinite(mahony.quaternion.to_array()))

    def test_zero_mag_skips_mag_term(self, mahony):
        """Zero mag should skip only the mag correction."""
        update = mahony.update(0.01, LEVEL, STILL, (0.0, 0.0, 0.0))
        assert update.correction_skipped
        assert update.accel_used
        assert not update.mag_used

    def test_nan_accel_skips_correction(self, mahony):
        """Non-finite accel should be treated as unavailable."""
        update = mahony.update(0.01, (math.nan, 0.0, 1.0), STILL, NORTH)
        assert not update.accel_used
        assert np.all(np.isfinite(mahony.quaternion.to_array()))


class TestInitialize:
    """Tests for orientation seeding."""

    def test_initialize_from_pose(self, mahony):
        """Initialization should match the pose of the readings."""
        acc, mag = expected_reading(200.0, -10.0, 30.0, FIELD)
        assert mahony.initialize(acc, mag)

        euler = mahony.euler
        assert abs(euler.yaw - 200.0) < 1e-6
        assert abs(euler.pitch + 10.0) < 1e-6
        assert abs(euler.roll - 30.0) < 1e-6

    def test_initialize_uncalibrated_yaw_zero(self):
        """Without calibration the yaw should start at zero."""
        f = MahonyFilter(FilterConfig())
        acc, mag = expected_reading(200.0, -10.0, 30.0, FIELD)
        f.initialize(acc, mag)
        assert abs(f.yaw()) < 1e-6 or abs(f.yaw() - 360.0) < 1e-6

    def test_initialize_degenerate_accel(self, mahony):
        """Zero accel should leave identity."""
        assert not mahony.initialize((0.0, 0.0, 0.0), NORTH)
        assert_allclose(mahony.quaternion.to_array(), [1, 0, 0, 0])

    def test_hard_iron_applied(self):
        """Calibration offset should be removed before use."""
        f = MahonyFilter(FilterConfig())
        f.set_calibration(CalibrationVector(hard_iron=(100.0, -50.0, 20.0), calibrated=True))
        acc, mag = expected_reading(45.0, 0.0, 0.0, FIELD)
        raw = tuple(m + o for m, o in zip(mag, (100.0, -50.0, 20.0)))
        f.initialize(acc, raw)
        assert abs(f.yaw() - 45.0) < 1e-6


class TestCreateFilter:
    """Tests for strategy selection."""

    def test_default_is_mahony(self):
        """Default configuration should select Mahony."""
        assert isinstance(create_filter(FilterConfig()), MahonyFilter)

    def test_complementary(self):
        """Complementary strategy should be selectable."""
        f = create_filter(FilterConfig(strategy="complementary"))
        assert isinstance(f, ComplementaryFilter)

    def test_unknown_strategy(self):
        """Unknown strategy should raise."""
        with pytest.raises(ValueError):
            create_filter(FilterConfig(strategy="kalman"))

    def test_base_class_is_abstract(self):
        """The shared base should not be instantiable on its own."""
        with pytest.raises(TypeError):
            AttitudeFilter(FilterConfig())

    def test_subclass_must_implement_step(self):
        """A filter without a step should be rejected at construction."""
        class NoStep(AttitudeFilter):
            name = "nostep"

        with pytest.raises(TypeError):
            NoStep(FilterConfig())
