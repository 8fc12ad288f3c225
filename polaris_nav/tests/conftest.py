"""Pytest fixtures for orientation core tests."""

import sys
from pathlib import Path
from typing import List, Optional
import pytest

repo_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(repo_root))

from polaris_nav.calibration.store import CalibrationStore, MemoryStore
from polaris_nav.core.config import Config
from polaris_nav.core.errors import SensorReadError
from polaris_nav.core.types import AccelCalibration, CalibrationQuality, CalibrationVector


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedSource:
    """Sensor source replaying fixed or queued readings.

    A reading set to the string "error" raises SensorReadError.
    """

    def __init__(self, accel=(0.0, 0.0, 1.0), gyro=(0.0, 0.0, 0.0), mag=(300.0, 0.0, 0.0)):
        self.accel = accel
        self.gyro = gyro
        self.mag = mag
        self.mag_queue: List[Optional[tuple]] = []

    @staticmethod
    def _value(value):
        if value == "error":
            raise SensorReadError("scripted failure")
        return value

    def read_accel(self):
        return self._value(self.accel)

    def read_gyro(self):
        return self._value(self.gyro)

    def read_mag(self):
        if self.mag_queue:
            return self._value(self.mag_queue.pop(0))
        return self._value(self.mag)


@pytest.fixture
def config() -> Config:
    """Create default configuration for tests."""
    return Config()


@pytest.fixture
def clock() -> FakeClock:
    """Create a fake monotonic clock."""
    return FakeClock()


@pytest.fixture
def source() -> ScriptedSource:
    """Create a level, north-facing scripted source."""
    return ScriptedSource()


@pytest.fixture
def memory_store() -> MemoryStore:
    """Create an empty in-memory key-value store."""
    return MemoryStore()


@pytest.fixture
def calibration_store(memory_store) -> CalibrationStore:
    """Create a calibration store backed by memory."""
    return CalibrationStore(memory_store)


@pytest.fixture
def calibrated_identity() -> CalibrationVector:
    """Create a calibrated pass-through calibration vector."""
    return CalibrationVector(calibrated=True, quality=CalibrationQuality.GOOD)


@pytest.fixture
def sample_calibration() -> CalibrationVector:
    """Create a realistic calibrated vector."""
    return CalibrationVector(
        hard_iron=(12.5, -30.0, 4.0),
        scale=(1.05, 0.97, 0.98),
        calibrated=True,
        quality=CalibrationQuality.GOOD,
        timestamp=1700000000.0,
    )


@pytest.fixture
def sample_accel_calibration() -> AccelCalibration:
    """Create a realistic calibrated accelerometer correction."""
    return AccelCalibration(
        offset=(0.05, -0.03, 0.02),
        scale=(0.98, 1.02, 1.0),
        calibrated=True,
        quality=CalibrationQuality.GOOD,
        timestamp=1700000000.0,
    )
