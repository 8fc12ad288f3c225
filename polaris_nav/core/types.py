"""Data types for orientation estimation and magnetometer calibration."""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple
import numpy as np
from numpy.typing import NDArray

Vector3 = Tuple[float, float, float]
Matrix3 = Tuple[Vector3, Vector3, Vector3]


def _as_vector(values) -> Optional[NDArray[np.float64]]:
    if values is None:
        return None
    return np.array(values, dtype=np.float64)


@dataclass(frozen=True)
class SensorSample:
    """One reading of every modality, taken in the same tick.

    Units follow the sensor driver:
    - Accelerometer: g, +Z reads +1 g when the device lies level
    - Gyroscope: deg/s
    - Magnetometer: raw sensor counts (uncalibrated)

    A modality is None when its read failed this tick.
    """
    accel: Optional[Vector3] = None
    gyro: Optional[Vector3] = None
    mag: Optional[Vector3] = None

    @property
    def acc(self) -> Optional[NDArray[np.float64]]:
        """Accelerometer vector [ax, ay, az] or None."""
        return _as_vector(self.accel)

    @property
    def gyr(self) -> Optional[NDArray[np.float64]]:
        """Gyroscope vector [gx, gy, gz] or None."""
        return _as_vector(self.gyro)

    @property
    def magn(self) -> Optional[NDArray[np.float64]]:
        """Magnetometer vector [mx, my, mz] or None."""
        return _as_vector(self.mag)

    @property
    def is_complete(self) -> bool:
        """Whether all three modalities were read."""
        return None not in (self.accel, self.gyro, self.mag)


@dataclass
class Quaternion:
    """Unit quaternion representing orientation.

    Convention: [w, x, y, z] where w is the scalar component. Rotates
    vectors from the body frame into the reference frame.
    """
    w: float
    x: float
    y: float
    z: float

    @classmethod
    def identity(cls) -> "Quaternion":
        """Return identity quaternion (no rotation)."""
        return cls(w=1.0, x=0.0, y=0.0, z=0.0)

    @classmethod
    def from_array(cls, arr: NDArray[np.float64]) -> "Quaternion":
        """Create from numpy array [w, x, y, z]."""
        return cls(w=float(arr[0]), x=float(arr[1]),
                   y=float(arr[2]), z=float(arr[3]))

    def to_array(self) -> NDArray[np.float64]:
        """Convert to numpy array [w, x, y, z]."""
        return np.array([self.w, self.x, self.y, self.z], dtype=np.float64)

    def as_tuple(self) -> Tuple[float, float, float, float]:
        """Components as (q0, q1, q2, q3)."""
        return (self.w, self.x, self.y, self.z)

    @property
    def norm(self) -> float:
        """Euclidean norm of quaternion."""
        return math.sqrt(self.w**2 + self.x**2 + self.y**2 + self.z**2)

    def is_valid(self, tolerance: float = 1e-4) -> bool:
        """Check if quaternion is unit quaternion within tolerance."""
        return self._is_finite() and abs(self.norm - 1.0) <= tolerance

    def _is_finite(self) -> bool:
        """Check all components are finite."""
        return all(math.isfinite(c) for c in (self.w, self.x, self.y, self.z))

    def normalized(self) -> "Quaternion":
        """Return normalized copy.

        A quaternion with a non-positive or non-finite norm is returned
        unchanged.
        """
        n = self.norm
        if not math.isfinite(n) or n <= 0.0:
            return Quaternion(w=self.w, x=self.x, y=self.y, z=self.z)
        return Quaternion(w=self.w/n, x=self.x/n, y=self.y/n, z=self.z/n)


@dataclass(frozen=True)
class EulerAngles:
    """Euler angles in degrees.

    Convention: ZYX (yaw-pitch-roll) intrinsic rotations.
    yaw in [0, 360), pitch in [-90, 90], roll in [-180, 180].
    """
    yaw: float
    pitch: float
    roll: float

    @classmethod
    def from_radians(cls, yaw: float, pitch: float, roll: float) -> "EulerAngles":
        """Build from radians, wrapping yaw into [0, 360)."""
        return cls(
            yaw=wrap_360(math.degrees(yaw)),
            pitch=math.degrees(pitch),
            roll=math.degrees(roll),
        )

    def to_radians(self) -> Tuple[float, float, float]:
        """Return (yaw, pitch, roll) in radians."""
        return (math.radians(self.yaw), math.radians(self.pitch),
                math.radians(self.roll))


def wrap_360(angle_deg: float) -> float:
    """Wrap an angle into [0, 360)."""
    wrapped = math.fmod(angle_deg, 360.0)
    if wrapped < 0.0:
        wrapped += 360.0
    # fmod of a tiny negative value can round up to exactly 360
    if wrapped >= 360.0:
        wrapped = 0.0
    return wrapped


def wrap_180(angle_deg: float) -> float:
    """Wrap an angle into [-180, 180)."""
    return wrap_360(angle_deg + 180.0) - 180.0


class CalibrationQuality(str, Enum):
    """Human-readable calibration classification shown to the user."""
    GOOD = "good"
    POOR = "poor"
    UNCALIBRATED = "uncalibrated"


@dataclass(frozen=True)
class CalibrationVector:
    """Magnetometer hard-iron offset and soft-iron correction.

    The soft-iron model is diagonal (per-axis scale). An optional 3x3
    matrix can be supplied by a manual override; sessions never fit it.
    Only a vector with ``calibrated=True`` is authoritative.
    """
    hard_iron: Vector3 = (0.0, 0.0, 0.0)
    scale: Vector3 = (1.0, 1.0, 1.0)
    soft_iron_matrix: Optional[Matrix3] = None
    calibrated: bool = False
    quality: CalibrationQuality = CalibrationQuality.UNCALIBRATED
    timestamp: float = 0.0

    def __post_init__(self):
        if len(self.hard_iron) != 3 or len(self.scale) != 3:
            raise ValueError("hard_iron and scale must have three components")
        if not all(math.isfinite(v) for v in self.hard_iron):
            raise ValueError(f"Non-finite hard-iron offset: {self.hard_iron}")
        if not all(math.isfinite(s) and s > 0.0 for s in self.scale):
            raise ValueError(f"Scale factors must be positive and finite: {self.scale}")
        if self.soft_iron_matrix is not None:
            m = np.asarray(self.soft_iron_matrix, dtype=np.float64)
            if m.shape != (3, 3) or not np.all(np.isfinite(m)):
                raise ValueError("soft_iron_matrix must be a finite 3x3 matrix")

    @classmethod
    def identity(cls) -> "CalibrationVector":
        """Uncalibrated pass-through correction."""
        return cls()

    @property
    def offset(self) -> Vector3:
        return self.hard_iron

    def apply(self, mag: NDArray[np.float64]) -> NDArray[np.float64]:
        """Correct a raw magnetometer reading.

        Args:
            mag: Raw reading [mx, my, mz].

        Returns:
            (mag - hard_iron) * scale, then the soft-iron matrix if set.
        """
        corrected = (np.asarray(mag, dtype=np.float64)
                     - np.asarray(self.hard_iron)) * np.asarray(self.scale)
        if self.soft_iron_matrix is not None:
            corrected = np.asarray(self.soft_iron_matrix) @ corrected
        return corrected

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        result = {
            "hard_iron": list(self.hard_iron),
            "scale": list(self.scale),
            "calibrated": self.calibrated,
            "quality": self.quality.value,
            "timestamp": self.timestamp,
        }
        if self.soft_iron_matrix is not None:
            result["soft_iron_matrix"] = [list(row) for row in self.soft_iron_matrix]
        return result


@dataclass(frozen=True)
class AccelCalibration:
    """Accelerometer per-axis offset and scale.

    Maps the raw reading so each axis spans -1 g to +1 g. Only a
    correction with ``calibrated=True`` is applied by the filters.
    """
    offset: Vector3 = (0.0, 0.0, 0.0)
    scale: Vector3 = (1.0, 1.0, 1.0)
    calibrated: bool = False
    quality: CalibrationQuality = CalibrationQuality.UNCALIBRATED
    timestamp: float = 0.0

    def __post_init__(self):
        if len(self.offset) != 3 or len(self.scale) != 3:
            raise ValueError("offset and scale must have three components")
        if not all(math.isfinite(v) for v in self.offset):
            raise ValueError(f"Non-finite accelerometer offset: {self.offset}")
        if not all(math.isfinite(s) and s > 0.0 for s in self.scale):
            raise ValueError(f"Scale factors must be positive and finite: {self.scale}")

    @classmethod
    def identity(cls) -> "AccelCalibration":
        return cls()

    def apply(self, accel: NDArray[np.float64]) -> NDArray[np.float64]:
        """(accel - offset) * scale."""
        return ((np.asarray(accel, dtype=np.float64) - np.asarray(self.offset))
                * np.asarray(self.scale))

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "offset": list(self.offset),
            "scale": list(self.scale),
            "calibrated": self.calibrated,
            "quality": self.quality.value,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class CalibrationStatus:
    """Calibration status for consumers (display, alignment).

    ``phase`` names the sensor the status belongs to.
    """
    state: str
    progress: float
    calibrated: bool
    quality: CalibrationQuality
    sample_count: int = 0
    elapsed_s: float = 0.0
    failures: Tuple[str, ...] = ()
    phase: str = "magnetometer"

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "cal_phase": self.phase,
            "cal_state": self.state,
            "cal_progress": self.progress,
            "calibrated": self.calibrated,
            "cal_quality": self.quality.value,
            "cal_samples": self.sample_count,
            "cal_failures": list(self.failures),
        }


@dataclass(frozen=True)
class OrientationState:
    """Snapshot of the orientation published once per tick.

    ``calibration`` is the status of the running calibration phase, or
    of the magnetometer when no session runs.
    """
    quaternion: Tuple[float, float, float, float]
    euler: EulerAngles
    heading: float
    magnetic_heading: Optional[float]
    declination: float
    calibration: CalibrationStatus
    mode: str
    dt: float
    iteration: int
    mag_used: bool = False
    dt_substituted: bool = False
    correction_skipped: bool = False
    mag_calibrated: bool = False
    accel_calibrated: bool = False

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        result = {
            "q0": self.quaternion[0],
            "q1": self.quaternion[1],
            "q2": self.quaternion[2],
            "q3": self.quaternion[3],
            "yaw": self.euler.yaw,
            "pitch": self.euler.pitch,
            "roll": self.euler.roll,
            "heading": self.heading,
            "magnetic_heading": self.magnetic_heading,
            "declination": self.declination,
            "mode": self.mode,
            "dt_ms": self.dt * 1000,
            "iteration": self.iteration,
            "mag_used": self.mag_used,
            "dt_substituted": self.dt_substituted,
            "correction_skipped": self.correction_skipped,
            "mag_calibrated": self.mag_calibrated,
            "accel_calibrated": self.accel_calibrated,
        }
        result.update(self.calibration.to_dict())
        return result


@dataclass
class ValidationResult:
    """Result of sensor data validation."""
    is_valid: bool
    errors: list = field(default_factory=list)
    warnings: list = field(default_factory=list)

    def add_error(self, message: str) -> None:
        """Add validation error."""
        self.is_valid = False
        self.errors.append(message)

    def add_warning(self, message: str) -> None:
        """Add validation warning."""
        self.warnings.append(message)


@dataclass
class SensorStats:
    """Statistics for sensor link quality."""
    total_packets: int = 0
    valid_packets: int = 0
    crc_errors: int = 0
    stale_reads: int = 0

    @property
    def packet_loss_rate(self) -> float:
        """Fraction of packets lost."""
        if self.total_packets == 0:
            return 0.0
        return 1.0 - (self.valid_packets / self.total_packets)

    @property
    def crc_error_rate(self) -> float:
        """Fraction of packets with CRC errors."""
        if self.total_packets == 0:
            return 0.0
        return self.crc_errors / self.total_packets
