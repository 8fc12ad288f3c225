"""Configuration management for the orientation core."""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional
import math
import os

import yaml

from .errors import ConfigError

FILTER_STRATEGIES = ("mahony", "complementary")
SENSOR_SOURCES = ("uart", "mock")
DECLINATION_SOURCES = ("manual", "regional")
MAX_DECLINATION_DEG = 30.0


@dataclass
class UartConfig:
    """UART communication configuration."""
    port: str = "/dev/ttyS0"
    baudrate: int = 115200
    timeout_s: float = 0.0
    write_timeout_s: float = 1.0
    stale_timeout_s: float = 0.5


@dataclass
class AccelerometerConfig:
    """Accelerometer sensor configuration."""
    range_g: float = 16.0


@dataclass
class GyroscopeConfig:
    """Gyroscope sensor configuration."""
    range_dps: float = 2000.0


@dataclass
class MagnetometerSensorConfig:
    """Magnetometer sensor configuration."""
    range_counts: float = 4000.0


@dataclass
class MockSensorConfig:
    """Synthetic sensor configuration used by ``--mock``."""
    heading_deg: float = 0.0
    pitch_deg: float = 0.0
    roll_deg: float = 0.0
    field_counts: float = 400.0
    dip_deg: float = 50.0
    hard_iron: tuple = (0.0, 0.0, 0.0)
    accel_noise_g: float = 0.005
    gyro_noise_dps: float = 0.2
    mag_noise_counts: float = 2.0
    tumble: bool = False
    seed: Optional[int] = None


@dataclass
class SensorConfig:
    """Sensor configuration."""
    source: str = "uart"
    sample_rate_hz: int = 100
    accelerometer: AccelerometerConfig = field(default_factory=AccelerometerConfig)
    gyroscope: GyroscopeConfig = field(default_factory=GyroscopeConfig)
    magnetometer: MagnetometerSensorConfig = field(default_factory=MagnetometerSensorConfig)
    mock: MockSensorConfig = field(default_factory=MockSensorConfig)


@dataclass
class FilterConfig:
    """Attitude fusion filter configuration."""
    strategy: str = "mahony"
    kp: float = 1.0
    ki: float = 0.0
    integral_limit: float = 0.5
    alpha: float = 0.98
    fallback_dt_s: float = 0.01
    max_dt_s: float = 1.0


@dataclass
class AccelCalibrationConfig:
    """Accelerometer calibration session configuration.

    The device rests in turn on each of its six faces, so every axis
    should see close to -1 g and +1 g.
    """
    window_s: float = 30.0
    target_samples: int = 3000
    min_axis_range_g: float = 1.6
    max_axis_range_g: float = 2.4
    range_floor_g: float = 0.01


@dataclass
class CalibrationConfig:
    """Magnetometer calibration session configuration."""
    window_s: float = 15.0
    target_samples: int = 100
    min_axis_range: float = 100.0
    min_range_ratio: float = 0.3
    range_floor: float = 1.0
    store_path: str = "~/.polaris_nav/calibration.json"
    namespace: str = "calibration"
    accel: AccelCalibrationConfig = field(default_factory=AccelCalibrationConfig)


@dataclass
class HeadingConfig:
    """Heading post-processing configuration."""
    declination_deg: float = 0.0
    declination_source: str = "manual"
    use_true_north: bool = True
    latitude: Optional[float] = None
    longitude: Optional[float] = None


@dataclass
class LoopTimingConfig:
    """Loop timing monitoring configuration."""
    target_hz: int = 100
    jitter_warning_ms: float = 5.0


@dataclass
class MonitoringConfig:
    """Performance monitoring configuration."""
    loop_timing: LoopTimingConfig = field(default_factory=LoopTimingConfig)
    window_size: int = 1000
    log_interval_s: float = 10.0


@dataclass
class OutputConfig:
    """Snapshot output configuration."""
    emit_rate_hz: int = 10


@dataclass
class Config:
    """Complete configuration for the orientation core."""
    uart: UartConfig = field(default_factory=UartConfig)
    sensor: SensorConfig = field(default_factory=SensorConfig)
    filter: FilterConfig = field(default_factory=FilterConfig)
    calibration: CalibrationConfig = field(default_factory=CalibrationConfig)
    heading: HeadingConfig = field(default_factory=HeadingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    output: OutputConfig = field(default_factory=OutputConfig)


def default_config_path() -> Path:
    """Path of the configuration file shipped with the package."""
    return Path(__file__).parent.parent / "config" / "default.yaml"


def load_config(config_path: Optional[str] = None) -> Config:
    """Load configuration from YAML file.

    Args:
        config_path: Path to configuration file. If None, uses the
            POLARIS_NAV_CONFIG environment variable, then the default.

    Returns:
        Configuration object with all settings.

    Raises:
        FileNotFoundError: If specified config file doesn't exist.
        ConfigError: If the file holds invalid values.
    """
    if config_path is None:
        env_path = os.environ.get("POLARIS_NAV_CONFIG")
        if env_path:
            config_path = env_path
        else:
            default_path = default_config_path()
            if default_path.exists():
                config_path = str(default_path)
            else:
                return Config()

    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Cannot parse {config_path}: {e}") from e

    if data is None:
        return Config()
    if not isinstance(data, dict):
        raise ConfigError(f"Top level of {config_path} must be a mapping")

    return _build_config(data)


def _section(cls: type, data: Optional[dict], name: str):
    """Build one dataclass section, rejecting unknown keys."""
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ConfigError(f"Section '{name}' must be a mapping")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown key(s) in '{name}': {', '.join(unknown)}")
    return cls(**data)


def _build_config(data: dict) -> Config:
    """Build Config object from dictionary."""
    uart = _section(UartConfig, data.get("uart"), "uart")

    sensor_data = dict(data.get("sensor") or {})
    sensor = SensorConfig(
        source=sensor_data.pop("source", "uart"),
        sample_rate_hz=sensor_data.pop("sample_rate_hz", 100),
        accelerometer=_section(AccelerometerConfig, sensor_data.pop("accelerometer", None),
                               "sensor.accelerometer"),
        gyroscope=_section(GyroscopeConfig, sensor_data.pop("gyroscope", None),
                           "sensor.gyroscope"),
        magnetometer=_section(MagnetometerSensorConfig, sensor_data.pop("magnetometer", None),
                              "sensor.magnetometer"),
        mock=_section(MockSensorConfig, sensor_data.pop("mock", None), "sensor.mock"),
    )
    if sensor_data:
        raise ConfigError(f"Unknown key(s) in 'sensor': {', '.join(sorted(sensor_data))}")
    sensor.mock.hard_iron = tuple(sensor.mock.hard_iron)

    filter_cfg = _section(FilterConfig, data.get("filter"), "filter")
    cal_data = data.get("calibration")
    if cal_data is not None and not isinstance(cal_data, dict):
        raise ConfigError("Section 'calibration' must be a mapping")
    cal_data = dict(cal_data or {})
    accel_cal = _section(AccelCalibrationConfig, cal_data.pop("accel", None),
                         "calibration.accel")
    calibration = _section(CalibrationConfig, cal_data, "calibration")
    calibration.accel = accel_cal
    heading = _section(HeadingConfig, data.get("heading"), "heading")

    mon_data = dict(data.get("monitoring") or {})
    monitoring = MonitoringConfig(
        loop_timing=_section(LoopTimingConfig, mon_data.pop("loop_timing", None),
                             "monitoring.loop_timing"),
        window_size=mon_data.pop("window_size", 1000),
        log_interval_s=mon_data.pop("log_interval_s", 10.0),
    )
    if mon_data:
        raise ConfigError(f"Unknown key(s) in 'monitoring': {', '.join(sorted(mon_data))}")

    output = _section(OutputConfig, data.get("output"), "output")

    config = Config(
        uart=uart,
        sensor=sensor,
        filter=filter_cfg,
        calibration=calibration,
        heading=heading,
        monitoring=monitoring,
        output=output,
    )
    validate_config(config)
    return config


def _positive(value, name: str) -> None:
    if not isinstance(value, (int, float)) or not math.isfinite(value) or value <= 0:
        raise ConfigError(f"{name} must be a positive number, got {value!r}")


def validate_config(config: Config) -> None:
    """Check value ranges of a configuration.

    Raises:
        ConfigError: On the first invalid value found.
    """
    f = config.filter
    if f.strategy not in FILTER_STRATEGIES:
        raise ConfigError(
            f"filter.strategy must be one of {FILTER_STRATEGIES}, got {f.strategy!r}"
        )
    if f.kp < 0 or f.ki < 0:
        raise ConfigError("filter.kp and filter.ki must be non-negative")
    if not 0.0 <= f.alpha < 1.0:
        raise ConfigError(f"filter.alpha must be in [0, 1), got {f.alpha}")
    _positive(f.integral_limit, "filter.integral_limit")
    _positive(f.fallback_dt_s, "filter.fallback_dt_s")
    _positive(f.max_dt_s, "filter.max_dt_s")
    if f.fallback_dt_s > f.max_dt_s:
        raise ConfigError("filter.fallback_dt_s must not exceed filter.max_dt_s")

    c = config.calibration
    _positive(c.window_s, "calibration.window_s")
    _positive(c.target_samples, "calibration.target_samples")
    _positive(c.range_floor, "calibration.range_floor")
    if c.min_axis_range < 0:
        raise ConfigError("calibration.min_axis_range must be non-negative")
    if not 0.0 <= c.min_range_ratio <= 1.0:
        raise ConfigError(
            f"calibration.min_range_ratio must be in [0, 1], got {c.min_range_ratio}"
        )

    a = c.accel
    _positive(a.window_s, "calibration.accel.window_s")
    _positive(a.target_samples, "calibration.accel.target_samples")
    _positive(a.range_floor_g, "calibration.accel.range_floor_g")
    _positive(a.max_axis_range_g, "calibration.accel.max_axis_range_g")
    if not 0.0 <= a.min_axis_range_g <= a.max_axis_range_g:
        raise ConfigError(
            "calibration.accel.min_axis_range_g must be in [0, max_axis_range_g]"
        )

    h = config.heading
    if h.declination_source not in DECLINATION_SOURCES:
        raise ConfigError(
            f"heading.declination_source must be one of {DECLINATION_SOURCES}, "
            f"got {h.declination_source!r}"
        )
    if not math.isfinite(h.declination_deg) or abs(h.declination_deg) > MAX_DECLINATION_DEG:
        raise ConfigError(
            f"heading.declination_deg must be within ±{MAX_DECLINATION_DEG}, "
            f"got {h.declination_deg}"
        )
    if h.latitude is not None and not -90.0 <= h.latitude <= 90.0:
        raise ConfigError(f"heading.latitude out of range: {h.latitude}")
    if h.longitude is not None and not -180.0 <= h.longitude <= 180.0:
        raise ConfigError(f"heading.longitude out of range: {h.longitude}")

    s = config.sensor
    if s.source not in SENSOR_SOURCES:
        raise ConfigError(f"sensor.source must be one of {SENSOR_SOURCES}, got {s.source!r}")
    _positive(s.sample_rate_hz, "sensor.sample_rate_hz")
    _positive(s.accelerometer.range_g, "sensor.accelerometer.range_g")
    _positive(s.gyroscope.range_dps, "sensor.gyroscope.range_dps")
    _positive(s.magnetometer.range_counts, "sensor.magnetometer.range_counts")
    if len(s.mock.hard_iron) != 3:
        raise ConfigError("sensor.mock.hard_iron must have three components")

    _positive(config.output.emit_rate_hz, "output.emit_rate_hz")
    _positive(config.monitoring.window_size, "monitoring.window_size")
    _positive(config.monitoring.log_interval_s, "monitoring.log_interval_s")
