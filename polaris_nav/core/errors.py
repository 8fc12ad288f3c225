"""Exception hierarchy for the orientation core."""


class PolarisNavError(Exception):
    """Base exception for all orientation core errors."""
    pass


class ConfigError(PolarisNavError):
    """Invalid configuration value."""
    pass


class CalibrationError(PolarisNavError):
    """Calibration session used out of sequence."""
    pass


class SensorReadError(PolarisNavError):
    """A single sensor modality could not be read this tick."""
    pass
