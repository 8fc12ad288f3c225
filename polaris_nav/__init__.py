"""Orientation estimation and magnetometer calibration for Polaris Navigator."""

__version__ = "0.3.0"
