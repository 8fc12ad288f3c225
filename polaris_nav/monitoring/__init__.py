"""Monitoring module for the control loop."""

from .metrics import LoopMonitor, LoopStats

__all__ = ["LoopMonitor", "LoopStats"]
