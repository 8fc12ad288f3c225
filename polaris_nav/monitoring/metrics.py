"""Loop health metrics for the orientation control loop."""

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, Iterable, Optional
import numpy as np

from ..core.config import Config
from ..core.types import OrientationState

logger = logging.getLogger(__name__)

MODALITIES = ("accel", "gyro", "mag")


@dataclass
class LoopStats:
    """Aggregated loop statistics."""
    mean_dt_ms: float = 0.0
    std_dt_ms: float = 0.0
    max_dt_ms: float = 0.0
    min_dt_ms: float = 0.0
    mean_loop_time_ms: float = 0.0
    effective_rate_hz: float = 0.0
    dt_fallbacks: int = 0
    skipped_corrections: int = 0
    unavailable: Dict[str, int] = field(default_factory=lambda: {m: 0 for m in MODALITIES})
    total_iterations: int = 0

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        result = {
            "rate_hz": self.effective_rate_hz,
            "dt_mean_ms": self.mean_dt_ms,
            "dt_std_ms": self.std_dt_ms,
            "dt_max_ms": self.max_dt_ms,
            "dt_min_ms": self.min_dt_ms,
            "loop_time_ms": self.mean_loop_time_ms,
            "dt_fallbacks": self.dt_fallbacks,
            "skipped_corrections": self.skipped_corrections,
            "iterations": self.total_iterations,
        }
        for name, count in self.unavailable.items():
            result[f"{name}_unavailable"] = count
        return result


class LoopMonitor:
    """Tracks timing and degradation of the control loop.

    Keeps a rolling window of filter time steps, counts fallback dt
    substitutions, skipped corrections and unavailable sensor reads,
    and logs a summary at a fixed interval.
    """

    def __init__(self, config: Config, clock: Callable[[], float] = time.monotonic):
        """Initialize loop monitor.

        Args:
            config: System configuration with monitoring settings.
            clock: Time source for loop timing and log pacing.
        """
        self._mon_cfg = config.monitoring
        self._clock = clock

        window = self._mon_cfg.window_size
        self._dt_history: Deque[float] = deque(maxlen=window)
        self._loop_time_history: Deque[float] = deque(maxlen=window)

        self._target_dt_ms = 1000.0 / self._mon_cfg.loop_timing.target_hz
        self._jitter_threshold = self._mon_cfg.loop_timing.jitter_warning_ms

        self._stats = LoopStats()
        self._loop_start: Optional[float] = None
        self._last_log_time = clock()

    def start_iteration(self) -> None:
        """Mark the start of a loop iteration."""
        self._loop_start = self._clock()

    def record(self, state: OrientationState, unavailable: Iterable[str] = ()) -> None:
        """Account for one tick.

        Args:
            state: Snapshot produced by the tick.
            unavailable: Names of the modalities missing this tick.
        """
        now = self._clock()
        if self._loop_start is not None:
            self._loop_time_history.append((now - self._loop_start) * 1000)
            self._loop_start = None

        self._stats.total_iterations += 1
        for name in unavailable:
            self._stats.unavailable[name] = self._stats.unavailable.get(name, 0) + 1

        if state.mode == "tracking":
            dt_ms = state.dt * 1000
            self._dt_history.append(dt_ms)
            if state.dt_substituted:
                self._stats.dt_fallbacks += 1
            if state.correction_skipped:
                self._stats.skipped_corrections += 1
            if dt_ms > self._target_dt_ms + self._jitter_threshold:
                logger.debug("High jitter: dt=%.2f ms (target=%.2f ms)",
                             dt_ms, self._target_dt_ms)

        self._maybe_log_stats(now)

    def _maybe_log_stats(self, now: float) -> None:
        """Log statistics periodically."""
        if now - self._last_log_time < self._mon_cfg.log_interval_s:
            return

        stats = self.get_stats()
        logger.info(
            "Loop: rate=%.1f Hz, dt=%.2f+/-%.2f ms, loop=%.2f ms, "
            "dt fallbacks=%d, skipped corrections=%d, unavailable=%s",
            stats.effective_rate_hz,
            stats.mean_dt_ms,
            stats.std_dt_ms,
            stats.mean_loop_time_ms,
            stats.dt_fallbacks,
            stats.skipped_corrections,
            stats.unavailable,
        )
        self._last_log_time = now

    def get_stats(self) -> LoopStats:
        """Get aggregated loop statistics."""
        stats = LoopStats(
            dt_fallbacks=self._stats.dt_fallbacks,
            skipped_corrections=self._stats.skipped_corrections,
            unavailable=dict(self._stats.unavailable),
            total_iterations=self._stats.total_iterations,
        )

        if self._loop_time_history:
            stats.mean_loop_time_ms = float(np.mean(self._loop_time_history))

        if self._dt_history:
            dt_array = np.array(self._dt_history)
            mean_dt = float(np.mean(dt_array))
            stats.mean_dt_ms = mean_dt
            stats.std_dt_ms = float(np.std(dt_array))
            stats.max_dt_ms = float(np.max(dt_array))
            stats.min_dt_ms = float(np.min(dt_array))
            stats.effective_rate_hz = 1000.0 / mean_dt if mean_dt > 0 else 0.0

        return stats

    def reset(self) -> None:
        """Reset all metrics."""
        self._dt_history.clear()
        self._loop_time_history.clear()
        self._stats = LoopStats()
        self._loop_start = None
