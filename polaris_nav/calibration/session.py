"""Cooperative min/max calibration sessions.

A session tracks the per-axis extremes of one sensor while the user moves
the device, one reading per control-loop tick. Subclasses turn the
extremes into a correction for their sensor and persist it.
"""

import logging
import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional, Sequence, Tuple
import numpy as np
from numpy.typing import NDArray

from ..core.errors import CalibrationError
from ..core.types import CalibrationStatus

logger = logging.getLogger(__name__)

AXES = ("x", "y", "z")
NO_SAMPLES = "no samples collected"


class CalibrationState(str, Enum):
    """Calibration session lifecycle."""
    IDLE = "idle"
    COLLECTING = "collecting"
    EVALUATING = "evaluating"
    COMPLETE = "complete"
    FAILED = "failed"


class StepResult(Enum):
    """Outcome of feeding one reading to a session."""
    IN_PROGRESS = "in_progress"
    DONE = "done"
    CANCELLED = "cancelled"


@dataclass
class CalibrationSession:
    """Running extremes of one calibration run."""
    start_time: float
    mins: NDArray[np.float64] = field(default_factory=lambda: np.full(3, np.inf))
    maxs: NDArray[np.float64] = field(default_factory=lambda: np.full(3, -np.inf))
    sample_count: int = 0
    elapsed_s: float = 0.0

    def add(self, reading: NDArray[np.float64]) -> None:
        self.mins = np.minimum(self.mins, reading)
        self.maxs = np.maximum(self.maxs, reading)
        self.sample_count += 1


@dataclass(frozen=True)
class CalibrationResult:
    """Evaluation of a finished session.

    ``vector`` is None when the session collected nothing.
    """
    vector: Any
    ranges: Tuple[float, float, float]
    failures: Tuple[str, ...]

    @property
    def passed(self) -> bool:
        return not self.failures


class CalibrationSessionManager(ABC):
    """Runs calibration sessions for one sensor and owns its correction.

    Only a correction whose session passed the quality gate is marked
    calibrated. A failed session that collected samples still replaces
    the correction and the stored copy with its best-effort values,
    flagged not calibrated. A session that collected nothing leaves both
    untouched, like a cancel.
    """

    sensor = "sensor"
    instructions = ""

    def __init__(
        self,
        config,
        store=None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time
    ):
        """Initialize calibration manager.

        Args:
            config: Session settings with ``window_s`` and ``target_samples``.
            store: CalibrationStore where results are persisted. None keeps
                results in memory only.
            clock: Monotonic time source for the collection window.
            wall_clock: Time source for the completion timestamp.
        """
        self._config = config
        self._store = store
        self._clock = clock
        self._wall_clock = wall_clock

        self._state = CalibrationState.IDLE
        self._session: Optional[CalibrationSession] = None
        self._vector = self._identity()
        self._last_result: Optional[CalibrationResult] = None

    @abstractmethod
    def _identity(self) -> Any:
        """Uncalibrated pass-through correction."""

    @abstractmethod
    def _evaluate(self, session: CalibrationSession, timestamp: float) -> CalibrationResult:
        """Turn the extremes of a non-empty session into a result."""

    @abstractmethod
    def _save(self, vector: Any) -> None:
        """Write a correction to the store."""

    @abstractmethod
    def _load_stored(self) -> Optional[Any]:
        """Read the stored correction, or None."""

    @property
    def state(self) -> CalibrationState:
        return self._state

    @property
    def is_collecting(self) -> bool:
        return self._state == CalibrationState.COLLECTING

    @property
    def last_result(self) -> Optional[CalibrationResult]:
        """Evaluation of the most recent finished session."""
        return self._last_result

    def load(self) -> bool:
        """Restore a previously stored calibration.

        Returns:
            True if the restored correction is calibrated.
        """
        if self._store is None:
            return False

        vector = self._load_stored()
        if vector is None:
            return False

        self._vector = vector
        logger.info(
            "Loaded %s calibration: offset=(%.4g, %.4g, %.4g) "
            "scale=(%.4g, %.4g, %.4g) valid=%s",
            self.sensor, *vector.offset, *vector.scale, vector.calibrated
        )
        return vector.calibrated

    def start(self) -> None:
        """Begin a new session, discarding any session in progress."""
        if self._state == CalibrationState.COLLECTING:
            logger.info("Restarting %s calibration", self.sensor)
        elif self._state == CalibrationState.EVALUATING:
            raise CalibrationError("Cannot start while a session is being evaluated")
        else:
            logger.info("Starting %s calibration, %s", self.sensor, self.instructions)

        self._session = CalibrationSession(start_time=self._clock())
        self._state = CalibrationState.COLLECTING

    def step(
        self,
        reading: Optional[Sequence[float]],
        cancel_requested: bool = False
    ) -> StepResult:
        """Feed one raw reading to the running session.

        Args:
            reading: Raw sensor reading [x, y, z], or None when the
                sensor could not be read this tick.
            cancel_requested: Abort the session without committing.

        Returns:
            DONE once the window elapsed or the sample target was met,
            CANCELLED on a cancel request, IN_PROGRESS otherwise.

        Raises:
            CalibrationError: If no session is collecting.
        """
        if self._state != CalibrationState.COLLECTING or self._session is None:
            raise CalibrationError(
                f"No {self.sensor} calibration session collecting (state={self._state.value})"
            )

        if cancel_requested:
            self.cancel()
            return StepResult.CANCELLED

        session = self._session
        session.elapsed_s = max(0.0, self._clock() - session.start_time)

        if reading is not None:
            values = np.asarray(reading, dtype=np.float64)
            if values.shape == (3,) and np.all(np.isfinite(values)):
                session.add(values)
            else:
                logger.debug("Discarding invalid %s calibration reading: %r",
                             self.sensor, reading)

        if (session.elapsed_s >= self._config.window_s
                or session.sample_count >= self._config.target_samples):
            self._finish()
            return StepResult.DONE

        return StepResult.IN_PROGRESS

    def cancel(self) -> None:
        """Abort a collecting session. The current correction is kept."""
        if self._state != CalibrationState.COLLECTING:
            return
        logger.info(
            "%s calibration cancelled after %d samples",
            self.sensor.capitalize(),
            self._session.sample_count if self._session else 0
        )
        self._session = None
        self._state = CalibrationState.IDLE

    def reset(self) -> None:
        """Return to IDLE, dropping any session. The correction is kept."""
        self._session = None
        self._state = CalibrationState.IDLE

    def is_calibrated(self) -> bool:
        return self._vector.calibrated

    def get_calibration_vector(self) -> Any:
        return self._vector

    def set_calibration_vector(self, vector: Any, persist: bool = False) -> None:
        """Replace the active correction (manual override or restore).

        Args:
            vector: New correction.
            persist: Also write it to the store.
        """
        self._vector = vector
        if persist and self._store is not None:
            self._save(vector)

    @property
    def status(self) -> CalibrationStatus:
        """Progress and result for display."""
        session = self._session
        failures: Tuple[str, ...] = ()

        if self._state == CalibrationState.COLLECTING and session is not None:
            progress = min(1.0, max(
                session.elapsed_s / self._config.window_s,
                session.sample_count / self._config.target_samples,
            ))
        elif self._state in (CalibrationState.COMPLETE, CalibrationState.FAILED):
            progress = 1.0
        else:
            progress = 0.0

        if self._state == CalibrationState.FAILED and self._last_result is not None:
            failures = self._last_result.failures

        return CalibrationStatus(
            state=self._state.value,
            progress=progress,
            calibrated=self._vector.calibrated,
            quality=self._vector.quality,
            sample_count=session.sample_count if session else 0,
            elapsed_s=session.elapsed_s if session else 0.0,
            failures=failures,
            phase=self.sensor,
        )

    def _finish(self) -> None:
        """Evaluate the session, commit and persist the result."""
        self._state = CalibrationState.EVALUATING
        session = self._session

        if session.sample_count == 0:
            self._last_result = CalibrationResult(vector=None, ranges=(0.0, 0.0, 0.0),
                                                  failures=(NO_SAMPLES,))
            self._state = CalibrationState.FAILED
            logger.warning("%s calibration collected no samples; previous calibration kept",
                           self.sensor.capitalize())
            return

        timestamp = self._wall_clock()
        result = self._evaluate(session, timestamp if math.isfinite(timestamp) else 0.0)
        self._last_result = result
        self._vector = result.vector

        if result.passed:
            self._state = CalibrationState.COMPLETE
            logger.info(
                "%s calibration complete: offset=(%.4g, %.4g, %.4g) "
                "scale=(%.4g, %.4g, %.4g)",
                self.sensor.capitalize(), *result.vector.offset, *result.vector.scale
            )
        else:
            self._state = CalibrationState.FAILED
            logger.warning(
                "%s calibration failed quality checks (%s); "
                "values stored but not trusted",
                self.sensor.capitalize(), "; ".join(result.failures)
            )

        if self._store is not None:
            try:
                self._save(result.vector)
            except OSError as e:
                logger.error("Failed to persist %s calibration: %s", self.sensor, e)
