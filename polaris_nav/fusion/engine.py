"""Orientation engine tying sensors, calibration, fusion and heading together.

One ``tick()`` per control-loop iteration: read the sensors, validate the
sample, then either feed the running calibration session or update the
fusion filter, and publish an immutable OrientationState.
"""

import logging
import math
import time
from typing import Callable, Optional, Tuple

from ..calibration.accel_calibration import AccelCalibrationManager
from ..calibration.mag_calibration import MagCalibrationManager
from ..calibration.session import StepResult
from ..calibration.store import CalibrationStore
from ..communication.sensors import SensorSource, read_sample
from ..core.config import Config
from ..core.types import CalibrationStatus, OrientationState, SensorSample
from ..core.validation import SampleValidator
from .attitude import AttitudeFilter, FilterUpdate, create_filter
from .heading import HeadingProcessor, tilt_compensated_heading

logger = logging.getLogger(__name__)

MODE_TRACKING = "tracking"
MODE_CALIBRATING = "calibrating"

MODALITIES = ("accel", "gyro", "mag")


class OrientationEngine:
    """Single-threaded orientation pipeline driven by ``tick()``."""

    def __init__(
        self,
        config: Config,
        source: SensorSource,
        store: Optional[CalibrationStore] = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time
    ):
        """Initialize orientation engine.

        Args:
            config: Complete configuration.
            source: Sensor sample source.
            store: Calibration persistence; None keeps results in memory.
            clock: Monotonic time source for dt and the calibration window.
            wall_clock: Time source for calibration timestamps.
        """
        self._config = config
        self._source = source
        self._clock = clock

        self._validator = SampleValidator(config)
        self._calibration = MagCalibrationManager(
            config.calibration, store, clock=clock, wall_clock=wall_clock
        )
        self._accel_calibration = AccelCalibrationManager(
            config.calibration.accel, store, clock=clock, wall_clock=wall_clock
        )
        self._filter = create_filter(config.filter)
        self._heading = HeadingProcessor(config.heading)

        self._mag_after_accel = False
        self._last_update_time: Optional[float] = None
        self._iteration = 0
        self._state: Optional[OrientationState] = None
        self._last_unavailable: Tuple[str, ...] = ()

        logger.info("Orientation engine using %s filter", self._filter.name)

    @property
    def filter(self) -> AttitudeFilter:
        return self._filter

    @property
    def calibration(self) -> MagCalibrationManager:
        return self._calibration

    @property
    def accel_calibration(self) -> AccelCalibrationManager:
        return self._accel_calibration

    @property
    def heading(self) -> HeadingProcessor:
        return self._heading

    @property
    def state(self) -> Optional[OrientationState]:
        """Last published snapshot."""
        return self._state

    @property
    def is_calibrating(self) -> bool:
        return self._accel_calibration.is_collecting or self._calibration.is_collecting

    @property
    def calibration_status(self) -> CalibrationStatus:
        """Status of the running phase, else of the magnetometer."""
        if self._accel_calibration.is_collecting:
            return self._accel_calibration.status
        return self._calibration.status

    @property
    def last_unavailable(self) -> Tuple[str, ...]:
        """Modalities that were unavailable on the last tick."""
        return self._last_unavailable

    def start(self) -> OrientationState:
        """Restore calibration and seed the orientation from one sample."""
        self._accel_calibration.load()
        self._calibration.load()
        self._filter.set_accel_calibration(self._accel_calibration.get_calibration_vector())
        self._filter.set_calibration(self._calibration.get_calibration_vector())

        sample = self._read()
        self._filter.initialize(sample.accel, sample.mag)
        self._last_update_time = self._clock()

        self._state = self._snapshot(sample, MODE_TRACKING, dt=0.0, update=None)
        return self._state

    def set_location(self, latitude: float, longitude: float) -> None:
        """Position fix from the GPS, used for the regional declination."""
        self._heading.set_location(latitude, longitude)

    def begin_calibration(self, accel: bool = False, mag: bool = True) -> None:
        """Start a calibration session.

        Args:
            accel: Run the accelerometer phase first.
            mag: Run the magnetometer phase (after the accelerometer one).
        """
        if accel:
            self._mag_after_accel = mag
            self._accel_calibration.start()
        elif mag:
            self._calibration.start()
        else:
            logger.info("Nothing to calibrate")

    def cancel_calibration(self) -> None:
        """Abort the running calibration session, keeping the old results."""
        self._mag_after_accel = False
        self._accel_calibration.cancel()
        self._calibration.cancel()

    def tick(self, cancel_requested: bool = False) -> OrientationState:
        """Run one control-loop iteration.

        Args:
            cancel_requested: User asked to abort a running calibration.

        Returns:
            Snapshot of the orientation after this tick.
        """
        sample = self._read()
        self._iteration += 1

        if self._accel_calibration.is_collecting:
            result = self._accel_calibration.step(sample.accel, cancel_requested)
            if result is not StepResult.IN_PROGRESS:
                if result is StepResult.DONE:
                    self._filter.set_accel_calibration(
                        self._accel_calibration.get_calibration_vector())
                    if self._mag_after_accel:
                        self._calibration.start()
                self._mag_after_accel = False
            return self._calibration_snapshot(sample)

        if self._calibration.is_collecting:
            result = self._calibration.step(sample.mag, cancel_requested)
            if result is StepResult.DONE:
                self._adopt_calibration(sample)
            return self._calibration_snapshot(sample)

        now = self._clock()
        dt = now - self._last_update_time if self._last_update_time is not None else math.nan
        self._last_update_time = now

        update = self._filter.update(dt, sample.accel, sample.gyro, sample.mag)
        self._state = self._snapshot(sample, MODE_TRACKING, dt=update.dt, update=update)
        return self._state

    def _read(self) -> SensorSample:
        sample, _ = self._validator.validate(read_sample(self._source))
        if sample.is_complete:
            self._last_unavailable = ()
        else:
            self._last_unavailable = tuple(
                name for name in MODALITIES if getattr(sample, name) is None
            )
        return sample

    def _adopt_calibration(self, sample: SensorSample) -> None:
        vector = self._calibration.get_calibration_vector()
        self._filter.set_calibration(vector)
        if vector.calibrated and sample.accel is not None:
            self._filter.initialize(sample.accel, sample.mag)

    def _calibration_snapshot(self, sample: SensorSample) -> OrientationState:
        mode = MODE_CALIBRATING if self.is_calibrating else MODE_TRACKING
        self._state = self._snapshot(sample, mode, dt=0.0, update=None)
        return self._state

    def _snapshot(
        self,
        sample: SensorSample,
        mode: str,
        dt: float,
        update: Optional[FilterUpdate]
    ) -> OrientationState:
        euler = self._filter.euler

        magnetic_heading = None
        mag_corr = self._filter.corrected_mag(sample.mag)
        if mag_corr is not None:
            magnetic_heading = tilt_compensated_heading(mag_corr, euler.pitch, euler.roll)

        return OrientationState(
            quaternion=self._filter.quaternion.as_tuple(),
            euler=euler,
            heading=self._heading.apply(euler.yaw),
            magnetic_heading=magnetic_heading,
            declination=self._heading.declination_deg,
            calibration=self.calibration_status,
            mode=mode,
            dt=dt,
            iteration=self._iteration,
            mag_used=update.mag_used if update else False,
            dt_substituted=update.dt_substituted if update else False,
            correction_skipped=update.correction_skipped if update else False,
            mag_calibrated=self._calibration.is_calibrated(),
            accel_calibrated=self._accel_calibration.is_calibrated(),
        )
