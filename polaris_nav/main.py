#!/usr/bin/env python3
"""Main entry point for the Polaris Navigator orientation core.

Runs the orientation loop at the sensor rate and prints JSON snapshots
to stdout at the emit rate for the display process.
"""

import argparse
import json
import logging
import signal
import sys
import time
from typing import Optional

from .calibration.store import CalibrationStore, JsonFileStore
from .communication.sensors import SyntheticSensorSource
from .communication.uart import SerialSensorSource, UartError
from .core.config import Config, load_config
from .core.errors import ConfigError
from .fusion.engine import OrientationEngine
from .monitoring.metrics import LoopMonitor

logger = logging.getLogger(__name__)

SHUTDOWN_REQUESTED = False
INTERRUPT_REQUESTED = False

CALIBRATION_CHOICES = ("mag", "accel", "all")


def signal_handler(signum, frame):
    """Handle shutdown signals gracefully."""
    global SHUTDOWN_REQUESTED, INTERRUPT_REQUESTED
    if signum == signal.SIGINT:
        INTERRUPT_REQUESTED = True
    else:
        SHUTDOWN_REQUESTED = True
        logger.info("Shutdown requested")


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application.

    Args:
        verbose: If True, set DEBUG level; otherwise INFO.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


def run_orientation_loop(
    config: Config,
    use_mock: bool = False,
    calibrate: Optional[str] = None,
) -> int:
    """Run the main orientation loop.

    Args:
        config: System configuration.
        use_mock: If True, use the synthetic sensor source.
        calibrate: Calibration to run on startup: "mag", "accel" or
            "all" (accelerometer then magnetometer). None runs none.

    Returns:
        Exit code (0 for success, non-zero for error).
    """
    global SHUTDOWN_REQUESTED, INTERRUPT_REQUESTED

    if use_mock or config.sensor.source == "mock":
        source = SyntheticSensorSource(config.sensor.mock)
        serial_source = None
    else:
        source = serial_source = SerialSensorSource(config.uart)

    store = CalibrationStore(
        JsonFileStore(config.calibration.store_path, config.calibration.namespace)
    )
    engine = OrientationEngine(config, source, store)
    monitor = LoopMonitor(config)

    period = 1.0 / config.sensor.sample_rate_hz
    emit_interval = 1.0 / config.output.emit_rate_hz
    last_emit_time = 0.0

    try:
        if serial_source is not None:
            serial_source.open()

        engine.start()
        logger.info("Starting orientation loop at %d Hz", config.sensor.sample_rate_hz)

        if calibrate:
            engine.begin_calibration(accel=calibrate in ("accel", "all"),
                                     mag=calibrate in ("mag", "all"))

        while not SHUTDOWN_REQUESTED:
            tick_start = time.monotonic()
            monitor.start_iteration()

            cancel = False
            if INTERRUPT_REQUESTED:
                INTERRUPT_REQUESTED = False
                if engine.is_calibrating:
                    cancel = True
                else:
                    logger.info("Shutdown requested")
                    break

            state = engine.tick(cancel_requested=cancel)
            monitor.record(state, engine.last_unavailable)

            now = time.monotonic()
            if now - last_emit_time >= emit_interval:
                print(json.dumps(state.to_dict()), flush=True)
                last_emit_time = now

            remaining = period - (time.monotonic() - tick_start)
            if remaining > 0:
                time.sleep(remaining)

    except UartError as e:
        logger.error("UART error: %s", e)
        return 1

    finally:
        if serial_source is not None:
            serial_source.close()
        stats = monitor.get_stats()

        logger.info("Final statistics:")
        logger.info("  Iterations: %d", stats.total_iterations)
        logger.info("  Effective rate: %.1f Hz", stats.effective_rate_hz)
        logger.info("  dt fallbacks: %d", stats.dt_fallbacks)
        logger.info("  Skipped corrections: %d", stats.skipped_corrections)
        logger.info("  Unavailable reads: %s", stats.unavailable)
        if serial_source is not None:
            sensor_stats = serial_source.stats
            logger.info("  Packets: %d total, %d valid",
                        sensor_stats.total_packets, sensor_stats.valid_packets)
            logger.info("  CRC errors: %d", sensor_stats.crc_errors)

    return 0


def main() -> int:
    """Application entry point.

    Returns:
        Exit code.
    """
    parser = argparse.ArgumentParser(
        description="Polaris Navigator orientation estimation and sensor calibration"
    )
    parser.add_argument(
        "-c", "--config",
        type=str,
        default=None,
        help="Path to configuration file",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--mock",
        action="store_true",
        help="Use the synthetic sensor source instead of the UART",
    )
    parser.add_argument(
        "--calibrate",
        nargs="?",
        const="mag",
        default=None,
        choices=CALIBRATION_CHOICES,
        help="Run a calibration session on startup: mag (default), accel, or all "
             "for accelerometer then magnetometer (Ctrl-C cancels it)",
    )
    args = parser.parse_args()

    setup_logging(verbose=args.verbose)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        config = load_config(args.config)
    except FileNotFoundError as e:
        logger.error("Configuration error: %s", e)
        return 1
    except ConfigError as e:
        logger.error("Invalid configuration: %s", e)
        return 1

    return run_orientation_loop(config, use_mock=args.mock, calibrate=args.calibrate)


if __name__ == "__main__":
    sys.exit(main())
