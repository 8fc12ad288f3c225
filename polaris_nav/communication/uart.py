"""UART sensor source for the IMU co-processor link."""

import struct
import time
import logging
from dataclasses import dataclass
from typing import Callable, Optional

import serial

from ..core.config import UartConfig
from ..core.errors import PolarisNavError, SensorReadError
from ..core.types import SensorStats, Vector3

logger = logging.getLogger(__name__)

SYNC1 = 0xAA
SYNC2 = 0x55
SYNC = bytes([SYNC1, SYNC2])
PACKET_FORMAT = "<I9fH"
PACKET_SIZE = struct.calcsize(PACKET_FORMAT)


class UartError(PolarisNavError):
    """Base exception for UART communication errors."""
    pass


def crc16_ccitt(data: bytes, init: int = 0xFFFF) -> int:
    """Calculate CRC-16-CCITT checksum.

    Args:
        data: Bytes to checksum.
        init: Initial CRC value.

    Returns:
        16-bit CRC value.
    """
    crc = init
    for b in data:
        crc ^= (b << 8) & 0xFFFF
        for _ in range(8):
            if crc & 0x8000:
                crc = ((crc << 1) ^ 0x1021) & 0xFFFF
            else:
                crc = (crc << 1) & 0xFFFF
    return crc


@dataclass(frozen=True)
class ImuFrame:
    """One decoded frame: accel in g, gyro in deg/s, mag in counts."""
    seq: int
    accel: Vector3
    gyro: Vector3
    mag: Vector3


def encode_frame(frame: ImuFrame) -> bytes:
    """Serialize a frame the way the co-processor sends it."""
    body = struct.pack(PACKET_FORMAT[:-1], frame.seq, *frame.accel, *frame.gyro, *frame.mag)
    return SYNC + body + struct.pack("<H", crc16_ccitt(body))


class SerialSensorSource:
    """Sensor source reading binary frames from a UART.

    Polls the port without blocking and keeps the latest valid frame.
    A frame older than ``stale_timeout_s`` is reported unavailable.
    Single reader only.
    """

    def __init__(
        self,
        config: UartConfig,
        port: Optional[serial.Serial] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        """Initialize UART source.

        Args:
            config: UART settings.
            port: Already opened serial-like object; when None the port
                named in the config is opened by ``open()``.
            clock: Monotonic time source used for staleness.
        """
        self._config = config
        self._clock = clock
        self._serial = port
        self._buffer = bytearray()
        self._stats = SensorStats()
        self._is_open = port is not None

        self._latest: Optional[ImuFrame] = None
        self._latest_time = 0.0
        self._last_seq: Optional[int] = None

    def open(self) -> None:
        """Open serial connection.

        Raises:
            UartError: If connection cannot be established.
        """
        if self._is_open:
            return

        try:
            self._serial = serial.Serial(
                port=self._config.port,
                baudrate=self._config.baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=self._config.timeout_s,
                write_timeout=self._config.write_timeout_s,
            )
            self._serial.reset_input_buffer()
            self._is_open = True
            logger.info("UART opened: %s @ %d baud", self._config.port, self._config.baudrate)

        except serial.SerialException as e:
            raise UartError(f"Failed to open {self._config.port}: {e}") from e

    def close(self) -> None:
        """Close serial connection."""
        if self._serial is not None and self._serial.is_open:
            self._serial.close()
        self._serial = None
        self._is_open = False
        logger.info("UART closed")

    def poll(self) -> int:
        """Drain the port and decode every complete frame.

        Returns:
            Number of valid frames decoded.

        Raises:
            SensorReadError: If the port cannot be read.
        """
        if not self._is_open or self._serial is None:
            raise SensorReadError("UART not open")

        try:
            waiting = self._serial.in_waiting
            if waiting > 0:
                self._buffer.extend(self._serial.read(waiting))
        except serial.SerialException as e:
            raise SensorReadError(f"UART read failed: {e}") from e

        return self._drain()

    def feed(self, data: bytes) -> int:
        """Decode frames from bytes received by other means."""
        self._buffer.extend(data)
        return self._drain()

    def _drain(self) -> int:
        count = 0
        while True:
            frame = self._try_parse_packet()
            if frame is None:
                return count
            self._accept(frame)
            count += 1

    def _accept(self, frame: ImuFrame) -> None:
        if self._last_seq is not None:
            expected = (self._last_seq + 1) % (2**32)
            if frame.seq != expected:
                logger.debug("Sequence gap: expected %d, got %d", expected, frame.seq)
        self._last_seq = frame.seq
        self._latest = frame
        self._latest_time = self._clock()

    def _try_parse_packet(self) -> Optional[ImuFrame]:
        """Try to parse a packet from the buffer.

        Returns:
            ImuFrame if valid packet found, None otherwise.
        """
        while True:
            idx = self._buffer.find(SYNC)

            if idx < 0:
                if len(self._buffer) > 1:
                    self._buffer[:] = self._buffer[-1:]
                return None

            if idx > 0:
                del self._buffer[:idx]

            if len(self._buffer) < 2 + PACKET_SIZE:
                return None

            payload = bytes(self._buffer[2:2 + PACKET_SIZE])

            self._stats.total_packets += 1

            rx_crc = struct.unpack_from("<H", payload, PACKET_SIZE - 2)[0]
            calc_crc = crc16_ccitt(payload[:-2])

            if rx_crc != calc_crc:
                self._stats.crc_errors += 1
                logger.debug("CRC error: received 0x%04X, expected 0x%04X", rx_crc, calc_crc)
                # Resync on the byte after this sync pair
                del self._buffer[:2]
                continue

            del self._buffer[:2 + PACKET_SIZE]
            self._stats.valid_packets += 1
            return self._decode_packet(payload)

    def _decode_packet(self, payload: bytes) -> ImuFrame:
        """Decode a validated packet into an ImuFrame."""
        seq, ax, ay, az, gx, gy, gz, mx, my, mz, _ = struct.unpack(PACKET_FORMAT, payload)

        return ImuFrame(
            seq=int(seq),
            accel=(float(ax), float(ay), float(az)),
            gyro=(float(gx), float(gy), float(gz)),
            mag=(float(mx), float(my), float(mz)),
        )

    def _fresh_frame(self) -> Optional[ImuFrame]:
        if self._is_open and self._serial is not None:
            self.poll()
        if self._latest is None:
            return None
        if self._clock() - self._latest_time > self._config.stale_timeout_s:
            self._stats.stale_reads += 1
            return None
        return self._latest

    def read_accel(self) -> Optional[Vector3]:
        frame = self._fresh_frame()
        return frame.accel if frame else None

    def read_gyro(self) -> Optional[Vector3]:
        frame = self._fresh_frame()
        return frame.gyro if frame else None

    def read_mag(self) -> Optional[Vector3]:
        frame = self._fresh_frame()
        return frame.mag if frame else None

    @property
    def latest_frame(self) -> Optional[ImuFrame]:
        return self._latest

    @property
    def stats(self) -> SensorStats:
        """Get communication statistics."""
        return self._stats

    def reset_stats(self) -> None:
        """Reset communication statistics."""
        self._stats = SensorStats()

    @property
    def is_open(self) -> bool:
        """Check if connection is open."""
        return self._is_open

    def __enter__(self) -> "SerialSensorSource":
        """Context manager entry."""
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()
