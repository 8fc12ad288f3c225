"""Tests for the UART frame protocol and sensor sources."""

import struct
import pytest
import numpy as np

from polaris_nav.communication.sensors import SyntheticSensorSource, read_sample
from polaris_nav.communication.uart import (
    PACKET_SIZE,
    ImuFrame,
    SerialSensorSource,
    crc16_ccitt,
    encode_frame,
)
from polaris_nav.core.config import MockSensorConfig, UartConfig
from polaris_nav.core.quaternion import QuaternionOps
from polaris_nav.fusion.heading import tilt_compensated_heading

FRAME = ImuFrame(seq=7, accel=(0.0, 0.0, 1.0), gyro=(1.0, -2.0, 3.5), mag=(300.0, -12.0, 250.0))


class FakeSerial:
    """Serial port stand-in returning queued bytes."""

    def __init__(self):
        self.data = bytearray()
        self.is_open = True

    @property
    def in_waiting(self) -> int:
        return len(self.data)

    def read(self, n: int) -> bytes:
        chunk = bytes(self.data[:n])
        del self.data[:n]
        return chunk

    def close(self) -> None:
        self.is_open = False


class TestCrc16:
    """Tests for CRC-16-CCITT."""

    def test_known_vector(self):
        """CRC of '123456789' should be 0x29B1 (CCITT-FALSE)."""
        assert crc16_ccitt(b"123456789") == 0x29B1

    def test_empty(self):
        """CRC of empty data should be the init value."""
        assert crc16_ccitt(b"") == 0xFFFF


class TestFrameParsing:
    """Tests for frame decoding."""

    @pytest.fixture
    def src(self, clock):
        return SerialSensorSource(UartConfig(), clock=clock)

    def test_frame_size(self):
        """Encoded frame should be sync plus payload."""
        assert len(encode_frame(FRAME)) == 2 + PACKET_SIZE

    def test_decode_frame(self, src):
        """Valid frame should be decoded."""
        assert src.feed(encode_frame(FRAME)) == 1
        assert src.latest_frame == FRAME
        assert src.read_gyro() == (1.0, -2.0, 3.5)
        assert src.stats.valid_packets == 1

    def test_garbage_before_sync(self, src):
        """Leading noise should be skipped."""
        assert src.feed(b"\x01\x02\xAA\x03" + encode_frame(FRAME)) == 1

    def test_split_frame(self, src):
        """Frame arriving in two chunks should decode once complete."""
        data = encode_frame(FRAME)
        assert src.feed(data[:10]) == 0
        assert src.feed(data[10:]) == 1

    def test_crc_error_rejected(self, src):
        """Corrupted payload should be counted and dropped."""
        data = bytearray(encode_frame(FRAME))
        data[10] ^= 0xFF
        assert src.feed(bytes(data)) == 0
        assert src.stats.crc_errors == 1
        assert src.read_accel() is None

    def test_resync_after_bad_frame(self, src):
        """Good frame after a corrupted one should still decode."""
        bad = bytearray(encode_frame(FRAME))
        bad[-1] ^= 0xFF
        good = encode_frame(ImuFrame(seq=8, accel=FRAME.accel, gyro=FRAME.gyro, mag=FRAME.mag))
        assert src.feed(bytes(bad) + good) == 1
        assert src.latest_frame.seq == 8

    def test_stale_frame_unavailable(self, src, clock):
        """Frame older than the stale timeout should read as None."""
        src.feed(encode_frame(FRAME))
        clock.advance(1.0)
        assert src.read_mag() is None
        assert src.stats.stale_reads == 1

    def test_float32_precision(self, src):
        """Values should survive float32 packing."""
        frame = ImuFrame(seq=1, accel=(0.1, 0.2, 0.97), gyro=(0, 0, 0), mag=(1, 2, 3))
        src.feed(encode_frame(frame))
        np.testing.assert_allclose(src.read_accel(), (0.1, 0.2, 0.97), rtol=1e-6)

    def test_payload_layout(self):
        """Payload should be little-endian seq, nine floats and CRC."""
        data = encode_frame(FRAME)
        seq = struct.unpack_from("<I", data, 2)[0]
        assert data[:2] == b"\xAA\x55"
        assert seq == 7


class TestSerialPort:
    """Tests for SerialSensorSource with a port object."""

    def test_poll_reads_port(self, clock):
        """Bytes waiting on the port should be decoded on read."""
        port = FakeSerial()
        port.data.extend(encode_frame(FRAME))
        src = SerialSensorSource(UartConfig(), port=port, clock=clock)

        assert src.is_open
        assert read_sample(src).mag == FRAME.mag

    def test_no_data_unavailable(self, clock):
        """Nothing received should read as unavailable."""
        src = SerialSensorSource(UartConfig(), port=FakeSerial(), clock=clock)
        assert read_sample(src).accel is None

    def test_close(self, clock):
        """close() should close the port."""
        port = FakeSerial()
        src = SerialSensorSource(UartConfig(), port=port, clock=clock)
        src.close()
        assert not port.is_open
        assert not src.is_open


class TestReadSample:
    """Tests for read_sample."""

    def test_error_becomes_none(self, source):
        """SensorReadError from one modality should only drop that one."""
        source.mag = "error"
        sample = read_sample(source)
        assert sample.mag is None
        assert sample.accel == (0.0, 0.0, 1.0)


class TestSyntheticSource:
    """Tests for SyntheticSensorSource."""

    def test_stationary_pose(self, clock):
        """Noise-free source should report the configured pose."""
        cfg = MockSensorConfig(heading_deg=60.0, pitch_deg=10.0, roll_deg=-5.0,
                               accel_noise_g=0.0, gyro_noise_dps=0.0, mag_noise_counts=0.0)
        src = SyntheticSensorSource(cfg, clock=clock)
        acc = np.array(src.read_accel())
        pitch, roll = QuaternionOps.tilt_from_accel(acc)

        assert abs(pitch - 10.0) < 1e-9
        assert abs(roll + 5.0) < 1e-9
        heading = tilt_compensated_heading(np.array(src.read_mag()), pitch, roll)
        assert abs(heading - 60.0) < 1e-9
        assert src.read_gyro() == (0.0, 0.0, 0.0)

    def test_hard_iron_offset(self, clock):
        """Configured hard iron should shift the mag reading."""
        base = MockSensorConfig(mag_noise_counts=0.0)
        shifted = MockSensorConfig(mag_noise_counts=0.0, hard_iron=(10.0, -20.0, 30.0))
        a = np.array(SyntheticSensorSource(base, clock=clock).read_mag())
        b = np.array(SyntheticSensorSource(shifted, clock=clock).read_mag())
        np.testing.assert_allclose(b - a, (10.0, -20.0, 30.0))

    def test_tumble_sweeps_field(self, clock):
        """Tumbling source should cover a wide range on every axis."""
        cfg = MockSensorConfig(tumble=True, mag_noise_counts=0.0, seed=1)
        src = SyntheticSensorSource(cfg, clock=clock)
        readings = []
        for _ in range(600):
            clock.advance(0.1)
            readings.append(src.read_mag())
        spans = np.ptp(np.array(readings), axis=0)
        assert np.all(spans > 300.0)

    def test_seeded_noise_repeatable(self, clock):
        """Same seed should give the same noise."""
        cfg = MockSensorConfig(seed=42)
        a = SyntheticSensorSource(cfg, clock=clock).read_accel()
        b = SyntheticSensorSource(cfg, clock=clock).read_accel()
        assert a == b
