"""Persistent storage for sensor calibration."""

import json
import logging
import math
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from ..core.types import AccelCalibration, CalibrationQuality, CalibrationVector

logger = logging.getLogger(__name__)

OFFSET_KEYS = ("mag_ox", "mag_oy", "mag_oz")
SCALE_KEYS = ("mag_sx", "mag_sy", "mag_sz")
VALID_KEY = "mag_valid"
QUALITY_KEY = "mag_quality"
TIME_KEY = "mag_time"
MATRIX_KEYS = tuple(f"mag_m{r}{c}" for r in range(3) for c in range(3))

REQUIRED_KEYS = OFFSET_KEYS + SCALE_KEYS + (VALID_KEY,)

ACCEL_OFFSET_KEYS = ("acc_ox", "acc_oy", "acc_oz")
ACCEL_SCALE_KEYS = ("acc_sx", "acc_sy", "acc_sz")
ACCEL_VALID_KEY = "acc_valid"
ACCEL_QUALITY_KEY = "acc_quality"
ACCEL_TIME_KEY = "acc_time"

ACCEL_REQUIRED_KEYS = ACCEL_OFFSET_KEYS + ACCEL_SCALE_KEYS + (ACCEL_VALID_KEY,)


class KeyValueStore(Protocol):
    """Namespaced key-value persistence."""

    def get(self, key: str, default: Any = None) -> Any:
        ...

    def put(self, key: str, value: Any) -> None:
        ...

    def contains(self, key: str) -> bool:
        ...

    def remove(self, key: str) -> None:
        ...

    def commit(self) -> None:
        ...


class MemoryStore:
    """In-memory key-value store."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = dict(initial or {})
        self.commits = 0

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def put(self, key: str, value: Any) -> None:
        self._data[key] = value

    def contains(self, key: str) -> bool:
        return key in self._data

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def commit(self) -> None:
        self.commits += 1

    def snapshot(self) -> Dict[str, Any]:
        """Copy of the stored values."""
        return dict(self._data)


class JsonFileStore:
    """Key-value namespace persisted in a JSON document.

    The file holds one object per namespace, so several components can
    share a file. Changes are buffered until ``commit()``, which writes
    a temporary file and atomically replaces the document.
    """

    def __init__(self, path: str, namespace: str = "calibration"):
        """Open a namespace.

        Args:
            path: Path of the JSON document. ``~`` is expanded.
            namespace: Name of the section this store reads and writes.
        """
        self._path = Path(path).expanduser()
        self._namespace = namespace
        self._document = self._read_document()
        section = self._document.get(namespace)
        self._data: Dict[str, Any] = dict(section) if isinstance(section, dict) else {}

    @property
    def path(self) -> Path:
        return self._path

    def _read_document(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable store %s: %s", self._path, e)
            return {}
        if not isinstance(document, dict):
            logger.warning("Ignoring store %s: top level is not an object", self._path)
            return {}
        return document

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def put(self, key: str, value: Any) -> None:
        self._data[key] = value

    def contains(self, key: str) -> bool:
        return key in self._data

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def commit(self) -> None:
        """Write the namespace to disk.

        Raises:
            OSError: If the document cannot be written.
        """
        self._document[self._namespace] = dict(self._data)
        self._path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(
            dir=str(self._path.parent), prefix=self._path.name, suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._document, f, indent=2, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self._path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

        logger.debug("Committed %d keys to %s [%s]", len(self._data), self._path,
                     self._namespace)


class CalibrationStore:
    """Reads and writes the sensor corrections under stable keys."""

    def __init__(self, kv: KeyValueStore):
        self._kv = kv

    def save(self, vector: CalibrationVector) -> None:
        """Persist a magnetometer calibration vector and commit."""
        for key, value in zip(OFFSET_KEYS, vector.hard_iron):
            self._kv.put(key, float(value))
        for key, value in zip(SCALE_KEYS, vector.scale):
            self._kv.put(key, float(value))
        self._kv.put(VALID_KEY, bool(vector.calibrated))
        self._kv.put(QUALITY_KEY, vector.quality.value)
        self._kv.put(TIME_KEY, float(vector.timestamp))

        if vector.soft_iron_matrix is not None:
            flat = [float(v) for row in vector.soft_iron_matrix for v in row]
            for key, value in zip(MATRIX_KEYS, flat):
                self._kv.put(key, value)
        else:
            for key in MATRIX_KEYS:
                self._kv.remove(key)

        self._kv.commit()
        logger.info(
            "Stored magnetometer calibration (valid=%s, quality=%s)",
            vector.calibrated, vector.quality.value
        )

    def load(self) -> Optional[CalibrationVector]:
        """Restore the stored magnetometer calibration vector.

        Returns:
            The stored vector, or None when nothing usable is stored.
        """
        if not self._has_entry(REQUIRED_KEYS, "magnetometer"):
            return None

        try:
            offset = tuple(float(self._kv.get(key)) for key in OFFSET_KEYS)
            scale = tuple(float(self._kv.get(key)) for key in SCALE_KEYS)
            calibrated = bool(self._kv.get(VALID_KEY))
            timestamp = float(self._kv.get(TIME_KEY, 0.0))
            return CalibrationVector(
                hard_iron=offset,
                scale=scale,
                soft_iron_matrix=self._matrix(),
                calibrated=calibrated,
                quality=self._quality(QUALITY_KEY, calibrated),
                timestamp=timestamp if math.isfinite(timestamp) else 0.0,
            )
        except (TypeError, ValueError) as e:
            logger.warning("Stored magnetometer calibration is corrupt: %s", e)
            return None

    def save_accel(self, accel: AccelCalibration) -> None:
        """Persist an accelerometer calibration and commit."""
        for key, value in zip(ACCEL_OFFSET_KEYS, accel.offset):
            self._kv.put(key, float(value))
        for key, value in zip(ACCEL_SCALE_KEYS, accel.scale):
            self._kv.put(key, float(value))
        self._kv.put(ACCEL_VALID_KEY, bool(accel.calibrated))
        self._kv.put(ACCEL_QUALITY_KEY, accel.quality.value)
        self._kv.put(ACCEL_TIME_KEY, float(accel.timestamp))
        self._kv.commit()
        logger.info(
            "Stored accelerometer calibration (valid=%s, quality=%s)",
            accel.calibrated, accel.quality.value
        )

    def load_accel(self) -> Optional[AccelCalibration]:
        """Restore the stored accelerometer calibration, or None."""
        if not self._has_entry(ACCEL_REQUIRED_KEYS, "accelerometer"):
            return None

        try:
            calibrated = bool(self._kv.get(ACCEL_VALID_KEY))
            timestamp = float(self._kv.get(ACCEL_TIME_KEY, 0.0))
            return AccelCalibration(
                offset=tuple(float(self._kv.get(key)) for key in ACCEL_OFFSET_KEYS),
                scale=tuple(float(self._kv.get(key)) for key in ACCEL_SCALE_KEYS),
                calibrated=calibrated,
                quality=self._quality(ACCEL_QUALITY_KEY, calibrated),
                timestamp=timestamp if math.isfinite(timestamp) else 0.0,
            )
        except (TypeError, ValueError) as e:
            logger.warning("Stored accelerometer calibration is corrupt: %s", e)
            return None

    def clear(self) -> None:
        """Remove every calibration key and commit."""
        for key in (REQUIRED_KEYS + (QUALITY_KEY, TIME_KEY) + MATRIX_KEYS
                    + ACCEL_REQUIRED_KEYS + (ACCEL_QUALITY_KEY, ACCEL_TIME_KEY)):
            self._kv.remove(key)
        self._kv.commit()

    def _has_entry(self, required, sensor: str) -> bool:
        if not any(self._kv.contains(key) for key in required):
            logger.debug("No stored %s calibration", sensor)
            return False

        missing = [key for key in required if not self._kv.contains(key)]
        if missing:
            logger.warning("Stored %s calibration incomplete, missing %s",
                           sensor, ", ".join(missing))
            return False
        return True

    def _quality(self, key: str, calibrated: bool) -> CalibrationQuality:
        raw = self._kv.get(key)
        try:
            return CalibrationQuality(raw)
        except ValueError:
            return CalibrationQuality.GOOD if calibrated else CalibrationQuality.POOR

    def _matrix(self):
        if not all(self._kv.contains(key) for key in MATRIX_KEYS):
            return None
        flat = [float(self._kv.get(key)) for key in MATRIX_KEYS]
        return tuple(tuple(flat[r * 3:(r + 1) * 3]) for r in range(3))
