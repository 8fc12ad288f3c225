"""Tests for configuration loading."""

import pytest

from polaris_nav.core.config import Config, default_config_path, load_config
from polaris_nav.core.errors import ConfigError


class TestLoadConfig:
    """Tests for load_config."""

    def test_default_file_matches_defaults(self):
        """Shipped default.yaml should equal the dataclass defaults."""
        assert default_config_path().exists()
        assert load_config(str(default_config_path())) == Config()

    def test_missing_file(self, tmp_path):
        """Nonexistent file should raise FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "missing.yaml"))

    def test_empty_file(self, tmp_path):
        """Empty file should give defaults."""
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(str(path)) == Config()

    def test_partial_override(self, tmp_path):
        """Given keys should override, the rest default."""
        path = tmp_path / "cfg.yaml"
        path.write_text(
            "filter:\n  strategy: complementary\n  kp: 2.5\n"
            "sensor:\n  source: mock\n  mock:\n    hard_iron: [1, 2, 3]\n"
        )
        cfg = load_config(str(path))

        assert cfg.filter.strategy == "complementary"
        assert cfg.filter.kp == 2.5
        assert cfg.filter.alpha == 0.98
        assert cfg.sensor.source == "mock"
        assert cfg.sensor.mock.hard_iron == (1, 2, 3)
        assert cfg.calibration.window_s == 15.0

    def test_accel_calibration_override(self, tmp_path):
        """Accelerometer session settings should nest under calibration."""
        path = tmp_path / "cfg.yaml"
        path.write_text("calibration:\n  window_s: 20.0\n  accel:\n    target_samples: 500\n")
        cfg = load_config(str(path))

        assert cfg.calibration.window_s == 20.0
        assert cfg.calibration.accel.target_samples == 500
        assert cfg.calibration.accel.window_s == 30.0

    def test_env_variable(self, tmp_path, monkeypatch):
        """POLARIS_NAV_CONFIG should be used when no path is given."""
        path = tmp_path / "env.yaml"
        path.write_text("calibration:\n  window_s: 20.0\n")
        monkeypatch.setenv("POLARIS_NAV_CONFIG", str(path))
        assert load_config().calibration.window_s == 20.0

    @pytest.mark.parametrize("text", [
        "filter:\n  strategy: kalman\n",
        "filter:\n  alpha: 1.0\n",
        "filter:\n  kp: -1\n",
        "calibration:\n  min_range_ratio: 1.5\n",
        "calibration:\n  range_floor: 0\n",
        "calibration:\n  accel:\n    min_axis_range_g: 3.0\n",
        "calibration:\n  accel:\n    window_s: 0\n",
        "calibration:\n  accel:\n    tilt: 1\n",
        "calibration:\n  accel: 5\n",
        "heading:\n  declination_deg: 45\n",
        "heading:\n  declination_source: wmm\n",
        "heading:\n  latitude: 120\n",
        "sensor:\n  source: spi\n",
        "filter:\n  unknown_key: 1\n",
        "sensor:\n  colour: red\n",
        "- just\n- a list\n",
        "filter: [1, 2\n",
    ])
    def test_invalid_values(self, tmp_path, text):
        """Invalid values should raise ConfigError."""
        path = tmp_path / "bad.yaml"
        path.write_text(text)
        with pytest.raises(ConfigError):
            load_config(str(path))
