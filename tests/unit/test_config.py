"""Unit tests for YAML configuration loading."""

from pathlib import Path

import pytest

from kwscapture.config import KwsCaptureConfig


@pytest.mark.unit
class TestKwsCaptureConfig:
    """Test cases for KwsCaptureConfig."""

    def test_defaults(self):
        config = KwsCaptureConfig()

        assert config.max_duration_ms == 2000
        assert config.duration_tolerance_ms == 220
        assert config.target_sample_rate == 16000
        assert config.get('capture.tick_interval_ms') == 100
        assert config.get('capture.acquire_timeout_ms') == 30000
        assert config.get('capture.rejection_policy') == 'gate'
        assert config.get('audio.input_device_index') is None

    def test_from_dict_merges_over_defaults(self):
        config = KwsCaptureConfig.from_dict({"capture": {"max_duration_ms": 1500}})

        assert config.max_duration_ms == 1500
        assert config.duration_tolerance_ms == 220

    def test_load_yaml_file(self, tmp_path):
        config_file = tmp_path / "kwscapture.yaml"
        config_file.write_text(
            "capture:\n"
            "  rejection_policy: duration\n"
            "gate:\n"
            "  too_quiet_rms: 0.01\n"
            "logging:\n"
            "  file_path: logs/test.log\n"
        )

        config = KwsCaptureConfig(str(config_file))

        assert config.get('capture.rejection_policy') == 'duration'
        assert config.get('gate.too_quiet_rms') == 0.01
        assert config.max_duration_ms == 2000
        assert Path(config.get_log_file_path()) == (tmp_path / "logs" / "test.log").absolute()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            KwsCaptureConfig(str(tmp_path / "nope.yaml"))

    def test_empty_file(self, tmp_path):
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")

        with pytest.raises(ValueError, match="empty"):
            KwsCaptureConfig(str(config_file))

    def test_invalid_yaml(self, tmp_path):
        config_file = tmp_path / "broken.yaml"
        config_file.write_text("capture: [unclosed\n")

        with pytest.raises(ValueError, match="Invalid YAML"):
            KwsCaptureConfig(str(config_file))

    def test_non_mapping_root(self, tmp_path):
        config_file = tmp_path / "list.yaml"
        config_file.write_text("- a\n- b\n")

        with pytest.raises(ValueError, match="mapping"):
            KwsCaptureConfig(str(config_file))

    def test_unknown_policy_rejected(self):
        with pytest.raises(ValueError, match="rejection_policy"):
            KwsCaptureConfig.from_dict({"capture": {"rejection_policy": "vibes"}})

    @pytest.mark.parametrize("key", ["max_duration_ms", "tick_interval_ms", "acquire_timeout_ms"])
    def test_non_positive_values_rejected(self, key):
        with pytest.raises(ValueError, match=key):
            KwsCaptureConfig.from_dict({"capture": {key: 0}})

    def test_negative_tolerance_rejected(self):
        with pytest.raises(ValueError):
            KwsCaptureConfig.from_dict({"capture": {"duration_tolerance_ms": -1}})

    def test_get_and_set_dot_notation(self):
        config = KwsCaptureConfig()

        config.set('capture.rejection_policy', 'duration')
        config.set('extra.nested.value', 3)

        assert config.get('capture.rejection_policy') == 'duration'
        assert config.get('extra.nested.value') == 3
        assert config.get('missing.key', 'fallback') == 'fallback'

    def test_defaults_are_not_shared(self):
        first = KwsCaptureConfig()
        first.set('capture.max_duration_ms', 999)

        assert KwsCaptureConfig().max_duration_ms == 2000

    def test_example_config_loads(self):
        example = Path(__file__).resolve().parents[2] / "kwscapture.yaml"
        config = KwsCaptureConfig(str(example))

        assert config.max_duration_ms == 2000
        assert config.get('capture.rejection_policy') in ('gate', 'duration')
