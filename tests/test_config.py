"""
Smoke tests for configuration loading, validation and the command line.
"""

from unittest.mock import MagicMock, patch

import pytest

from detection import ConfigError
from main import apply_overrides, load_config, main, parse_args, validate_config
from pipeline import PipelineState


class TestValidateConfig:
    """Tests for validate_config function."""

    def test_valid_config_passes(self, valid_config):
        is_valid, error = validate_config(valid_config)
        assert is_valid is True
        assert error is None

    @pytest.mark.parametrize("section", ["source", "detection", "log_path", "log_level"])
    def test_missing_section(self, valid_config, section):
        del valid_config[section]
        is_valid, error = validate_config(valid_config)
        assert is_valid is False
        assert section in error

    def test_missing_device_id(self, valid_config):
        del valid_config["source"]["device_id"]
        is_valid, error = validate_config(valid_config)
        assert is_valid is False
        assert "device_id" in error

    def test_invalid_device_id_type(self, valid_config):
        valid_config["source"]["device_id"] = 1.5
        assert validate_config(valid_config)[0] is False

    def test_negative_device_id(self, valid_config):
        valid_config["source"]["device_id"] = -1
        assert validate_config(valid_config)[0] is False

    def test_string_device_id_valid(self, valid_config):
        valid_config["source"]["device_id"] = "data/atrium.avi"
        assert validate_config(valid_config)[0] is True

    def test_invalid_resolution(self, valid_config):
        valid_config["source"]["resolution"] = [1280]
        assert validate_config(valid_config)[0] is False

    def test_resolution_optional(self, valid_config):
        del valid_config["source"]["resolution"]
        assert validate_config(valid_config)[0] is True

    def test_invalid_fps(self, valid_config):
        valid_config["source"]["fps"] = 0
        assert validate_config(valid_config)[0] is False

    def test_fractional_fps_valid(self, valid_config):
        valid_config["source"]["fps"] = 29.97
        assert validate_config(valid_config)[0] is True

    def test_invalid_rotation(self, valid_config):
        valid_config["source"]["rotate"] = 45
        assert validate_config(valid_config)[0] is False

    def test_unknown_preset(self, valid_config):
        valid_config["detection"]["preset"] = "thermal"
        is_valid, error = validate_config(valid_config)
        assert is_valid is False
        assert "preset" in error

    @pytest.mark.parametrize("key,value", [
        ("motion_algorithm", "vibe"),
        ("dnn_model", "resnet50"),
    ])
    def test_unknown_detection_option(self, valid_config, key, value):
        valid_config["detection"][key] = value
        is_valid, error = validate_config(valid_config)
        assert is_valid is False
        assert key in error

    def test_known_detection_options(self, valid_config):
        valid_config["detection"]["motion_algorithm"] = "knn"
        valid_config["detection"]["dnn_model"] = "tiny_yolov3"
        assert validate_config(valid_config)[0] is True

    def test_backend_overrides(self, valid_config):
        valid_config["detection"]["config"] = {"white_list": ["person"], "confidenceThreshold": 0.4}
        assert validate_config(valid_config)[0] is True

        valid_config["detection"]["config"] = {"nested": {"a": 1}}
        assert validate_config(valid_config)[0] is False

    def test_invalid_frame_range(self, valid_config):
        valid_config["pipeline"]["start_frame"] = 100
        valid_config["pipeline"]["end_frame"] = 50
        assert validate_config(valid_config)[0] is False

    def test_invalid_log_level(self, valid_config):
        valid_config["log_level"] = "VERBOSE"
        assert validate_config(valid_config)[0] is False


class TestLoadConfig:
    """Tests for load_config function."""

    def test_loads_default_yaml(self, temp_config_dir):
        """Config loads from default.yaml when only it exists."""
        config = load_config(str(temp_config_dir / "config.yaml"))

        assert config["source"]["device_id"] == 0
        assert config["detection"]["preset"] == "motion"

    def test_local_overrides_merge(self, temp_config_dir):
        """Local config.yaml overrides default.yaml."""
        config_yaml = temp_config_dir / "config.yaml"
        config_yaml.write_text("""
source:
  device_id: "data/atrium.avi"
""")

        config = load_config(str(config_yaml))

        assert config["source"]["device_id"] == "data/atrium.avi"
        assert config["source"]["resolution"] == [640, 480]

    def test_explicit_file_applied_last(self, temp_config_dir):
        (temp_config_dir / "config.yaml").write_text("detection:\n  preset: face\n")
        explicit = temp_config_dir / "yolo.yaml"
        explicit.write_text("detection:\n  preset: yolo\n  config:\n    white_list: [person]\n")

        config = load_config(str(explicit))

        assert config["detection"]["preset"] == "yolo"
        assert config["detection"]["config"]["white_list"] == ["person"]
        assert config["detection"]["model_dir"] == "data"

    def test_malformed_yaml(self, temp_config_dir):
        (temp_config_dir / "config.yaml").write_text("source: [unclosed\n")
        with pytest.raises(ConfigError):
            load_config(str(temp_config_dir / "config.yaml"))


class TestCommandLine:
    def test_overrides(self, valid_config):
        args = parse_args(["--source", "video.mp4", "--preset", "dnn", "--display"])
        config = apply_overrides(valid_config, args)

        assert config["source"]["device_id"] == "video.mp4"
        assert config["detection"]["preset"] == "dnn"
        assert config["pipeline"]["display"] is True
        assert config["pipeline"]["record"] is False

    def test_main_invalid_config(self, temp_config_dir):
        (temp_config_dir / "config.yaml").write_text("log_level: VERBOSE\n")
        assert main(["--config", str(temp_config_dir / "config.yaml")]) == 1

    @pytest.mark.parametrize("state,status", [
        (PipelineState.STOPPED, 0),
        (PipelineState.FAILED, 1),
    ])
    def test_main_exit_status(self, temp_config_dir, tmp_path, state, status):
        (temp_config_dir / "config.yaml").write_text(f"log_path: {tmp_path / 'test.log'}\n")
        engine = MagicMock()
        engine.state = state
        engine.run.return_value.frame_count = 3
        engine.run.return_value.avg_frame_ms = 1.0

        with patch("main.create_engine_from_config", return_value=engine), \
                patch("main.setup_logging"):
            assert main(["--config", str(temp_config_dir / "config.yaml")]) == status

        engine.run.assert_called_once()
