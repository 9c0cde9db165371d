"""
Video detection and tracking demo.

Reads a camera, video file or stream, runs the selected detection preset,
tracks the detections and renders the robust tracks.

Usage:
    python src/main.py --config config/config.yaml --source data/atrium.avi --display

Arguments:
    --config: Path to configuration file
    --source: Camera index, video file or stream URL (overrides source.device_id)
    --preset: Detection preset (overrides detection.preset)
    --display: Enable visual display
    --record: Record annotated video
"""

import os
import sys
import argparse
import logging
import yaml
from typing import Dict, Any, List, Optional, Tuple

from detection import ConfigError
from models.config import Config
from ops.logging import setup_logging
from pipeline import PRESETS, PipelineState, create_engine_from_config
from pipeline.presets import DNN_MODELS, MOTION_ALGORITHMS


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into base and return base."""
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            _deep_merge(base[k], v)
        else:
            base[k] = v
    return base


def _read_yaml(path: str) -> Dict[str, Any]:
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load configuration with layering:
    - `default.yaml` next to config_path (checked in)
    - `config.yaml` next to config_path (local overrides)
    - config_path itself, when it is neither of those

    Raises:
        ConfigError: If a file exists but cannot be parsed.
    """
    config_dir = os.path.dirname(config_path)
    base_path = os.path.join(config_dir, "default.yaml")
    local_overrides_path = os.path.join(config_dir, "config.yaml")

    try:
        merged: Dict[str, Any] = {}
        for path in (base_path, local_overrides_path):
            if os.path.exists(path):
                merged = _deep_merge(merged, _read_yaml(path))

        explicit = os.path.abspath(config_path)
        if os.path.exists(config_path) and explicit not in (
            os.path.abspath(base_path),
            os.path.abspath(local_overrides_path),
        ):
            merged = _deep_merge(merged, _read_yaml(config_path))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to load configuration: {e}") from e

    return merged


def validate_config(config: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate configuration structure and values.

    Args:
        config: Configuration dictionary

    Returns:
        Tuple of (is_valid, error_message)
    """
    required_sections = ['source', 'detection', 'log_path', 'log_level']
    for section in required_sections:
        if section not in config:
            return False, f"Missing required configuration section: {section}"

    # Validate source settings
    source = config.get('source') or {}
    if 'device_id' not in source:
        return False, "Missing source.device_id"
    if not isinstance(source['device_id'], (int, str)) or isinstance(source['device_id'], bool):
        return False, "source.device_id must be an integer (index) or string (path or URL)"
    if isinstance(source['device_id'], int) and source['device_id'] < 0:
        return False, "source.device_id integer must be non-negative"

    if source.get('resolution') is not None:
        resolution = source['resolution']
        if not isinstance(resolution, list) or len(resolution) != 2:
            return False, "source.resolution must be a list of [width, height]"
        if not all(isinstance(x, int) and x > 0 for x in resolution):
            return False, "source.resolution values must be positive integers"

    if source.get('fps') is not None:
        fps = source['fps']
        if not isinstance(fps, (int, float)) or fps <= 0:
            return False, "source.fps must be a positive number"

    if source.get('rotate', 0) not in (0, 90, 180, 270, None):
        return False, "source.rotate must be one of: 0, 90, 180, 270"

    # Validate detection settings
    detection = config.get('detection') or {}
    preset = detection.get('preset', 'motion')
    if preset not in PRESETS:
        return False, f"detection.preset must be one of: {', '.join(PRESETS)}"
    if 'model_dir' in detection and not isinstance(detection['model_dir'], str):
        return False, "detection.model_dir must be a string"
    if detection.get('motion_algorithm', 'mog2') not in MOTION_ALGORITHMS:
        return False, f"detection.motion_algorithm must be one of: {', '.join(MOTION_ALGORITHMS)}"
    if detection.get('dnn_model', 'mobilenet_ssd') not in DNN_MODELS:
        return False, f"detection.dnn_model must be one of: {', '.join(DNN_MODELS)}"
    overrides = detection.get('config')
    if overrides is not None:
        if not isinstance(overrides, dict):
            return False, "detection.config must be a mapping of backend keys"
        for key, value in overrides.items():
            if isinstance(value, (dict, type(None))):
                return False, f"detection.config.{key} must be a scalar or a list"

    # Validate pipeline settings
    pipeline = config.get('pipeline') or {}
    for key in ('start_frame', 'end_frame'):
        value = pipeline.get(key, 0)
        if not isinstance(value, int) or value < 0:
            return False, f"pipeline.{key} must be a non-negative integer"
    if pipeline.get('end_frame', 0) and pipeline.get('end_frame', 0) < pipeline.get('start_frame', 0):
        return False, "pipeline.end_frame must not be before pipeline.start_frame"
    interval = pipeline.get('stats_log_interval', 60)
    if not isinstance(interval, (int, float)) or interval <= 0:
        return False, "pipeline.stats_log_interval must be a positive number"

    # Validate log settings
    valid_log_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
    if config['log_level'] not in valid_log_levels:
        return False, f"log_level must be one of: {', '.join(valid_log_levels)}"

    return True, None


def apply_overrides(config: Dict[str, Any], args: argparse.Namespace) -> Dict[str, Any]:
    """Apply command-line overrides to the raw config."""
    if args.source is not None:
        config.setdefault('source', {})['device_id'] = args.source
    if args.preset is not None:
        config.setdefault('detection', {})['preset'] = args.preset
    if args.display:
        config.setdefault('pipeline', {})['display'] = True
    if args.record:
        config.setdefault('pipeline', {})['record'] = True
    return config


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Video object detection and tracking demo')
    parser.add_argument('--config', type=str, default='config/config.yaml',
                        help='Path to configuration file')
    parser.add_argument('--source', type=str, default=None,
                        help='Camera index, video file or stream URL')
    parser.add_argument('--preset', type=str, default=None, choices=sorted(PRESETS),
                        help='Detection preset')
    parser.add_argument('--display', action='store_true',
                        help='Enable visual display')
    parser.add_argument('--record', action='store_true',
                        help='Record annotated video')
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main application function. Returns the process exit status."""
    args = parse_args(argv)

    try:
        raw_config = load_config(args.config)
    except ConfigError as e:
        logging.error(str(e))
        return 1

    raw_config = apply_overrides(raw_config, args)

    is_valid, error_msg = validate_config(raw_config)
    if not is_valid:
        logging.error(f"Configuration validation failed: {error_msg}")
        return 1

    config = Config.from_dict(raw_config)
    setup_logging(config.log_path, config.log_level)

    logging.info(
        f"Starting video tracking demo: preset={config.detection.preset}, "
        f"source={config.source.device_id}"
    )

    engine = create_engine_from_config(config)
    stats = engine.run()

    logging.info(
        f"Processed {stats.frame_count} frames, avg {stats.avg_frame_ms:.1f} ms per frame"
    )
    if engine.state == PipelineState.FAILED:
        logging.error("Pipeline failed")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
