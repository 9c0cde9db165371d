"""
Pytest configuration and shared fixtures.
"""

import os
import sys
from collections import deque

import numpy as np
import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from models.detection import BoundingBox  # noqa: E402
from models.track import TracePoint, Track, TrackState  # noqa: E402


@pytest.fixture
def temp_config_dir(tmp_path):
    """Create a temporary config directory with default.yaml."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()

    default_yaml = config_dir / "default.yaml"
    default_yaml.write_text("""
source:
  device_id: 0
  resolution: [640, 480]
  fps: 25

detection:
  preset: "motion"
  model_dir: "data"
  config: {}

pipeline:
  display: false
  record: false
  start_frame: 0
  end_frame: 0
  stats_log_interval: 60

log_path: "logs/test.log"
log_level: "INFO"
""")

    return config_dir


@pytest.fixture
def valid_config():
    """Return a valid configuration dictionary."""
    return {
        "source": {
            "device_id": 0,
            "resolution": [1280, 720],
            "fps": 25,
        },
        "detection": {
            "preset": "motion",
            "model_dir": "data",
            "config": {},
        },
        "pipeline": {
            "display": False,
            "record": False,
            "start_frame": 0,
            "end_frame": 0,
            "stats_log_interval": 60,
        },
        "log_path": "logs/test.log",
        "log_level": "INFO",
    }


@pytest.fixture
def blank_frame():
    """Black 640x480 BGR frame."""
    return np.zeros((480, 640, 3), dtype=np.uint8)


def make_track_state(
    track_id=0,
    bbox=(100.0, 100.0, 150.0, 150.0),
    raw_points=10,
    predicted_points=0,
    is_static=False,
    object_type=None,
    confidence=1.0,
    velocity=(0.0, 0.0),
):
    """Build a TrackState whose trace has the given mix of raw and predicted points."""
    box = BoundingBox.from_tuple(bbox)
    cx, cy = box.center
    trace = [TracePoint(cx + i, cy, is_raw=True) for i in range(raw_points)]
    trace += [TracePoint(cx + raw_points + i, cy, is_raw=False) for i in range(predicted_points)]
    return Track(
        track_id=track_id,
        bbox=box,
        trace=deque(trace),
        object_type=object_type,
        confidence=confidence,
        velocity=velocity,
        is_static=is_static,
    ).snapshot()


@pytest.fixture
def track_factory():
    """Factory fixture for TrackState snapshots."""
    return make_track_state
