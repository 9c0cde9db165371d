"""
Smoke tests for typed models and adapters.
"""

import time
from collections import deque

import numpy as np
import pytest

from models.config import Config, DetectionConfig, PipelineSettings, SourceConfig
from models.detection import BoundingBox, Detection, Rect
from models.frame import FrameData
from models.track import TracePoint, Track, TrackState


class TestBoundingBox:
    def test_properties(self):
        bbox = BoundingBox(x1=100, y1=100, x2=200, y2=150)
        assert bbox.width == 100
        assert bbox.height == 50
        assert bbox.center == (150.0, 125.0)
        assert bbox.area == 5000
        assert bbox.aspect_ratio == 2.0

    def test_degenerate_aspect_ratio(self):
        assert BoundingBox(0, 0, 10, 0).aspect_ratio == 0.0

    def test_as_tuple(self):
        bbox = BoundingBox(x1=10.5, y1=20.5, x2=30.5, y2=40.5)
        assert bbox.as_tuple() == (10.5, 20.5, 30.5, 40.5)
        assert bbox.as_int_tuple() == (10, 20, 30, 40)

    def test_from_xywh(self):
        bbox = BoundingBox.from_xywh(x=100, y=100, w=50, h=30)
        assert bbox.x2 == 150
        assert bbox.y2 == 130
        assert bbox.to_xywh() == (100, 100, 50, 30)

    def test_from_center(self):
        bbox = BoundingBox.from_center(50, 50, 20, 10)
        assert bbox.as_tuple() == (40, 45, 60, 55)


class TestRect:
    def test_from_bbox_covers_box(self):
        rect = Rect.from_bbox(BoundingBox(10.2, 20.7, 30.5, 40.0))
        assert rect == Rect(10, 20, 21, 20)
        assert rect.right == 31
        assert rect.bottom == 40
        assert rect.tl == (10, 20)

    def test_is_empty(self):
        assert Rect(0, 0, 0, 5).is_empty
        assert not Rect(0, 0, 1, 1).is_empty


class TestDetection:
    def test_from_xyxy(self):
        det = Detection.from_xyxy(10, 20, 30, 40, confidence=0.9, class_id=2, class_name="car")
        assert det.x1 == 10
        assert det.confidence == 0.9
        assert det.class_name == "car"
        assert det.center == (20, 30)

    def test_defaults(self):
        det = Detection(bbox=BoundingBox(0, 0, 4, 4))
        assert det.confidence == 1.0
        assert det.class_id is None
        assert det.class_name is None


class TestFrameData:
    def test_from_numpy(self):
        frame = np.zeros((480, 640, 3), dtype=np.uint8)
        fd = FrameData.from_numpy(frame, timestamp=time.time(), frame_index=42, fps=25.0)

        assert fd.size == (640, 480)
        assert fd.frame_index == 42
        assert fd.fps == 25.0
        assert fd.is_valid

    def test_empty_frame_invalid(self):
        fd = FrameData.from_numpy(np.zeros((0, 0, 3), dtype=np.uint8), timestamp=0.0)
        assert not fd.is_valid


class TestTrack:
    def _track(self):
        return Track(
            track_id=1,
            bbox=BoundingBox(100, 100, 150, 150),
            trace=deque([TracePoint(125, 125), TracePoint(126, 125, is_raw=False)]),
            object_type="car",
            velocity=(3.0, 4.0),
        )

    def test_properties(self):
        track = self._track()
        assert track.center == (125.0, 125.0)
        assert track.speed == 5.0
        assert track.raw_point_ratio == 0.5

    def test_snapshot_copies_trace(self):
        track = self._track()
        state = track.snapshot()
        track.trace.append(TracePoint(127, 125))

        assert isinstance(state, TrackState)
        assert state.trace_length == 2
        assert state.object_type == "car"
        assert state.speed == 5.0

    def test_snapshot_is_frozen(self):
        state = self._track().snapshot()
        with pytest.raises(Exception):
            state.track_id = 7

    def test_empty_trace_ratio(self):
        assert TrackState(track_id=0, bbox=BoundingBox(0, 0, 1, 1)).raw_point_ratio == 0.0


class TestConfigModels:
    def test_defaults(self):
        config = Config.from_dict({})
        assert config.detection.preset == "motion"
        assert config.pipeline.end_frame == 0
        assert config.log_level == "INFO"

    def test_round_trip(self, valid_config):
        config = Config.from_dict(valid_config)
        again = Config.from_dict(config.to_dict())
        assert again == config

    def test_sections(self):
        assert SourceConfig.from_dict({"device_id": "video.mp4"}).device_id == "video.mp4"
        assert DetectionConfig.from_dict({"config": None}).config == {}
        assert PipelineSettings.from_dict({"show_logs": True}).show_logs

    def test_detection_options(self):
        detection = DetectionConfig.from_dict({"preset": "dnn"})
        assert detection.motion_algorithm == "mog2"
        assert detection.dnn_model == "mobilenet_ssd"

        detection = DetectionConfig.from_dict({"motion_algorithm": "cnt", "dnn_model": "yolov4"})
        assert detection.to_dict()["motion_algorithm"] == "cnt"
        assert detection.to_dict()["dnn_model"] == "yolov4"
