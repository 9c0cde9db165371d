"""
Tests for the pipeline engine.
"""

import dataclasses
import time
from typing import List, Optional
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from detection import ConfigTable, Detector, DetectorVariant, create_detector
from models.config import Config
from models.detection import Detection
from models.frame import FrameData
from observation.base import ObservationConfig, ObservationSource
from pipeline.engine import (
    FrameResult,
    PipelineConfig,
    PipelineEngine,
    PipelineState,
    create_engine_from_config,
)
from pipeline.presets import get_preset
from tracking import build_tracker


class MockObservationSource(ObservationSource):
    """Mock source for testing."""

    def __init__(self, config: ObservationConfig, frames: list = None, max_frames: int = 10):
        super().__init__(config)
        self._frames = frames
        self._max_frames = max_frames
        self._pos = 0
        self.closed = False

    def open(self) -> None:
        self._is_open = True
        self._pos = 0
        self._frame_index = 0

    def read(self) -> Optional[FrameData]:
        if not self._is_open:
            return None

        if self._frames is not None:
            if self._pos >= len(self._frames):
                return None
            frame = self._frames[self._pos]
        else:
            if self._pos >= self._max_frames:
                return None
            frame = np.zeros((480, 640, 3), dtype=np.uint8)

        self._pos += 1
        self._frame_index += 1

        return FrameData.from_numpy(frame, time.time(), self._frame_index, self.source_id)

    def close(self) -> None:
        self._is_open = False
        self.closed = True


class FailingSource(MockObservationSource):
    def open(self) -> None:
        raise RuntimeError("device busy")


class MovingObjectDetector(Detector):
    """Reports one 60x60 object moving right by 4 px per frame."""

    def __init__(self):
        super().__init__()
        self.calls = 0

    def detect(self, frame) -> List[Detection]:
        x = 100 + 4 * self.calls
        self.calls += 1
        return self._filter_small([Detection.from_xyxy(x, 200, x + 60, 260, class_name="person")])


def make_source(max_frames=10, fps=25.0):
    return MockObservationSource(ObservationConfig(source_id="test", fps=fps), max_frames=max_frames)


def make_engine(source=None, preset="pedestrian", config=None, detector=None, tracker_builder=build_tracker):
    detector = detector or MovingObjectDetector()
    factory = MagicMock(return_value=detector)
    engine = PipelineEngine(
        source or make_source(),
        get_preset(preset),
        config or PipelineConfig(),
        detector_factory=factory,
        tracker_builder=tracker_builder,
    )
    return engine, factory


class TestPipelineConfig:
    def test_default_config(self):
        config = PipelineConfig()
        assert config.display is False
        assert config.record is False
        assert config.end_frame == 0
        assert config.detector_overrides == {}

    def test_from_settings(self, valid_config):
        valid_config["pipeline"]["end_frame"] = 50
        valid_config["detection"]["config"] = {"history": 100}
        config = Config.from_dict(valid_config)

        pipeline_config = PipelineConfig.from_settings(config.pipeline, config.detection)

        assert pipeline_config.end_frame == 50
        assert pipeline_config.detector_overrides == {"history": 100}
        assert pipeline_config.model_dir == "data"


class TestPipelineRun:
    """Full runs over mock sources."""

    def test_runs_to_end_of_source(self):
        engine, factory = make_engine(source=make_source(max_frames=12))

        stats = engine.run()

        assert engine.state == PipelineState.STOPPED
        assert stats.frame_count == 12
        assert stats.track_count == 1
        factory.assert_called_once()
        assert engine.source.closed

    def test_robust_track_reported(self):
        engine, _ = make_engine(source=make_source(max_frames=30))
        results = []
        engine.add_callback(lambda frame_data, result: results.append(result))

        engine.run()

        assert len(results) == 30
        assert all(isinstance(r, FrameResult) for r in results)
        assert results[0].classification.moving == []
        last = results[-1]
        assert [t.track_id for t in last.classification.moving] == [0]
        assert last.annotated.sum() > 0

    def test_detector_failure_builds_no_tracker(self):
        """An empty table for a model-based backend fails the pipeline."""
        preset = dataclasses.replace(get_preset("dnn"), table_factory=lambda model_dir, fps: ConfigTable())
        builder = MagicMock()
        engine = PipelineEngine(
            make_source(), preset, PipelineConfig(),
            detector_factory=create_detector,
            tracker_builder=builder,
        )

        stats = engine.run()

        assert engine.state == PipelineState.FAILED
        assert engine.tracker is None
        builder.assert_not_called()
        assert stats.frame_count == 0

    def test_no_frames_fails(self):
        engine, factory = make_engine(source=make_source(max_frames=0))

        engine.run()

        assert engine.state == PipelineState.FAILED
        factory.assert_not_called()

    def test_source_open_failure(self):
        engine, factory = make_engine(source=FailingSource(ObservationConfig()))

        engine.run()

        assert engine.state == PipelineState.FAILED
        factory.assert_not_called()

    def test_end_frame(self):
        engine, _ = make_engine(source=make_source(max_frames=20), config=PipelineConfig(end_frame=5))

        stats = engine.run()

        assert stats.frame_count == 5
        assert engine.state == PipelineState.STOPPED

    def test_stop_from_callback(self):
        engine, _ = make_engine(source=make_source(max_frames=20))
        engine.add_callback(lambda frame_data, result: engine.stop() if result.frame_index == 3 else None)

        stats = engine.run()

        assert stats.frame_count == 3
        assert engine.state == PipelineState.STOPPED

    def test_callback_error_does_not_stop(self):
        engine, _ = make_engine(source=make_source(max_frames=5))

        def bad_callback(frame_data, result):
            raise ValueError("boom")

        engine.add_callback(bad_callback)
        stats = engine.run()

        assert stats.frame_count == 5
        assert engine.state == PipelineState.STOPPED

    def test_detector_exception_fails(self):
        detector = MagicMock(spec=Detector)
        detector.detect.side_effect = RuntimeError("inference crashed")
        engine, _ = make_engine(detector=detector)

        engine.run()

        assert engine.state == PipelineState.FAILED
        assert engine.source.closed

    def test_keyboard_interrupt_stops(self):
        detector = MagicMock(spec=Detector)
        detector.detect.side_effect = KeyboardInterrupt
        engine, _ = make_engine(detector=detector)

        engine.run()

        assert engine.state == PipelineState.STOPPED

    def test_cannot_run_twice(self):
        engine, factory = make_engine(source=make_source(max_frames=2))
        engine.run()
        engine.run()
        factory.assert_called_once()


class TestPipelineInitialize:
    """First-frame initialization."""

    def _first_frame(self, fps=None):
        return FrameData.from_numpy(np.zeros((480, 640, 3), dtype=np.uint8), time.time(), 1, fps=fps)

    def test_states(self):
        states = []
        detector = MovingObjectDetector()

        def factory(variant, table, frame):
            states.append(engine.state)
            return detector

        def builder(settings):
            states.append(engine.state)
            return build_tracker(settings)

        engine = PipelineEngine(make_source(), get_preset("motion"), PipelineConfig(),
                                detector_factory=factory, tracker_builder=builder)

        assert engine.initialize(self._first_frame())
        assert states == [PipelineState.UNINITIALIZED, PipelineState.DETECTOR_READY]
        assert engine.state == PipelineState.TRACKER_READY

    def test_min_object_size_set(self):
        engine, _ = make_engine(preset="motion")
        engine.initialize(self._first_frame())
        assert engine.detector.min_object_size == (32, 32)

    def test_source_fps_drives_time_constants(self):
        builder = MagicMock(side_effect=build_tracker)
        engine, _ = make_engine(source=make_source(fps=10), preset="motion", tracker_builder=builder)

        engine.initialize(self._first_frame())

        settings = builder.call_args[0][0]
        assert settings.fps == 10
        assert settings.max_allowed_skipped_frames == 50

    def test_unknown_fps_uses_default(self):
        builder = MagicMock(side_effect=build_tracker)
        engine, _ = make_engine(source=make_source(fps=None), preset="motion", tracker_builder=builder)

        engine.initialize(self._first_frame())

        assert builder.call_args[0][0].fps == 25

    def test_overrides_reach_factory(self):
        config = PipelineConfig(detector_overrides={"history": 10})
        engine, factory = make_engine(preset="motion", config=config)

        engine.initialize(self._first_frame())

        table = factory.call_args[0][1]
        assert table.get_int("history", 0) == 10

    def test_process_frame_requires_initialization(self):
        engine, _ = make_engine()
        with pytest.raises(RuntimeError):
            engine.process_frame(self._first_frame())

    def test_initialize_only_once(self):
        engine, _ = make_engine()
        engine.initialize(self._first_frame())
        with pytest.raises(RuntimeError):
            engine.initialize(self._first_frame())


    def test_motion_map_drawn_over_overlays(self):
        calls = []

        class MotionMapDetector(MovingObjectDetector):
            def calc_motion_map(self, frame):
                calls.append("motion_map")

        engine, _ = make_engine(preset="motion", detector=MotionMapDetector())
        engine.initialize(self._first_frame())
        engine._annotate.render = MagicMock(side_effect=lambda frame, result: calls.append("render"))

        engine.process_frame(self._first_frame())

        assert calls == ["render", "motion_map"]

    def test_no_motion_map_outside_motion_preset(self):
        detector = MovingObjectDetector()
        detector.calc_motion_map = MagicMock()
        engine, _ = make_engine(preset="pedestrian", detector=detector)
        engine.initialize(self._first_frame())

        engine.process_frame(self._first_frame())

        detector.calc_motion_map.assert_not_called()


class TestRecording:
    def test_writer_opened_once(self, tmp_path):
        config = PipelineConfig(record=True, output_dir=str(tmp_path / "video"))
        engine, _ = make_engine(source=make_source(max_frames=4), config=config)

        with patch("pipeline.engine.cv2.VideoWriter") as writer_cls:
            engine.run()

        writer_cls.assert_called_once()
        assert writer_cls.return_value.write.call_count == 4
        writer_cls.return_value.release.assert_called_once()
        assert (tmp_path / "video").is_dir()


class TestCreateEngineFromConfig:
    def test_creates_engine(self, valid_config):
        valid_config["detection"]["preset"] = "yolo"
        source = make_source()

        engine = create_engine_from_config(Config.from_dict(valid_config), source=source)

        assert engine.preset.name == "yolo"
        assert engine.source is source
        assert engine.state == PipelineState.UNINITIALIZED

    def test_unknown_preset(self, valid_config):
        from detection import ConfigError

        valid_config["detection"]["preset"] = "thermal"
        with pytest.raises(ConfigError):
            create_engine_from_config(Config.from_dict(valid_config), source=make_source())

    def test_detection_options_select_backend(self, valid_config):
        valid_config["detection"]["motion_algorithm"] = "knn"
        engine = create_engine_from_config(Config.from_dict(valid_config), source=make_source())
        assert engine.preset.variant == DetectorVariant.MOTION_KNN

        valid_config["detection"].update(preset="dnn", dnn_model="yolov4")
        engine = create_engine_from_config(Config.from_dict(valid_config), source=make_source())
        table = engine.preset.build_table("data", 25)
        assert table.get("modelBinary").endswith("yolov4.weights")
