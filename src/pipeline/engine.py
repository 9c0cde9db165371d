"""
Pipeline engine.

Runs the per-frame loop for one demo preset:

    detect -> track -> classify -> render

The detector and tracker are created lazily from the first frame, because
detector construction needs a reference frame and tracker time constants
need the measured frame rate. The engine moves through

    UNINITIALIZED -> DETECTOR_READY -> TRACKER_READY -> RUNNING -> STOPPED

and ends in FAILED when there is no first frame or the detector cannot be
created. A failed detector never leads to a tracker being built.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import cv2
import numpy as np

from detection import ConfigTable, Detector, DetectorVariant, create_detector, min_object_size_for
from models.config import Config, DetectionConfig, PipelineSettings
from models.frame import FrameData
from models.track import TrackState
from observation import ObservationSource, create_source_from_config
from tracking import Tracker, TrackerSettings, build_tracker
from tracking.settings import DEFAULT_FPS
from .presets import Preset, resolve_preset
from .stages.annotate import AnnotateStage
from .stages.classify import Classification, ClassifyStage


DetectorFactory = Callable[[DetectorVariant, ConfigTable, np.ndarray], Optional[Detector]]
TrackerBuilder = Callable[[TrackerSettings], Tracker]


class PipelineState(str, Enum):
    UNINITIALIZED = "uninitialized"
    DETECTOR_READY = "detector_ready"
    TRACKER_READY = "tracker_ready"
    RUNNING = "running"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass
class PipelineConfig:
    """
    Configuration for the pipeline engine.

    Attributes:
        display: Show annotated frames in a cv2 window ('q' or Esc quits).
        record: Write annotated frames to a video file.
        output_dir: Directory for recorded videos.
        show_logs: Log a DEBUG line for every frame.
        start_frame: Index of the first frame the source delivers.
        end_frame: Stop after this frame index. 0 = run to the end.
        stats_log_interval: Seconds between status log messages.
        model_dir: Directory the preset resolves model files against.
        detector_overrides: Entries replacing keys of the preset's table.
        window_name: Title of the display window.
    """
    display: bool = False
    record: bool = False
    output_dir: str = "output/video"
    show_logs: bool = False
    start_frame: int = 0
    end_frame: int = 0
    stats_log_interval: float = 60.0
    model_dir: str = "data"
    detector_overrides: Dict[str, Any] = field(default_factory=dict)
    window_name: str = "vidtrack"

    @classmethod
    def from_settings(cls, pipeline: PipelineSettings, detection: DetectionConfig) -> "PipelineConfig":
        """Adapter: build from the typed `pipeline` and `detection` config sections."""
        return cls(
            display=pipeline.display,
            record=pipeline.record,
            output_dir=pipeline.output_dir,
            show_logs=pipeline.show_logs,
            start_frame=pipeline.start_frame,
            end_frame=pipeline.end_frame,
            stats_log_interval=pipeline.stats_log_interval,
            model_dir=detection.model_dir,
            detector_overrides=dict(detection.config),
        )


@dataclass
class PipelineStats:
    """Runtime statistics for the pipeline."""
    frame_count: int = 0
    detection_count: int = 0
    track_count: int = 0
    moving_count: int = 0
    abandoned_count: int = 0
    processing_time: float = 0.0
    start_time: float = field(default_factory=time.time)
    last_stats_log_time: float = field(default_factory=time.time)

    @property
    def avg_frame_ms(self) -> float:
        if self.frame_count == 0:
            return 0.0
        return 1000.0 * self.processing_time / self.frame_count


@dataclass
class FrameResult:
    """
    Output of one pipeline step.

    Attributes:
        frame_index: Index of the processed frame.
        detections: Number of detections the detector reported.
        tracks: Track snapshots after the tracker update.
        classification: Tracks split into moving, abandoned and rejected.
        annotated: Copy of the frame with the overlay drawn on it.
        elapsed_ms: Detection plus tracking time.
    """
    frame_index: int
    detections: int
    tracks: List[TrackState]
    classification: Classification
    annotated: np.ndarray
    elapsed_ms: float


class PipelineEngine:
    """
    Per-frame processing engine for one preset.

    Example:
        source = OpenCVSource(OpenCVSourceConfig(device_id="data/atrium.avi"))
        engine = PipelineEngine(source, get_preset("motion"), PipelineConfig())
        stats = engine.run()
    """

    def __init__(
        self,
        source: ObservationSource,
        preset: Preset,
        config: PipelineConfig,
        detector_factory: DetectorFactory = create_detector,
        tracker_builder: TrackerBuilder = build_tracker,
    ):
        self.source = source
        self.preset = preset
        self.config = config
        self.stats = PipelineStats()
        self.state = PipelineState.UNINITIALIZED
        self.fps: Optional[float] = None
        self._detector_factory = detector_factory
        self._tracker_builder = tracker_builder
        self._detector: Optional[Detector] = None
        self._tracker: Optional[Tracker] = None
        self._classify: Optional[ClassifyStage] = None
        self._annotate: Optional[AnnotateStage] = None
        self._running = False
        self._video_writer: Optional[cv2.VideoWriter] = None
        self._output_path: Optional[str] = None
        self._callbacks: List[Callable[[FrameData, FrameResult], None]] = []

    @property
    def detector(self) -> Optional[Detector]:
        return self._detector

    @property
    def tracker(self) -> Optional[Tracker]:
        return self._tracker

    def add_callback(self, callback: Callable[[FrameData, FrameResult], None]) -> None:
        """
        Add a callback to be called after each frame is processed.

        Args:
            callback: Function taking (frame_data, result) as arguments.
        """
        self._callbacks.append(callback)

    def initialize(self, first_frame: FrameData) -> bool:
        """
        Create the detector and tracker from the first frame.

        Returns:
            True when the pipeline is ready to run. On False the state is
            FAILED and no tracker has been built.
        """
        if self.state != PipelineState.UNINITIALIZED:
            raise RuntimeError(f"Pipeline already initialized (state={self.state.value})")

        if not first_frame.is_valid:
            logging.error("First frame has no size, cannot initialize pipeline")
            self.state = PipelineState.FAILED
            return False

        self.fps = self._resolve_fps(first_frame)
        table = self.preset.build_table(
            self.config.model_dir,
            self.fps,
            self.config.detector_overrides,
        )
        detector = self._detector_factory(self.preset.variant, table, first_frame.frame)
        if detector is None:
            logging.error(f"Pipeline initialization failed: no detector for preset '{self.preset.name}'")
            self.state = PipelineState.FAILED
            return False

        self._detector = detector
        self.state = PipelineState.DETECTOR_READY
        min_w, min_h = min_object_size_for(self.preset.variant, first_frame.width, first_frame.height)
        detector.set_min_object_size(min_w, min_h)

        settings = self.preset.tracker_settings(first_frame.width, first_frame.height, self.fps)
        self._tracker = self._tracker_builder(settings)
        self.state = PipelineState.TRACKER_READY

        self._classify = self.preset.classify_stage(self.fps)
        self._annotate = self.preset.annotate_stage()
        logging.info(
            f"Pipeline ready: preset={self.preset.name}, frame={first_frame.width}x{first_frame.height}, "
            f"fps={self.fps}, min_object_size=({min_w}, {min_h})"
        )
        return True

    def _resolve_fps(self, frame_data: FrameData) -> float:
        for fps in (self.source.fps, frame_data.fps):
            if fps and fps > 0:
                return float(fps)
        logging.warning(f"Source frame rate unknown, using {DEFAULT_FPS}")
        return DEFAULT_FPS

    def run(self) -> PipelineStats:
        """
        Run the processing loop until the source is exhausted or stopped.

        Opens the observation source, initializes on the first frame,
        processes frames, then closes resources.
        """
        if self.state != PipelineState.UNINITIALIZED:
            logging.warning(f"Pipeline cannot run from state {self.state.value}")
            return self.stats

        self._running = True
        self.stats = PipelineStats()

        try:
            try:
                self.source.open()
            except RuntimeError as e:
                logging.error(f"Failed to open source: {e}")
                self.state = PipelineState.FAILED
                return self.stats

            logging.info(f"Pipeline started: source={self.source.source_id}, preset={self.preset.name}")

            frame_data = self.source.read()
            if frame_data is None:
                logging.error("Source delivered no frames")
                self.state = PipelineState.FAILED
                return self.stats

            if not self.initialize(frame_data):
                return self.stats

            self.state = PipelineState.RUNNING
            while self._running and frame_data is not None:
                if self._past_end(frame_data):
                    logging.info(f"End frame {self.config.end_frame} reached")
                    break

                result = self.process_frame(frame_data)

                for callback in self._callbacks:
                    try:
                        callback(frame_data, result)
                    except Exception as e:
                        logging.warning(f"Callback error: {e}")

                if self.config.record:
                    self._record(result.annotated)

                if self.config.display and not self._handle_display(result.annotated):
                    break

                self._handle_periodic_tasks()
                frame_data = self.source.read()

            self.state = PipelineState.STOPPED

        except KeyboardInterrupt:
            logging.info("Pipeline interrupted by user")
            self.state = PipelineState.STOPPED
        except Exception as e:
            logging.exception(f"Pipeline error: {e}")
            self.state = PipelineState.FAILED
        finally:
            self._cleanup()

        return self.stats

    def stop(self) -> None:
        """Signal the pipeline to stop after the current frame."""
        self._running = False

    def _past_end(self, frame_data: FrameData) -> bool:
        if self.config.end_frame <= 0:
            return False
        return self.config.start_frame + frame_data.frame_index > self.config.end_frame

    def process_frame(self, frame_data: FrameData) -> FrameResult:
        """
        Run one frame through detect, track, classify and render.

        The returned track snapshots belong to this frame only.
        """
        if self._tracker is None or self._detector is None:
            raise RuntimeError(f"Pipeline not ready (state={self.state.value})")

        frame = frame_data.frame
        started = time.perf_counter()

        detections = self._detector.detect(frame)
        self._tracker.update(detections, frame, frame_data.timestamp)
        tracks = self._tracker.get_tracks()

        elapsed = time.perf_counter() - started
        classification = self._classify.process(tracks)

        annotated = frame.copy()
        self._annotate.render(annotated, classification)
        if self.preset.motion_map:
            self._detector.calc_motion_map(annotated)

        self.stats.frame_count += 1
        self.stats.detection_count += len(detections)
        self.stats.track_count = len(tracks)
        self.stats.moving_count = len(classification.moving)
        self.stats.abandoned_count = len(classification.abandoned)
        self.stats.processing_time += elapsed

        if self.config.show_logs:
            logging.debug(
                f"Frame {frame_data.frame_index}: tracks = {len(tracks)}, time = {1000 * elapsed:.1f} ms"
            )

        return FrameResult(
            frame_index=frame_data.frame_index,
            detections=len(detections),
            tracks=tracks,
            classification=classification,
            annotated=annotated,
            elapsed_ms=1000 * elapsed,
        )

    def _handle_display(self, frame: np.ndarray) -> bool:
        """
        Show the annotated frame.

        Returns False if user pressed 'q' or Esc to quit.
        """
        cv2.imshow(self.config.window_name, frame)
        key = cv2.waitKey(1) & 0xFF
        return key not in (ord("q"), 27)

    def _handle_periodic_tasks(self) -> None:
        now = time.time()
        if now - self.stats.last_stats_log_time >= self.config.stats_log_interval:
            logging.info(
                f"Pipeline stats: frames={self.stats.frame_count}, "
                f"tracks={self.stats.track_count}, moving={self.stats.moving_count}, "
                f"abandoned={self.stats.abandoned_count}, avg={self.stats.avg_frame_ms:.1f} ms"
            )
            self.stats.last_stats_log_time = now

    def _record(self, frame: np.ndarray) -> None:
        """Write a frame, opening the writer on the first one."""
        if self._video_writer is None:
            os.makedirs(self.config.output_dir, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self._output_path = os.path.join(
                self.config.output_dir, f"{self.preset.name}_{timestamp}.avi"
            )
            height, width = frame.shape[:2]
            fourcc = cv2.VideoWriter_fourcc(*"XVID")
            self._video_writer = cv2.VideoWriter(
                self._output_path, fourcc, self.fps or DEFAULT_FPS, (width, height), True
            )
            logging.info(f"Video recording started: {self._output_path}")
        self._video_writer.write(frame)

    def _cleanup(self) -> None:
        self._running = False

        try:
            self.source.close()
        except Exception as e:
            logging.warning(f"Error closing source: {e}")

        if self._video_writer is not None:
            self._video_writer.release()
            self._video_writer = None
            logging.info(f"Video saved: {self._output_path}")

        if self.config.display:
            cv2.destroyAllWindows()

        logging.info(
            f"Pipeline stopped: state={self.state.value}, frames={self.stats.frame_count}"
        )


def create_engine_from_config(
    config: Config,
    source: Optional[ObservationSource] = None,
    detector_factory: DetectorFactory = create_detector,
    tracker_builder: TrackerBuilder = build_tracker,
) -> PipelineEngine:
    """
    Factory function to create a PipelineEngine from the typed config.

    Args:
        config: Application config.
        source: Frame source; built from config.source when omitted.
        detector_factory: Detector construction function.
        tracker_builder: Tracker construction function.

    Raises:
        ConfigError: If the configured preset, motion algorithm or DNN
            model does not exist.
    """
    preset = resolve_preset(config.detection)
    if source is None:
        source = create_source_from_config(config.source, start_frame=config.pipeline.start_frame)

    pipeline_config = PipelineConfig.from_settings(config.pipeline, config.detection)
    return PipelineEngine(source, preset, pipeline_config, detector_factory, tracker_builder)
