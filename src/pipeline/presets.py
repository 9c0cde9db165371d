"""
Demo presets.

A preset ties one detector variant to the tracker settings, robustness
thresholds and overlay style that work well for it. Presets are looked up
by name from the `detection.preset` config key; YAML `detection.config`
entries override the preset's backend table key by key.

The motion preset runs one of several background subtractors
(`detection.motion_algorithm`) and the dnn preset one of several networks
(`detection.dnn_model`); resolve_preset() applies both choices.
"""

from __future__ import annotations

import dataclasses
import functools
import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from detection import ConfigError, ConfigTable, DetectorVariant
from models.config import DetectionConfig
from tracking import DistanceType, FilterGoal, KalmanType, LostTrackType, MatchType, TrackerSettings
from tracking.settings import DEFAULT_FPS, cv_round
from .stages.annotate import COLOR_LABEL_BG, AnnotateStage, Color, LabelMode
from .stages.classify import ClassifyStage, RobustnessThresholds


# Motion preset abandoned-object timing, seconds
MOTION_MIN_STATIC_TIME = 5.0
MOTION_MAX_STATIC_TIME = 10.0
MOTION_MAX_SPEED_FOR_STATIC = 10.0

MOTION_ALGORITHMS: Dict[str, DetectorVariant] = {
    "mog2": DetectorVariant.MOTION_MOG2,
    "knn": DetectorVariant.MOTION_KNN,
    "mog": DetectorVariant.MOTION_MOG,
    "gmg": DetectorVariant.MOTION_GMG,
    "cnt": DetectorVariant.MOTION_CNT,
}
DEFAULT_MOTION_ALGORITHM = "mog2"


@dataclass(frozen=True)
class DnnModel:
    """Files and input preprocessing of one cv2.dnn network."""
    config_file: str
    weights_file: str
    names_file: str
    confidence: float
    input_size: int
    scale_factor: float
    mean: float
    swap_rb: bool


_DARKNET = dict(input_size=416, scale_factor=1 / 255.0, mean=0.0, swap_rb=True)

DNN_MODELS: Dict[str, DnnModel] = {
    "tiny_yolov3": DnnModel("yolov3-tiny.cfg", "yolov3-tiny.weights", "coco.names", 0.5, **_DARKNET),
    "yolov3": DnnModel("yolov3.cfg", "yolov3.weights", "coco.names", 0.7, **_DARKNET),
    "yolov4": DnnModel("yolov4.cfg", "yolov4.weights", "coco.names", 0.5, **_DARKNET),
    "tiny_yolov4": DnnModel("yolov4-tiny.cfg", "yolov4-tiny.weights", "coco.names", 0.5, **_DARKNET),
    "mobilenet_ssd": DnnModel(
        "MobileNetSSD_deploy.prototxt",
        "MobileNetSSD_deploy.caffemodel",
        "voc.names",
        0.5,
        input_size=300,
        scale_factor=0.007843,
        mean=127.5,
        swap_rb=False,
    ),
}
DEFAULT_DNN_MODEL = "mobilenet_ssd"

# COCO class names as reported by Ultralytics models
YOLO_WHITE_LIST = ("person", "car", "bicycle", "motorcycle", "bus", "truck")


TableFactory = Callable[[str, float], ConfigTable]
SettingsFactory = Callable[[int, int, float], TrackerSettings]
ThresholdsFactory = Callable[[float], RobustnessThresholds]


@dataclass(frozen=True)
class Preset:
    """
    One runnable demo configuration.

    Attributes:
        name: Preset name used in config files.
        variant: Detector backend.
        table_factory: (model_dir, fps) -> backend configuration table.
        settings_factory: (frame_width, frame_height, fps) -> tracker settings.
        thresholds_factory: fps -> robustness thresholds.
        label_mode: Text drawn above moving tracks.
        draw_trajectory: Draw trajectories of moving tracks.
        abandoned_path: Render static tracks as abandoned objects.
        motion_map: Tint the detector's motion map onto the output.
        label_color: Background color of moving-track labels.
    """
    name: str
    variant: DetectorVariant
    table_factory: TableFactory
    settings_factory: SettingsFactory
    thresholds_factory: ThresholdsFactory
    label_mode: LabelMode = LabelMode.NONE
    draw_trajectory: bool = True
    abandoned_path: bool = False
    motion_map: bool = False
    label_color: Color = COLOR_LABEL_BG

    def build_table(
        self,
        model_dir: str,
        fps: Optional[float],
        overrides: Optional[Mapping[str, Any]] = None,
    ) -> ConfigTable:
        """Backend table with config overrides applied."""
        table = self.table_factory(model_dir, fps or DEFAULT_FPS)
        if overrides:
            table.update(ConfigTable.from_dict(overrides))
        return table

    def tracker_settings(self, frame_width: int, frame_height: int, fps: Optional[float]) -> TrackerSettings:
        if fps is None or fps <= 0:
            logging.warning(f"Preset {self.name}: invalid frame rate {fps!r}, using {DEFAULT_FPS}")
            fps = DEFAULT_FPS
        return self.settings_factory(frame_width, frame_height, fps)

    def classify_stage(self, fps: Optional[float]) -> ClassifyStage:
        thresholds = self.thresholds_factory(fps or DEFAULT_FPS)
        return ClassifyStage(thresholds, abandoned_path=self.abandoned_path)

    def annotate_stage(self) -> AnnotateStage:
        return AnnotateStage(
            label_mode=self.label_mode,
            draw_trajectory=self.draw_trajectory,
            label_color=self.label_color,
        )


# motion

def _motion_table(model_dir: str, fps: float, algorithm: str = DEFAULT_MOTION_ALGORITHM) -> ConfigTable:
    """Subtractor table; history lengths scale with the static time."""
    static_frames = MOTION_MIN_STATIC_TIME * fps
    table = ConfigTable()
    if algorithm == "mog2":
        table.add("history", cv_round(20 * static_frames))
        table.add("varThreshold", 10)
        table.add("detectShadows", 1)
    elif algorithm == "knn":
        table.add("history", cv_round(20 * static_frames))
        table.add("dist2Threshold", 400)
        table.add("detectShadows", 1)
    elif algorithm == "mog":
        table.add("history", cv_round(50 * static_frames))
        table.add("nmixtures", 3)
        table.add("backgroundRatio", 0.7)
        table.add("noiseSigma", 0)
    elif algorithm == "gmg":
        table.add("initializationFrames", 50)
        table.add("decisionThreshold", 0.7)
    elif algorithm == "cnt":
        table.add("minPixelStability", 15)
        table.add("maxPixelStability", cv_round(20 * static_frames))
        table.add("useHistory", 1)
        table.add("isParallel", 1)
    else:
        raise ConfigError(f"Unknown motion algorithm '{algorithm}'")
    return table


def _motion_settings(width: int, height: int, fps: float) -> TrackerSettings:
    settings = TrackerSettings(
        distance_type=DistanceType.RECTS,
        kalman_type=KalmanType.LINEAR,
        filter_goal=FilterGoal.CENTER,
        lost_track_type=LostTrackType.CSRT,
        match_type=MatchType.HUNGARIAN,
        use_acceleration=False,
        dt=0.2,
        accel_noise_mag=0.2,
        dist_thres=0.95,
        min_area_radius_pix=-1.0,
        min_area_radius_k=0.8,
        use_abandoned_detection=True,
        min_static_time=MOTION_MIN_STATIC_TIME,
        max_static_time=MOTION_MAX_STATIC_TIME,
        max_speed_for_static=MOTION_MAX_SPEED_FOR_STATIC,
    )
    settings.derive_time_constants(fps)
    return settings


def _motion_thresholds(fps: float) -> RobustnessThresholds:
    return RobustnessThresholds(cv_round(fps / 4), 0.7, (0.1, 8.0))


# face

def _face_table(model_dir: str, fps: float) -> ConfigTable:
    table = ConfigTable()
    table.add("cascadeFileName", os.path.join(model_dir, "haarcascade_frontalface_alt2.xml"))
    return table


def _face_settings(width: int, height: int, fps: float) -> TrackerSettings:
    settings = TrackerSettings(
        distance_type=DistanceType.JACCARD,
        kalman_type=KalmanType.UNSCENTED,
        filter_goal=FilterGoal.RECT,
        lost_track_type=LostTrackType.CSRT,
        match_type=MatchType.HUNGARIAN,
        dt=0.3,
        accel_noise_mag=0.1,
        dist_thres=0.8,
        min_area_radius_pix=height / 20,
    )
    settings.derive_time_constants(fps, skip_k=0.5, trace_k=5.0)
    return settings


# pedestrian

def _pedestrian_table(model_dir: str, fps: float) -> ConfigTable:
    table = ConfigTable()
    table.add("detectorType", "HOG")
    return table


def _pedestrian_settings(width: int, height: int, fps: float) -> TrackerSettings:
    settings = TrackerSettings(
        distance_type=DistanceType.RECTS,
        kalman_type=KalmanType.LINEAR,
        filter_goal=FilterGoal.RECT,
        lost_track_type=LostTrackType.CSRT,
        match_type=MatchType.HUNGARIAN,
        dt=0.3,
        accel_noise_mag=0.1,
        dist_thres=0.8,
        min_area_radius_pix=height / 20,
    )
    settings.derive_time_constants(fps, skip_k=1.0, trace_k=5.0)
    return settings


# dnn (Darknet YOLO or MobileNet-SSD through cv2.dnn)

def _dnn_table(model_dir: str, fps: float, model: str = DEFAULT_DNN_MODEL) -> ConfigTable:
    spec = DNN_MODELS.get(model)
    if spec is None:
        raise ConfigError(f"Unknown DNN model '{model}'")
    table = ConfigTable()
    table.add("modelConfiguration", os.path.join(model_dir, spec.config_file))
    table.add("modelBinary", os.path.join(model_dir, spec.weights_file))
    table.add("classNames", os.path.join(model_dir, spec.names_file))
    table.add("confidenceThreshold", spec.confidence)
    table.add("inWidth", spec.input_size)
    table.add("inHeight", spec.input_size)
    table.add("scaleFactor", spec.scale_factor)
    table.add("mean", spec.mean)
    table.add("swapRB", spec.swap_rb)
    table.add("dnnBackend", "DNN_BACKEND_DEFAULT")
    table.add("dnnTarget", "DNN_TARGET_CPU")
    return table


def _dnn_settings(width: int, height: int, fps: float) -> TrackerSettings:
    settings = TrackerSettings(
        distance_type=DistanceType.CENTERS,
        kalman_type=KalmanType.LINEAR,
        filter_goal=FilterGoal.RECT,
        lost_track_type=LostTrackType.CSRT,
        match_type=MatchType.HUNGARIAN,
        dt=0.4,
        accel_noise_mag=0.2,
        dist_thres=0.8,
        min_area_radius_pix=-1.0,
        min_area_radius_k=0.8,
    )
    settings.derive_time_constants(fps, skip_k=2.0, trace_k=2.0)
    return settings


# yolo (Ultralytics)

def _yolo_table(model_dir: str, fps: float) -> ConfigTable:
    table = ConfigTable()
    table.add("modelBinary", os.path.join(model_dir, "yolov8n.pt"))
    table.add("confidenceThreshold", 0.5)
    for name in YOLO_WHITE_LIST:
        table.add("white_list", name)
    return table


def _yolo_settings(width: int, height: int, fps: float) -> TrackerSettings:
    settings = TrackerSettings(
        distance_type=DistanceType.CENTERS,
        kalman_type=KalmanType.LINEAR,
        filter_goal=FilterGoal.CENTER,
        lost_track_type=LostTrackType.KCF,
        match_type=MatchType.HUNGARIAN,
        dt=0.3,
        accel_noise_mag=0.2,
        dist_thres=0.8,
        min_area_radius_pix=height / 20,
    )
    settings.add_near_types("car", "bus", False)
    settings.add_near_types("car", "truck", False)
    settings.add_near_types("person", "bicycle", True)
    settings.add_near_types("person", "motorcycle", True)
    settings.derive_time_constants(fps, skip_k=2.0, trace_k=5.0)
    return settings


PRESETS: Dict[str, Preset] = {
    "motion": Preset(
        name="motion",
        variant=DetectorVariant.MOTION_MOG2,
        table_factory=_motion_table,
        settings_factory=_motion_settings,
        thresholds_factory=_motion_thresholds,
        abandoned_path=True,
        motion_map=True,
    ),
    "face": Preset(
        name="face",
        variant=DetectorVariant.FACE_HAAR,
        table_factory=_face_table,
        settings_factory=_face_settings,
        thresholds_factory=lambda fps: RobustnessThresholds(8, 0.4),
    ),
    "pedestrian": Preset(
        name="pedestrian",
        variant=DetectorVariant.PEDESTRIAN_HOG,
        table_factory=_pedestrian_table,
        settings_factory=_pedestrian_settings,
        thresholds_factory=lambda fps: RobustnessThresholds(cv_round(fps / 2), 0.4),
    ),
    "dnn": Preset(
        name="dnn",
        variant=DetectorVariant.DNN_OPENCV,
        table_factory=_dnn_table,
        settings_factory=_dnn_settings,
        thresholds_factory=lambda fps: RobustnessThresholds(3, 0.5),
        label_mode=LabelMode.TYPE_CONFIDENCE,
        draw_trajectory=False,
    ),
    "yolo": Preset(
        name="yolo",
        variant=DetectorVariant.YOLO_ULTRALYTICS,
        table_factory=_yolo_table,
        settings_factory=_yolo_settings,
        thresholds_factory=lambda fps: RobustnessThresholds(2, 0.5),
        label_mode=LabelMode.TYPE_VELOCITY_CONFIDENCE,
    ),
}


def get_preset(name: str) -> Preset:
    try:
        return PRESETS[name]
    except KeyError:
        raise ConfigError(
            f"Unknown detection preset '{name}' (available: {', '.join(sorted(PRESETS))})"
        ) from None


def preset_names() -> Tuple[str, ...]:
    return tuple(PRESETS)


def motion_preset(algorithm: str = DEFAULT_MOTION_ALGORITHM) -> Preset:
    """Motion preset running the given background subtractor."""
    variant = MOTION_ALGORITHMS.get(algorithm)
    if variant is None:
        raise ConfigError(
            f"Unknown motion algorithm '{algorithm}' (available: {', '.join(MOTION_ALGORITHMS)})"
        )
    return dataclasses.replace(
        PRESETS["motion"],
        variant=variant,
        table_factory=functools.partial(_motion_table, algorithm=algorithm),
    )


def dnn_preset(model: str = DEFAULT_DNN_MODEL) -> Preset:
    """DNN preset running the given network."""
    if model not in DNN_MODELS:
        raise ConfigError(f"Unknown DNN model '{model}' (available: {', '.join(DNN_MODELS)})")
    return dataclasses.replace(
        PRESETS["dnn"],
        table_factory=functools.partial(_dnn_table, model=model),
    )


def resolve_preset(detection: DetectionConfig) -> Preset:
    """Preset named by the detection config, with its algorithm or model applied."""
    preset = get_preset(detection.preset)
    if preset.name == "motion":
        return motion_preset(detection.motion_algorithm)
    if preset.name == "dnn":
        return dnn_preset(detection.dnn_model)
    return preset
