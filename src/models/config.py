"""
Typed configuration models matching the YAML config structure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union


@dataclass
class SourceConfig:
    """Video source configuration."""
    device_id: Union[int, str] = 0
    resolution: Optional[List[int]] = None
    fps: Optional[float] = None
    rotate: int = 0
    flip_horizontal: bool = False
    flip_vertical: bool = False

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SourceConfig":
        """Adapter: Create from config dictionary."""
        return cls(
            device_id=d.get("device_id", 0),
            resolution=d.get("resolution"),
            fps=d.get("fps"),
            rotate=d.get("rotate", 0) or 0,
            flip_horizontal=d.get("flip_horizontal", False),
            flip_vertical=d.get("flip_vertical", False),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "device_id": self.device_id,
            "rotate": self.rotate,
            "flip_horizontal": self.flip_horizontal,
            "flip_vertical": self.flip_vertical,
        }
        if self.resolution is not None:
            d["resolution"] = self.resolution
        if self.fps is not None:
            d["fps"] = self.fps
        return d


@dataclass
class DetectionConfig:
    """
    Detection configuration.

    Attributes:
        preset: Name of the demo preset (motion, face, pedestrian, dnn, yolo).
        model_dir: Directory holding model/cascade files referenced by presets.
        motion_algorithm: Background subtractor of the motion preset
            (mog2, knn, mog, gmg, cnt).
        dnn_model: Network of the dnn preset (mobilenet_ssd, tiny_yolov3,
            yolov3, yolov4, tiny_yolov4).
        config: Backend table overrides; list values become repeated keys.
    """
    preset: str = "motion"
    model_dir: str = "data"
    motion_algorithm: str = "mog2"
    dnn_model: str = "mobilenet_ssd"
    config: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DetectionConfig":
        return cls(
            preset=d.get("preset", "motion"),
            model_dir=d.get("model_dir", "data"),
            motion_algorithm=d.get("motion_algorithm", "mog2"),
            dnn_model=d.get("dnn_model", "mobilenet_ssd"),
            config=dict(d.get("config") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "preset": self.preset,
            "model_dir": self.model_dir,
            "motion_algorithm": self.motion_algorithm,
            "dnn_model": self.dnn_model,
            "config": dict(self.config),
        }


@dataclass
class PipelineSettings:
    """Pipeline run options."""
    display: bool = False
    record: bool = False
    output_dir: str = "output/video"
    show_logs: bool = False
    start_frame: int = 0
    end_frame: int = 0
    stats_log_interval: float = 60.0

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "PipelineSettings":
        return cls(
            display=d.get("display", False),
            record=d.get("record", False),
            output_dir=d.get("output_dir", "output/video"),
            show_logs=d.get("show_logs", False),
            start_frame=d.get("start_frame", 0),
            end_frame=d.get("end_frame", 0),
            stats_log_interval=d.get("stats_log_interval", 60.0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "display": self.display,
            "record": self.record,
            "output_dir": self.output_dir,
            "show_logs": self.show_logs,
            "start_frame": self.start_frame,
            "end_frame": self.end_frame,
            "stats_log_interval": self.stats_log_interval,
        }


@dataclass
class Config:
    """
    Complete application configuration.

    This is a typed representation of the YAML config structure.
    """
    source: SourceConfig = field(default_factory=SourceConfig)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    pipeline: PipelineSettings = field(default_factory=PipelineSettings)
    log_path: str = "logs/vidtrack.log"
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Config":
        """Adapter: Create Config from raw dictionary (e.g., from load_config)."""
        return cls(
            source=SourceConfig.from_dict(d.get("source", {}) or {}),
            detection=DetectionConfig.from_dict(d.get("detection", {}) or {}),
            pipeline=PipelineSettings.from_dict(d.get("pipeline", {}) or {}),
            log_path=d.get("log_path", "logs/vidtrack.log"),
            log_level=d.get("log_level", "INFO"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert back to dictionary."""
        return {
            "source": self.source.to_dict(),
            "detection": self.detection.to_dict(),
            "pipeline": self.pipeline.to_dict(),
            "log_path": self.log_path,
            "log_level": self.log_level,
        }
