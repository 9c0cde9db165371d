"""
Typed models for the video tracking demo.

Frames, detections, tracks and configuration shared by every pipeline stage.
"""

from .frame import FrameData
from .detection import Detection, BoundingBox, Rect
from .track import Track, TrackState, TracePoint
from .config import (
    Config,
    SourceConfig,
    DetectionConfig,
    PipelineSettings,
)

__all__ = [
    # Frame
    "FrameData",
    # Detection
    "Detection",
    "BoundingBox",
    "Rect",
    # Tracking
    "Track",
    "TrackState",
    "TracePoint",
    # Config
    "Config",
    "SourceConfig",
    "DetectionConfig",
    "PipelineSettings",
]
