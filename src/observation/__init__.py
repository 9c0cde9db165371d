"""
Observation layer: where frames come from.

Sources implement the ObservationSource interface and return FrameData
objects; the pipeline never talks to cv2.VideoCapture directly.
"""

from .base import ObservationSource, ObservationConfig
from .opencv_source import OpenCVSource, OpenCVSourceConfig, create_source_from_config

__all__ = [
    "ObservationSource",
    "ObservationConfig",
    "OpenCVSource",
    "OpenCVSourceConfig",
    "create_source_from_config",
]
