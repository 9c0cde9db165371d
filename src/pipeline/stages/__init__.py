"""
Pipeline stages.

Each stage handles a specific part of the processing pipeline:
- classify: robust / abandoned / rejected split of the tracks
- annotate: frame overlay
"""

from .annotate import AnnotateStage, LabelMode
from .classify import Classification, ClassifyStage, RobustnessThresholds, is_robust, is_static

__all__ = [
    "AnnotateStage",
    "LabelMode",
    "Classification",
    "ClassifyStage",
    "RobustnessThresholds",
    "is_robust",
    "is_static",
]
