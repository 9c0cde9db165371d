"""
Detector factory.

Backends register a construction function for their variant:

    @register_detector(DetectorVariant.MOTION_MOG2)
    def _create_mog2(table: ConfigTable, frame: np.ndarray) -> Detector:
        ...

The pipeline only calls create_detector(), so new backends plug in without
touching the pipeline's control flow.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

import numpy as np

from .base import Detector, DetectorCreationError
from .config_table import ConfigError, ConfigTable


class DetectorVariant(str, Enum):
    """Detection backends selectable by a pipeline."""

    MOTION_MOG2 = "motion_mog2"
    MOTION_KNN = "motion_knn"
    MOTION_MOG = "motion_mog"
    MOTION_GMG = "motion_gmg"
    MOTION_CNT = "motion_cnt"
    FACE_HAAR = "face_haar"
    PEDESTRIAN_HOG = "pedestrian_hog"
    DNN_OPENCV = "dnn_opencv"
    YOLO_ULTRALYTICS = "yolo_ultralytics"

    @property
    def is_motion(self) -> bool:
        return self.value.startswith("motion_")

    @property
    def is_neural(self) -> bool:
        return self in (DetectorVariant.DNN_OPENCV, DetectorVariant.YOLO_ULTRALYTICS)


DetectorBuilder = Callable[[ConfigTable, np.ndarray], Detector]

_REGISTRY: Dict[DetectorVariant, DetectorBuilder] = {}


def register_detector(variant: DetectorVariant) -> Callable[[DetectorBuilder], DetectorBuilder]:
    """Decorator registering a construction function for a variant."""
    def decorator(builder: DetectorBuilder) -> DetectorBuilder:
        if variant in _REGISTRY:
            logging.warning(f"Detector variant {variant.value} re-registered")
        _REGISTRY[variant] = builder
        return builder
    return decorator


def registered_variants() -> Tuple[DetectorVariant, ...]:
    _load_backends()
    return tuple(_REGISTRY)


def create_detector(
    variant: DetectorVariant,
    table: ConfigTable,
    reference_frame: np.ndarray,
) -> Optional[Detector]:
    """
    Construct a detector for variant from its configuration table.

    Args:
        variant: Backend to construct.
        table: Variant-specific configuration.
        reference_frame: First frame of the video, used for size defaults.

    Returns:
        The detector, or None when the frame is unusable, the variant is
        unknown, or the backend cannot be built. Failures are logged once
        and never retried.
    """
    _load_backends()

    if reference_frame is None or reference_frame.ndim < 2 or 0 in reference_frame.shape[:2]:
        logging.error(f"Cannot create {variant.value} detector: reference frame has no size")
        return None

    builder = _REGISTRY.get(variant)
    if builder is None:
        logging.error(f"Detector variant {variant.value} is not registered")
        return None

    try:
        detector = builder(table, reference_frame)
    except (ConfigError, DetectorCreationError) as e:
        logging.error(f"Failed to create {variant.value} detector: {e}")
        return None

    logging.info(f"Detector created: variant={variant.value}")
    return detector


def min_object_size_for(variant: DetectorVariant, width: int, height: int) -> Tuple[int, int]:
    """
    Minimum object size policy for a variant, derived from the frame size.

    Motion detectors use a square of frame_width / 20, the classic
    detectors frame / 20, and neural detectors frame / 40.
    """
    if variant.is_motion:
        side = width // 20
        return (side, side)
    if variant.is_neural:
        return (width // 40, height // 40)
    return (width // 20, height // 20)


_backends_loaded = False


def _load_backends() -> None:
    """Import backend modules so their @register_detector calls run."""
    global _backends_loaded
    if _backends_loaded:
        return
    _backends_loaded = True
    from . import motion, cascade, pedestrian, dnn, yolo  # noqa: F401
