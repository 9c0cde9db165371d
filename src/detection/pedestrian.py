"""
Pedestrian detector using OpenCV's bundled HOG people detector.
"""

from __future__ import annotations

from typing import List

import cv2
import numpy as np

from models.detection import Detection
from .base import Detector, DetectorCreationError
from .config_table import ConfigTable
from .registry import DetectorVariant, register_detector


class HogPedestrianDetector(Detector):
    """Sliding-window HOG + linear SVM people detector."""

    def __init__(self, hit_threshold: float = 0.0, scale: float = 1.05) -> None:
        super().__init__()
        self._hog = cv2.HOGDescriptor()
        self._hog.setSVMDetector(cv2.HOGDescriptor_getDefaultPeopleDetector())
        self.hit_threshold = hit_threshold
        self.scale = scale

    def detect(self, frame: np.ndarray) -> List[Detection]:
        boxes, weights = self._hog.detectMultiScale(
            frame,
            hitThreshold=self.hit_threshold,
            winStride=(8, 8),
            padding=(8, 8),
            scale=self.scale,
        )
        detections = []
        for (x, y, w, h), weight in zip(boxes, np.ravel(weights) if len(boxes) else []):
            detections.append(
                Detection.from_xyxy(
                    float(x), float(y), float(x + w), float(y + h),
                    confidence=float(weight),
                    class_name="person",
                )
            )
        return self._filter_small(detections)


@register_detector(DetectorVariant.PEDESTRIAN_HOG)
def create_hog_detector(table: ConfigTable, frame: np.ndarray) -> Detector:
    detector_type = table.get("detectorType", "HOG")
    if detector_type.upper() != "HOG":
        raise DetectorCreationError(f"Unsupported pedestrian detectorType: {detector_type}")
    return HogPedestrianDetector(
        hit_threshold=table.get_float("hitThreshold", 0.0),
        scale=table.get_float("scale", 1.05),
    )

