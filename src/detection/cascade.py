"""
Haar cascade face detector.
"""

from __future__ import annotations

import logging
import os
from typing import List

import cv2
import numpy as np

from models.detection import Detection
from .base import Detector, DetectorCreationError
from .config_table import ConfigTable
from .registry import DetectorVariant, register_detector


class CascadeDetector(Detector):
    """Run an OpenCV cascade classifier on the grayscale frame."""

    def __init__(
        self,
        classifier: cv2.CascadeClassifier,
        scale_factor: float = 1.1,
        min_neighbors: int = 3,
        class_name: str = "face",
    ) -> None:
        super().__init__()
        self._classifier = classifier
        self.scale_factor = scale_factor
        self.min_neighbors = min_neighbors
        self.class_name = class_name

    def detect(self, frame: np.ndarray) -> List[Detection]:
        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY) if frame.ndim == 3 else frame
        gray = cv2.equalizeHist(gray)
        boxes = self._classifier.detectMultiScale(
            gray,
            scaleFactor=self.scale_factor,
            minNeighbors=self.min_neighbors,
            minSize=self.min_object_size,
        )
        return [
            Detection.from_xyxy(float(x), float(y), float(x + w), float(y + h), class_name=self.class_name)
            for (x, y, w, h) in boxes
        ]


@register_detector(DetectorVariant.FACE_HAAR)
def create_face_detector(table: ConfigTable, frame: np.ndarray) -> Detector:
    cascade_file = table.require("cascadeFileName")
    if not os.path.exists(cascade_file):
        raise DetectorCreationError(f"Cascade file not found: {cascade_file}")

    classifier = cv2.CascadeClassifier(cascade_file)
    if classifier.empty():
        raise DetectorCreationError(f"Failed to load cascade: {cascade_file}")

    logging.info(f"Face cascade loaded: {cascade_file}")
    return CascadeDetector(
        classifier,
        scale_factor=table.get_float("scaleFactor", 1.1),
        min_neighbors=table.get_int("minNeighbors", 3),
    )
