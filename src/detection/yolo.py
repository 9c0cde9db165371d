"""
YOLO detector backed by Ultralytics.

Ultralytics is an optional dependency (the `yolo` extra); the variant fails
construction when it is not installed.
"""

from __future__ import annotations

import logging
import os
from typing import Any, List, Sequence

import numpy as np

from models.detection import Detection
from .base import Detector, DetectorCreationError, is_white_listed, parse_white_list
from .config_table import ConfigTable
from .registry import DetectorVariant, register_detector


class UltralyticsYoloDetector(Detector):
    def __init__(
        self,
        model: Any,
        conf_threshold: float = 0.25,
        iou_threshold: float = 0.45,
        white_list: Sequence[str] = (),
    ) -> None:
        super().__init__()
        self._model = model
        self.conf_threshold = conf_threshold
        self.iou_threshold = iou_threshold
        self._white_ids, self._white_names = parse_white_list(white_list)

    def detect(self, frame: np.ndarray) -> List[Detection]:
        results = self._model.predict(
            source=frame,
            conf=self.conf_threshold,
            iou=self.iou_threshold,
            verbose=False,
        )
        if not results:
            return []

        r0 = results[0]
        names = getattr(r0, "names", None) or {}
        boxes = getattr(r0, "boxes", None)
        if boxes is None:
            return []

        xyxy = boxes.xyxy.cpu().numpy() if hasattr(boxes.xyxy, "cpu") else np.asarray(boxes.xyxy)
        conf = boxes.conf.cpu().numpy() if hasattr(boxes.conf, "cpu") else np.asarray(boxes.conf)
        cls = boxes.cls.cpu().numpy() if hasattr(boxes.cls, "cpu") else np.asarray(boxes.cls)

        out: List[Detection] = []
        for (x1, y1, x2, y2), c, k in zip(xyxy, conf, cls):
            class_id = int(k)
            class_name = names.get(class_id) or str(class_id)
            if not is_white_listed(class_id, class_name, self._white_ids, self._white_names):
                continue
            out.append(
                Detection.from_xyxy(
                    float(x1), float(y1), float(x2), float(y2),
                    confidence=float(c),
                    class_id=class_id,
                    class_name=class_name,
                )
            )

        return self._filter_small(out)


@register_detector(DetectorVariant.YOLO_ULTRALYTICS)
def create_yolo_detector(table: ConfigTable, frame: np.ndarray) -> Detector:
    model_path = table.require("modelBinary")
    if not os.path.exists(model_path):
        raise DetectorCreationError(f"Model file not found: {model_path}")

    try:
        from ultralytics import YOLO  # type: ignore
    except ImportError as e:
        raise DetectorCreationError(
            "Ultralytics is not installed. Install with `pip install ultralytics` "
            "or pick a detection preset that does not need it."
        ) from e

    try:
        model = YOLO(model_path)
    except Exception as e:
        raise DetectorCreationError(f"Failed to load YOLO model {model_path}: {e}") from e
    logging.info(f"YOLO model loaded: {model_path}")
    return UltralyticsYoloDetector(
        model,
        conf_threshold=table.get_float("confidenceThreshold", 0.25),
        iou_threshold=table.get_float("nmsThreshold", 0.45),
        white_list=table.get_all("white_list"),
    )
