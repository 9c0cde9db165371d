"""
OpenCV DNN detector.

Loads Darknet YOLO (cfg + weights) or Caffe SSD (prototxt + caffemodel)
networks through cv2.dnn and decodes both output layouts into pixel-space
detections.
"""

from __future__ import annotations

import logging
import os
from typing import List, Optional, Sequence

import cv2
import numpy as np

from models.detection import Detection
from .base import Detector, DetectorCreationError, is_white_listed, parse_white_list
from .config_table import ConfigTable
from .registry import DetectorVariant, register_detector


def load_class_names(path: Optional[str]) -> List[str]:
    """Read one class name per line; missing path means numeric labels."""
    if not path:
        return []
    if not os.path.exists(path):
        raise DetectorCreationError(f"Class names file not found: {path}")
    with open(path, "r") as f:
        return [line.strip() for line in f if line.strip()]


class OpenCVDnnDetector(Detector):
    """Object detector backed by cv2.dnn."""

    def __init__(
        self,
        net: "cv2.dnn.Net",
        class_names: Sequence[str] = (),
        conf_threshold: float = 0.5,
        nms_threshold: float = 0.4,
        input_size: tuple = (416, 416),
        scale_factor: float = 1 / 255.0,
        mean: float = 0.0,
        swap_rb: bool = True,
        white_list: Sequence[str] = (),
    ) -> None:
        super().__init__()
        self._net = net
        self._out_names = net.getUnconnectedOutLayersNames()
        self.class_names = list(class_names)
        self.conf_threshold = conf_threshold
        self.nms_threshold = nms_threshold
        self.input_size = input_size
        self.scale_factor = scale_factor
        self.mean = mean
        self.swap_rb = swap_rb
        self._white_ids, self._white_names = parse_white_list(white_list)

    def _class_name(self, class_id: int) -> str:
        if 0 <= class_id < len(self.class_names):
            return self.class_names[class_id]
        return str(class_id)

    def detect(self, frame: np.ndarray) -> List[Detection]:
        height, width = frame.shape[:2]
        blob = cv2.dnn.blobFromImage(
            frame,
            scalefactor=self.scale_factor,
            size=self.input_size,
            mean=(self.mean, self.mean, self.mean),
            swapRB=self.swap_rb,
            crop=False,
        )
        self._net.setInput(blob)
        outputs = self._net.forward(self._out_names)

        boxes: List[List[int]] = []
        scores: List[float] = []
        class_ids: List[int] = []
        for out in outputs:
            if out.ndim == 4 and out.shape[-1] == 7:
                self._decode_ssd(out, width, height, boxes, scores, class_ids)
            else:
                self._decode_yolo(out, width, height, boxes, scores, class_ids)

        if not boxes:
            return []

        keep = cv2.dnn.NMSBoxes(boxes, scores, self.conf_threshold, self.nms_threshold)
        detections: List[Detection] = []
        for i in np.array(keep).flatten():
            x, y, w, h = boxes[i]
            class_id = class_ids[i]
            class_name = self._class_name(class_id)
            if not is_white_listed(class_id, class_name, self._white_ids, self._white_names):
                continue
            detections.append(
                Detection.from_xyxy(
                    float(x), float(y), float(x + w), float(y + h),
                    confidence=scores[i],
                    class_id=class_id,
                    class_name=class_name,
                )
            )
        return self._filter_small(detections)

    def _decode_ssd(self, out, width, height, boxes, scores, class_ids) -> None:
        # [batch, 1, N, (image_id, class_id, confidence, x1, y1, x2, y2)]
        for row in out.reshape(-1, 7):
            confidence = float(row[2])
            if confidence < self.conf_threshold:
                continue
            x1 = int(row[3] * width)
            y1 = int(row[4] * height)
            x2 = int(row[5] * width)
            y2 = int(row[6] * height)
            boxes.append([x1, y1, x2 - x1, y2 - y1])
            scores.append(confidence)
            class_ids.append(int(row[1]))

    def _decode_yolo(self, out, width, height, boxes, scores, class_ids) -> None:
        # [N, (cx, cy, w, h, objectness, class scores...)], normalized
        for row in out.reshape(-1, out.shape[-1]):
            class_scores = row[5:]
            if class_scores.size == 0:
                continue
            class_id = int(np.argmax(class_scores))
            confidence = float(class_scores[class_id])
            if confidence < self.conf_threshold:
                continue
            cx, cy, w, h = row[0] * width, row[1] * height, row[2] * width, row[3] * height
            boxes.append([int(cx - w / 2), int(cy - h / 2), int(w), int(h)])
            scores.append(confidence)
            class_ids.append(class_id)


def _dnn_constant(name: str, prefix: str) -> int:
    value = getattr(cv2.dnn, name, None)
    if value is None or not name.startswith(prefix):
        raise DetectorCreationError(f"Unknown OpenCV DNN selector: {name}")
    return value


@register_detector(DetectorVariant.DNN_OPENCV)
def create_dnn_detector(table: ConfigTable, frame: np.ndarray) -> Detector:
    model_config = table.require("modelConfiguration")
    model_binary = table.require("modelBinary")
    for path in (model_config, model_binary):
        if not os.path.exists(path):
            raise DetectorCreationError(f"Model file not found: {path}")

    try:
        net = cv2.dnn.readNet(model_binary, model_config)
    except cv2.error as e:
        raise DetectorCreationError(f"Failed to load network {model_binary}: {e}") from e

    net.setPreferableBackend(_dnn_constant(table.get("dnnBackend", "DNN_BACKEND_DEFAULT"), "DNN_BACKEND_"))
    net.setPreferableTarget(_dnn_constant(table.get("dnnTarget", "DNN_TARGET_CPU"), "DNN_TARGET_"))

    class_names = load_class_names(table.get("classNames"))
    logging.info(f"OpenCV DNN model loaded: {model_binary} ({len(class_names)} classes)")

    return OpenCVDnnDetector(
        net,
        class_names=class_names,
        conf_threshold=table.get_float("confidenceThreshold", 0.5),
        nms_threshold=table.get_float("nmsThreshold", 0.4),
        input_size=(table.get_int("inWidth", 416), table.get_int("inHeight", 416)),
        scale_factor=table.get_float("scaleFactor", 1 / 255.0),
        mean=table.get_float("mean", 0.0),
        swap_rb=table.get_bool("swapRB", True),
        white_list=table.get_all("white_list"),
    )
