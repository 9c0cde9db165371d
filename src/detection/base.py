"""
Detection interfaces.

We keep this lightweight so the project can support multiple backends:
- classical CV (background subtraction, Haar cascades, HOG)
- neural networks through OpenCV DNN
- YOLO through Ultralytics
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

import numpy as np

from models.detection import Detection


class DetectorCreationError(RuntimeError):
    """Raised by a backend when it cannot be constructed from its config."""


class Detector(ABC):
    """Detector interface returning detections in pixel-space."""

    def __init__(self) -> None:
        self._min_object_size: Tuple[int, int] = (0, 0)

    @property
    def min_object_size(self) -> Tuple[int, int]:
        """Minimum (width, height) a detection must have to be reported."""
        return self._min_object_size

    def set_min_object_size(self, width: int, height: int) -> None:
        self._min_object_size = (max(0, int(width)), max(0, int(height)))

    @abstractmethod
    def detect(self, frame: np.ndarray) -> List[Detection]:
        raise NotImplementedError

    def calc_motion_map(self, frame: np.ndarray) -> None:
        """Draw the detector's motion map onto frame. Most backends have none."""
        return None

    def _filter_small(self, detections: List[Detection]) -> List[Detection]:
        min_w, min_h = self._min_object_size
        if min_w <= 0 and min_h <= 0:
            return detections
        return [d for d in detections if d.bbox.width >= min_w and d.bbox.height >= min_h]


def parse_white_list(entries: Sequence[str]) -> Tuple[set, set]:
    """
    Split white_list entries into class ids and class names.

    Entries are either numeric class ids ("2") or names ("car").
    """
    ids = set()
    names = set()
    for entry in entries:
        entry = entry.strip()
        if not entry:
            continue
        if entry.lstrip("-").isdigit():
            ids.add(int(entry))
        else:
            names.add(entry.lower())
    return ids, names


def is_white_listed(
    class_id: Optional[int],
    class_name: Optional[str],
    ids: set,
    names: set,
) -> bool:
    """Empty allow-list keeps everything."""
    if not ids and not names:
        return True
    if class_id is not None and class_id in ids:
        return True
    return class_name is not None and class_name.lower() in names
