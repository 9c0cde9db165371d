"""
Motion detection using background subtraction and contour analysis.

Variants differ only in the OpenCV background subtractor; the mask
post-processing is shared. MOG, GMG and CNT live in the cv2.bgsegm contrib
module and fail construction when it is not installed.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional

import cv2
import numpy as np

from models.detection import Detection
from .base import Detector, DetectorCreationError
from .config_table import ConfigTable
from .registry import DetectorVariant, register_detector


class MotionDetector(Detector):
    """Detect moving objects as foreground blobs."""

    def __init__(
        self,
        subtractor: Any,
        frame_size: tuple,
        max_width_ratio: float = 0.8,
        max_height_ratio: float = 0.8,
        kernel_size: int = 3,
    ) -> None:
        """
        Initialize the motion detector.

        Args:
            subtractor: OpenCV background subtractor (anything with apply()).
            frame_size: (width, height) of the video.
            max_width_ratio: Maximum width as ratio of frame width.
            max_height_ratio: Maximum height as ratio of frame height.
            kernel_size: Size of the morphological kernel used for denoising.
        """
        super().__init__()
        self.bg_subtractor = subtractor
        self.frame_width, self.frame_height = frame_size
        self.max_width_ratio = max_width_ratio
        self.max_height_ratio = max_height_ratio
        self.kernel = np.ones((kernel_size, kernel_size), np.uint8)
        self._fg_mask: Optional[np.ndarray] = None

        logging.info(f"Motion detector initialized ({type(subtractor).__name__})")

    def detect(self, frame: np.ndarray) -> List[Detection]:
        """
        Detect moving objects in the frame.

        Args:
            frame: Input frame (BGR).

        Returns:
            Detections for foreground blobs above the minimum object size.
        """
        fg_mask = self.bg_subtractor.apply(frame)

        # Remove noise
        opening = cv2.morphologyEx(fg_mask, cv2.MORPH_OPEN, self.kernel)
        closing = cv2.morphologyEx(opening, cv2.MORPH_CLOSE, self.kernel)

        # Shadows are marked gray (127) by MOG2/KNN
        _, thresholded = cv2.threshold(closing, 200, 255, cv2.THRESH_BINARY)
        self._fg_mask = thresholded

        contours, _ = cv2.findContours(thresholded, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)

        frame_height, frame_width = frame.shape[:2]
        detections: List[Detection] = []
        for contour in contours:
            x, y, w, h = cv2.boundingRect(contour)

            # Oversized blobs are usually lighting changes
            if w > frame_width * self.max_width_ratio or h > frame_height * self.max_height_ratio:
                continue

            detections.append(Detection.from_xyxy(float(x), float(y), float(x + w), float(y + h)))

        return self._filter_small(detections)

    def calc_motion_map(self, frame: np.ndarray) -> None:
        """Tint foreground pixels of the last mask onto frame."""
        if self._fg_mask is None or self._fg_mask.shape[:2] != frame.shape[:2]:
            return
        mask = self._fg_mask > 0
        if not mask.any():
            return
        tint = np.array([0, 0, 255], dtype=np.uint16)
        pixels = frame[mask].astype(np.uint16)
        frame[mask] = ((pixels + tint) // 2).astype(np.uint8)


def _bgsegm_factory(name: str) -> Callable[..., Any]:
    bgsegm = getattr(cv2, "bgsegm", None)
    if bgsegm is None:
        raise DetectorCreationError(
            "cv2.bgsegm is not available; install opencv-contrib-python "
            "or use the motion_mog2 / motion_knn variants"
        )
    try:
        return getattr(bgsegm, name)
    except AttributeError as e:
        raise DetectorCreationError(f"cv2.bgsegm has no {name}") from e


def _frame_size(frame: np.ndarray) -> tuple:
    return (frame.shape[1], frame.shape[0])


@register_detector(DetectorVariant.MOTION_MOG2)
def create_mog2_detector(table: ConfigTable, frame: np.ndarray) -> Detector:
    subtractor = cv2.createBackgroundSubtractorMOG2(
        history=table.get_int("history", 500),
        varThreshold=table.get_float("varThreshold", 16.0),
        detectShadows=table.get_bool("detectShadows", True),
    )
    return MotionDetector(subtractor, _frame_size(frame))


@register_detector(DetectorVariant.MOTION_KNN)
def create_knn_detector(table: ConfigTable, frame: np.ndarray) -> Detector:
    subtractor = cv2.createBackgroundSubtractorKNN(
        history=table.get_int("history", 500),
        dist2Threshold=table.get_float("dist2Threshold", 400.0),
        detectShadows=table.get_bool("detectShadows", True),
    )
    return MotionDetector(subtractor, _frame_size(frame))


@register_detector(DetectorVariant.MOTION_MOG)
def create_mog_detector(table: ConfigTable, frame: np.ndarray) -> Detector:
    factory = _bgsegm_factory("createBackgroundSubtractorMOG")
    subtractor = factory(
        history=table.get_int("history", 200),
        nmixtures=table.get_int("nmixtures", 5),
        backgroundRatio=table.get_float("backgroundRatio", 0.7),
        noiseSigma=table.get_float("noiseSigma", 0.0),
    )
    return MotionDetector(subtractor, _frame_size(frame))


@register_detector(DetectorVariant.MOTION_GMG)
def create_gmg_detector(table: ConfigTable, frame: np.ndarray) -> Detector:
    factory = _bgsegm_factory("createBackgroundSubtractorGMG")
    subtractor = factory(
        initializationFrames=table.get_int("initializationFrames", 120),
        decisionThreshold=table.get_float("decisionThreshold", 0.8),
    )
    return MotionDetector(subtractor, _frame_size(frame))


@register_detector(DetectorVariant.MOTION_CNT)
def create_cnt_detector(table: ConfigTable, frame: np.ndarray) -> Detector:
    factory = _bgsegm_factory("createBackgroundSubtractorCNT")
    subtractor = factory(
        minPixelStability=table.get_int("minPixelStability", 15),
        useHistory=table.get_bool("useHistory", True),
        maxPixelStability=table.get_int("maxPixelStability", 15 * 60),
        isParallel=table.get_bool("isParallel", True),
    )
    return MotionDetector(subtractor, _frame_size(frame))
