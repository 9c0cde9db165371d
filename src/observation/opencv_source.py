"""
OpenCV-based observation source.

Supports:
- cameras (device_id as int, or a numeric string such as "0")
- video files (device_id as file path)
- stream URLs (device_id as str URL)
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Optional, Union
from urllib.parse import urlsplit, urlunsplit

import cv2
import numpy as np

from models.config import SourceConfig
from models.frame import FrameData
from .base import ObservationSource, ObservationConfig


def normalize_device_id(device_id: Union[int, str]) -> Union[int, str]:
    """Numeric strings (e.g. from the command line) select a camera index."""
    if isinstance(device_id, str) and device_id.strip().isdigit():
        return int(device_id.strip())
    return device_id


def display_name(device_id: Union[int, str]) -> str:
    """Device description safe for logs: URL credentials are masked."""
    if not isinstance(device_id, str) or "://" not in device_id:
        return str(device_id)
    parts = urlsplit(device_id)
    if parts.username is None:
        return device_id
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    return urlunsplit((parts.scheme, f"***@{host}", parts.path, parts.query, parts.fragment))


@dataclass
class OpenCVSourceConfig(ObservationConfig):
    """
    Configuration for OpenCV-based observation sources.

    Attributes:
        device_id: Camera index (int), file path or stream URL (str).
        max_retries: Attempts to open the device before giving up.
        start_frame: Frame to seek to after opening (files only).
        rotate: Rotation in degrees (0, 90, 180, 270).
        flip_horizontal: Flip frame horizontally.
        flip_vertical: Flip frame vertically.
    """
    device_id: Union[int, str] = 0
    max_retries: int = 3
    start_frame: int = 0
    rotate: int = 0
    flip_horizontal: bool = False
    flip_vertical: bool = False

    @classmethod
    def from_source_config(
        cls,
        source_cfg: SourceConfig,
        source_id: str = "main",
        start_frame: int = 0,
    ) -> "OpenCVSourceConfig":
        """Adapter: build from the typed `source` config section."""
        resolution = tuple(source_cfg.resolution) if source_cfg.resolution else None
        return cls(
            source_id=source_id,
            resolution=resolution,
            fps=source_cfg.fps,
            device_id=normalize_device_id(source_cfg.device_id),
            start_frame=start_frame,
            rotate=source_cfg.rotate,
            flip_horizontal=source_cfg.flip_horizontal,
            flip_vertical=source_cfg.flip_vertical,
        )


class OpenCVSource(ObservationSource):
    """
    Frame source backed by cv2.VideoCapture.

    Example:
        config = OpenCVSourceConfig(device_id="data/atrium.avi")
        with OpenCVSource(config) as source:
            for frame_data in source:
                process(frame_data.frame)
    """

    def __init__(self, config: OpenCVSourceConfig):
        super().__init__(config)
        self._opencv_config = config
        self._cap: Optional[cv2.VideoCapture] = None
        self._measured_fps: Optional[float] = None

    @property
    def device_id(self) -> Union[int, str]:
        return self._opencv_config.device_id

    @property
    def is_file(self) -> bool:
        return isinstance(self.device_id, str) and os.path.exists(self.device_id)

    @property
    def fps(self) -> Optional[float]:
        """Rate reported by the capture, falling back to the configured one."""
        if self._measured_fps:
            return self._measured_fps
        return self._config.fps

    def open(self) -> None:
        if self._is_open:
            return

        self._initialize()
        self._is_open = True
        self._frame_index = 0

        logging.info(
            f"OpenCVSource opened: source_id={self.source_id}, "
            f"device={display_name(self.device_id)}, fps={self.fps}"
        )

    def _initialize(self) -> None:
        cfg = self._opencv_config
        attempts = max(1, cfg.max_retries)

        for attempt in range(attempts):
            if attempt > 0:
                wait_time = min(2 ** attempt, 10)
                logging.info(f"Retrying open (attempt {attempt + 1}/{attempts}) after {wait_time}s")
                time.sleep(wait_time)

            self._cap = cv2.VideoCapture(self.device_id)
            if self._cap.isOpened():
                break
            self._cap.release()
            self._cap = None
            logging.warning(f"Failed to open device {display_name(self.device_id)}")
        else:
            raise RuntimeError(
                f"Failed to open device {display_name(self.device_id)} after {attempts} attempts"
            )

        # Cameras accept requested properties, files and streams ignore them
        if isinstance(self.device_id, int) and cfg.resolution:
            w, h = cfg.resolution
            self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, w)
            self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, h)
            if cfg.fps:
                self._cap.set(cv2.CAP_PROP_FPS, cfg.fps)

        reported = self._cap.get(cv2.CAP_PROP_FPS)
        self._measured_fps = float(reported) if reported and reported > 0 else None

        if cfg.start_frame > 0:
            self._cap.set(cv2.CAP_PROP_POS_FRAMES, cfg.start_frame)
            logging.info(f"Seeking to frame {cfg.start_frame}")

    def read(self) -> Optional[FrameData]:
        """Next frame, or None at end of file or on a read failure."""
        if not self._is_open or self._cap is None:
            return None

        ret, frame = self._cap.read()
        if not ret or frame is None:
            if self.is_file:
                logging.info("End of video file reached")
            else:
                logging.warning(f"Failed to read frame from {display_name(self.device_id)}")
            return None

        frame = self._apply_transforms(frame)
        self._frame_index += 1

        return FrameData.from_numpy(
            frame,
            timestamp=time.time(),
            frame_index=self._frame_index,
            source=self.source_id,
            fps=self.fps,
        )

    def _apply_transforms(self, frame: np.ndarray) -> np.ndarray:
        cfg = self._opencv_config

        if cfg.rotate == 90:
            frame = cv2.rotate(frame, cv2.ROTATE_90_CLOCKWISE)
        elif cfg.rotate == 180:
            frame = cv2.rotate(frame, cv2.ROTATE_180)
        elif cfg.rotate == 270:
            frame = cv2.rotate(frame, cv2.ROTATE_90_COUNTERCLOCKWISE)

        if cfg.flip_horizontal or cfg.flip_vertical:
            if cfg.flip_horizontal and cfg.flip_vertical:
                flip_code = -1
            elif cfg.flip_horizontal:
                flip_code = 1
            else:
                flip_code = 0
            frame = cv2.flip(frame, flip_code)

        return frame

    def close(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None
        self._is_open = False
        logging.info(f"OpenCVSource closed: source_id={self.source_id}")


def create_source_from_config(
    source_cfg: SourceConfig,
    source_id: str = "main",
    start_frame: int = 0,
) -> OpenCVSource:
    """Factory for the configured source."""
    return OpenCVSource(OpenCVSourceConfig.from_source_config(source_cfg, source_id, start_frame))
