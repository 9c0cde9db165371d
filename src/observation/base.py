"""
ObservationSource interface for frame sources.

The pipeline reads decoded frames through this interface only, so a camera,
a video file, a stream URL or a test double are interchangeable:
- open() before the first read(), close() when done
- read() returns None once the source is exhausted
- fps reports the frame rate the source delivers, when it knows it
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional, Tuple

from models.frame import FrameData


@dataclass
class ObservationConfig:
    """
    Base configuration for observation sources.

    Attributes:
        source_id: Identifier used in logs and FrameData.source.
        resolution: Requested (width, height). None = source default.
        fps: Requested frame rate, also the fallback when the source
            cannot report one. None = unknown.
        metadata: Additional source-specific configuration.
    """
    source_id: str = "default"
    resolution: Optional[Tuple[int, int]] = None
    fps: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class ObservationSource(ABC):
    """
    Abstract frame source.

    Can be used as a context manager and iterated:
        with OpenCVSource(config) as source:
            for frame_data in source:
                process(frame_data)
    """

    def __init__(self, config: ObservationConfig):
        self._config = config
        self._is_open = False
        self._frame_index = 0

    @property
    def source_id(self) -> str:
        return self._config.source_id

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    def frame_index(self) -> int:
        """Number of frames read since open()."""
        return self._frame_index

    @property
    def fps(self) -> Optional[float]:
        """
        Frame rate of the source.

        Sources that can measure it override this; the default is the
        configured rate, which may be None.
        """
        return self._config.fps

    @abstractmethod
    def open(self) -> None:
        """
        Open the source. Must be called before read().

        Raises:
            RuntimeError: If the source cannot be opened.
        """

    @abstractmethod
    def read(self) -> Optional[FrameData]:
        """Next frame, or None when no more frames are available."""

    @abstractmethod
    def close(self) -> None:
        """Release the source. Safe to call more than once."""

    def __enter__(self) -> "ObservationSource":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __iter__(self) -> Iterator[FrameData]:
        if not self._is_open:
            raise RuntimeError("Source must be open before iterating")

        while True:
            frame_data = self.read()
            if frame_data is None:
                break
            yield frame_data
