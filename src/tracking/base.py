"""
Tracker interface.

The tracker owns its track set. The pipeline feeds it detections and reads
back immutable snapshots that stay valid until the next update().
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

import numpy as np

from models.detection import Detection
from models.track import TrackState


class Tracker(ABC):
    """Multi-object tracker interface."""

    @abstractmethod
    def update(
        self,
        detections: List[Detection],
        frame: Optional[np.ndarray] = None,
        timestamp: Optional[float] = None,
    ) -> None:
        """Advance the track set by one frame."""

    @abstractmethod
    def get_tracks(self) -> List[TrackState]:
        """Snapshots of the current tracks, ordered by track id."""
