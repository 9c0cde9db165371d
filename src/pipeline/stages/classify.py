"""
Classify stage.

Decides which tracks are reliable enough to display and routes static
(abandoned) tracks to their own rendering path. Classification only reads
track snapshots; it never changes tracker state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

from models.track import TrackState


DEFAULT_ASPECT_RANGE: Tuple[float, float] = (0.1, 8.0)


def is_robust(
    track: TrackState,
    min_trajectory_size: int,
    min_raw_point_ratio: float,
    aspect_range: Tuple[float, float] = DEFAULT_ASPECT_RANGE,
) -> bool:
    """
    Check whether a track is reliable enough to be shown.

    A track is robust when its trajectory holds at least min_trajectory_size
    points, at least min_raw_point_ratio of those points are real detections
    rather than predictions, and its width / height lies within aspect_range.
    """
    if len(track.trace) < min_trajectory_size:
        return False
    if track.raw_point_ratio < min_raw_point_ratio:
        return False
    min_aspect, max_aspect = aspect_range
    return min_aspect <= track.bbox.aspect_ratio <= max_aspect


def is_static(track: TrackState) -> bool:
    """Static/abandoned flag as set by the tracker."""
    return track.is_static


@dataclass(frozen=True)
class RobustnessThresholds:
    """
    Acceptance thresholds for is_robust().

    Attributes:
        min_trajectory_size: Minimum trajectory length.
        min_raw_point_ratio: Minimum fraction of detected (non-predicted) points.
        aspect_range: Allowed (min, max) width / height.
    """
    min_trajectory_size: int = 3
    min_raw_point_ratio: float = 0.5
    aspect_range: Tuple[float, float] = DEFAULT_ASPECT_RANGE

    def accepts(self, track: TrackState) -> bool:
        return is_robust(
            track,
            self.min_trajectory_size,
            self.min_raw_point_ratio,
            self.aspect_range,
        )


@dataclass
class Classification:
    """
    Result of classifying one frame's tracks. Every track is in exactly one list.

    Attributes:
        moving: Robust, non-static tracks.
        abandoned: Static tracks (only when the abandoned path is enabled).
        rejected: Tracks that failed the robustness check.
    """
    moving: List[TrackState] = field(default_factory=list)
    abandoned: List[TrackState] = field(default_factory=list)
    rejected: List[TrackState] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.moving) + len(self.abandoned) + len(self.rejected)


class ClassifyStage:
    """
    Pipeline stage that sorts tracks into moving, abandoned and rejected.

    Example:
        stage = ClassifyStage(RobustnessThresholds(8, 0.4), abandoned_path=False)
        result = stage.process(tracker.get_tracks())
    """

    def __init__(self, thresholds: RobustnessThresholds, abandoned_path: bool = False):
        """
        Args:
            thresholds: Robustness thresholds for moving tracks.
            abandoned_path: Route static tracks to the abandoned list. When
                off, static flags are ignored.
        """
        self.thresholds = thresholds
        self.abandoned_path = abandoned_path

    def process(self, tracks: Sequence[TrackState]) -> Classification:
        result = Classification()
        for track in tracks:
            if self.abandoned_path and is_static(track):
                result.abandoned.append(track)
            elif self.thresholds.accepts(track):
                result.moving.append(track)
            else:
                result.rejected.append(track)
        return result
