"""
Tracker settings.

A TrackerSettings value is assembled once per pipeline run from fixed
constants and the video's frame size and frame rate, then handed to the
tracker builder. It is never changed after the tracker is constructed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Optional


DEFAULT_FPS = 25.0
DEFAULT_MIN_STATIC_TIME = 5.0


class DistanceType(str, Enum):
    """How detections are compared with existing tracks."""
    CENTERS = "centers"
    RECTS = "rects"
    JACCARD = "jaccard"


class KalmanType(str, Enum):
    LINEAR = "linear"
    UNSCENTED = "unscented"


class FilterGoal(str, Enum):
    """Tracked state: center point only, or center plus size."""
    CENTER = "center"
    RECT = "rect"


class LostTrackType(str, Enum):
    """Visual tracker used to follow an object while detections are missing."""
    NONE = "none"
    KCF = "kcf"
    CSRT = "csrt"
    MIL = "mil"


class MatchType(str, Enum):
    HUNGARIAN = "hungarian"
    BIPART = "bipart"


def cv_round(value: float) -> int:
    """Round to nearest, ties to even, like OpenCV's cvRound."""
    return int(round(value))


@dataclass
class TrackerSettings:
    """
    Configuration for the multi-object tracker.

    Attributes:
        distance_type: Metric used to match detections to tracks.
        kalman_type: Kalman filter family.
        filter_goal: Whether the filter tracks the center or the full box.
        lost_track_type: Visual tracker for lost tracks (recorded only).
        match_type: Assignment strategy.
        use_acceleration: Constant acceleration instead of constant velocity.
        dt: Kalman time step.
        accel_noise_mag: Process noise magnitude.
        dist_thres: Maximum normalized distance for a match (0..1).
        min_area_radius_pix: Minimum gating radius in pixels, -1 for relative.
        min_area_radius_k: Relative gating radius as a fraction of box size.
        max_allowed_skipped_frames: Frames without a match before a track drops.
        max_trace_length: Maximum number of trajectory points kept per track.
        use_abandoned_detection: Flag stationary objects as abandoned.
        min_static_time: Seconds an object must stay still to be abandoned.
        max_static_time: Seconds an abandoned object is kept without matches.
        max_speed_for_static: Speed (px/frame) below which an object is still.
        near_types: Pairs of class names treated as the same object, mapped
            to whether the track adopts the newer class on a match.
        fps: Frame rate the time constants were derived from.
    """
    distance_type: DistanceType = DistanceType.CENTERS
    kalman_type: KalmanType = KalmanType.LINEAR
    filter_goal: FilterGoal = FilterGoal.CENTER
    lost_track_type: LostTrackType = LostTrackType.NONE
    match_type: MatchType = MatchType.HUNGARIAN
    use_acceleration: bool = False
    dt: float = 0.2
    accel_noise_mag: float = 0.1
    dist_thres: float = 0.8
    min_area_radius_pix: float = -1.0
    min_area_radius_k: float = 0.8
    max_allowed_skipped_frames: int = 25
    max_trace_length: int = 50
    use_abandoned_detection: bool = False
    min_static_time: Optional[float] = None
    max_static_time: Optional[float] = None
    max_speed_for_static: float = 1.0
    near_types: Dict[FrozenSet[str], bool] = field(default_factory=dict)
    fps: float = DEFAULT_FPS

    def set_distance(self, distance_type: DistanceType) -> None:
        self.distance_type = distance_type

    def add_near_types(self, type1: str, type2: str, merge: bool) -> None:
        """Declare two object classes interchangeable during matching."""
        self.near_types[frozenset((type1, type2))] = merge

    def is_near_types(self, type1: Optional[str], type2: Optional[str]) -> bool:
        if type1 is None or type2 is None or type1 == type2:
            return True
        return frozenset((type1, type2)) in self.near_types

    def merge_near_types(self, type1: str, type2: str) -> bool:
        """Whether a track of type1 should take over type2 from a detection."""
        return self.near_types.get(frozenset((type1, type2)), False)

    def derive_time_constants(
        self,
        fps: Optional[float],
        skip_k: float = 2.0,
        trace_k: float = 4.0,
    ) -> None:
        """
        Set skip tolerance and trace length from the measured frame rate.

        With abandoned detection the tracker must survive the whole static
        period, so skips = round(min_static_time * fps) and the trace keeps
        twice that. Otherwise skips = round(skip_k * fps) and trace length
        is round(trace_k * fps).
        """
        if fps is None or fps <= 0:
            logging.warning(f"Invalid frame rate {fps!r}, using {DEFAULT_FPS}")
            fps = DEFAULT_FPS

        self.fps = fps

        if self.use_abandoned_detection:
            self.apply_static_defaults()
            self.max_allowed_skipped_frames = cv_round(self.min_static_time * fps)
            self.max_trace_length = 2 * self.max_allowed_skipped_frames
        else:
            self.max_allowed_skipped_frames = cv_round(skip_k * fps)
            self.max_trace_length = cv_round(trace_k * fps)

    def apply_static_defaults(self) -> None:
        """Fill in static times missing from an abandoned-detection setup."""
        if not self.use_abandoned_detection:
            return
        if not self.min_static_time or self.min_static_time <= 0:
            logging.warning(
                f"Abandoned detection enabled without min_static_time, "
                f"using {DEFAULT_MIN_STATIC_TIME}s"
            )
            self.min_static_time = DEFAULT_MIN_STATIC_TIME
        if not self.max_static_time or self.max_static_time < self.min_static_time:
            self.max_static_time = 2 * self.min_static_time

    def describe(self) -> str:
        return (
            f"distance={self.distance_type.value}, kalman={self.kalman_type.value}, "
            f"goal={self.filter_goal.value}, match={self.match_type.value}, "
            f"lost={self.lost_track_type.value}, dt={self.dt}, "
            f"dist_thres={self.dist_thres}, max_skipped={self.max_allowed_skipped_frames}, "
            f"max_trace={self.max_trace_length}, abandoned={self.use_abandoned_detection}"
        )
