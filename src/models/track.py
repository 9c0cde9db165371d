"""
Track models for object tracking state.
"""

from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Optional, Tuple

from .detection import BoundingBox


@dataclass(frozen=True)
class TracePoint:
    """
    One trajectory entry.

    Attributes:
        x: Center x coordinate.
        y: Center y coordinate.
        is_raw: True when the point came from a matched detection,
            False when the tracker only predicted it (skipped frame).
    """
    x: float
    y: float
    is_raw: bool = True

    def as_tuple(self) -> Tuple[float, float]:
        return (self.x, self.y)


@dataclass
class Track:
    """
    A tracked object across video frames. Owned and mutated by the tracker.

    Attributes:
        track_id: Unique identifier for this track.
        bbox: Current bounding box in pixel coordinates.
        trace: History of center positions (newest last), bounded.
        object_type: Class name of the object, if the detector provides one.
        confidence: Confidence of the last matched detection.
        velocity: Estimated velocity (vx, vy) in pixels per frame.
        skipped_frames: Consecutive frames without a matching detection.
        static_frames: Consecutive frames the object has been stationary.
        is_static: Set by the tracker once the object is abandoned/static.
    """
    track_id: int
    bbox: BoundingBox
    trace: Deque[TracePoint] = field(default_factory=deque)
    object_type: Optional[str] = None
    confidence: float = 1.0
    velocity: Tuple[float, float] = (0.0, 0.0)
    skipped_frames: int = 0
    static_frames: int = 0
    is_static: bool = False

    @property
    def center(self) -> Tuple[float, float]:
        return self.bbox.center

    @property
    def speed(self) -> float:
        return math.hypot(self.velocity[0], self.velocity[1])

    @property
    def raw_point_ratio(self) -> float:
        return raw_point_ratio(self.trace)

    def snapshot(self) -> "TrackState":
        """Create an immutable per-frame view of this track."""
        return TrackState(
            track_id=self.track_id,
            bbox=self.bbox,
            trace=tuple(self.trace),
            object_type=self.object_type,
            confidence=self.confidence,
            velocity=self.velocity,
            skipped_frames=self.skipped_frames,
            is_static=self.is_static,
        )


@dataclass(frozen=True)
class TrackState:
    """
    Immutable snapshot of a tracked object.

    This is what Tracker.get_tracks() hands to the pipeline. It copies the
    trace, so it stays readable after the tracker mutates or drops the track.
    """
    track_id: int
    bbox: BoundingBox
    trace: Tuple[TracePoint, ...] = ()
    object_type: Optional[str] = None
    confidence: float = 1.0
    velocity: Tuple[float, float] = (0.0, 0.0)
    skipped_frames: int = 0
    is_static: bool = False

    @property
    def center(self) -> Tuple[float, float]:
        return self.bbox.center

    @property
    def speed(self) -> float:
        return math.hypot(self.velocity[0], self.velocity[1])

    @property
    def trace_length(self) -> int:
        return len(self.trace)

    @property
    def raw_point_ratio(self) -> float:
        return raw_point_ratio(self.trace)


def raw_point_ratio(trace) -> float:
    """Fraction of trace points that came from detections."""
    if not trace:
        return 0.0
    raw = sum(1 for p in trace if p.is_raw)
    return raw / len(trace)
