"""
Tracking module.

The tracker is built once per pipeline run from TrackerSettings and owns
the track set; the pipeline only reads snapshots.
"""

from .base import Tracker
from .builder import build_tracker
from .settings import (
    DistanceType,
    FilterGoal,
    KalmanType,
    LostTrackType,
    MatchType,
    TrackerSettings,
)
from .tracker import MultiObjectTracker

__all__ = [
    "Tracker",
    "build_tracker",
    "MultiObjectTracker",
    "TrackerSettings",
    "DistanceType",
    "FilterGoal",
    "KalmanType",
    "LostTrackType",
    "MatchType",
]
