"""
Tracker builder.

Construction is pure configuration assembly and cannot fail: inconsistent
settings are repaired with documented defaults before the tracker sees them.
"""

from __future__ import annotations

import logging

from .base import Tracker
from .settings import TrackerSettings
from .tracker import MultiObjectTracker


def build_tracker(settings: TrackerSettings) -> Tracker:
    """
    Construct the tracker for a pipeline run.

    Args:
        settings: Tracker configuration, normally already scaled to the
            video's frame rate with derive_time_constants().
    """
    settings.apply_static_defaults()
    if settings.max_allowed_skipped_frames < 0:
        logging.warning("max_allowed_skipped_frames < 0, using 0")
        settings.max_allowed_skipped_frames = 0
    if settings.max_trace_length < 1:
        logging.warning("max_trace_length < 1, using 1")
        settings.max_trace_length = 1

    logging.info(f"Building tracker: {settings.describe()}")
    return MultiObjectTracker(settings)
