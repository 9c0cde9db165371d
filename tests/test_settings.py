"""
Tests for tracker settings and the tracker builder.
"""

import pytest

from tracking import MultiObjectTracker, build_tracker
from tracking.settings import (
    DEFAULT_FPS,
    DistanceType,
    TrackerSettings,
    cv_round,
)


class TestTimeConstants:
    """Tests for derive_time_constants()."""

    def test_abandoned_detection(self):
        """fps 25 and 5 s static time give 125 skipped frames and a 250 point trace."""
        settings = TrackerSettings(use_abandoned_detection=True, min_static_time=5)
        settings.derive_time_constants(25)

        assert settings.max_allowed_skipped_frames == 125
        assert settings.max_trace_length == 250

    def test_regular_tracking(self):
        settings = TrackerSettings()
        settings.derive_time_constants(25)

        assert settings.max_allowed_skipped_frames == 50
        assert settings.max_trace_length == 100

    def test_custom_factors(self):
        settings = TrackerSettings()
        settings.derive_time_constants(30, skip_k=0.5, trace_k=5.0)

        assert settings.max_allowed_skipped_frames == 15
        assert settings.max_trace_length == 150

    def test_trace_is_twice_skips_with_abandoned(self):
        for fps in (10, 12.5, 24, 29.97, 60):
            settings = TrackerSettings(use_abandoned_detection=True, min_static_time=3)
            settings.derive_time_constants(fps)
            assert settings.max_trace_length == 2 * settings.max_allowed_skipped_frames

    @pytest.mark.parametrize("fps", [None, 0, -5])
    def test_invalid_fps_uses_default(self, fps):
        settings = TrackerSettings()
        settings.derive_time_constants(fps)

        assert settings.fps == DEFAULT_FPS
        assert settings.max_allowed_skipped_frames == cv_round(2 * DEFAULT_FPS)

    def test_missing_static_time_defaults(self):
        """Abandoned detection without a static time falls back to 5 s."""
        settings = TrackerSettings(use_abandoned_detection=True)
        settings.derive_time_constants(25)

        assert settings.min_static_time == 5.0
        assert settings.max_static_time == 10.0
        assert settings.max_allowed_skipped_frames == 125

    def test_explicit_max_static_time_kept(self):
        settings = TrackerSettings(use_abandoned_detection=True, min_static_time=5, max_static_time=30)
        settings.apply_static_defaults()
        assert settings.max_static_time == 30


class TestRounding:
    def test_ties_to_even(self):
        assert cv_round(2.5) == 2
        assert cv_round(3.5) == 4
        assert cv_round(-0.5) == 0

    def test_nearest(self):
        assert cv_round(6.25) == 6
        assert cv_round(12.5 * 0.5) == 6


class TestNearTypes:
    def test_symmetric(self):
        settings = TrackerSettings()
        settings.add_near_types("car", "bus", False)

        assert settings.is_near_types("bus", "car")
        assert settings.is_near_types("car", "bus")
        assert not settings.merge_near_types("car", "bus")

    def test_same_or_unknown_type(self):
        settings = TrackerSettings()
        assert settings.is_near_types("car", "car")
        assert settings.is_near_types(None, "car")
        assert not settings.is_near_types("car", "person")

    def test_merge_flag(self):
        settings = TrackerSettings()
        settings.add_near_types("person", "bicycle", True)
        assert settings.merge_near_types("bicycle", "person")

    def test_set_distance(self):
        settings = TrackerSettings()
        settings.set_distance(DistanceType.JACCARD)
        assert settings.distance_type == DistanceType.JACCARD


class TestBuildTracker:
    def test_builds_multi_object_tracker(self):
        settings = TrackerSettings()
        settings.derive_time_constants(25)
        tracker = build_tracker(settings)

        assert isinstance(tracker, MultiObjectTracker)
        assert tracker.get_tracks() == []

    def test_repairs_inconsistent_settings(self):
        settings = TrackerSettings(max_allowed_skipped_frames=-1, max_trace_length=0)
        tracker = build_tracker(settings)

        assert tracker.settings.max_allowed_skipped_frames == 0
        assert tracker.settings.max_trace_length == 1

    def test_fills_static_defaults(self):
        settings = TrackerSettings(use_abandoned_detection=True)
        build_tracker(settings)
        assert settings.min_static_time == 5.0
