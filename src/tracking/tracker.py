"""
Multi-object tracker.

Each track carries a Kalman filter. Every frame the filters predict, the
predictions are matched to detections with the configured distance metric
and assignment strategy, matched tracks are corrected, unmatched tracks
coast on their prediction, and tracks that coast too long are dropped.

The tracker also flags objects that stop moving for long enough as static
(abandoned) when abandoned detection is enabled.
"""

import logging
import math
from collections import deque
from typing import Dict, List, Optional, Tuple

import numpy as np
from scipy.optimize import linear_sum_assignment

from models.detection import BoundingBox, Detection
from models.track import TracePoint, Track, TrackState
from .base import Tracker
from .kalman import KalmanTracker, create_kalman
from .settings import (
    DistanceType,
    FilterGoal,
    LostTrackType,
    MatchType,
    TrackerSettings,
    cv_round,
)


# Cost assigned to pairs that may never match
FORBIDDEN_COST = 1e6


def calculate_iou(box1: BoundingBox, box2: BoundingBox) -> float:
    """
    Calculate Intersection over Union (IoU) between two bounding boxes.

    Returns:
        IoU value between 0 and 1
    """
    x1_i = max(box1.x1, box2.x1)
    y1_i = max(box1.y1, box2.y1)
    x2_i = min(box1.x2, box2.x2)
    y2_i = min(box1.y2, box2.y2)

    if x2_i <= x1_i or y2_i <= y1_i:
        return 0.0

    intersection = (x2_i - x1_i) * (y2_i - y1_i)
    union = box1.area + box2.area - intersection
    if union <= 0:
        return 0.0
    return intersection / union


class _TrackEntry:
    """A track plus the filter that drives it."""

    def __init__(self, track: Track, kalman: KalmanTracker) -> None:
        self.track = track
        self.kalman = kalman
        self.predicted: Optional[BoundingBox] = None


class MultiObjectTracker(Tracker):
    """
    Tracks objects across frames using Kalman prediction and assignment.

    This tracker is responsible for:
    - Matching detections to existing tracks
    - Maintaining a bounded trajectory for each track
    - Flagging static objects
    - Removing stale tracks
    """

    def __init__(self, settings: TrackerSettings):
        """
        Initialize the tracker.

        Args:
            settings: Tracker configuration. Not modified afterwards.
        """
        self.settings = settings
        self._entries: Dict[int, _TrackEntry] = {}
        self.next_track_id = 0

        if settings.lost_track_type != LostTrackType.NONE:
            logging.info(
                f"Lost-track visual tracker '{settings.lost_track_type.value}' is not "
                f"available; lost tracks coast on Kalman prediction only"
            )
        logging.info(f"Multi-object tracker initialized ({settings.describe()})")

    @property
    def track_count(self) -> int:
        return len(self._entries)

    def update(
        self,
        detections: List[Detection],
        frame: Optional[np.ndarray] = None,
        timestamp: Optional[float] = None,
    ) -> None:
        """
        Update tracker with new detections.

        Args:
            detections: Detections found in the current frame.
            frame: Current frame (unused by the Kalman-only tracker).
            timestamp: Frame timestamp (unused; time advances by frames).
        """
        entries = list(self._entries.values())
        for entry in entries:
            entry.predicted = self._predict(entry)

        matches, unmatched_tracks, unmatched_dets = self._match(entries, detections)

        for ti, di in matches:
            self._apply_detection(entries[ti], detections[di])

        for ti in unmatched_tracks:
            self._coast(entries[ti])

        self._update_static(entries)
        self._remove_old_tracks()

        for di in unmatched_dets:
            self._add_track(detections[di])

    def get_tracks(self) -> List[TrackState]:
        """Immutable snapshots of every live track."""
        return [self._entries[k].track.snapshot() for k in sorted(self._entries)]

    # Prediction and state conversion

    def _measurement(self, bbox: BoundingBox) -> np.ndarray:
        cx, cy = bbox.center
        if self.settings.filter_goal == FilterGoal.RECT:
            return np.array([cx, cy, bbox.width, bbox.height], dtype=float)
        return np.array([cx, cy], dtype=float)

    def _bbox_from_estimate(self, estimate: np.ndarray, previous: BoundingBox) -> BoundingBox:
        if self.settings.filter_goal == FilterGoal.RECT:
            w = max(1.0, float(estimate[2]))
            h = max(1.0, float(estimate[3]))
        else:
            w, h = previous.width, previous.height
        return BoundingBox.from_center(float(estimate[0]), float(estimate[1]), w, h)

    def _predict(self, entry: _TrackEntry) -> BoundingBox:
        estimate = entry.kalman.predict()
        return self._bbox_from_estimate(estimate, entry.track.bbox)

    # Matching

    def _gating_radius(self, bbox: BoundingBox) -> float:
        relative = self.settings.min_area_radius_k * (bbox.width + bbox.height) / 2
        if self.settings.min_area_radius_pix > 0:
            return max(self.settings.min_area_radius_pix, relative, 1.0)
        return max(relative, 1.0)

    def _distance(self, predicted: BoundingBox, det: BoundingBox) -> float:
        """Normalized distance in [0, 1] between a prediction and a detection."""
        kind = self.settings.distance_type
        if kind == DistanceType.CENTERS:
            (px, py), (dx, dy) = predicted.center, det.center
            return min(1.0, math.hypot(px - dx, py - dy) / self._gating_radius(predicted))
        if kind == DistanceType.RECTS:
            w = max(predicted.width, 1.0)
            h = max(predicted.height, 1.0)
            (px, py), (dx, dy) = predicted.center, det.center
            d = (
                abs(px - dx) / w
                + abs(py - dy) / h
                + abs(predicted.width - det.width) / w
                + abs(predicted.height - det.height) / h
            ) / 4
            return min(1.0, d)
        return 1.0 - calculate_iou(predicted, det)

    def _cost_matrix(self, entries: List[_TrackEntry], detections: List[Detection]) -> np.ndarray:
        cost = np.full((len(entries), len(detections)), FORBIDDEN_COST)
        for i, entry in enumerate(entries):
            for j, det in enumerate(detections):
                if not self.settings.is_near_types(entry.track.object_type, det.class_name):
                    continue
                cost[i, j] = self._distance(entry.predicted, det.bbox)
        return cost

    def _match(
        self,
        entries: List[_TrackEntry],
        detections: List[Detection],
    ) -> Tuple[List[Tuple[int, int]], List[int], List[int]]:
        if not entries or not detections:
            return [], list(range(len(entries))), list(range(len(detections)))

        cost = self._cost_matrix(entries, detections)
        if self.settings.match_type == MatchType.HUNGARIAN:
            rows, cols = linear_sum_assignment(cost)
            pairs = list(zip(rows.tolist(), cols.tolist()))
        else:
            pairs = self._greedy_pairs(cost)

        matches = [(i, j) for i, j in pairs if cost[i, j] <= self.settings.dist_thres]
        matched_tracks = {i for i, _ in matches}
        matched_dets = {j for _, j in matches}
        unmatched_tracks = [i for i in range(len(entries)) if i not in matched_tracks]
        unmatched_dets = [j for j in range(len(detections)) if j not in matched_dets]
        return matches, unmatched_tracks, unmatched_dets

    @staticmethod
    def _greedy_pairs(cost: np.ndarray) -> List[Tuple[int, int]]:
        """Lowest-cost-first assignment."""
        order = np.dstack(np.unravel_index(np.argsort(cost, axis=None), cost.shape))[0]
        used_rows, used_cols = set(), set()
        pairs = []
        for i, j in order:
            if i in used_rows or j in used_cols:
                continue
            if cost[i, j] >= FORBIDDEN_COST:
                break
            used_rows.add(int(i))
            used_cols.add(int(j))
            pairs.append((int(i), int(j)))
        return pairs

    # Track updates

    def _apply_detection(self, entry: _TrackEntry, det: Detection) -> None:
        track = entry.track
        estimate = entry.kalman.correct(self._measurement(det.bbox))
        track.bbox = self._bbox_from_estimate(estimate, det.bbox)
        cx, cy = det.center
        track.trace.append(TracePoint(cx, cy, is_raw=True))
        track.skipped_frames = 0
        track.confidence = det.confidence
        self._update_type(track, det.class_name)
        self._update_velocity(entry)

    def _update_type(self, track: Track, class_name: Optional[str]) -> None:
        if class_name is None or class_name == track.object_type:
            return
        if track.object_type is None or self.settings.merge_near_types(track.object_type, class_name):
            track.object_type = class_name

    def _coast(self, entry: _TrackEntry) -> None:
        track = entry.track
        track.bbox = entry.predicted
        cx, cy = track.bbox.center
        track.trace.append(TracePoint(cx, cy, is_raw=False))
        if not track.is_static:
            track.skipped_frames += 1
        self._update_velocity(entry)

    def _update_velocity(self, entry: _TrackEntry) -> None:
        vx, vy = entry.kalman.velocity
        # Filter velocity is per dt; the track reports pixels per frame
        entry.track.velocity = (vx * self.settings.dt, vy * self.settings.dt)

    def _update_static(self, entries: List[_TrackEntry]) -> None:
        if not self.settings.use_abandoned_detection:
            return
        min_static_frames = cv_round(self.settings.min_static_time * self.settings.fps)
        for entry in entries:
            track = entry.track
            if track.speed < self.settings.max_speed_for_static:
                track.static_frames += 1
            else:
                track.static_frames = 0
                track.is_static = False
            if track.static_frames >= min_static_frames:
                track.is_static = True

    def _remove_old_tracks(self) -> None:
        """Remove tracks that haven't been seen, or stayed static, for too long."""
        max_static_frames = None
        if self.settings.use_abandoned_detection:
            max_static_frames = cv_round(self.settings.max_static_time * self.settings.fps)

        to_remove = []
        for track_id, entry in self._entries.items():
            track = entry.track
            if track.skipped_frames > self.settings.max_allowed_skipped_frames:
                to_remove.append(track_id)
            elif max_static_frames is not None and track.static_frames > max_static_frames:
                to_remove.append(track_id)

        for track_id in to_remove:
            logging.debug(f"[TRACK] removed id={track_id}")
            del self._entries[track_id]

    def _add_track(self, det: Detection) -> None:
        cx, cy = det.center
        track = Track(
            track_id=self.next_track_id,
            bbox=det.bbox,
            trace=deque([TracePoint(cx, cy, is_raw=True)], maxlen=max(1, self.settings.max_trace_length)),
            object_type=det.class_name,
            confidence=det.confidence,
        )
        kalman = create_kalman(self._measurement(det.bbox), self.settings)
        self._entries[track.track_id] = _TrackEntry(track, kalman)
        self.next_track_id += 1
