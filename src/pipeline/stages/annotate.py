"""
Annotate stage: overlay rendering.

Draws track boxes and trajectories and alpha-blends label backgrounds,
keeping labels inside the frame.

Blend weights follow the convention
    result = round(((255 - alpha) * pixel + alpha * color) / 255)
so alpha is the weight of the fill color: 255 paints the color, and 0 is
special-cased as a plain opaque cv2 fill without any per-pixel work.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Sequence, Tuple

import cv2
import numpy as np

from models.detection import Rect
from models.track import TrackState
from .classify import Classification


Color = Tuple[int, int, int]

FONT = cv2.FONT_HERSHEY_SIMPLEX
FONT_SCALE = 0.5
FONT_THICKNESS = 1
LABEL_ALPHA = 150

COLOR_LABEL_BG = (200, 200, 200)
COLOR_ABANDONED_BG = (255, 0, 255)
COLOR_TEXT = (0, 0, 0)

# BGR palette for track ids
PALETTE: Sequence[Color] = (
    (255, 0, 0),
    (0, 255, 0),
    (0, 0, 255),
    (255, 255, 0),
    (0, 255, 255),
    (255, 0, 255),
    (255, 127, 255),
    (127, 0, 255),
    (127, 0, 127),
    (127, 127, 255),
)


class LabelMode(str, Enum):
    """What the moving-object path writes above each box."""
    NONE = "none"
    TYPE_CONFIDENCE = "type_confidence"
    TYPE_VELOCITY_CONFIDENCE = "type_velocity_confidence"


def track_color(track_id: int) -> Color:
    return PALETTE[track_id % len(PALETTE)]


def blend_pixel(pixel: int, color: int, alpha: int) -> int:
    """Blend one channel value: round(((255 - a) * p + a * c) / 255)."""
    value = ((255 - alpha) * pixel + alpha * color + 127) // 255
    return int(min(255, max(0, value)))


def clamp_label_rect(rect: Rect, label_height: int, frame_width: int, frame_height: int) -> Rect:
    """
    Move a box so a label drawn on top of it stays inside the frame.

    Horizontally, a box sticking out on the left is pinned to x = 0 and one
    sticking out on the right is shifted left, width capped at
    frame_width - 1. Vertically the label sits above the box: if there is
    no room above, the box top is pushed down to y = label_height; a box
    running past the bottom is shifted up, height capped at frame_height - 1.

    Boxes larger than the frame cannot be placed by those rules; the result
    is then saturated to fit, which can leave a zero width or height.
    """
    x, y, w, h = rect.x, rect.y, rect.width, rect.height

    if x < 0:
        w = min(w, frame_width - 1)
        x = 0
    elif x + w >= frame_width:
        x = max(0, frame_width - w - 1)
        w = min(w, frame_width - 1)

    if y - label_height < 0:
        h = min(h, frame_height - 1)
        y = label_height
    elif y + h >= frame_height:
        y = max(0, frame_height - h - 1)
        h = min(h, frame_height - 1)

    placed = (x, y, w, h)
    x = min(x, max(0, frame_width - 1))
    y = min(y, max(0, frame_height - 1))
    w = max(0, min(w, frame_width - 1 - x))
    h = max(0, min(h, frame_height - 1 - y))
    if (x, y, w, h) != placed:
        logging.debug(
            f"Label rect {rect} does not fit {frame_width}x{frame_height}, "
            f"saturated to {(x, y, w, h)}"
        )
    return Rect(x, y, w, h)


def draw_filled_rect(frame: np.ndarray, rect: Rect, color: Color, alpha: int) -> None:
    """
    Fill rect on frame in place, blending with weight alpha (0-255).

    alpha == 0 draws an ordinary opaque rectangle.
    """
    if rect.is_empty:
        return

    if alpha == 0:
        cv2.rectangle(frame, rect.tl, (rect.right - 1, rect.bottom - 1), color, cv2.FILLED)
        return

    alpha = int(min(255, max(0, alpha)))
    height, width = frame.shape[:2]
    x0, y0 = max(0, rect.x), max(0, rect.y)
    x1, y1 = min(width, rect.right), min(height, rect.bottom)
    if x0 >= x1 or y0 >= y1:
        return

    roi = frame[y0:y1, x0:x1]
    channels = 1 if frame.ndim == 2 else frame.shape[2]
    fill = np.array(color[:channels], dtype=np.int32)
    if frame.ndim == 2:
        fill = fill[0]
    blended = ((255 - alpha) * roi.astype(np.int32) + alpha * fill + 127) // 255
    frame[y0:y1, x0:x1] = np.clip(blended, 0, 255).astype(frame.dtype)


def draw_track(
    frame: np.ndarray,
    track: TrackState,
    color: Color,
    thickness: int = 1,
    draw_trajectory: bool = True,
) -> None:
    """Draw a track's box and, optionally, its trajectory."""
    x1, y1, x2, y2 = track.bbox.as_int_tuple()
    cv2.rectangle(frame, (x1, y1), (x2, y2), color, thickness)

    if not draw_trajectory or len(track.trace) < 2:
        return

    points = [(int(p.x), int(p.y)) for p in track.trace]
    for i in range(1, len(points)):
        cv2.line(frame, points[i - 1], points[i], color, thickness, cv2.LINE_AA)

    for point, trace_point in zip(points, track.trace):
        # Detected points filled, predicted points hollow
        radius_thickness = cv2.FILLED if trace_point.is_raw else 1
        cv2.circle(frame, point, 3, color, radius_thickness, cv2.LINE_AA)


def draw_label(
    frame: np.ndarray,
    track: TrackState,
    text: str,
    bg_color: Color,
    alpha: int = LABEL_ALPHA,
) -> Rect:
    """Draw text on a blended background above the track's box."""
    (text_w, text_h), baseline = cv2.getTextSize(text, FONT, FONT_SCALE, FONT_THICKNESS)
    height, width = frame.shape[:2]

    brect = clamp_label_rect(Rect.from_bbox(track.bbox), text_h, width, height)
    background = Rect(brect.x, brect.y - text_h, text_w, text_h + baseline)
    draw_filled_rect(frame, background, bg_color, alpha)
    cv2.putText(frame, text, brect.tl, FONT, FONT_SCALE, COLOR_TEXT, FONT_THICKNESS)
    return background


def format_label(track: TrackState, mode: LabelMode) -> str:
    object_type = track.object_type or "object"
    if mode == LabelMode.TYPE_CONFIDENCE:
        return f"{object_type}: {track.confidence:.2g}"
    if mode == LabelMode.TYPE_VELOCITY_CONFIDENCE:
        return f"{object_type} {track.speed:.2g}: {track.confidence:.2g}"
    return ""


class AnnotateStage:
    """
    Pipeline stage that renders classified tracks onto a frame.

    Moving and abandoned tracks take separate paths; a track is only ever
    drawn by one of them.
    """

    def __init__(
        self,
        label_mode: LabelMode = LabelMode.NONE,
        draw_trajectory: bool = True,
        label_color: Color = COLOR_LABEL_BG,
        thickness: int = 1,
    ):
        self.label_mode = label_mode
        self.draw_trajectory = draw_trajectory
        self.label_color = label_color
        self.thickness = thickness

    def render(self, frame: np.ndarray, classification: Classification) -> np.ndarray:
        """Draw onto frame in place and return it."""
        for track in classification.moving:
            self._draw_moving(frame, track)
        for track in classification.abandoned:
            self._draw_abandoned(frame, track)
        return frame

    def _draw_moving(self, frame: np.ndarray, track: TrackState) -> None:
        draw_track(frame, track, track_color(track.track_id), self.thickness, self.draw_trajectory)
        if self.label_mode != LabelMode.NONE:
            draw_label(frame, track, format_label(track, self.label_mode), self.label_color)

    def _draw_abandoned(self, frame: np.ndarray, track: TrackState) -> None:
        draw_track(frame, track, track_color(track.track_id), self.thickness, draw_trajectory=False)
        draw_label(frame, track, f"abandoned {track.track_id}", COLOR_ABANDONED_BG)
