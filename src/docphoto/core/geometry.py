"""
Pure measurements derived from a face box and its landmarks.

Pose estimation here is a coarse 2-D approximation from eye and nose positions,
not a 3-D head pose solver. No pitch is estimated.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

from docphoto.core.models import (
    EYE_CORNER_A,
    EYE_CORNER_B,
    EYE_LOWER_LID,
    EYE_UPPER_LID,
    MOUTH_INNER_BOTTOM,
    MOUTH_INNER_LEFT,
    MOUTH_INNER_RIGHT,
    MOUTH_INNER_TOP,
    NOSE_TIP,
    FaceBox,
    Point,
)

# Empirical degrees per unit of nose offset (offset / inter-eye distance).
YAW_SCALE_DEG = 45.0

# Minimum distance a face box must keep from every image edge.
FRAME_MARGIN_PX = 20


@dataclass(frozen=True)
class PoseAngles:
    yaw: float
    roll: float


def centroid(points: Sequence[Point]) -> Point:
    n = len(points)
    if n == 0:
        return (0.0, 0.0)
    return (sum(p[0] for p in points) / n, sum(p[1] for p in points) / n)


def estimate_pose(left_eye: Sequence[Point], right_eye: Sequence[Point], nose: Sequence[Point]) -> PoseAngles:
    """
    Roll is the angle of the line from the left to the right eye centroid.
    Yaw is the horizontal offset of the nose tip from the eye midpoint,
    divided by the eye distance and scaled by YAW_SCALE_DEG.
    """
    lx, ly = centroid(left_eye)
    rx, ry = centroid(right_eye)

    roll = math.degrees(math.atan2(ry - ly, rx - lx))

    eye_distance = abs(rx - lx)
    if eye_distance == 0:
        yaw = 0.0
    else:
        eyes_center_x = (lx + rx) / 2.0
        nose_x = nose[NOSE_TIP][0]
        yaw = (nose_x - eyes_center_x) / eye_distance * YAW_SCALE_DEG

    return PoseAngles(yaw=yaw, roll=roll)


def eye_aspect_ratio(eye: Sequence[Point]) -> float:
    """Lid opening over corner-to-corner width. Degenerate eyes report 0 (closed)."""
    height = abs(eye[EYE_UPPER_LID][1] - eye[EYE_LOWER_LID][1])
    width = abs(eye[EYE_CORNER_B][0] - eye[EYE_CORNER_A][0])
    if width == 0:
        return 0.0
    return height / width


def mouth_aspect_ratio(mouth: Sequence[Point]) -> float:
    """Inner-lip opening over inner-corner width. Degenerate mouths report inf (open)."""
    height = abs(mouth[MOUTH_INNER_TOP][1] - mouth[MOUTH_INNER_BOTTOM][1])
    width = abs(mouth[MOUTH_INNER_LEFT][0] - mouth[MOUTH_INNER_RIGHT][0])
    if width == 0:
        return math.inf
    return height / width


def is_in_frame(box: FaceBox, img_w: int, img_h: int, margin: float = FRAME_MARGIN_PX) -> bool:
    return (
        box.x >= margin
        and box.y >= margin
        and box.x + box.width <= img_w - margin
        and box.y + box.height <= img_h - margin
    )


def head_size_ratio(box: FaceBox, img_h: int) -> float:
    if img_h <= 0:
        return 0.0
    return box.height / float(img_h)
