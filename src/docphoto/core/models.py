from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Tuple

Point = Tuple[float, float]


@dataclass(frozen=True)
class ProcessingParams:
    """
    Parameters that control how the document photo is generated.

    photo_width_cm / photo_height_cm / dpi:
        Physical output size; 3x4 cm at 300 DPI gives 354x472 pixels.
    frame_height_factor:
        Crop height as a multiple of the detected face box height.
    headroom_ratio:
        Fraction of the crop height kept above the face center.
    sharpen_amount / contrast:
        Final optimization strengths (contrast 1.0 = no change).
    remove_background:
        If True, the crop is sent through the background segmenter.
    """
    dpi: int = 300
    photo_width_cm: float = 3.0
    photo_height_cm: float = 4.0
    frame_height_factor: float = 1.6
    headroom_ratio: float = 0.4
    sharpen_amount: float = 0.2
    contrast: float = 1.1
    jpeg_quality: int = 95
    remove_background: bool = True


@dataclass(frozen=True)
class FaceBox:
    """Axis-aligned face rectangle in source-image pixels. May extend past the image."""
    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> Point:
        return (self.x + self.width / 2.0, self.y + self.height / 2.0)


# Index ranges of the 68-point layout. "left"/"right" are in image coordinates:
# the left eye is the one closer to x=0.
LANDMARK_GROUPS: dict[str, range] = {
    "jaw": range(0, 17),
    "left_eyebrow": range(17, 22),
    "right_eyebrow": range(22, 27),
    "nose": range(27, 36),
    "left_eye": range(36, 42),
    "right_eye": range(42, 48),
    "mouth": range(48, 68),
}
LANDMARK_COUNT = 68

# Within the nose group: 0-3 run down the bridge, 3 is the tip.
NOSE_TIP = 3

# Within an eye group: 0 and 3 are the corners, 1/5 an upper/lower lid pair.
EYE_CORNER_A = 0
EYE_CORNER_B = 3
EYE_UPPER_LID = 1
EYE_LOWER_LID = 5

# Within the mouth group: 12-19 trace the inner lip contour.
MOUTH_INNER_LEFT = 12
MOUTH_INNER_TOP = 14
MOUTH_INNER_RIGHT = 16
MOUTH_INNER_BOTTOM = 18


@dataclass(frozen=True)
class LandmarkSet:
    """The 68 facial landmark points, addressable by feature group."""
    points: Tuple[Point, ...]

    def __post_init__(self) -> None:
        if len(self.points) != LANDMARK_COUNT:
            raise ValueError(f"expected {LANDMARK_COUNT} landmark points, got {len(self.points)}")

    @classmethod
    def from_points(cls, points: Sequence[Sequence[float]]) -> "LandmarkSet":
        return cls(points=tuple((float(p[0]), float(p[1])) for p in points))

    def group(self, name: str) -> Tuple[Point, ...]:
        r = LANDMARK_GROUPS[name]
        return self.points[r.start:r.stop]

    @property
    def jaw(self) -> Tuple[Point, ...]:
        return self.group("jaw")

    @property
    def nose(self) -> Tuple[Point, ...]:
        return self.group("nose")

    @property
    def left_eye(self) -> Tuple[Point, ...]:
        return self.group("left_eye")

    @property
    def right_eye(self) -> Tuple[Point, ...]:
        return self.group("right_eye")

    @property
    def mouth(self) -> Tuple[Point, ...]:
        return self.group("mouth")


@dataclass(frozen=True)
class FaceData:
    """One detected face: its box and landmarks."""
    box: FaceBox
    landmarks: LandmarkSet
