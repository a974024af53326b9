from __future__ import annotations

import logging
from typing import List, Union

from PIL import Image

from docphoto.backends.capabilities import FaceDetector, load_capability
from docphoto.core import geometry
from docphoto.core.errors import DetectionError, DocPhotoError
from docphoto.core.imaging import decode_image
from docphoto.core.models import FaceData
from docphoto.validation.report import ValidationCheck, ValidationReport

logger = logging.getLogger(__name__)

CHECK_FACE_DETECTED = "faceDetected"
CHECK_FACE_FRONTAL = "faceFrontal"
CHECK_EYES_VISIBLE = "eyesVisible"
CHECK_FACE_IN_FRAME = "faceInFrame"
CHECK_HEAD_SIZE = "headSize"
CHECK_EXPRESSION = "expression"
CHECK_GLASSES = "glassesCheck"

CHECK_ORDER = (
    CHECK_FACE_DETECTED,
    CHECK_FACE_FRONTAL,
    CHECK_EYES_VISIBLE,
    CHECK_FACE_IN_FRAME,
    CHECK_HEAD_SIZE,
    CHECK_EXPRESSION,
    CHECK_GLASSES,
)

MAX_YAW_DEG = 15.0
MAX_ROLL_DEG = 15.0
MIN_EAR = 0.15
FRAME_MARGIN_PX = geometry.FRAME_MARGIN_PX
MIN_HEAD_RATIO = 0.50
MAX_HEAD_RATIO = 0.75
MAX_MAR = 0.35

GLASSES_NOTE = (
    "Automated glasses detection is not implemented. "
    "If wearing glasses, make sure there is no glare on the lenses."
)


async def _detect(image: Image.Image, detector: FaceDetector) -> List[FaceData]:
    await load_capability(detector, "face detector")
    try:
        return list(await detector.detect_faces(image))
    except DocPhotoError:
        raise
    except Exception as e:
        raise DetectionError(f"Face detection failed: {e}") from e


def _face_count_check(count: int) -> ValidationCheck:
    if count == 0:
        return ValidationCheck(CHECK_FACE_DETECTED, False, "No face detected in the image.", metrics={"faces": 0})
    if count > 1:
        return ValidationCheck(
            CHECK_FACE_DETECTED,
            False,
            f"Multiple faces detected ({count}). Only one person allowed.",
            metrics={"faces": count},
        )
    return ValidationCheck(CHECK_FACE_DETECTED, True, "Single face detected.", metrics={"faces": 1})


def face_checks(face: FaceData, img_w: int, img_h: int) -> List[ValidationCheck]:
    """Checks 2-7 for a single detected face, in report order."""
    results: List[ValidationCheck] = []
    lm = face.landmarks
    box = face.box

    # Check: frontal pose
    pose = geometry.estimate_pose(lm.left_eye, lm.right_eye, lm.nose)
    frontal = abs(pose.yaw) <= MAX_YAW_DEG and abs(pose.roll) <= MAX_ROLL_DEG
    angles = f"yaw: {pose.yaw:.1f}°, roll: {pose.roll:.1f}°"
    results.append(
        ValidationCheck(
            CHECK_FACE_FRONTAL,
            frontal,
            f"Face is frontal ({angles})." if frontal else f"Face not frontal enough ({angles}).",
            metrics={"yaw": pose.yaw, "roll": pose.roll, "max_yaw": MAX_YAW_DEG, "max_roll": MAX_ROLL_DEG},
        )
    )

    # Check: eyes open
    left_ear = geometry.eye_aspect_ratio(lm.left_eye)
    right_ear = geometry.eye_aspect_ratio(lm.right_eye)
    eyes_ok = left_ear > MIN_EAR and right_ear > MIN_EAR
    results.append(
        ValidationCheck(
            CHECK_EYES_VISIBLE,
            eyes_ok,
            "Both eyes clearly visible." if eyes_ok else "Eyes not clearly visible or closed.",
            metrics={"left_ear": left_ear, "right_ear": right_ear, "min_ear": MIN_EAR},
        )
    )

    # Check: containment
    in_frame = geometry.is_in_frame(box, img_w, img_h, margin=FRAME_MARGIN_PX)
    results.append(
        ValidationCheck(
            CHECK_FACE_IN_FRAME,
            in_frame,
            "Face fully contained in frame." if in_frame else "Face is cut off or too close to edges.",
            metrics={"margin_px": FRAME_MARGIN_PX},
        )
    )

    # Check: head size
    ratio = geometry.head_size_ratio(box, img_h)
    size_ok = MIN_HEAD_RATIO <= ratio <= MAX_HEAD_RATIO
    pct = f"{ratio * 100:.0f}% of frame"
    if size_ok:
        size_msg = f"Head size appropriate ({pct})."
    else:
        size_msg = f"Head size {'too small' if ratio < MIN_HEAD_RATIO else 'too large'} ({pct})."
    results.append(
        ValidationCheck(
            CHECK_HEAD_SIZE,
            size_ok,
            size_msg,
            metrics={"head_ratio": ratio, "range": [MIN_HEAD_RATIO, MAX_HEAD_RATIO]},
        )
    )

    # Check: neutral expression
    mar = geometry.mouth_aspect_ratio(lm.mouth)
    neutral = mar < MAX_MAR
    results.append(
        ValidationCheck(
            CHECK_EXPRESSION,
            neutral,
            "Expression appears neutral." if neutral else "Expression may not be neutral - mouth appears open.",
            metrics={"mar": mar, "max_mar": MAX_MAR},
        )
    )

    # Not automated; advisory only
    results.append(
        ValidationCheck(CHECK_GLASSES, True, "Manual verification required.", note=GLASSES_NOTE)
    )
    return results


async def validate(image: Union[Image.Image, bytes], detector: FaceDetector) -> ValidationReport:
    """
    Validate a portrait against document-photo composition rules.

    Raises InputError for undecodable bytes, ModelUnavailable when the detector
    cannot load and DetectionError when it fails while running. A photo that
    breaks the rules is not an error: the report comes back with is_valid False.
    """
    if isinstance(image, (bytes, bytearray)):
        image = decode_image(bytes(image))

    faces = await _detect(image, detector)
    w, h = image.size
    logger.debug("Detector returned %d face(s) on %dx%d image", len(faces), w, h)

    count_check = _face_count_check(len(faces))
    if not count_check.passed:
        return ValidationReport.from_checks([count_check])

    face = faces[0]
    report = ValidationReport.from_checks([count_check] + face_checks(face, w, h), face_data=face)
    logger.info(
        "Validation %s (%s)",
        "passed" if report.is_valid else "failed",
        ", ".join(c.name for c in report.failed) or "all checks passed",
    )
    return report


def format_report_text(report: ValidationReport) -> str:
    lines: List[str] = []
    lines.append("Document Photo Validation Report")
    lines.append("-" * 32)
    lines.append(f"Overall: {'PASS' if report.is_valid else 'FAIL'}")
    lines.append("")
    for c in report.checks.values():
        mark = "✅" if c.passed else "❌"
        lines.append(f"{mark} {c.name}: {c.message}")
        if c.note:
            lines.append(f"    Note: {c.note}")
    return "\n".join(lines)
