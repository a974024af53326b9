"""
Turn a validated portrait into a standardized document photo.

Stages, each feeding the next:
  1. crop a 3:4 frame around the detected face
  2. background removal (external segmenter)
  3. recompose on a pure white canvas at the target pixel size
  4. sharpen + contrast
Any failure aborts with ProcessingError; there is no partial output.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from PIL import Image

from docphoto.backends.capabilities import BackgroundSegmenter, load_capability
from docphoto.core.errors import DocPhotoError, ModelUnavailable, ProcessingError
from docphoto.core.imaging import pil_to_np, resize_np
from docphoto.core.models import FaceBox, FaceData, ProcessingParams
from docphoto.core.units import cm_to_px, round_half_up

logger = logging.getLogger(__name__)

WHITE = (255, 255, 255)


@dataclass(frozen=True)
class CropWindow:
    """Crop rectangle in source pixels, before clamping."""
    x: float
    y: float
    width: float
    height: float

    @property
    def size_px(self) -> Tuple[int, int]:
        return round_half_up(self.width), round_half_up(self.height)


def target_size(params: ProcessingParams) -> Tuple[int, int]:
    return cm_to_px(params.photo_width_cm, params.dpi), cm_to_px(params.photo_height_cm, params.dpi)


def compute_crop_window(box: FaceBox, params: ProcessingParams = ProcessingParams()) -> CropWindow:
    """
    3:4 frame, 1.6x the face height, with the face center placed 40% of the
    frame height below the top edge.
    """
    frame_h = box.height * params.frame_height_factor
    frame_w = frame_h * 3.0 / 4.0
    cx, cy = box.center
    return CropWindow(
        x=cx - frame_w / 2.0,
        y=cy - frame_h * params.headroom_ratio,
        width=frame_w,
        height=frame_h,
    )


def crop_to_frame(img: Image.Image, window: CropWindow) -> Image.Image:
    """
    Cut `window` out of `img` into a new RGBA image sized round(w) x round(h).

    Negative origins are clamped to 0 and the window is NOT re-centered, so a
    face near the top/left edge ends up shifted inside the crop. Parts of the
    window past the right/bottom edge stay transparent.
    """
    out_w, out_h = window.size_px
    if out_w <= 0 or out_h <= 0:
        raise ProcessingError(f"Crop window is empty ({window.width:.1f}x{window.height:.1f})")

    src = pil_to_np(img, "RGBA")
    h, w = src.shape[:2]
    left = int(math.floor(max(0.0, window.x)))
    top = int(math.floor(max(0.0, window.y)))

    out = np.zeros((out_h, out_w, 4), dtype=np.uint8)
    src_right = min(w, left + out_w)
    src_bottom = min(h, top + out_h)
    if left < src_right and top < src_bottom:
        out[: src_bottom - top, : src_right - left] = src[top:src_bottom, left:src_right]
    return Image.fromarray(out, "RGBA")


def recompose_on_white(img: Image.Image, canvas_size: Tuple[int, int]) -> Image.Image:
    """
    Scale `img` uniformly to fit inside `canvas_size` and center it on white.
    Transparent pixels become white.
    """
    cw, ch = canvas_size
    iw, ih = img.size
    if iw <= 0 or ih <= 0:
        raise ProcessingError("Cannot recompose an empty image")

    scale = min(cw / iw, ch / ih)
    sw = min(cw, max(1, round_half_up(iw * scale)))
    sh = min(ch, max(1, round_half_up(ih * scale)))
    x = round_half_up((cw - sw) / 2.0)
    y = round_half_up((ch - sh) / 2.0)

    scaled = Image.fromarray(resize_np(pil_to_np(img, "RGBA"), sw, sh), "RGBA")
    canvas = Image.new("RGB", (cw, ch), WHITE)
    canvas.paste(scaled, (x, y), mask=scaled)
    return canvas


def sharpen(img: Image.Image, amount: float = 0.2) -> Image.Image:
    """
    4-neighbor unsharp mask on RGB: out = c + (c - mean(up, down, left, right)) * amount.
    The outermost 1px ring is copied unchanged; alpha is untouched.
    """
    arr = np.array(img, dtype=np.uint8)
    out = arr.copy()
    h, w = arr.shape[:2]
    if h < 3 or w < 3:
        return Image.fromarray(out, img.mode)

    f = arr[:, :, :3].astype(np.float64)
    center = f[1:-1, 1:-1]
    avg = (f[:-2, 1:-1] + f[2:, 1:-1] + f[1:-1, :-2] + f[1:-1, 2:]) / 4.0
    sharpened = center + (center - avg) * amount
    out[1:-1, 1:-1, :3] = np.clip(np.rint(sharpened), 0, 255).astype(np.uint8)
    return Image.fromarray(out, img.mode)


def contrast_factor(contrast: float) -> float:
    """
    Classic contrast-correction factor 259(C+255) / (255(259-C)), where the
    level C = (contrast - 1) * 255, so contrast 1.0 is the identity.

    This departs from the usual C = contrast * 255 reading of the formula.
    Read that way, contrast 1.1 gives a factor of about -25.3, which inverts
    and thresholds the image. Here 1.1 gives about 1.22.
    """
    level = (contrast - 1.0) * 255.0
    return (259.0 * (level + 255.0)) / (255.0 * (259.0 - level))


def adjust_contrast(img: Image.Image, contrast: float = 1.1) -> Image.Image:
    arr = np.array(img, dtype=np.uint8)
    factor = contrast_factor(contrast)
    rgb = arr[:, :, :3].astype(np.float64)
    arr[:, :, :3] = np.clip(np.rint(factor * (rgb - 128.0) + 128.0), 0, 255).astype(np.uint8)
    return Image.fromarray(arr, img.mode)


def optimize(img: Image.Image, params: ProcessingParams = ProcessingParams()) -> Image.Image:
    return adjust_contrast(sharpen(img, params.sharpen_amount), params.contrast)


async def process(
    image: Image.Image,
    face_data: FaceData,
    segmenter: Optional[BackgroundSegmenter],
    params: ProcessingParams = ProcessingParams(),
) -> Image.Image:
    """
    Run the full pipeline and return the standardized RGB photo
    (354x472 for the default 3x4 cm at 300 DPI).

    `segmenter` may be None only when params.remove_background is False.
    """
    try:
        window = compute_crop_window(face_data.box, params)
        logger.debug("Crop window x=%.1f y=%.1f w=%.1f h=%.1f", window.x, window.y, window.width, window.height)
        cropped = crop_to_frame(image, window)

        if params.remove_background:
            if segmenter is None:
                raise ProcessingError("Background removal requested but no segmenter was provided")
            await load_capability(segmenter, "background segmenter")
            segmented = await segmenter.remove_background(cropped)
        else:
            segmented = cropped

        composed = recompose_on_white(segmented, target_size(params))
        photo = optimize(composed, params)
    except (ModelUnavailable, ProcessingError):
        raise
    except DocPhotoError as e:
        raise ProcessingError(str(e)) from e
    except Exception as e:
        logger.exception("Photo processing failed")
        raise ProcessingError(f"Processing failed: {e}") from e

    logger.info("Processed photo %dx%d", photo.width, photo.height)
    return photo
