from __future__ import annotations

import io

import cv2
import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from docphoto.core.errors import InputError


def _normalize(img: Image.Image) -> Image.Image:
    img = ImageOps.exif_transpose(img)
    if img.mode != "RGB":
        img = img.convert("RGB")
    return img


def load_image_rgb(path: str) -> Image.Image:
    """Load an image, apply EXIF orientation, return RGB PIL Image."""
    try:
        img = Image.open(path)
        img.load()
    except (OSError, UnidentifiedImageError, Image.DecompressionBombError) as e:
        raise InputError(f"Could not open image: {e}") from e
    return _normalize(img)


def decode_image(data: bytes) -> Image.Image:
    """Decode encoded image bytes into an RGB PIL Image."""
    if not data:
        raise InputError("Empty image data.")
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (OSError, UnidentifiedImageError, Image.DecompressionBombError) as e:
        raise InputError(f"Could not decode image: {e}") from e
    return _normalize(img)


def encode_jpeg(img: Image.Image, quality: int = 95) -> bytes:
    buf = io.BytesIO()
    img.convert("RGB").save(buf, format="JPEG", quality=quality, optimize=True)
    return buf.getvalue()


def encode_png(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def pil_to_np(img: Image.Image, mode: str = "RGB") -> np.ndarray:
    """PIL image -> uint8 numpy array in `mode` (RGB or RGBA)."""
    if img.mode != mode:
        img = img.convert(mode)
    return np.array(img, dtype=np.uint8)


def resize_np(arr: np.ndarray, width: int, height: int) -> np.ndarray:
    """Resize an HxWxC array to exactly width x height."""
    if width <= 0 or height <= 0:
        raise ValueError("Target size must be > 0")
    h, w = arr.shape[:2]
    if (w, h) == (width, height):
        return arr.copy()
    interp = cv2.INTER_AREA if width < w and height < h else cv2.INTER_LANCZOS4
    return cv2.resize(arr, (width, height), interpolation=interp)
