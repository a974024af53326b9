from __future__ import annotations

from PIL import Image

from docphoto.core.errors import InputError
from docphoto.core.imaging import decode_image

ACCEPTED_TYPES = ("image/jpeg", "image/jpg", "image/png")
MAX_UPLOAD_BYTES = 10 * 1024 * 1024


def accept_upload(data: bytes, content_type: str) -> Image.Image:
    """
    Check an uploaded blob and decode it.

    Only JPEG/PNG up to 10 MB are accepted; anything else raises InputError.
    """
    ctype = (content_type or "").split(";")[0].strip().lower()
    if ctype not in ACCEPTED_TYPES:
        raise InputError("Please upload a JPG or PNG image.")
    if len(data) > MAX_UPLOAD_BYTES:
        raise InputError("File size must be less than 10MB.")
    return decode_image(data)
