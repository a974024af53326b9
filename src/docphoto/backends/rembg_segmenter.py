from __future__ import annotations

import asyncio
import io
import logging
from typing import Any

from PIL import Image

from docphoto.backends.capabilities import LazyModel
from docphoto.core.errors import ModelUnavailable, ProcessingError

logger = logging.getLogger(__name__)


class RembgSegmenter(LazyModel):
    """Background removal backed by rembg."""

    def __init__(self, model_name: str = "u2net"):
        super().__init__()
        self.model_name = model_name
        self.name = f"rembg ({model_name})"

    def _load(self) -> Any:
        try:
            from rembg import new_session  # type: ignore
        except ImportError as e:
            raise ModelUnavailable("rembg is not installed") from e
        return new_session(self.model_name)

    def _remove_sync(self, image: Image.Image) -> Image.Image:
        from rembg import remove  # type: ignore

        cut = remove(image, session=self._model)
        if isinstance(cut, bytes):
            cut = Image.open(io.BytesIO(cut))
        return cut.convert("RGBA")

    async def remove_background(self, image: Image.Image) -> Image.Image:
        await self.ensure_loaded()
        try:
            cut = await asyncio.to_thread(self._remove_sync, image)
        except Exception as e:
            raise ProcessingError(f"Background removal failed: {e}") from e
        if cut.size != image.size:
            raise ProcessingError(f"Segmenter returned {cut.size}, expected {image.size}")
        return cut
