"""
Capability contracts for the external models, plus the load-once base class
shared by the concrete backends.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Protocol

from PIL import Image

from docphoto.core.errors import ModelUnavailable
from docphoto.core.models import FaceData

logger = logging.getLogger(__name__)


class FaceDetector(Protocol):
    """Finds faces with 68-point landmarks."""

    @property
    def ready(self) -> bool:
        ...

    async def ensure_loaded(self) -> None:
        """Load the model once; later calls are no-ops."""
        ...

    async def detect_faces(self, image: Image.Image) -> List[FaceData]:
        """Return every face found (possibly none)."""
        ...


class BackgroundSegmenter(Protocol):
    """Makes non-subject pixels transparent."""

    @property
    def ready(self) -> bool:
        ...

    async def ensure_loaded(self) -> None:
        ...

    async def remove_background(self, image: Image.Image) -> Image.Image:
        """Return an RGBA image of the same size."""
        ...


class LazyModel:
    """
    Owns a model handle that is loaded at most once.

    Concurrent ensure_loaded() calls share a single load. A failed load raises
    ModelUnavailable and leaves the model unloaded, so a later call retries.
    Subclasses implement the blocking _load(), which runs in a worker thread.
    """

    name = "model"

    def __init__(self) -> None:
        self._model: Optional[object] = None
        self._lock: Optional[asyncio.Lock] = None

    @property
    def ready(self) -> bool:
        return self._model is not None

    def _load(self) -> object:
        raise NotImplementedError

    async def ensure_loaded(self) -> None:
        if self._model is not None:
            return
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            if self._model is not None:
                return
            logger.info("Loading %s", self.name)
            try:
                model = await asyncio.to_thread(self._load)
            except ModelUnavailable:
                raise
            except Exception as e:
                logger.exception("Failed to load %s", self.name)
                raise ModelUnavailable(f"Could not load {self.name}: {e}") from e
            self._model = model
            logger.info("%s loaded", self.name)

    async def close(self) -> None:
        self._model = None


async def load_capability(model: "FaceDetector | BackgroundSegmenter", what: str) -> None:
    """Run model.ensure_loaded(); any failure there is reported as ModelUnavailable."""
    try:
        await model.ensure_loaded()
    except ModelUnavailable:
        raise
    except Exception as e:
        logger.exception("Failed to load %s", what)
        raise ModelUnavailable(f"Could not load {what}: {e}") from e
