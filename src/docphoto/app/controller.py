from __future__ import annotations

import logging
from typing import List, Optional

from PIL import Image

from docphoto.app.state import (
    DismissError,
    Effect,
    Event,
    ProcessingFailed,
    ProcessingFinished,
    Reset,
    RetryProcessing,
    RunProcessing,
    RunValidation,
    Step,
    UploadRejected,
    Uploaded,
    ValidationFailed,
    ValidationFinished,
    WorkflowState,
    transition,
)
from docphoto.app.upload import accept_upload
from docphoto.backends.capabilities import BackgroundSegmenter, FaceDetector
from docphoto.core.errors import DocPhotoError, InputError
from docphoto.core.imaging import encode_jpeg
from docphoto.core.models import ProcessingParams
from docphoto.layout.sheets import get_layout, layout_grid
from docphoto.processing.processor import process
from docphoto.validation.validator import validate

logger = logging.getLogger(__name__)


class WorkflowController:
    """
    Drives the state machine for one session.

    The detector and segmenter are constructed once by the host and passed in,
    so their loaded weights outlive any single upload.
    """

    def __init__(
        self,
        detector: FaceDetector,
        segmenter: Optional[BackgroundSegmenter],
        params: ProcessingParams = ProcessingParams(),
    ):
        self.detector = detector
        self.segmenter = segmenter
        self.params = params
        self.state = WorkflowState()

    # ---------- Event loop ----------

    async def dispatch(self, event: Event) -> WorkflowState:
        pending: List[Event] = [event]
        while pending:
            ev = pending.pop(0)
            self.state, effects = transition(self.state, ev)
            logger.debug("%s -> %s", type(ev).__name__, self.state.step.value)
            for effect in effects:
                pending.append(await self._run(effect))
        return self.state

    async def _run(self, effect: Effect) -> Event:
        """Run one effect; always ends in a finished or failed event for its run."""
        if isinstance(effect, RunValidation):
            try:
                report = await validate(effect.image, self.detector)
            except DocPhotoError as e:
                logger.warning("Validation failed: %s", e)
                return ValidationFailed(str(e), effect.run_id)
            except Exception as e:
                logger.exception("Unexpected validation error")
                return ValidationFailed(f"Unexpected error: {e}", effect.run_id)
            return ValidationFinished(report, effect.run_id)

        if isinstance(effect, RunProcessing):
            try:
                photo = await process(effect.image, effect.face_data, self.segmenter, self.params)
            except DocPhotoError as e:
                logger.warning("Processing failed: %s", e)
                return ProcessingFailed(str(e), effect.run_id)
            except Exception as e:
                logger.exception("Unexpected processing error")
                return ProcessingFailed(f"Unexpected error: {e}", effect.run_id)
            return ProcessingFinished(photo, effect.run_id)

        raise TypeError(f"Unknown effect: {effect!r}")

    # ---------- Host-facing actions ----------

    async def upload(self, data: bytes, content_type: str) -> WorkflowState:
        try:
            image = accept_upload(data, content_type)
        except InputError as e:
            return await self.dispatch(UploadRejected(str(e)))
        return await self.dispatch(Uploaded(image))

    async def upload_image(self, image: Image.Image) -> WorkflowState:
        return await self.dispatch(Uploaded(image))

    async def retry_processing(self) -> WorkflowState:
        return await self.dispatch(RetryProcessing())

    async def dismiss_error(self) -> WorkflowState:
        return await self.dispatch(DismissError())

    async def reset(self) -> WorkflowState:
        return await self.dispatch(Reset())

    # ---------- Output ----------

    def _require_photo(self) -> Image.Image:
        if self.state.step is not Step.LAYOUT_READY or self.state.photo is None:
            raise RuntimeError("No processed photo yet.")
        return self.state.photo

    def photo_bytes(self) -> bytes:
        return encode_jpeg(self._require_photo(), quality=self.params.jpeg_quality)

    def sheet(self, layout_name: str) -> Image.Image:
        return layout_grid(self._require_photo(), get_layout(layout_name))

    def sheet_bytes(self, layout_name: str) -> bytes:
        return encode_jpeg(self.sheet(layout_name), quality=self.params.jpeg_quality)
