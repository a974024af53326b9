from __future__ import annotations

import asyncio
import logging
from typing import Any, List

import numpy as np
from PIL import Image

from docphoto.backends.capabilities import LazyModel
from docphoto.core.errors import DetectionError, ModelUnavailable
from docphoto.core.models import FaceBox, FaceData, LandmarkSet

logger = logging.getLogger(__name__)

# FaceMesh (468 points) -> 68-point layout, in 68-point order.
MESH_TO_68 = (
    # jaw
    127, 234, 93, 132, 58, 136, 150, 176, 152, 400, 379, 365, 288, 361, 323, 454, 356,
    # right eyebrow, left eyebrow
    70, 63, 105, 66, 107,
    336, 296, 334, 293, 300,
    # nose: bridge down to tip, then nostril line
    168, 197, 5, 4, 75, 97, 2, 326, 305,
    # left eye, right eye (outer/upper/inner/lower order)
    33, 160, 158, 133, 153, 144,
    362, 385, 387, 263, 373, 380,
    # outer lips
    61, 39, 37, 0, 267, 269, 291, 405, 314, 17, 84, 181,
    # inner lips
    78, 82, 13, 312, 308, 317, 14, 87,
)


class MediaPipeFaceDetector(LazyModel):
    """
    Face detector backed by MediaPipe Face Mesh.

    The face box is the bounding box of all mesh points, in pixels.
    """

    name = "MediaPipe Face Mesh"

    def __init__(self, max_faces: int = 5, min_detection_confidence: float = 0.5):
        super().__init__()
        self.max_faces = max_faces
        self.min_detection_confidence = min_detection_confidence

    def _load(self) -> Any:
        try:
            import mediapipe as mp  # type: ignore
        except ImportError as e:
            raise ModelUnavailable("mediapipe is not installed") from e

        return mp.solutions.face_mesh.FaceMesh(
            static_image_mode=True,
            refine_landmarks=True,
            max_num_faces=self.max_faces,
            min_detection_confidence=self.min_detection_confidence,
        )

    def _detect_sync(self, rgb: np.ndarray) -> List[FaceData]:
        results = self._model.process(rgb)  # type: ignore[union-attr]
        if not results.multi_face_landmarks:
            return []

        h, w = rgb.shape[:2]
        faces: List[FaceData] = []
        for face_lm in results.multi_face_landmarks:
            mesh = np.array([(p.x * w, p.y * h) for p in face_lm.landmark], dtype=np.float64)
            x0, y0 = mesh.min(axis=0)
            x1, y1 = mesh.max(axis=0)
            box = FaceBox(x=float(x0), y=float(y0), width=float(x1 - x0), height=float(y1 - y0))
            landmarks = LandmarkSet.from_points(mesh[list(MESH_TO_68)])
            faces.append(FaceData(box=box, landmarks=landmarks))
        return faces

    async def detect_faces(self, image: Image.Image) -> List[FaceData]:
        await self.ensure_loaded()
        rgb = np.asarray(image.convert("RGB"))
        try:
            faces = await asyncio.to_thread(self._detect_sync, rgb)
        except Exception as e:
            raise DetectionError(f"Face mesh inference failed: {e}") from e
        logger.debug("Face mesh found %d face(s)", len(faces))
        return faces
