from __future__ import annotations


class DocPhotoError(Exception):
    """Base class for errors that abort a pipeline step."""


class InputError(DocPhotoError):
    """The uploaded bytes are not an acceptable, decodable image."""


class ModelUnavailable(DocPhotoError):
    """A detector or segmenter model could not be initialized."""


class DetectionError(DocPhotoError):
    """The face detector failed while running (not the same as finding no face)."""


class ProcessingError(DocPhotoError):
    """A crop/segment/recompose/optimize stage failed; no photo was produced."""


class LayoutError(DocPhotoError):
    """A print sheet could not be generated."""
