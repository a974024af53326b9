"""
Workflow state machine: upload -> validate -> process -> layout.

transition() is pure: it takes the current state and an event and returns the
next state plus the effects the controller must run. Nothing here touches a
model or an image buffer.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Tuple, Union, TYPE_CHECKING

from docphoto.core.models import FaceData
from docphoto.validation.report import ValidationReport

if TYPE_CHECKING:  # avoid importing Pillow at module import time
    from PIL import Image



class Step(str, Enum):
    AWAITING_UPLOAD = "upload"
    VALIDATING = "validating"
    PROCESSING = "processing"
    LAYOUT_READY = "layout"


@dataclass(frozen=True)
class WorkflowState:
    """
    Snapshot of a single session. A new upload or reset replaces it wholesale.

    run_id identifies the current pipeline run. It changes on every upload and
    reset; results tagged with an older id are dropped.
    """
    step: Step = Step.AWAITING_UPLOAD
    image: Optional["Image.Image"] = None
    report: Optional[ValidationReport] = None
    photo: Optional["Image.Image"] = None
    error: Optional[str] = None
    busy: bool = False
    run_id: int = 0


# ---------- Events ----------

@dataclass(frozen=True)
class Uploaded:
    image: "Image.Image"


@dataclass(frozen=True)
class UploadRejected:
    message: str


@dataclass(frozen=True)
class ValidationFinished:
    report: ValidationReport
    run_id: int


@dataclass(frozen=True)
class ValidationFailed:
    message: str
    run_id: int


@dataclass(frozen=True)
class ProcessingFinished:
    photo: "Image.Image"
    run_id: int


@dataclass(frozen=True)
class ProcessingFailed:
    message: str
    run_id: int


@dataclass(frozen=True)
class RetryProcessing:
    pass


@dataclass(frozen=True)
class DismissError:
    pass


@dataclass(frozen=True)
class Reset:
    pass


Event = Union[
    Uploaded,
    UploadRejected,
    ValidationFinished,
    ValidationFailed,
    ProcessingFinished,
    ProcessingFailed,
    RetryProcessing,
    DismissError,
    Reset,
]


# ---------- Effects ----------

@dataclass(frozen=True)
class RunValidation:
    image: "Image.Image"
    run_id: int


@dataclass(frozen=True)
class RunProcessing:
    image: "Image.Image"
    face_data: FaceData
    run_id: int


Effect = Union[RunValidation, RunProcessing]


def _start_processing(state: WorkflowState, report: ValidationReport) -> Tuple[WorkflowState, Tuple[Effect, ...]]:
    assert state.image is not None and report.face_data is not None
    nxt = replace(state, step=Step.PROCESSING, report=report, photo=None, error=None, busy=True)
    return nxt, (RunProcessing(state.image, report.face_data, state.run_id),)


def transition(state: WorkflowState, event: Event) -> Tuple[WorkflowState, Tuple[Effect, ...]]:
    """Return (next_state, effects). Events that make no sense in `state` are ignored."""
    if isinstance(event, Reset):
        return WorkflowState(run_id=state.run_id + 1), ()

    if isinstance(event, DismissError):
        return replace(state, error=None), ()

    if isinstance(event, Uploaded):
        # One pipeline run at a time.
        if state.busy:
            return state, ()
        run_id = state.run_id + 1
        nxt = WorkflowState(step=Step.VALIDATING, image=event.image, busy=True, run_id=run_id)
        return nxt, (RunValidation(event.image, run_id),)

    if isinstance(event, UploadRejected):
        if state.busy:
            return state, ()
        return WorkflowState(error=event.message, run_id=state.run_id), ()

    # Results of a run that was reset or replaced.
    if getattr(event, "run_id", state.run_id) != state.run_id:
        return state, ()

    if isinstance(event, ValidationFinished):
        if state.step is not Step.VALIDATING or not state.busy:
            return state, ()
        if event.report.is_valid and event.report.face_data is not None:
            return _start_processing(state, event.report)
        # Stay so the user can review the failed checks.
        return replace(state, report=event.report, busy=False), ()

    if isinstance(event, ValidationFailed):
        if state.step is not Step.VALIDATING:
            return state, ()
        return replace(state, report=None, error=event.message, busy=False), ()

    if isinstance(event, ProcessingFinished):
        if state.step is not Step.PROCESSING or not state.busy:
            return state, ()
        return replace(state, step=Step.LAYOUT_READY, photo=event.photo, error=None, busy=False), ()

    if isinstance(event, ProcessingFailed):
        if state.step is not Step.PROCESSING:
            return state, ()
        return replace(state, photo=None, error=event.message, busy=False), ()

    if isinstance(event, RetryProcessing):
        if state.step is not Step.PROCESSING or state.busy or state.report is None:
            return state, ()
        return _start_processing(state, state.report)

    raise TypeError(f"Unknown event: {event!r}")
