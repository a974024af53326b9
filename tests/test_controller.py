import asyncio
import io
import unittest

import numpy as np
from PIL import Image

from tests._test_path import SRC  # noqa: F401

from docphoto.app.controller import WorkflowController
from docphoto.app.state import Step
from docphoto.core.errors import ModelUnavailable
from docphoto.layout.sheets import A4, cell_boxes
from docphoto.validation.validator import CHECK_ORDER
from tests._faces import FakeDetector, FakeSegmenter, GatedDetector, make_face


def _jpeg(size=(1000, 800)):
    buf = io.BytesIO()
    Image.new("RGB", size, (150, 140, 130)).save(buf, format="JPEG")
    return buf.getvalue()


class TestWorkflowController(unittest.IsolatedAsyncioTestCase):
    async def test_end_to_end_a4(self):
        ctl = WorkflowController(FakeDetector([make_face()]), FakeSegmenter())
        state = await ctl.upload(_jpeg(), "image/jpeg")

        self.assertEqual(state.step, Step.LAYOUT_READY)
        self.assertTrue(state.report.is_valid)
        self.assertEqual(tuple(state.report.checks), CHECK_ORDER)
        self.assertEqual(state.photo.size, (354, 472))

        sheet = ctl.sheet("a4")
        self.assertEqual(sheet.size, (2480, 3508))
        arr = np.asarray(sheet)
        cells = cell_boxes(A4)
        self.assertEqual(len(cells), 6)
        for x, y, w, h in cells:
            self.assertFalse((arr[y + h // 2, x + w // 2] == 255).all())

        data = ctl.sheet_bytes("a4")
        self.assertEqual(Image.open(io.BytesIO(data)).size, (2480, 3508))
        self.assertEqual(Image.open(io.BytesIO(ctl.photo_bytes())).size, (354, 472))

    async def test_invalid_photo_never_processed(self):
        seg = FakeSegmenter()
        ctl = WorkflowController(FakeDetector([]), seg)
        state = await ctl.upload(_jpeg(), "image/jpeg")
        self.assertEqual(state.step, Step.VALIDATING)
        self.assertFalse(state.report.is_valid)
        self.assertEqual(seg.calls, 0)
        with self.assertRaises(RuntimeError):
            ctl.photo_bytes()

    async def test_rejected_upload(self):
        det = FakeDetector([make_face()])
        ctl = WorkflowController(det, FakeSegmenter())
        state = await ctl.upload(b"GIF89a", "image/gif")
        self.assertEqual(state.step, Step.AWAITING_UPLOAD)
        self.assertIn("JPG or PNG", state.error)
        self.assertEqual(det.detect_calls, 0)

    async def test_model_unavailable_surfaces_as_error(self):
        ctl = WorkflowController(FakeDetector(error=ModelUnavailable("weights missing")), FakeSegmenter())
        state = await ctl.upload(_jpeg(), "image/jpeg")
        self.assertEqual(state.step, Step.VALIDATING)
        self.assertIsNone(state.report)
        self.assertIn("weights missing", state.error)

    async def test_processing_failure_then_retry(self):
        seg = FakeSegmenter(error=RuntimeError("segmenter crashed"))
        ctl = WorkflowController(FakeDetector([make_face()]), seg)
        state = await ctl.upload(_jpeg(), "image/jpeg")
        self.assertEqual(state.step, Step.PROCESSING)
        self.assertIsNone(state.photo)
        self.assertIn("segmenter crashed", state.error)

        seg.error = None
        state = await ctl.retry_processing()
        self.assertEqual(state.step, Step.LAYOUT_READY)
        self.assertEqual(state.photo.size, (354, 472))
        self.assertEqual(seg.calls, 2)

    async def test_reset(self):
        ctl = WorkflowController(FakeDetector([make_face()]), FakeSegmenter())
        await ctl.upload(_jpeg(), "image/jpeg")
        state = await ctl.reset()
        self.assertEqual(state.step, Step.AWAITING_UPLOAD)
        self.assertIsNone(state.photo)
        self.assertIsNone(state.image)

    async def test_detector_load_crash_ends_the_run(self):
        det = FakeDetector([make_face()], load_error=OSError("weights file missing"))
        ctl = WorkflowController(det, FakeSegmenter())
        state = await ctl.upload(_jpeg(), "image/jpeg")
        self.assertEqual(state.step, Step.VALIDATING)
        self.assertFalse(state.busy)
        self.assertIn("weights file missing", state.error)

        # the session is not stuck: a later upload runs once the model loads
        det.load_error = None
        state = await ctl.upload(_jpeg(), "image/jpeg")
        self.assertEqual(state.step, Step.LAYOUT_READY)

    async def test_segmenter_load_crash_ends_the_run(self):
        ctl = WorkflowController(FakeDetector([make_face()]), FakeSegmenter(load_error=OSError("no onnx")))
        state = await ctl.upload(_jpeg(), "image/jpeg")
        self.assertEqual(state.step, Step.PROCESSING)
        self.assertFalse(state.busy)
        self.assertIn("no onnx", state.error)


class TestOverlappingRuns(unittest.IsolatedAsyncioTestCase):
    async def test_upload_while_busy_is_ignored(self):
        face_a, face_b = make_face(), make_face(box=(320, 220, 300, 400))
        det = GatedDetector([[face_a], [face_b]])
        ctl = WorkflowController(det, FakeSegmenter())

        first = asyncio.create_task(ctl.upload(_jpeg(), "image/jpeg"))
        await det.started[0].wait()
        image_a = ctl.state.image

        state = await ctl.upload(_jpeg((900, 800)), "image/jpeg")
        self.assertTrue(state.busy)
        self.assertIs(state.image, image_a)

        det.gates[0].set()
        state = await first
        self.assertEqual(state.step, Step.LAYOUT_READY)
        self.assertIs(state.report.face_data, face_a)
        self.assertEqual(det.detect_calls, 1)

    async def test_result_from_before_reset_is_discarded(self):
        face_a, face_b = make_face(), make_face(box=(320, 220, 300, 400))
        det = GatedDetector([[face_a], [face_b]])
        ctl = WorkflowController(det, FakeSegmenter())

        first = asyncio.create_task(ctl.upload(_jpeg(), "image/jpeg"))
        await det.started[0].wait()
        await ctl.reset()

        second = asyncio.create_task(ctl.upload(_jpeg(), "image/jpeg"))
        await det.started[1].wait()

        # the old run finishes first
        det.gates[0].set()
        await first
        self.assertEqual(ctl.state.step, Step.VALIDATING)
        self.assertTrue(ctl.state.busy)
        self.assertIsNone(ctl.state.report)

        det.gates[1].set()
        state = await second
        self.assertEqual(state.step, Step.LAYOUT_READY)
        self.assertIs(state.report.face_data, face_b)
