import unittest

import numpy as np
from PIL import Image

from tests._test_path import SRC  # noqa: F401

from docphoto.core.errors import ModelUnavailable, ProcessingError
from docphoto.core.models import FaceBox, ProcessingParams
from docphoto.processing import processor as p
from tests._faces import FakeSegmenter, make_face


class TestCropWindow(unittest.TestCase):
    def test_window_geometry(self):
        w = p.compute_crop_window(FaceBox(300, 200, 300, 400))
        self.assertAlmostEqual(w.height, 640.0)
        self.assertAlmostEqual(w.width, 480.0)
        self.assertAlmostEqual(w.x, 210.0)  # 450 - 240
        self.assertAlmostEqual(w.y, 144.0)  # 400 - 256
        self.assertEqual(w.size_px, (480, 640))

    def test_crop_output_size_and_content(self):
        arr = np.zeros((800, 1000, 3), dtype=np.uint8)
        arr[144, 210] = [255, 0, 0]
        img = Image.fromarray(arr, "RGB")
        out = p.crop_to_frame(img, p.compute_crop_window(FaceBox(300, 200, 300, 400)))
        self.assertEqual(out.size, (480, 640))
        self.assertEqual(out.mode, "RGBA")
        self.assertEqual(out.getpixel((0, 0)), (255, 0, 0, 255))

    def test_negative_origin_clamped_without_recentering(self):
        arr = np.zeros((500, 500, 3), dtype=np.uint8)
        arr[0, 0] = [0, 255, 0]
        img = Image.fromarray(arr, "RGB")
        window = p.CropWindow(x=-40.0, y=-25.0, width=120.0, height=160.0)
        out = p.crop_to_frame(img, window)
        self.assertEqual(out.size, (120, 160))
        # Source (0, 0) lands at crop (0, 0), not at (40, 25).
        self.assertEqual(out.getpixel((0, 0)), (0, 255, 0, 255))

    def test_window_past_right_edge_is_transparent(self):
        img = Image.new("RGB", (100, 100), (10, 20, 30))
        out = p.crop_to_frame(img, p.CropWindow(x=60, y=0, width=80, height=100))
        self.assertEqual(out.getpixel((10, 10))[3], 255)
        self.assertEqual(out.getpixel((70, 10))[3], 0)


class TestRecompose(unittest.TestCase):
    def test_target_size(self):
        self.assertEqual(p.target_size(ProcessingParams()), (354, 472))

    def test_large_image_scaled_down_and_centered(self):
        src = Image.new("RGBA", (708, 1000), (0, 0, 0, 255))
        out = p.recompose_on_white(src, (354, 472))
        self.assertEqual(out.size, (354, 472))
        arr = np.asarray(out)
        dark_cols = np.where(arr[236, :, 0] < 128)[0]
        left = dark_cols.min()
        right = 353 - dark_cols.max()
        self.assertGreater(left, 0)
        self.assertLessEqual(abs(left - right), 1)
        # full height is used, never more than the canvas
        self.assertLess(arr[0, 177, 0], 128)
        self.assertLess(arr[471, 177, 0], 128)

    def test_transparency_becomes_white(self):
        src = Image.new("RGBA", (354, 472), (0, 0, 0, 0))
        out = p.recompose_on_white(src, (354, 472))
        self.assertEqual(out.getpixel((100, 100)), (255, 255, 255))


class TestOptimize(unittest.TestCase):
    def test_sharpen_keeps_border(self):
        rng = np.random.default_rng(0)
        arr = rng.integers(0, 256, size=(20, 30, 3), dtype=np.uint8)
        out = np.asarray(p.sharpen(Image.fromarray(arr, "RGB"), 0.2))
        np.testing.assert_array_equal(out[0], arr[0])
        np.testing.assert_array_equal(out[-1], arr[-1])
        np.testing.assert_array_equal(out[:, 0], arr[:, 0])
        np.testing.assert_array_equal(out[:, -1], arr[:, -1])
        self.assertFalse(np.array_equal(out[1:-1, 1:-1], arr[1:-1, 1:-1]))

    def test_sharpen_formula(self):
        arr = np.full((3, 3, 3), 100, dtype=np.uint8)
        arr[1, 1] = 200
        out = np.asarray(p.sharpen(Image.fromarray(arr, "RGB"), 0.2))
        # 200 + (200 - 100) * 0.2
        self.assertEqual(int(out[1, 1, 0]), 220)

    def test_sharpen_leaves_alpha(self):
        arr = np.full((5, 5, 4), 50, dtype=np.uint8)
        arr[2, 2] = [250, 250, 250, 7]
        out = np.asarray(p.sharpen(Image.fromarray(arr, "RGBA"), 0.2))
        self.assertEqual(int(out[2, 2, 3]), 7)

    def test_contrast_identity_and_boost(self):
        self.assertAlmostEqual(p.contrast_factor(1.0), 1.0, places=9)
        self.assertGreater(p.contrast_factor(1.1), 1.0)
        img = Image.fromarray(np.array([[[128, 100, 200]]], dtype=np.uint8), "RGB")
        out = np.asarray(p.adjust_contrast(img, 1.1))[0, 0]
        self.assertEqual(int(out[0]), 128)
        self.assertLess(int(out[1]), 100)
        self.assertGreater(int(out[2]), 200)


class TestProcess(unittest.IsolatedAsyncioTestCase):
    async def test_pipeline_output_size(self):
        img = Image.new("RGB", (1000, 800), (120, 110, 100))
        seg = FakeSegmenter()
        photo = await p.process(img, make_face(), seg)
        self.assertEqual(photo.size, (354, 472))
        self.assertEqual(photo.mode, "RGB")
        self.assertEqual(seg.calls, 1)

    async def test_no_background_removal(self):
        img = Image.new("RGB", (1000, 800), (120, 110, 100))
        params = ProcessingParams(remove_background=False)
        photo = await p.process(img, make_face(), None, params)
        self.assertEqual(photo.size, (354, 472))

    async def test_segmenter_failure_aborts(self):
        img = Image.new("RGB", (1000, 800))
        with self.assertRaises(ProcessingError):
            await p.process(img, make_face(), FakeSegmenter(error=RuntimeError("gpu gone")))

    async def test_model_unavailable_passes_through(self):
        img = Image.new("RGB", (1000, 800))
        with self.assertRaises(ModelUnavailable):
            await p.process(img, make_face(), FakeSegmenter(error=ModelUnavailable("no weights")))

    async def test_empty_face_box(self):
        img = Image.new("RGB", (100, 100))
        with self.assertRaises(ProcessingError):
            await p.process(img, make_face(box=(10, 10, 0, 0)), FakeSegmenter())

    async def test_segmenter_load_failure_is_model_unavailable(self):
        img = Image.new("RGB", (1000, 800))
        with self.assertRaises(ModelUnavailable):
            await p.process(img, make_face(), FakeSegmenter(load_error=OSError("no onnx")))
