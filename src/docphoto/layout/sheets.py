"""
Print sheets: a fixed grid of copies of one processed photo, with gray cut
guides around every copy and a short caption at the bottom. All sizes are
physical (mm) converted at 300 DPI.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from PIL import Image, ImageDraw, ImageFont

from docphoto.core.errors import LayoutError
from docphoto.core.imaging import pil_to_np, resize_np
from docphoto.core.units import DPI, mm_to_px

logger = logging.getLogger(__name__)

GUIDE_COLOR = (204, 204, 204)
GUIDE_WIDTH = 2
CAPTION_COLOR = (102, 102, 102)


@dataclass(frozen=True)
class Caption:
    text: str
    # Distance from the bottom edge of the sheet to the text baseline, in px.
    baseline_from_bottom: int
    centered: bool = False


@dataclass(frozen=True)
class LayoutSpec:
    """
    margin_mm=None centers the grid on both axes; otherwise the grid starts
    at (margin, margin) from the top-left corner.
    """
    name: str
    sheet_mm: Tuple[float, float]
    photo_mm: Tuple[float, float]
    cols: int
    rows: int
    margin_mm: Optional[float]
    spacing_mm: float
    cut_guides: bool = True
    captions: Tuple[Caption, ...] = ()
    dpi: int = DPI

    @property
    def sheet_px(self) -> Tuple[int, int]:
        return mm_to_px(self.sheet_mm[0], self.dpi), mm_to_px(self.sheet_mm[1], self.dpi)

    @property
    def photo_px(self) -> Tuple[int, int]:
        return mm_to_px(self.photo_mm[0], self.dpi), mm_to_px(self.photo_mm[1], self.dpi)

    @property
    def spacing_px(self) -> int:
        return mm_to_px(self.spacing_mm, self.dpi)

    @property
    def copies(self) -> int:
        return self.cols * self.rows


SINGLE = LayoutSpec(
    name="single",
    sheet_mm=(30, 40),
    photo_mm=(30, 40),
    cols=1,
    rows=1,
    margin_mm=0,
    spacing_mm=0,
    cut_guides=False,
)

A4 = LayoutSpec(
    name="a4",
    sheet_mm=(210, 297),
    photo_mm=(30, 40),
    cols=2,
    rows=3,
    margin_mm=20,
    spacing_mm=15,
    captions=(
        Caption("Cut along gray lines", baseline_from_bottom=30),
        Caption("3×4 cm passport photos - Print at 300 DPI", baseline_from_bottom=10),
    ),
)

PHOTO_10X15 = LayoutSpec(
    name="10x15",
    sheet_mm=(100, 150),
    photo_mm=(30, 40),
    cols=3,
    rows=3,
    margin_mm=None,
    spacing_mm=5,
    captions=(Caption("3×4 cm photos - 300 DPI", baseline_from_bottom=10, centered=True),),
)

LAYOUTS: Dict[str, LayoutSpec] = {spec.name: spec for spec in (SINGLE, A4, PHOTO_10X15)}


def grid_origin(spec: LayoutSpec) -> Tuple[int, int]:
    """Top-left pixel of the first cell."""
    if spec.margin_mm is not None:
        m = mm_to_px(spec.margin_mm, spec.dpi)
        return m, m

    sheet_w, sheet_h = spec.sheet_px
    photo_w, photo_h = spec.photo_px
    gap = spec.spacing_px
    grid_w = spec.cols * photo_w + (spec.cols - 1) * gap
    grid_h = spec.rows * photo_h + (spec.rows - 1) * gap
    # Integer division keeps the placement on whole pixels.
    return (sheet_w - grid_w) // 2, (sheet_h - grid_h) // 2


def cell_boxes(spec: LayoutSpec) -> List[Tuple[int, int, int, int]]:
    """(x, y, width, height) of every cell, row by row."""
    ox, oy = grid_origin(spec)
    photo_w, photo_h = spec.photo_px
    gap = spec.spacing_px
    return [
        (ox + col * (photo_w + gap), oy + row * (photo_h + gap), photo_w, photo_h)
        for row in range(spec.rows)
        for col in range(spec.cols)
    ]


def _draw_caption(draw: ImageDraw.ImageDraw, caption: Caption, sheet_size: Tuple[int, int], left: int) -> None:
    font = ImageFont.load_default()
    x0, y0, x1, y1 = draw.textbbox((0, 0), caption.text, font=font)
    text_w, text_h = x1 - x0, y1 - y0
    sheet_w, sheet_h = sheet_size
    x = (sheet_w - text_w) // 2 if caption.centered else left
    y = sheet_h - caption.baseline_from_bottom - text_h
    draw.text((x - x0, y - y0), caption.text, fill=CAPTION_COLOR, font=font)


def layout_grid(photo: Image.Image, spec: LayoutSpec) -> Image.Image:
    """
    Render `spec` with copies of `photo`. Output size is always spec.sheet_px;
    nothing in the raster depends on time or randomness.
    """
    if photo is None or photo.width <= 0 or photo.height <= 0:
        raise LayoutError("Source photo is empty")

    try:
        sheet_w, sheet_h = spec.sheet_px
        photo_w, photo_h = spec.photo_px
        sheet = Image.new("RGB", (sheet_w, sheet_h), (255, 255, 255))
        tile = Image.fromarray(resize_np(pil_to_np(photo, "RGB"), photo_w, photo_h), "RGB")
        draw = ImageDraw.Draw(sheet)

        for x, y, w, h in cell_boxes(spec):
            sheet.paste(tile, (x, y))
            if spec.cut_guides:
                # 2px stroke centered on the cell edge: 1px outside, 1px inside.
                draw.rectangle((x - 1, y - 1, x + w, y + h), outline=GUIDE_COLOR, width=GUIDE_WIDTH)

        left, _ = grid_origin(spec)
        for caption in spec.captions:
            _draw_caption(draw, caption, (sheet_w, sheet_h), left)
    except Exception as e:
        logger.exception("Layout %s failed", spec.name)
        raise LayoutError(f"Could not generate {spec.name} layout: {e}") from e

    logger.info("Rendered %s sheet %dx%d with %d copies", spec.name, sheet_w, sheet_h, spec.copies)
    return sheet


def get_layout(name: str) -> LayoutSpec:
    try:
        return LAYOUTS[name]
    except KeyError:
        raise LayoutError(f"Unknown layout {name!r}; choose one of {', '.join(LAYOUTS)}") from None
