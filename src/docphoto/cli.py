#!/usr/bin/env python3
"""
docphoto command line.

Validate a portrait, turn it into a 3x4 cm document photo and optionally lay
out copies on a print sheet.

Usage:
  docphoto --input in.jpg --output photo.jpg
  docphoto --input in.jpg --output sheet.jpg --layout a4
  docphoto --input in.jpg --output sheet.png --layout 10x15 --report
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

from docphoto.app.controller import WorkflowController
from docphoto.app.state import Step
from docphoto.backends.mediapipe_detector import MediaPipeFaceDetector
from docphoto.backends.rembg_segmenter import RembgSegmenter
from docphoto.core.errors import DocPhotoError
from docphoto.core.imaging import encode_jpeg, encode_png, load_image_rgb
from docphoto.core.models import ProcessingParams
from docphoto.layout.sheets import LAYOUTS
from docphoto.validation.validator import format_report_text


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Generate a 3x4 cm document photo (354x472 px) and print sheets.")
    p.add_argument("--input", "-i", required=True, help="Path to input image (jpg/png)")
    p.add_argument("--output", "-o", required=True, help="Path to output image (jpg/png)")
    p.add_argument("--layout", choices=sorted(LAYOUTS), default="single", help="Output layout (default: single)")
    p.add_argument("--no-bg", action="store_true", help="Disable background removal")
    p.add_argument("--report", action="store_true", help="Print the validation report")
    p.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return p


async def run_pipeline(controller: WorkflowController, input_path: str) -> WorkflowController:
    image = load_image_rgb(input_path)
    await controller.upload_image(image)
    return controller


def _write(controller: WorkflowController, layout: str, output_path: str) -> None:
    img = controller.state.photo if layout == "single" else controller.sheet(layout)
    if output_path.lower().endswith(".png"):
        data = encode_png(img)
    else:
        data = encode_jpeg(img, quality=controller.params.jpeg_quality)
    Path(output_path).write_bytes(data)


def main(argv: Optional[list[str]] = None) -> int:
    args = _build_arg_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    params = replace(ProcessingParams(), remove_background=not args.no_bg)
    segmenter = RembgSegmenter() if params.remove_background else None
    controller = WorkflowController(MediaPipeFaceDetector(), segmenter, params)

    try:
        asyncio.run(run_pipeline(controller, args.input))
    except DocPhotoError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    state = controller.state
    if state.report is not None and (args.report or not state.report.is_valid):
        print(format_report_text(state.report))

    if state.error:
        print(f"ERROR: {state.error}", file=sys.stderr)
        return 2
    if state.step is not Step.LAYOUT_READY:
        return 1

    try:
        _write(controller, args.layout, args.output)
    except (DocPhotoError, OSError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    print(f"Saved: {args.output}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
