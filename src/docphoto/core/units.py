from __future__ import annotations

import math

DPI = 300
CM_TO_INCH = 0.393701
MM_TO_INCH = 0.0393701


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positive values."""
    return int(math.floor(value + 0.5))


def cm_to_px(size_cm: float, dpi: int = DPI) -> int:
    return round_half_up(size_cm * CM_TO_INCH * dpi)


def mm_to_px(size_mm: float, dpi: int = DPI) -> int:
    return round_half_up(size_mm * MM_TO_INCH * dpi)
