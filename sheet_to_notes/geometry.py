"""Shared geometry utilities for axis-aligned boxes and 1-D clustering."""

from __future__ import annotations

import math
from collections.abc import Iterable

from sheet_to_notes.models.core_models import Box


def intersection_area(a: Box, b: Box) -> int:
    """Area of the overlap between two boxes (0 when disjoint)."""
    inter_w = max(0, min(a.right, b.right) - max(a.x, b.x))
    inter_h = max(0, min(a.bottom, b.bottom) - max(a.y, b.y))
    return inter_w * inter_h


def overlap_ratio(reference: Box, other: Box) -> float:
    """Intersection area expressed as a fraction of ``reference``'s own area."""
    return intersection_area(reference, other) / reference.area


def contains(width: int, height: int, box: Box) -> bool:
    """True when ``box`` lies fully inside a ``width`` x ``height`` raster."""
    return box.right <= width and box.bottom <= height


def clip_box(
    x: float, y: float, w: float, h: float, width: int, height: int
) -> Box | None:
    """Clip a raw rectangle to raster bounds.

    Returns:
        The clipped ``Box``, or None when nothing with positive area remains.
    """
    x1 = max(0, int(round(x)))
    y1 = max(0, int(round(y)))
    x2 = min(width, int(round(x + w)))
    y2 = min(height, int(round(y + h)))
    if x2 <= x1 or y2 <= y1:
        return None
    return Box(x=x1, y=y1, width=x2 - x1, height=y2 - y1)


def merge_close_values(values: Iterable[int], proximity: float) -> list[int]:
    """Collapse sorted positions closer than ``proximity`` into one.

    Values are sorted ascending; a value is kept only when it lies more than
    ``proximity`` pixels beyond the last kept value, so each cluster is
    represented by its smallest member.

    Args:
        values: Pixel positions in any order, duplicates allowed.
        proximity: Merge distance in pixels.

    Returns:
        Ascending list of cluster representatives.
    """
    merged: list[int] = []
    for v in sorted(int(v) for v in values):
        if not merged or v - merged[-1] > proximity:
            merged.append(v)
    return merged


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves towards plus infinity."""
    return math.floor(value + 0.5)
