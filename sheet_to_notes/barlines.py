"""Barline detection and measure splitting.

Barlines are found as near-vertical Hough segments on an edge map: the
strip is smoothed, edges are extracted with Canny, broken vertical strokes
are bridged with a tall 1px-wide closing, and the probabilistic Hough
transform proposes segments. Segment x-coordinates are clustered into one
barline per cluster and snapped onto the darkest nearby ink column. Each
pair of neighbouring barlines then delimits a full-height measure.
"""

import logging

import cv2
import numpy as np

from sheet_to_notes.geometry import merge_close_values
from sheet_to_notes.image_processing import to_grayscale
from sheet_to_notes.image_store import crop
from sheet_to_notes.models.core_models import BarlineSet, Box, Region
from sheet_to_notes.models.pipeline_models import BarlineResult, Diagnostic
from sheet_to_notes.models.settings_models import BarlineParams

logger = logging.getLogger(__name__)


def vertical_edge_map(image: np.ndarray, params: BarlineParams) -> np.ndarray:
    """Edge map of ``image`` with vertical strokes bridged.

    Returns:
        Binary uint8 edge mask the same size as ``image``.
    """
    gray = to_grayscale(image)
    blurred = cv2.GaussianBlur(gray, (params.blur_size, params.blur_size), 0)
    edges = cv2.Canny(blurred, params.canny_low, params.canny_high)
    kernel = np.ones((params.closing_height, 1), np.uint8)
    return cv2.morphologyEx(edges, cv2.MORPH_CLOSE, kernel)


def vertical_segment_positions(edges: np.ndarray, params: BarlineParams) -> list[int]:
    """X-coordinates of the near-vertical Hough segments of an edge map.

    A segment counts as vertical when its endpoints differ horizontally by
    less than ``verticality_px``; its first endpoint's x is recorded.
    """
    segments = cv2.HoughLinesP(
        edges,
        params.rho,
        params.theta,
        params.min_votes,
        minLineLength=params.min_line_length,
        maxLineGap=params.max_line_gap,
    )
    if segments is None:
        return []

    positions = []
    # (N, 1, 4) on OpenCV 4, (N, 4) on OpenCV 5
    for x1, _, x2, _ in segments.reshape(-1, 4):
        if abs(int(x2) - int(x1)) < params.verticality_px:
            positions.append(int(x1))
    return sorted(positions)


def snap_to_ink(positions: list[int], gray: np.ndarray, radius: float) -> list[int]:
    """Move each position to the darkest column within ``radius`` pixels.

    Canny places edges beside a stroke rather than on it, so merged edge
    positions sit one pixel off the printed line. A position whose own
    column is as dark as any in its window stays where it is.

    Args:
        positions: Ascending x-coordinates.
        gray: Grayscale strip (ink dark).
        radius: Half-width of the search window.

    Returns:
        Ascending, de-duplicated x-coordinates.
    """
    ink = np.sum(255 - gray.astype(np.int64), axis=0)
    width = gray.shape[1]
    reach = int(radius)
    snapped = set()
    for x in positions:
        lo, hi = max(x - reach, 0), min(x + reach + 1, width)
        best = lo + int(np.argmax(ink[lo:hi]))
        snapped.add(x if ink[x] >= ink[best] else best)
    return sorted(snapped)


def detect_barlines(image: np.ndarray, params: BarlineParams) -> tuple[BarlineSet, list[int]]:
    """Detect the barlines of a strip.

    Returns:
        Tuple of (merged barline set, raw sorted segment positions).
    """
    gray = to_grayscale(image)
    raw = vertical_segment_positions(vertical_edge_map(gray, params), params)
    merged = merge_close_values(raw, params.barline_proximity_px)
    positions = snap_to_ink(merged, gray, params.verticality_px)
    logger.debug(f"Barlines: {len(raw)} vertical segments merged to {positions}")
    return BarlineSet(positions=positions), raw


def split_measures(image: np.ndarray, barlines: BarlineSet) -> list[Region]:
    """Crop one full-height region between each pair of neighbouring barlines."""
    height = image.shape[0]
    measures = []
    for left, right in barlines.intervals():
        box = Box(x=left, y=0, width=right - left, height=height)
        measures.append(Region(index=len(measures), box=box, image=crop(image, box)))
    return measures


def split_strip(image: np.ndarray, params: BarlineParams) -> BarlineResult:
    """Detect barlines in a strip and cut it into measures.

    Fewer than two barlines cannot delimit a measure; this is reported as a
    detection failure with an empty measure list.

    Args:
        image: Grayscale or color phrase/section strip.
        params: Edge, Hough and clustering parameters.

    Returns:
        BarlineResult with barlines, raw positions and measure regions.
    """
    barlines, raw = detect_barlines(image, params)

    if len(barlines.positions) < 2:
        message = f"Found {len(barlines.positions)} barlines, need at least 2"
        logger.warning(message)
        return BarlineResult(
            barlines=barlines,
            raw_positions=raw,
            detection_failed=True,
            diagnostics=[Diagnostic(stage="barlines", message=message)],
        )

    return BarlineResult(
        barlines=barlines,
        raw_positions=raw,
        measures=split_measures(image, barlines),
    )
