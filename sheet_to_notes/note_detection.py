"""Glyph detection functions using contour analysis.

This module finds note-head candidates in binary measure masks with OpenCV
contour detection. Each external contour is measured (area, perimeter,
aspect ratio, circularity) and accepted only when it looks like a round,
compact blob, which discriminates note heads from stems, beams and
staff-line remnants.

A second, density-based classifier flags wide components whose bounding
box is mostly ink; the right-most of them marks the closing note of a
measure.
"""

import logging
import math

import cv2
import numpy as np

from sheet_to_notes.image_store import crop
from sheet_to_notes.models.core_models import Box, DensityMarker, GlyphCandidate
from sheet_to_notes.models.settings_models import DensityParams, GlyphParams

logger = logging.getLogger(__name__)


def find_components(binary: np.ndarray) -> list[np.ndarray]:
    """External contours of the foreground blobs of a binary mask."""
    contours, _ = cv2.findContours(binary, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
    return list(contours)


def measure_contour(contour: np.ndarray) -> GlyphCandidate:
    """Compute the bounding box and shape metrics of one contour."""
    x, y, w, h = cv2.boundingRect(contour)
    area = cv2.contourArea(contour)
    perimeter = cv2.arcLength(contour, True)
    circularity = 4 * math.pi * area / (perimeter * perimeter) if perimeter > 0 else 0.0
    return GlyphCandidate(
        box=Box(x=x, y=y, width=w, height=h),
        area=area,
        perimeter=perimeter,
        aspect_ratio=w / h,
        circularity=circularity,
    )


def within_size_limits(box: Box, params: GlyphParams) -> bool:
    """True when the bounding box respects the min/max contour dimensions."""
    return (
        params.min_contour_width <= box.width <= params.max_contour_width
        and params.min_contour_height <= box.height <= params.max_contour_height
    )


def is_note_head(candidate: GlyphCandidate, params: GlyphParams) -> bool:
    """Apply the note-head shape filter to a measured glyph.

    Area must lie in [min_area, max_area]; aspect ratio and circularity must
    meet their thresholds.
    """
    return (
        params.min_area <= candidate.area <= params.max_area
        and candidate.aspect_ratio >= params.aspect_ratio_threshold
        and candidate.circularity >= params.circularity_threshold
    )


def extract_glyphs(binary: np.ndarray, params: GlyphParams) -> list[GlyphCandidate]:
    """Detect note-head candidates in a binary mask.

    Args:
        binary: Binary mask (ink = 255), typically a staff-free measure.
        params: Geometric filter configuration.

    Returns:
        Accepted candidates sorted left to right (ties broken top to bottom).
    """
    contours = find_components(binary)
    accepted: list[GlyphCandidate] = []
    for contour in contours:
        x, y, w, h = cv2.boundingRect(contour)
        if not within_size_limits(Box(x=x, y=y, width=w, height=h), params):
            continue
        candidate = measure_contour(contour)
        if is_note_head(candidate, params):
            accepted.append(candidate)

    logger.debug(f"Accepted {len(accepted)} of {len(contours)} contours as note heads")
    return sorted(accepted, key=lambda g: (g.box.x, g.box.y))


def export_glyphs(image: np.ndarray, glyphs: list[GlyphCandidate]) -> list[np.ndarray]:
    """Crop each glyph out of ``image`` as an independent raster."""
    return [crop(image, g.box) for g in glyphs]


def black_density(binary: np.ndarray, box: Box) -> float:
    """Percentage of non-ink pixels inside ``box`` of an ink-is-white mask."""
    roi = binary[box.y : box.bottom, box.x : box.right]
    ink = cv2.countNonZero(roi)
    return (box.area - ink) / box.area * 100


def classify_density_markers(
    binary: np.ndarray, params: DensityParams
) -> list[DensityMarker]:
    """Classify the wide components of a strip by black-pixel density.

    Components narrower than ``relative_width_threshold`` of the strip width
    are ignored. A component is a marker when its density falls inside
    [min_density, max_density], the signature of a filled note head rather
    than a barline or stray mark.

    Returns:
        All wide components, left to right, with their classification.
    """
    strip_width = binary.shape[1]
    markers = []
    for contour in find_components(binary):
        x, y, w, h = cv2.boundingRect(contour)
        if w / strip_width < params.relative_width_threshold:
            continue
        box = Box(x=x, y=y, width=w, height=h)
        density = black_density(binary, box)
        is_marker = params.min_density <= density <= params.max_density
        if is_marker:
            logger.debug(f"Marker at ({x}, {y}) - black: {density:.2f}%")
        markers.append(DensityMarker(box=box, density=density, is_marker=is_marker))
    return sorted(markers, key=lambda m: m.box.x)


def final_marker(markers: list[DensityMarker]) -> DensityMarker | None:
    """The right-most component classified as a marker, if any."""
    flagged = [m for m in markers if m.is_marker]
    return flagged[-1] if flagged else None
