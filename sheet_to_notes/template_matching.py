"""Template-matched region localization with non-maximum suppression.

Each template (typically a clef glyph) is slid over the search image with
normalized cross-correlation. Every score at or above the match threshold
proposes a region grown from the match position: the left edge is the
match x scaled by ``x_scale``, the width is ``surface_width - 2x`` and the
height is the template height widened by ``height_scale``, so the region
covers the whole staff row rather than only the template footprint.
Proposals from all templates are pooled and reduced with a greedy
non-maximum suppression.
"""

import logging
from collections.abc import Sequence
from pathlib import Path

import cv2
import numpy as np

from sheet_to_notes.errors import TemplateLoadError
from sheet_to_notes.geometry import clip_box
from sheet_to_notes.image_processing import to_grayscale
from sheet_to_notes.image_store import crop
from sheet_to_notes.models.core_models import Box, Region
from sheet_to_notes.models.pipeline_models import LocalizationResult
from sheet_to_notes.models.settings_models import LocalizerParams

logger = logging.getLogger(__name__)

TEMPLATE_EXTENSIONS = (".png", ".jpg", ".jpeg")


def load_template(path: str | Path) -> np.ndarray:
    """Read one template image as grayscale.

    Raises:
        TemplateLoadError: If the file is missing or cannot be decoded.
    """
    template = cv2.imread(str(path), cv2.IMREAD_GRAYSCALE)
    if template is None:
        raise TemplateLoadError(f"Cannot read template image: {path}")
    return template


def load_templates(folder: str | Path) -> list[np.ndarray]:
    """Load every PNG/JPEG template in a folder, sorted by file name.

    Unreadable files are logged and skipped; a missing folder is an error.

    Raises:
        TemplateLoadError: If ``folder`` is not a directory.
    """
    folder = Path(folder)
    if not folder.is_dir():
        raise TemplateLoadError(f"Template folder not found: {folder}")

    templates = []
    for path in sorted(folder.iterdir()):
        if path.suffix.lower() not in TEMPLATE_EXTENSIONS:
            continue
        try:
            templates.append(load_template(path))
        except TemplateLoadError as e:
            logger.warning(f"Skipping template: {e}")
    logger.info(f"Loaded {len(templates)} templates from {folder}")
    return templates


def match_template(search: np.ndarray, template: np.ndarray) -> np.ndarray:
    """Compute the normalized cross-correlation score surface.

    Returns:
        Float32 array of shape (H - th + 1, W - tw + 1).
    """
    return cv2.matchTemplate(search, template, cv2.TM_CCOEFF_NORMED)


def candidate_boxes(
    scores: np.ndarray,
    template_height: int,
    image_shape: tuple[int, int],
    params: LocalizerParams,
) -> list[Box]:
    """Grow a region box from every score at or above the match threshold.

    Proposals are clipped to the search image; proposals with no area left
    (matches in the right half of the surface have a non-positive width) are
    dropped.

    Args:
        scores: Score surface from ``match_template``.
        template_height: Height of the template that produced ``scores``.
        image_shape: (height, width) of the search image.
        params: Threshold and growth factors.

    Returns:
        Candidate boxes in row-major order of their match position.
    """
    height, width = image_shape
    surface_width = scores.shape[1]
    boxes: list[Box] = []
    for y, x in np.argwhere(scores >= params.match_threshold):
        box = clip_box(
            params.x_scale * x,
            y,
            surface_width - 2 * x,
            template_height * params.height_scale,
            width,
            height,
        )
        if box is not None:
            boxes.append(box)
    return boxes


def non_maximum_suppression(boxes: Sequence[Box], overlap_threshold: float) -> list[Box]:
    """Greedily keep the lowest-reaching box of each overlapping cluster.

    Boxes are ordered by bottom edge; the box reaching furthest down is kept
    and every remaining box whose intersection with it covers at least
    ``overlap_threshold`` of the kept box's area is discarded. This repeats
    until no box is left.

    Args:
        boxes: Candidate boxes.
        overlap_threshold: Suppression threshold in [0, 1].

    Returns:
        Surviving boxes in the order they were picked.
    """
    if not boxes:
        return []

    rects = np.array([b.as_tuple() for b in boxes], dtype=np.float64)
    x1, y1 = rects[:, 0], rects[:, 1]
    x2, y2 = x1 + rects[:, 2], y1 + rects[:, 3]

    idxs = np.argsort(y2, kind="stable")
    picked: list[int] = []
    while idxs.size > 0:
        last = idxs[-1]
        picked.append(int(last))
        rest = idxs[:-1]

        w = np.maximum(0, np.minimum(x2[last], x2[rest]) - np.maximum(x1[last], x1[rest]))
        h = np.maximum(0, np.minimum(y2[last], y2[rest]) - np.maximum(y1[last], y1[rest]))
        overlap = (w * h) / (rects[last, 2] * rects[last, 3])

        idxs = rest[overlap < overlap_threshold]

    return [boxes[i] for i in picked]


def reading_order(boxes: Sequence[Box]) -> list[Box]:
    """Sort boxes top-to-bottom, then left-to-right."""
    return sorted(boxes, key=lambda b: (b.y, b.x))


def localize_regions(
    image: np.ndarray,
    templates: Sequence[np.ndarray],
    params: LocalizerParams,
) -> LocalizationResult:
    """Find the regions of ``image`` that match any of the templates.

    Templates larger than the search image are logged and skipped. When no
    score reaches the threshold the result is simply empty.

    Args:
        image: Grayscale or color search raster.
        templates: Grayscale template rasters (never modified).
        params: Match and suppression thresholds.

    Returns:
        LocalizationResult with boxes in reading order and one cropped
        region per box.
    """
    search = to_grayscale(image)
    height, width = search.shape

    candidates: list[Box] = []
    skipped = 0
    for template in templates:
        th, tw = template.shape[:2]
        if tw > width or th > height:
            logger.warning(
                f"Skipping template {tw}x{th} as it is larger than the "
                f"source image {width}x{height}"
            )
            skipped += 1
            continue
        scores = match_template(search, to_grayscale(template))
        found = candidate_boxes(scores, th, (height, width), params)
        logger.debug(f"Template {tw}x{th}: {len(found)} candidate boxes")
        candidates.extend(found)

    if not candidates:
        logger.info("No template match reached the threshold")
        return LocalizationResult(skipped_templates=skipped)

    kept = reading_order(non_maximum_suppression(candidates, params.nms_overlap_threshold))
    logger.debug(f"NMS kept {len(kept)} of {len(candidates)} candidate boxes")

    regions = [
        Region(index=i, box=box, image=crop(image, box)) for i, box in enumerate(kept)
    ]
    return LocalizationResult(boxes=kept, regions=regions, skipped_templates=skipped)
