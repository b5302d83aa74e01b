"""
Visualization functions for the sheet segmentation pipeline.

This module centralizes all debug overlays used throughout the pipeline,
providing a consistent interface for creating visual representations of each
stage. Overlays are side artifacts for visual QA: they are drawn on copies and
never fed back into a later stage.

Colors follow one convention everywhere: sections red, staff reference lines
purple, barlines blue, glyph boxes green, final-note markers orange.
"""

from collections.abc import Sequence

import cv2
import numpy as np
from matplotlib.figure import Figure

from sheet_to_notes.models.core_models import (
    BarlineSet,
    Box,
    DensityMarker,
    Note,
    StaffReferenceTable,
)
from sheet_to_notes.models.pipeline_models import (
    BinaryResult,
    LocalizationResult,
    SectionResult,
    SheetResult,
)
from sheet_to_notes.models.visualization_models import VisualizationSet

# BGR
SECTION_COLOR = (0, 0, 255)
STAFF_COLOR = (128, 0, 128)
STAFF_SPACE_COLOR = (220, 160, 220)
BARLINE_COLOR = (255, 0, 0)
GLYPH_COLOR = (0, 200, 0)
MARKER_COLOR = (0, 165, 255)


def _bgr_canvas(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    return image.copy()


def _rectangle(canvas, box: Box, color, thickness: int = 1, dx: int = 0, dy: int = 0):
    cv2.rectangle(
        canvas,
        (box.x + dx, box.y + dy),
        (box.right + dx - 1, box.bottom + dy - 1),
        color,
        thickness,
    )


def create_binary_visualization(binary_mask: np.ndarray | None) -> np.ndarray | None:
    """Convert a binary mask to RGB format for display.

    Args:
        binary_mask: 2D binary image array, or None.

    Returns:
        3-channel RGB version of the binary mask, or None if input is None.
    """
    if binary_mask is None:
        return None
    return cv2.cvtColor(binary_mask, cv2.COLOR_GRAY2RGB)


def draw_section_boxes(image: np.ndarray, boxes: Sequence[Box]) -> np.ndarray:
    """Outline localized sections with their reading-order index."""
    canvas = _bgr_canvas(image)
    for i, box in enumerate(boxes):
        _rectangle(canvas, box, SECTION_COLOR, 2)
        cv2.putText(
            canvas,
            str(i),
            (box.x + 4, box.y + 16),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.5,
            SECTION_COLOR,
            1,
        )
    return canvas


def draw_staff_lines(image: np.ndarray, table: StaffReferenceTable) -> np.ndarray:
    """Render the reference rows onto a BGR copy of ``image``.

    Printed lines (even indices) are drawn solid purple, interpolated spaces
    in a lighter tint.
    """
    canvas = _bgr_canvas(image)
    width = canvas.shape[1]
    for i, y in enumerate(table.reference_lines):
        color = STAFF_COLOR if i % 2 == 0 else STAFF_SPACE_COLOR
        cv2.line(canvas, (0, y), (width - 1, y), color, 1)
    return canvas


def draw_barlines(image: np.ndarray, barlines: BarlineSet) -> np.ndarray:
    """Render barlines onto a BGR copy of ``image``."""
    canvas = _bgr_canvas(image)
    height = canvas.shape[0]
    for x in barlines.positions:
        cv2.line(canvas, (x, 0), (x, height - 1), BARLINE_COLOR, 2)
    return canvas


def draw_notes(
    image: np.ndarray,
    notes: Sequence[Note],
    markers: Sequence[DensityMarker] = (),
    dx: int = 0,
    dy: int = 0,
) -> np.ndarray:
    """Outline glyphs with their pitch letter and flagged density markers.

    Args:
        image: Raster the boxes refer to (after offsetting by ``dx``/``dy``).
        notes: Notes whose glyph boxes and letters are drawn.
        markers: Density classifications; only flagged markers are drawn.
        dx: Horizontal offset added to every box.
        dy: Vertical offset added to every box.

    Returns:
        BGR copy of ``image`` with the annotations.
    """
    canvas = _bgr_canvas(image)
    _annotate_notes(canvas, notes, markers, dx, dy)
    return canvas


def _annotate_notes(canvas, notes, markers, dx, dy):
    for marker in markers:
        if marker.is_marker:
            _rectangle(canvas, marker.box, MARKER_COLOR, 2, dx, dy)
    for note in notes:
        box = note.glyph.box
        _rectangle(canvas, box, GLYPH_COLOR, 1, dx, dy)
        cv2.putText(
            canvas,
            note.letter,
            (box.x + dx, max(box.y + dy - 3, 10)),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.4,
            GLYPH_COLOR,
            1,
        )


def annotate_sheet(image: np.ndarray, sheet: SheetResult) -> np.ndarray:
    """Draw every stage's findings onto a BGR copy of the whole sheet.

    Section boxes are in sheet coordinates; staff lines, barlines and glyphs
    are offset by their section (and measure) origin.
    """
    canvas = draw_section_boxes(image, sheet.localization.boxes)

    for section in sheet.sections:
        sx, sy = section.box.x, section.box.y
        left, right = sx, section.box.right - 1
        for y in section.staff.table.reference_lines:
            cv2.line(canvas, (left, sy + y), (right, sy + y), STAFF_COLOR, 1)
        for x in section.barlines.barlines.positions:
            cv2.line(
                canvas, (sx + x, sy), (sx + x, section.box.bottom - 1), BARLINE_COLOR, 1
            )
        for measure in section.measures:
            _annotate_notes(
                canvas,
                measure.pitches.notes,
                measure.glyphs.markers,
                sx + measure.box.x,
                sy + measure.box.y,
            )
    return canvas


def create_staff_histogram_figure(
    histogram: dict[int, int],
    reference_lines: Sequence[int] = (),
    height: int | None = None,
    dpi: int = 100,
) -> Figure:
    """Plot horizontal-line pixel counts per row with the reference rows.

    Rows run top to bottom like the image, so peaks line up with the
    staff lines of the strip.

    Args:
        histogram: Mapping of row index to horizontal-line pixel count.
        reference_lines: Staff reference rows to mark.
        height: Strip height, used for the y-axis extent when given.
        dpi: Figure resolution.

    Returns:
        Matplotlib Figure. Shows a "No staff lines" message if the
        histogram is empty.
    """
    fig = Figure(figsize=(4, 4), dpi=dpi)
    ax = fig.subplots()

    if not histogram:
        ax.text(
            0.5, 0.5, "No staff lines", ha="center", va="center", transform=ax.transAxes
        )
        ax.axis("off")
        return fig

    rows = sorted(histogram)
    ax.barh(rows, [histogram[r] for r in rows], height=1.0, color="black")
    for i, y in enumerate(reference_lines):
        style = "-" if i % 2 == 0 else ":"
        ax.axhline(y, color="purple", linestyle=style, linewidth=1)

    bottom = height if height is not None else max(rows) + 1
    ax.set_ylim(bottom, 0)
    ax.set_xlabel("Line pixels", fontsize=9)
    ax.set_ylabel("Row", fontsize=9)
    fig.tight_layout()
    return fig


def create_all_visualizations(
    image: np.ndarray | None,
    binary_result: BinaryResult | None,
    section_result: SectionResult | None,
    localization: LocalizationResult | None = None,
) -> VisualizationSet:
    """Create complete set of visualizations for one section strip.

    Master function that generates all visualization types from the outputs
    of each stage, bundling them into a single VisualizationSet object for
    easy consumption by the user interface. Overlays are returned in RGB.

    Args:
        image: Section strip (BGR or grayscale), or None.
        binary_result: Binarization result of the strip, or None.
        section_result: Staff, barline and measure results, or None.
        localization: Section boxes on the sheet the strip came from, or None.

    Returns:
        VisualizationSet containing all generated visualizations. Individual
        fields may be None if corresponding inputs were invalid or processing failed.
    """
    if image is None:
        return VisualizationSet()

    def to_rgb(bgr):
        return cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB)

    binary_mask = binary_result.binary_mask if binary_result else None
    sections = None
    if localization is not None and localization.boxes:
        sections = to_rgb(draw_section_boxes(image, localization.boxes))

    if section_result is None:
        return VisualizationSet(
            binary_mask=create_binary_visualization(binary_mask), sections=sections
        )

    staff = section_result.staff
    glyphs = _bgr_canvas(image)
    for measure in section_result.measures:
        _annotate_notes(
            glyphs,
            measure.pitches.notes,
            measure.glyphs.markers,
            measure.box.x,
            measure.box.y,
        )

    return VisualizationSet(
        binary_mask=create_binary_visualization(binary_mask),
        sections=sections,
        staff_lines=to_rgb(draw_staff_lines(image, staff.table)),
        barlines=to_rgb(draw_barlines(image, section_result.barlines.barlines)),
        glyphs=to_rgb(glyphs),
        staff_histogram=create_staff_histogram_figure(
            staff.row_histogram, staff.table.reference_lines, image.shape[0]
        ),
    )
