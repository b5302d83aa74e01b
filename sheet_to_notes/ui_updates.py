"""UI update functions for the Gradio interface.

This module provides cached update functions that interface between the
Gradio UI components and the segmentation pipeline. Each function corresponds
to a specific view of the tuning app and returns the visualizations and text
to display for one registered section strip.

Slider values are folded into a ``ProcessingParameters`` object whose JSON
serves as the cache key, so moving a slider back to a previous value reuses
the earlier result.
"""

from functools import lru_cache

import cv2

from sheet_to_notes.app_state import get_image_by_id
from sheet_to_notes.cache import cached_section_processing
from sheet_to_notes.models.pipeline_models import SectionResult
from sheet_to_notes.models.settings_models import BinarizeParams, ProcessingParameters
from sheet_to_notes.pipeline import process_binary_image
from sheet_to_notes.visualization import (
    create_all_visualizations,
    create_binary_visualization,
)


def build_parameters(
    mode: str,
    staff_kernel_width: int,
    staff_proximity: float,
    barline_proximity: float,
    min_votes: int,
    min_line_length: float,
    min_area: float,
    max_area: float,
    aspect_ratio: float,
    circularity: float,
) -> ProcessingParameters:
    """Collect the tunable slider values into run parameters.

    Returns:
        ProcessingParameters with every other field at its default.
    """
    return ProcessingParameters(
        binarize={"mode": mode},
        staff={
            "kernel_width": int(staff_kernel_width),
            "staff_line_proximity_px": staff_proximity,
        },
        barline={
            "barline_proximity_px": barline_proximity,
            "min_votes": int(min_votes),
            "min_line_length": min_line_length,
        },
        glyph={
            "min_area": min_area,
            "max_area": max_area,
            "aspect_ratio_threshold": aspect_ratio,
            "circularity_threshold": circularity,
        },
    )


def format_notes(section: SectionResult) -> str:
    """Render the inferred letters of a section, one measure per line."""
    if not section.measures:
        return "No measures detected"

    lines = []
    for measure in section.measures:
        letters = " ".join(n.letter for n in measure.pitches.notes) or "-"
        line = f"Measure {measure.index + 1}: {letters}"
        if measure.pitches.final_letter is not None:
            line += f" (final: {measure.pitches.final_letter})"
        lines.append(line)
    return "\n".join(lines)


@lru_cache(maxsize=32)
def update_binary_view(image_id: str | None, mode: str) -> tuple:
    """Update binarization visualization for the UI.

    Args:
        image_id: Unique identifier for the registered image.
        mode: Thresholding mode.

    Returns:
        Tuple of (original_rgb, binary_rgb), both None without an image.
    """
    image = get_image_by_id(image_id) if image_id else None
    if image is None:
        return None, None

    binary_result = process_binary_image(image, BinarizeParams(mode=mode))
    original = cv2.cvtColor(image, cv2.COLOR_BGR2RGB) if image.ndim == 3 else image
    return original, create_binary_visualization(binary_result.binary_mask)


@lru_cache(maxsize=32)
def update_section_view(image_id: str | None, *slider_values) -> tuple:
    """Update staff, barline and glyph visualizations for the UI.

    Args:
        image_id: Unique identifier for the registered image.
        *slider_values: Values in the order of ``build_parameters``.

    Returns:
        Tuple of (staff_rgb, barlines_rgb, glyphs_rgb, histogram_figure,
        summary_text, notes_text).
    """
    image = get_image_by_id(image_id) if image_id else None
    if image is None:
        return None, None, None, None, "Upload a section strip", ""

    params = build_parameters(*slider_values)
    section = cached_section_processing(image_id, params.model_dump_json())
    binary_result = process_binary_image(image, params.binarize)
    vis = create_all_visualizations(image, binary_result, section)

    summary = (
        f"{len(section.staff.lines)} staff lines, "
        f"{len(section.barlines.barlines.positions)} barlines, "
        f"{sum(len(m.pitches.notes) for m in section.measures)} notes"
    )
    warnings = [
        d.message
        for d in section.staff.diagnostics
        + section.barlines.diagnostics
        + [d for m in section.measures for d in m.diagnostics]
    ]
    if warnings:
        summary += "\n" + "\n".join(warnings)

    return (
        vis.staff_lines,
        vis.barlines,
        vis.glyphs,
        vis.staff_histogram,
        summary,
        format_notes(section),
    )
