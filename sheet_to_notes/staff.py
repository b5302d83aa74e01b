"""Staff-line detection and reference-table construction.

Staff lines are isolated with a wide, 1px-tall opening. The rows that keep
any foreground pixel are clustered into at most five printed lines, their
spacing is evened out, and a midpoint is interpolated between each pair so
the resulting table anchors both lines and spaces.
"""

import logging

import numpy as np

from sheet_to_notes.geometry import merge_close_values, round_half_up
from sheet_to_notes.image_processing import isolate_horizontal_lines
from sheet_to_notes.models.core_models import StaffReferenceTable
from sheet_to_notes.models.pipeline_models import Diagnostic, StaffResult
from sheet_to_notes.models.settings_models import StaffParams

logger = logging.getLogger(__name__)


def row_histogram(lines_mask: np.ndarray) -> dict[int, int]:
    """Count the foreground pixels of each row that has any.

    Args:
        lines_mask: Mask of isolated horizontal lines (ink = 255).

    Returns:
        Mapping of row y to its pixel count, rows without pixels omitted.
    """
    counts = np.count_nonzero(lines_mask, axis=1)
    return {int(y): int(counts[y]) for y in np.flatnonzero(counts)}


def even_spacing(lines: list[int]) -> list[int]:
    """Snap each gap to the nearest multiple of 2 pixels.

    Each line is re-placed relative to the previously corrected line, which
    keeps the staff pitch near-constant under noisy detections. A line that
    snaps back onto the previous one (a gap under 1 pixel) is dropped.

    Args:
        lines: Ascending line rows.

    Returns:
        Strictly increasing corrected rows. Empty input yields an empty list.
    """
    if not lines:
        return []
    corrected = [lines[0]]
    for y in lines[1:]:
        prev = corrected[-1]
        snapped = prev + 2 * round_half_up((y - prev) / 2)
        if snapped > prev:
            corrected.append(snapped)
    return corrected


def interpolate_midpoints(lines: list[int]) -> list[int]:
    """Insert the rounded midpoint between every consecutive pair of lines."""
    if not lines:
        return []
    table = []
    for top, bottom in zip(lines, lines[1:]):
        table.extend([top, round_half_up((top + bottom) / 2)])
    table.append(lines[-1])
    return table


def find_staff_lines(binary: np.ndarray, params: StaffParams) -> tuple[list[int], dict[int, int]]:
    """Locate the printed staff line rows in a binary strip.

    Row 0 is ignored as a border artifact. Rows closer than
    ``staff_line_proximity_px`` merge, and only the first ``max_lines``
    merged rows are kept.

    Returns:
        Tuple of (line rows before spacing correction, row histogram).
    """
    lines_mask = isolate_horizontal_lines(binary, params.kernel_width)
    histogram = row_histogram(lines_mask)
    rows = [y for y in histogram if y != 0]
    merged = merge_close_values(rows, params.staff_line_proximity_px)
    return merged[: params.max_lines], histogram


def detect_staff_reference(binary: np.ndarray, params: StaffParams) -> StaffResult:
    """Build the staff reference table of a single staff strip.

    Detection of fewer than ``max_lines`` lines is a partial failure: the
    result is flagged and carries a diagnostic, but still holds a table built
    from the lines that were found.

    Args:
        binary: Binary strip (ink = 255).
        params: Staff detection parameters.

    Returns:
        StaffResult with the reference table, corrected lines and histogram.
    """
    found, histogram = find_staff_lines(binary, params)
    lines = even_spacing(found)
    table = StaffReferenceTable(reference_lines=interpolate_midpoints(lines))

    diagnostics = []
    detection_failed = len(lines) < params.max_lines
    if detection_failed:
        message = f"Found {len(lines)} of {params.max_lines} staff lines"
        logger.warning(message)
        diagnostics.append(Diagnostic(stage="staff", message=message))
    else:
        logger.debug(f"Staff reference table: {table.reference_lines}")

    return StaffResult(
        table=table,
        lines=lines,
        row_histogram=histogram,
        detection_failed=detection_failed,
        diagnostics=diagnostics,
    )
