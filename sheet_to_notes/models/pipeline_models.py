"""Models for representing pipeline processing stages.

This module contains Pydantic models that encapsulate the results of each
stage in the sheet segmentation pipeline. Each model represents the output
data from a specific processing step, enabling clean separation of concerns
and easy testing of individual pipeline components.

Soft detection failures travel inside these results as ``Diagnostic``
records instead of exceptions, so later stages can degrade gracefully.
"""

from typing import Literal

import numpy as np
from pydantic import BaseModel, ConfigDict, Field

from sheet_to_notes.models.core_models import (
    BarlineSet,
    Box,
    DensityMarker,
    GlyphCandidate,
    Note,
    PitchLetter,
    Region,
    StaffReferenceTable,
)


class Diagnostic(BaseModel):
    """Machine-readable record of a stage-local problem.

    Attributes:
        stage: Pipeline stage that reported the problem.
        message: Human-readable explanation.
        severity: "warning" for soft failures, "error" for aborted work.
    """

    stage: str
    message: str
    severity: Literal["warning", "error"] = "warning"


class BinaryResult(BaseModel):
    """Result of the binarization stage.

    Attributes:
        binary_mask: 2D uint8 mask (ink = 255), or None if processing failed.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    binary_mask: np.ndarray | None = Field(
        None, description="Binary mask from image processing"
    )


class LocalizationResult(BaseModel):
    """Regions found by template matching after non-maximum suppression.

    Attributes:
        boxes: Surviving boxes in reading order.
        regions: One cropped region per box, same order.
        skipped_templates: Templates ignored because they exceed the search image.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    boxes: list[Box] = Field(default_factory=list, description="Surviving boxes")
    regions: list[Region] = Field(default_factory=list, description="Cropped regions")
    skipped_templates: int = Field(0, ge=0, description="Oversized templates skipped")


class StaffResult(BaseModel):
    """Staff-line detection results.

    Attributes:
        table: Reference coordinates (9 on success).
        lines: Corrected staff line y-positions (5 on success).
        row_histogram: Horizontal-line pixel count per image row.
        detection_failed: True when fewer than the expected lines were found.
        diagnostics: Details of any partial failure.
    """

    table: StaffReferenceTable = Field(default_factory=StaffReferenceTable)
    lines: list[int] = Field(default_factory=list, description="Staff line rows")
    row_histogram: dict[int, int] = Field(
        default_factory=dict, description="Line pixels per row"
    )
    detection_failed: bool = Field(False, description="Partial detection flag")
    diagnostics: list[Diagnostic] = Field(default_factory=list)


class BarlineResult(BaseModel):
    """Barline detection and measure splitting results.

    Attributes:
        barlines: Merged barline x-coordinates.
        raw_positions: Vertical segment x-coordinates before merging.
        measures: One full-height region per consecutive barline pair.
        detection_failed: True when fewer than 2 barlines were found.
        diagnostics: Details of any failure.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    barlines: BarlineSet = Field(default_factory=BarlineSet)
    raw_positions: list[int] = Field(default_factory=list)
    measures: list[Region] = Field(default_factory=list)
    detection_failed: bool = Field(False, description="Barline detection flag")
    diagnostics: list[Diagnostic] = Field(default_factory=list)


class GlyphResult(BaseModel):
    """Glyph extraction results for one measure.

    Attributes:
        glyphs: Accepted note-head candidates, left to right.
        markers: Wide components with their density classification.
        line_free_mask: Mask the glyphs were extracted from, or None.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    glyphs: list[GlyphCandidate] = Field(default_factory=list)
    markers: list[DensityMarker] = Field(default_factory=list)
    line_free_mask: np.ndarray | None = Field(None, description="Staff-free mask")


class PitchResult(BaseModel):
    """Pitch letters inferred for the glyphs of one measure.

    Attributes:
        notes: One note per glyph, in glyph order.
        final_letter: Letter of the right-most density marker, if any.
    """

    notes: list[Note] = Field(default_factory=list)
    final_letter: PitchLetter | None = None


class MeasureResult(BaseModel):
    """Everything inferred for one measure of a section."""

    index: int = Field(..., ge=0)
    box: Box = Field(..., description="Measure box in section coordinates")
    glyphs: GlyphResult = Field(default_factory=GlyphResult)
    pitches: PitchResult = Field(default_factory=PitchResult)
    diagnostics: list[Diagnostic] = Field(default_factory=list)


class SectionResult(BaseModel):
    """Everything inferred for one template-localized section."""

    index: int = Field(..., ge=0)
    box: Box = Field(..., description="Section box in sheet coordinates")
    staff: StaffResult = Field(default_factory=StaffResult)
    barlines: BarlineResult = Field(default_factory=BarlineResult)
    measures: list[MeasureResult] = Field(default_factory=list)


class SheetResult(BaseModel):
    """Full pipeline output for one sheet image."""

    localization: LocalizationResult = Field(default_factory=LocalizationResult)
    sections: list[SectionResult] = Field(default_factory=list)
    diagnostics: list[Diagnostic] = Field(default_factory=list)

    def all_diagnostics(self) -> list[Diagnostic]:
        """Sheet diagnostics followed by every section's stage diagnostics."""
        found = list(self.diagnostics)
        for section in self.sections:
            found.extend(section.staff.diagnostics)
            found.extend(section.barlines.diagnostics)
            for measure in section.measures:
                found.extend(measure.diagnostics)
        return found


class NoteRecord(BaseModel):
    """Flat, sheet-coordinate summary of one inferred note."""

    section: int = Field(..., ge=0)
    measure: int = Field(..., ge=0)
    index: int = Field(..., ge=0)
    letter: PitchLetter
    box: Box = Field(..., description="Glyph box in sheet coordinates")


class ImageReport(BaseModel):
    """Machine-readable outcome of processing one input image.

    Attributes:
        source: Input image path.
        succeeded: False when the image was abandoned.
        failed_stage: Stage that aborted processing, if any.
        reason: Error message for a failed image.
        sections: Number of sections found.
        measures: Number of measures found across sections.
        notes: Inferred notes in reading order.
        diagnostics: Soft failures collected along the way.
    """

    source: str
    succeeded: bool = True
    failed_stage: str | None = None
    reason: str | None = None
    sections: int = Field(0, ge=0)
    measures: int = Field(0, ge=0)
    notes: list[NoteRecord] = Field(default_factory=list)
    diagnostics: list[Diagnostic] = Field(default_factory=list)
