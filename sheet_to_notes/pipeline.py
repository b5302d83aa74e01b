"""
Pipeline processing functions for sheet segmentation and pitch inference.

This module sequences the stages for one sheet image (binarize, localize
sections, detect staff lines, split measures, extract glyphs, map pitches)
and threads coordinate systems between them: section boxes live in sheet
coordinates, measure boxes in section coordinates and glyph boxes in measure
coordinates. ``build_report`` flattens everything back to sheet coordinates.

Stage functions never raise for soft failures; they log, attach a
``Diagnostic`` and return an empty result so later stages can degrade
gracefully. Image-level failures (decode, write, template loading) are
caught by ``process_file`` and turned into a failed ``ImageReport`` so a
batch run is never aborted by one image.
"""

import logging
import os
import shutil
import time
from concurrent.futures import ProcessPoolExecutor
from pathlib import Path

import cv2
import numpy as np
from pydantic import TypeAdapter

from sheet_to_notes.barlines import split_strip
from sheet_to_notes.cache import cached_templates
from sheet_to_notes.errors import (
    EmptyReferenceTable,
    ImageTimeoutError,
    InputError,
    OutOfBoundsError,
    PipelineError,
)
from sheet_to_notes.image_processing import binarize, strip_staff_lines
from sheet_to_notes.image_store import (
    ImageStore,
    save_reference_table,
    write_json,
)
from sheet_to_notes.models.core_models import Box, Region, StaffReferenceTable
from sheet_to_notes.models.pipeline_models import (
    BarlineResult,
    BinaryResult,
    Diagnostic,
    GlyphResult,
    ImageReport,
    LocalizationResult,
    MeasureResult,
    NoteRecord,
    PitchResult,
    SectionResult,
    SheetResult,
    StaffResult,
)
from sheet_to_notes.models.settings_models import (
    BarlineParams,
    BinarizeParams,
    LocalizerParams,
    ProcessingParameters,
    StaffParams,
)
from sheet_to_notes.note_detection import (
    classify_density_markers,
    export_glyphs,
    extract_glyphs,
    final_marker,
)
from sheet_to_notes.pitch import assign_pitches, infer_pitch
from sheet_to_notes.staff import detect_staff_reference
from sheet_to_notes.template_matching import localize_regions

logger = logging.getLogger(__name__)

_REPORT_LIST = TypeAdapter(list[ImageReport])


def whole_image_region(image: np.ndarray) -> Region:
    """Wrap a full raster as a single region at the origin."""
    height, width = image.shape[:2]
    return Region(index=0, box=Box(x=0, y=0, width=width, height=height), image=image)


def process_binary_image(image, params: BinarizeParams) -> BinaryResult:
    """Convert image to binary mask.

    Args:
        image: Grayscale or BGR image as a NumPy array
        params: Binarization parameters

    Returns:
        BinaryResult containing the binary mask, or an empty result if the
        image is missing or cannot be converted
    """
    if image is None:
        logger.warning("No image provided for processing")
        return BinaryResult()

    try:
        return BinaryResult(binary_mask=binarize(image, params))
    except (InputError, cv2.error) as e:
        logger.error(f"Error in binary image processing: {e}")
        return BinaryResult()


def localize_sections(image, templates, params: LocalizerParams) -> LocalizationResult:
    """Find the sections of a sheet.

    Args:
        image: Sheet raster
        templates: Template rasters, or None to treat the sheet as one section
        params: Localization parameters

    Returns:
        LocalizationResult with one region per section in reading order
    """
    if templates is None:
        region = whole_image_region(image)
        logger.info("No templates configured, using the whole sheet as one section")
        return LocalizationResult(boxes=[region.box], regions=[region])

    return localize_regions(image, templates, params)


def detect_staff(binary_result: BinaryResult, params: StaffParams) -> StaffResult:
    """Build the staff reference table of a binarized section.

    Args:
        binary_result: Binary mask of the section
        params: Staff detection parameters

    Returns:
        StaffResult, flagged as failed when the mask is missing
    """
    binary_mask = binary_result.binary_mask
    if binary_mask is None:
        message = "No binary mask provided for staff detection"
        logger.warning(message)
        return StaffResult(
            detection_failed=True,
            diagnostics=[Diagnostic(stage="staff", message=message)],
        )

    try:
        return detect_staff_reference(binary_mask, params)
    except cv2.error as e:
        message = f"Error in staff detection: {e}"
        logger.error(message)
        return StaffResult(
            detection_failed=True,
            diagnostics=[Diagnostic(stage="staff", message=message, severity="error")],
        )


def detect_measures(strip, params: BarlineParams) -> BarlineResult:
    """Split a section strip into measures at its barlines.

    Args:
        strip: Grayscale or color section raster
        params: Barline detection parameters

    Returns:
        BarlineResult with measure regions in section coordinates
    """
    try:
        return split_strip(strip, params)
    except (InputError, cv2.error) as e:
        message = f"Error in barline detection: {e}"
        logger.error(message)
        return BarlineResult(
            detection_failed=True,
            diagnostics=[
                Diagnostic(stage="barlines", message=message, severity="error")
            ],
        )


def extract_notes(measure_image, params: ProcessingParameters) -> GlyphResult:
    """Find note heads and density markers in one measure.

    Staff lines are stripped first so note heads sitting on a line become
    separate components.

    Args:
        measure_image: Measure raster cropped from its section
        params: Run parameters (binarize, glyph and density stages are used)

    Returns:
        GlyphResult with glyphs left to right and the staff-free mask
    """
    try:
        line_free = strip_staff_lines(measure_image, params.binarize)
    except (InputError, cv2.error) as e:
        logger.error(f"Error in staff-line removal: {e}")
        return GlyphResult()

    glyphs = extract_glyphs(line_free, params.glyph)
    markers = classify_density_markers(line_free, params.density)
    return GlyphResult(glyphs=glyphs, markers=markers, line_free_mask=line_free)


def map_pitches(glyph_result: GlyphResult, table: StaffReferenceTable) -> PitchResult:
    """Assign a pitch letter to every glyph and to the final marker.

    Args:
        glyph_result: Glyphs and markers of one measure
        table: Staff reference table of the measure's section

    Returns:
        PitchResult with one note per glyph

    Raises:
        EmptyReferenceTable: If there is something to map and the table is empty
    """
    notes = assign_pitches(glyph_result.glyphs, table)

    final_letter = None
    marker = final_marker(glyph_result.markers)
    if marker is not None:
        final_letter = infer_pitch(table, marker.box.cy)

    return PitchResult(notes=notes, final_letter=final_letter)


def process_measure(
    measure: Region, table: StaffReferenceTable, params: ProcessingParameters
) -> MeasureResult:
    """Extract glyphs from one measure and map them to pitch letters."""
    glyphs = extract_notes(measure.image, params)

    diagnostics = []
    try:
        pitches = map_pitches(glyphs, table)
    except EmptyReferenceTable as e:
        message = f"Measure {measure.index}: {e}"
        logger.warning(message)
        diagnostics.append(Diagnostic(stage="pitch", message=message))
        pitches = PitchResult()

    logger.debug(
        f"Measure {measure.index}: {len(glyphs.glyphs)} glyphs, "
        f"letters {[n.letter for n in pitches.notes]}"
    )
    return MeasureResult(
        index=measure.index,
        box=measure.box,
        glyphs=glyphs,
        pitches=pitches,
        diagnostics=diagnostics,
    )


def process_section(region: Region, params: ProcessingParameters) -> SectionResult:
    """Run staff detection, measure splitting and glyph/pitch inference on a section.

    The staff reference table is computed once per section; measures are
    full-height crops so they share its y-coordinates.

    Args:
        region: Section region (box in sheet coordinates)
        params: Run parameters

    Returns:
        SectionResult with measure results in left-to-right order
    """
    binary_result = process_binary_image(region.image, params.binarize)
    staff_result = detect_staff(binary_result, params.staff)
    barline_result = detect_measures(region.image, params.barline)

    measures = [
        process_measure(measure, staff_result.table, params)
        for measure in barline_result.measures
    ]
    logger.info(
        f"Section {region.index}: {len(staff_result.lines)} staff lines, "
        f"{len(measures)} measures"
    )
    return SectionResult(
        index=region.index,
        box=region.box,
        staff=staff_result,
        barlines=barline_result,
        measures=measures,
    )


def process_sheet(
    image,
    templates,
    params: ProcessingParameters,
    deadline: float | None = None,
) -> SheetResult:
    """Process a complete sheet image.

    Args:
        image: Sheet raster
        templates: Template rasters, or None to treat the sheet as one section
        params: Run parameters
        deadline: Optional ``time.monotonic()`` value after which processing
            is abandoned

    Returns:
        SheetResult holding the localization and one result per section

    Raises:
        ImageTimeoutError: If ``deadline`` passes between sections
    """
    localization = localize_sections(image, templates, params.localizer)

    diagnostics = []
    if localization.skipped_templates:
        diagnostics.append(
            Diagnostic(
                stage="localizer",
                message=f"Skipped {localization.skipped_templates} oversized templates",
            )
        )
    if not localization.regions:
        message = "No section matched the templates"
        logger.warning(message)
        diagnostics.append(Diagnostic(stage="localizer", message=message))

    sections = []
    for region in localization.regions:
        _check_deadline(deadline)
        try:
            sections.append(process_section(region, params))
        except OutOfBoundsError as e:
            message = f"Section {region.index} abandoned: {e}"
            logger.error(message)
            diagnostics.append(
                Diagnostic(stage="section", message=message, severity="error")
            )

    return SheetResult(
        localization=localization, sections=sections, diagnostics=diagnostics
    )


def build_report(source, sheet: SheetResult) -> ImageReport:
    """Summarize a sheet result with note boxes in sheet coordinates."""
    notes = []
    for section in sheet.sections:
        for measure in section.measures:
            dx = section.box.x + measure.box.x
            dy = section.box.y + measure.box.y
            for note in measure.pitches.notes:
                notes.append(
                    NoteRecord(
                        section=section.index,
                        measure=measure.index,
                        index=note.index,
                        letter=note.letter,
                        box=note.glyph.box.translated(dx, dy),
                    )
                )

    return ImageReport(
        source=str(source),
        sections=len(sheet.sections),
        measures=sum(len(s.measures) for s in sheet.sections),
        notes=notes,
        diagnostics=sheet.all_diagnostics(),
    )


def write_artifacts(
    image: np.ndarray,
    sheet: SheetResult,
    report: ImageReport,
    out_dir: str | Path,
    store: ImageStore,
) -> None:
    """Write the crops, staff tables and note summary of one sheet.

    Layout::

        out_dir/overlay.png
        out_dir/notes.json
        out_dir/section_<n>.png
        out_dir/section_<n>/staff.json
        out_dir/section_<n>/measure_<m>.png
        out_dir/section_<n>/measure_<m>/glyph_<k>.png

    If any write fails, or anything else goes wrong midway, the whole
    ``out_dir`` is removed.

    Raises:
        WriteError: If any artifact cannot be written
    """
    from sheet_to_notes.visualization import annotate_sheet

    out_dir = Path(out_dir)
    try:
        store.save(annotate_sheet(image, sheet), out_dir / "overlay.png")
        regions = {r.index: r for r in sheet.localization.regions}
        for section in sheet.sections:
            section_dir = out_dir / f"section_{section.index}"
            store.save(regions[section.index].image, out_dir / f"{section_dir.name}.png")
            save_reference_table(section.staff.table, section_dir / "staff.json")

            for region, measure in zip(section.barlines.measures, section.measures):
                store.save(region.image, section_dir / f"measure_{measure.index}.png")
                mask = measure.glyphs.line_free_mask
                if mask is None:
                    continue
                measure_dir = section_dir / f"measure_{measure.index}"
                for k, glyph in enumerate(export_glyphs(mask, measure.glyphs.glyphs)):
                    store.save(glyph, measure_dir / f"glyph_{k}.png")

        write_json(report.model_dump_json(indent=2), out_dir / "notes.json")
    except Exception:
        shutil.rmtree(out_dir, ignore_errors=True)
        raise

    logger.info(f"Wrote artifacts to {out_dir}")


def _check_deadline(deadline: float | None) -> None:
    if deadline is not None and time.monotonic() > deadline:
        raise ImageTimeoutError("Image exceeded its processing time budget")


def process_file(
    path,
    params: ProcessingParameters,
    output_dir=None,
    store: ImageStore | None = None,
) -> ImageReport:
    """Process one image file end to end.

    Failures are never raised: they are returned as a report with
    ``succeeded=False`` naming the stage that failed. Failed images produce
    no output files.

    Args:
        path: Input image path
        params: Run parameters
        output_dir: Root folder for artifacts, or None to skip writing
        store: Raster loader/saver (a default ``ImageStore`` if omitted)

    Returns:
        ImageReport for the image
    """
    store = store or ImageStore()
    deadline = None
    if params.image_timeout is not None:
        deadline = time.monotonic() + params.image_timeout

    stage = "templates"
    try:
        templates = None
        if params.localizer.template_folder:
            templates = cached_templates(params.localizer.template_folder)

        stage = "decode"
        image = store.load(path)

        stage = "process"
        sheet = process_sheet(image, templates, params, deadline)
        report = build_report(path, sheet)

        if output_dir is not None:
            _check_deadline(deadline)
            stage = "write"
            write_artifacts(image, sheet, report, Path(output_dir) / Path(path).stem, store)
    except ImageTimeoutError as e:
        logger.error(f"{path}: {e}")
        return ImageReport(
            source=str(path), succeeded=False, failed_stage="timeout", reason=str(e)
        )
    except (PipelineError, cv2.error) as e:
        logger.error(f"{path}: {stage} failed: {e}")
        return ImageReport(
            source=str(path), succeeded=False, failed_stage=stage, reason=str(e)
        )
    except Exception as e:
        logger.error(f"{path}: unexpected error during {stage}: {e!r}")
        return ImageReport(
            source=str(path), succeeded=False, failed_stage=stage, reason=repr(e)
        )

    logger.info(
        f"{path}: {report.sections} sections, {report.measures} measures, "
        f"{len(report.notes)} notes"
    )
    return report


def process_batch(
    paths, params: ProcessingParameters, output_dir=None
) -> list[ImageReport]:
    """Process independent images in parallel.

    Images are distributed over a process pool bounded by ``params.workers``
    (CPU count when unset). With a single worker, images are processed
    in-process and sequentially. Reports keep the order of ``paths``.

    Args:
        paths: Input image paths
        params: Run parameters, validated before any image is touched
        output_dir: Root folder for artifacts, or None to skip writing

    Returns:
        One ImageReport per input path
    """
    paths = list(paths)
    workers = min(params.workers or os.cpu_count() or 1, max(len(paths), 1))
    logger.info(f"Processing {len(paths)} images with {workers} workers")

    if workers == 1:
        return [process_file(path, params, output_dir) for path in paths]

    with ProcessPoolExecutor(max_workers=workers) as executor:
        futures = [
            executor.submit(process_file, path, params, output_dir) for path in paths
        ]
        return [future.result() for future in futures]


def write_report(reports: list[ImageReport], path) -> None:
    """Write the batch report as a JSON list.

    Raises:
        WriteError: If the report cannot be written
    """
    write_json(_REPORT_LIST.dump_json(reports, indent=2).decode("utf-8"), path)
