import json

import cv2
import numpy as np
import pytest

from sheet_to_notes import pipeline
from sheet_to_notes.errors import WriteError
from sheet_to_notes.image_store import ImageStore
from sheet_to_notes.models.core_models import StaffReferenceTable
from sheet_to_notes.models.pipeline_models import (
    BarlineResult,
    BinaryResult,
    GlyphResult,
    StaffResult,
)
from sheet_to_notes.models.settings_models import (
    BarlineParams,
    BinarizeParams,
    ProcessingParameters,
    StaffParams,
)
from sheet_to_notes.pipeline import (
    build_report,
    detect_measures,
    detect_staff,
    extract_notes,
    map_pitches,
    process_batch,
    process_binary_image,
    process_file,
    process_measure,
    process_section,
    process_sheet,
    whole_image_region,
    write_report,
)

EXPECTED_LETTERS = ["C", "F", "G"]


@pytest.fixture
def section_params():
    # Longer minimum segments keep note heads bridged to staff lines out
    # of the barline candidates
    return ProcessingParameters(minLineLength=40)


@pytest.fixture
def sheet_file(tmp_path, section_strip):
    path = tmp_path / "input" / "sheet.png"
    ImageStore().save(section_strip, path)
    return path


def test_process_binary_image_none():
    out = process_binary_image(None, BinarizeParams())
    assert isinstance(out, BinaryResult)
    assert out.binary_mask is None


def test_process_binary_image_invalid_input():
    out = process_binary_image(np.zeros((0, 0), dtype=np.uint8), BinarizeParams())
    assert out.binary_mask is None


def test_detect_staff_without_mask():
    staff = detect_staff(BinaryResult(), StaffParams())
    assert isinstance(staff, StaffResult)
    assert staff.detection_failed
    assert staff.diagnostics[0].stage == "staff"


def test_detect_measures_invalid_input():
    result = detect_measures(np.zeros((0, 0), dtype=np.uint8), BarlineParams())
    assert isinstance(result, BarlineResult)
    assert result.detection_failed
    assert result.diagnostics[0].severity == "error"


def test_extract_notes_invalid_input(params):
    result = extract_notes(np.zeros((0, 0), dtype=np.uint8), params)
    assert isinstance(result, GlyphResult)
    assert result.glyphs == []
    assert result.line_free_mask is None


def test_map_pitches_final_letter(section_strip, params, reference_lines):
    measure = section_strip[:, 60:140]
    glyphs = extract_notes(measure, params)
    pitches = map_pitches(glyphs, StaffReferenceTable(reference_lines=reference_lines))
    assert [n.letter for n in pitches.notes] == ["C"]
    assert pitches.final_letter == "C"


def test_process_measure_empty_table_is_diagnostic(section_strip, params):
    measure = whole_image_region(section_strip[:, 60:140].copy())
    result = process_measure(measure, StaffReferenceTable(), params)
    assert result.pitches.notes == []
    assert result.diagnostics[0].stage == "pitch"


def test_process_section_end_to_end(section_strip, section_params):
    section = process_section(whole_image_region(section_strip), section_params)
    assert section.staff.table.reference_lines == [20, 30, 40, 50, 60, 70, 80, 90, 100]
    assert section.barlines.barlines.positions == [50, 150, 250, 350]
    assert len(section.measures) == 3
    letters = [n.letter for m in section.measures for n in m.pitches.notes]
    assert letters == EXPECTED_LETTERS


def test_process_sheet_without_templates(section_strip, section_params):
    sheet = process_sheet(section_strip, None, section_params)
    assert len(sheet.localization.boxes) == 1
    assert len(sheet.sections) == 1
    assert sheet.all_diagnostics() == []


def test_process_sheet_oversized_template(section_strip, section_params):
    template = np.full((200, 500), 255, dtype=np.uint8)
    sheet = process_sheet(section_strip, [template], section_params)
    assert sheet.sections == []
    assert sheet.localization.skipped_templates == 1
    assert [d.stage for d in sheet.diagnostics] == ["localizer", "localizer"]


def test_build_report_uses_sheet_coordinates(section_strip, section_params):
    sheet = process_sheet(section_strip, None, section_params)
    report = build_report("sheet.png", sheet)
    assert report.succeeded
    assert report.sections == 1
    assert report.measures == 3
    assert [n.letter for n in report.notes] == EXPECTED_LETTERS
    for note, (cx, cy) in zip(report.notes, [(100, 60), (200, 30), (300, 90)]):
        assert abs(note.box.cx - cx) <= 2
        assert abs(note.box.cy - cy) <= 2


def test_process_file_writes_artifacts(tmp_path, sheet_file, section_params):
    out = tmp_path / "out"
    report = process_file(sheet_file, section_params, out)
    assert report.succeeded
    image_dir = out / "sheet"
    assert (image_dir / "overlay.png").is_file()
    assert (image_dir / "section_0.png").is_file()
    assert (image_dir / "section_0" / "measure_0.png").is_file()
    assert (image_dir / "section_0" / "measure_0" / "glyph_0.png").is_file()
    staff = json.loads((image_dir / "section_0" / "staff.json").read_text())
    assert len(staff["referenceLines"]) == 9
    notes = json.loads((image_dir / "notes.json").read_text())
    assert [n["letter"] for n in notes["notes"]] == EXPECTED_LETTERS


def test_process_file_missing_image(tmp_path, params):
    report = process_file(tmp_path / "missing.png", params, tmp_path / "out")
    assert not report.succeeded
    assert report.failed_stage == "decode"
    assert not (tmp_path / "out").exists()


def test_process_file_missing_template_folder(tmp_path, sheet_file):
    params = ProcessingParameters(templateFolder=str(tmp_path / "no_templates"))
    report = process_file(sheet_file, params)
    assert not report.succeeded
    assert report.failed_stage == "templates"


def test_process_file_timeout(tmp_path, sheet_file, section_params):
    params = section_params.model_copy(update={"image_timeout": 1e-9})
    report = process_file(sheet_file, params, tmp_path / "out")
    assert not report.succeeded
    assert report.failed_stage == "timeout"
    assert not (tmp_path / "out").exists()


class FailingStore(ImageStore):
    def __init__(self, fail_after):
        super().__init__()
        self.remaining = fail_after

    def save(self, image, path):
        if self.remaining == 0:
            raise WriteError(f"disk full: {path}")
        self.remaining -= 1
        super().save(image, path)


def test_process_file_write_failure_leaves_no_output(
    tmp_path, sheet_file, section_params
):
    out = tmp_path / "out"
    report = process_file(sheet_file, section_params, out, FailingStore(fail_after=2))
    assert not report.succeeded
    assert report.failed_stage == "write"
    assert not (out / "sheet").exists()


def test_process_batch_sequential_keeps_order(tmp_path, sheet_file, section_params):
    params = section_params.model_copy(update={"workers": 1})
    paths = [tmp_path / "missing.png", sheet_file]
    reports = process_batch(paths, params)
    assert [r.source for r in reports] == [str(p) for p in paths]
    assert [r.succeeded for r in reports] == [False, True]


def test_process_batch_parallel(tmp_path, sheet_file, section_params):
    second = tmp_path / "input" / "copy.png"
    second.write_bytes(sheet_file.read_bytes())
    params = section_params.model_copy(update={"workers": 2})
    reports = process_batch([sheet_file, second], params, tmp_path / "out")
    assert all(r.succeeded for r in reports)
    assert [n.letter for n in reports[1].notes] == EXPECTED_LETTERS
    assert (tmp_path / "out" / "copy" / "notes.json").is_file()


def test_write_report(tmp_path, params):
    reports = process_batch([tmp_path / "missing.png"], params)
    write_report(reports, tmp_path / "report.json")
    data = json.loads((tmp_path / "report.json").read_text())
    assert data[0]["failed_stage"] == "decode"
    assert data[0]["succeeded"] is False


def test_whole_image_region(section_strip):
    region = whole_image_region(section_strip)
    assert region.box.as_tuple() == (0, 0, 420, 140)
    assert cv2.countNonZero(region.image[:, :, 0]) > 0


def test_process_file_unexpected_error_is_reported(
    monkeypatch, tmp_path, sheet_file, params
):
    def broken(*args, **kwargs):
        raise ValueError("reference lines must be strictly increasing")

    monkeypatch.setattr(pipeline, "process_sheet", broken)
    report = process_file(sheet_file, params, tmp_path / "out")
    assert not report.succeeded
    assert report.failed_stage == "process"
    assert "strictly increasing" in report.reason


def test_unexpected_write_error_leaves_no_output(
    monkeypatch, tmp_path, sheet_file, section_params
):
    def broken(*args, **kwargs):
        raise RuntimeError("encoder crashed")

    monkeypatch.setattr(pipeline, "save_reference_table", broken)
    out = tmp_path / "out"
    report = process_file(sheet_file, section_params, out)
    assert report.failed_stage == "write"
    assert not (out / "sheet").exists()


def test_batch_survives_unexpected_error(
    monkeypatch, tmp_path, sheet_file, params
):
    def broken(*args, **kwargs):
        raise TypeError("cannot unpack non-iterable object")

    monkeypatch.setattr(pipeline, "process_sheet", broken)
    params = params.model_copy(update={"workers": 1})
    reports = process_batch([sheet_file, tmp_path / "missing.png"], params)
    assert [r.failed_stage for r in reports] == ["process", "decode"]
