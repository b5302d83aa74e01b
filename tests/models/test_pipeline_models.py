import json

import numpy as np

from sheet_to_notes.models import (
    BinaryResult,
    Box,
    Diagnostic,
    ImageReport,
    MeasureResult,
    NoteRecord,
    SectionResult,
    SheetResult,
    StaffResult,
)


def test_diagnostic_default_severity():
    assert Diagnostic(stage="staff", message="x").severity == "warning"


def test_binary_result_default():
    assert BinaryResult().binary_mask is None
    mask = np.zeros((2, 2), dtype=np.uint8)
    assert BinaryResult(binary_mask=mask).binary_mask is mask


def test_all_diagnostics_collects_every_stage():
    box = Box(x=0, y=0, width=10, height=10)
    section = SectionResult(
        index=0,
        box=box,
        staff=StaffResult(
            detection_failed=True,
            diagnostics=[Diagnostic(stage="staff", message="3 lines")],
        ),
        measures=[
            MeasureResult(
                index=0,
                box=box,
                diagnostics=[Diagnostic(stage="pitch", message="empty table")],
            )
        ],
    )
    sheet = SheetResult(
        sections=[section],
        diagnostics=[Diagnostic(stage="localizer", message="skipped")],
    )
    assert [d.stage for d in sheet.all_diagnostics()] == ["localizer", "staff", "pitch"]


def test_image_report_json():
    report = ImageReport(
        source="sheet.png",
        sections=1,
        measures=1,
        notes=[
            NoteRecord(
                section=0,
                measure=0,
                index=0,
                letter="C",
                box=Box(x=95, y=55, width=11, height=11),
            )
        ],
    )
    data = json.loads(report.model_dump_json())
    assert data["succeeded"] is True
    assert data["failed_stage"] is None
    assert data["notes"][0]["box"] == {"x": 95, "y": 55, "width": 11, "height": 11}


def test_failed_image_report():
    report = ImageReport(
        source="x.png", succeeded=False, failed_stage="decode", reason="missing"
    )
    assert report.notes == []
    assert report.sections == 0
