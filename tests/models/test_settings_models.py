import json
import math

import pytest
from pydantic import ValidationError

from sheet_to_notes.errors import ConfigurationError
from sheet_to_notes.models import (
    BarlineParams,
    BinarizeParams,
    DensityParams,
    GlyphParams,
    LocalizerParams,
    ProcessingParameters,
    StaffParams,
    load_parameters,
)


def test_defaults():
    p = ProcessingParameters()
    assert p.binarize.mode == "otsu"
    assert p.localizer.match_threshold == 0.5
    assert p.localizer.nms_overlap_threshold == 0.3
    assert p.staff.staff_line_proximity_px == 10
    assert p.barline.barline_proximity_px == 30
    assert p.barline.theta == pytest.approx(math.pi / 180)
    assert (p.glyph.min_area, p.glyph.max_area) == (20, 100)
    assert (p.density.min_density, p.density.max_density) == (1, 60)
    assert p.workers is None and p.image_timeout is None


def test_camel_case_and_python_names():
    assert GlyphParams(minArea=5).min_area == 5
    assert GlyphParams(min_area=5).min_area == 5
    assert LocalizerParams(matchThreshold=0.8).match_threshold == 0.8


def test_flat_keys_are_routed():
    p = ProcessingParameters.model_validate(
        {
            "minArea": 30,
            "staffLineProximityPx": 6,
            "barline_proximity_px": 12,
            "templateFolder": "templates",
            "workers": 2,
        }
    )
    assert p.glyph.min_area == 30
    assert p.staff.staff_line_proximity_px == 6
    assert p.barline.barline_proximity_px == 12
    assert p.localizer.template_folder == "templates"
    assert p.workers == 2


def test_flat_keys_merge_with_nested():
    p = ProcessingParameters.model_validate(
        {"glyph": {"maxArea": 300}, "minArea": 30}
    )
    assert (p.glyph.min_area, p.glyph.max_area) == (30, 300)


@pytest.mark.parametrize(
    "model, data",
    [
        (BinarizeParams, {"blockSize": 20}),
        (BinarizeParams, {"mode": "sauvola"}),
        (BinarizeParams, {"lineRemovalWidth": 10}),
        (LocalizerParams, {"matchThreshold": 1.5}),
        (StaffParams, {"maxLines": 6}),
        (StaffParams, {"staffLineProximityPx": 0}),
        (BarlineParams, {"blurSize": 4}),
        (GlyphParams, {"circularityThreshold": 2}),
        (DensityParams, {"minDensity": 70, "maxDensity": 60}),
    ],
)
def test_invalid_stage_values(model, data):
    with pytest.raises(ValidationError):
        model(**data)


def test_unknown_keys_rejected():
    with pytest.raises(ValidationError):
        ProcessingParameters.model_validate({"tempoBpm": 120})
    with pytest.raises(ValidationError):
        GlyphParams(minArea=5, threshold=3)


def test_invalid_run_values():
    with pytest.raises(ValidationError):
        ProcessingParameters(workers=0)
    with pytest.raises(ValidationError):
        ProcessingParameters(image_timeout=0)


def test_load_parameters(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"glyph": {"minArea": 30}, "mode": "fixed"}))
    p = load_parameters(path)
    assert p.glyph.min_area == 30
    assert p.binarize.mode == "fixed"


@pytest.mark.parametrize("content", ["{not json", '{"minArea": -5}'])
def test_load_parameters_invalid(tmp_path, content):
    path = tmp_path / "config.json"
    path.write_text(content)
    with pytest.raises(ConfigurationError):
        load_parameters(path)


def test_load_parameters_missing(tmp_path):
    with pytest.raises(ConfigurationError):
        load_parameters(tmp_path / "missing.json")
