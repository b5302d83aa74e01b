import json
import logging

import pytest

from sheet_to_notes.cli import (
    EXIT_CONFIG,
    EXIT_FAILED,
    EXIT_OK,
    build_parser,
    main,
    resolve_log_level,
)
from sheet_to_notes.image_store import ImageStore, save_reference_table
from sheet_to_notes.models.core_models import StaffReferenceTable


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"minLineLength": 40}))
    return path


@pytest.fixture
def sheet_file(tmp_path, section_strip):
    path = tmp_path / "sheet.png"
    ImageStore().save(section_strip, path)
    return path


@pytest.mark.parametrize(
    "args, expected",
    [
        ({"log_level": "debug"}, logging.DEBUG),
        ({"log_level": "ERROR"}, logging.ERROR),
        ({}, logging.INFO),
        ({"verbose": 1}, logging.DEBUG),
        ({"quiet": 1}, logging.WARNING),
        ({"quiet": 2}, logging.ERROR),
        ({"quiet": 5}, logging.ERROR),
        ({"verbose": 3}, logging.DEBUG),
        ({"verbose": 1, "quiet": 1}, logging.INFO),
    ],
)
def test_resolve_log_level(args, expected):
    assert resolve_log_level(**args) == expected


def test_log_level_flag_is_case_insensitive():
    argv = ["--log-level", "DEBUG", "staff", "s.png", "-o", "s.json"]
    args = build_parser().parse_args(argv)
    assert args.log_level == "debug"


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_parser_rejects_zero_workers():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["process", "a.png", "-o", "out", "--workers", "0"])


def test_staff_command(tmp_path, staff_strip, capsys):
    strip = tmp_path / "strip.png"
    ImageStore().save(staff_strip, strip)
    output = tmp_path / "staff.json"

    assert main(["staff", str(strip), "-o", str(output)]) == EXIT_OK
    lines = json.loads(output.read_text())["referenceLines"]
    assert lines == [20, 30, 40, 50, 60, 70, 80, 90, 100]
    assert capsys.readouterr().out.strip() == " ".join(map(str, lines))


def test_staff_command_partial_detection(tmp_path, make_staff):
    strip = tmp_path / "strip.png"
    ImageStore().save(255 - make_staff([20, 40, 60]), strip)
    assert main(["staff", str(strip), "-o", str(tmp_path / "s.json")]) == EXIT_FAILED


def test_staff_command_missing_image(tmp_path):
    args = ["staff", str(tmp_path / "missing.png"), "-o", str(tmp_path / "s.json")]
    assert main(args) == EXIT_FAILED


def test_pitch_command(tmp_path, section_strip, reference_lines, capsys):
    measure = tmp_path / "measure.png"
    ImageStore().save(section_strip[:, 152:250], measure)
    reference = tmp_path / "staff.json"
    save_reference_table(StaffReferenceTable(reference_lines=reference_lines), reference)

    assert main(["pitch", str(measure), "-r", str(reference)]) == EXIT_OK
    assert capsys.readouterr().out.strip() == "F"


def test_process_command(tmp_path, sheet_file, config_file):
    output = tmp_path / "out"
    args = [
        "-q",
        "process",
        str(sheet_file),
        "-o",
        str(output),
        "--config",
        str(config_file),
        "--workers",
        "1",
    ]
    assert main(args) == EXIT_OK
    report = json.loads((output / "report.json").read_text())
    assert [n["letter"] for n in report[0]["notes"]] == ["C", "F", "G"]
    assert (output / "sheet" / "overlay.png").is_file()


def test_process_command_failed_image(tmp_path, sheet_file, config_file):
    output = tmp_path / "out"
    args = [
        "process",
        str(sheet_file),
        str(tmp_path / "missing.png"),
        "-o",
        str(output),
        "--config",
        str(config_file),
        "--workers",
        "1",
    ]
    assert main(args) == EXIT_FAILED
    report = json.loads((output / "report.json").read_text())
    assert [r["succeeded"] for r in report] == [True, False]


def test_process_command_invalid_config(tmp_path, sheet_file):
    config = tmp_path / "bad.json"
    config.write_text(json.dumps({"minArea": -1}))
    args = ["process", str(sheet_file), "-o", str(tmp_path / "out"), "--config", str(config)]
    assert main(args) == EXIT_CONFIG
    assert not (tmp_path / "out").exists()


def test_process_command_missing_templates(tmp_path, sheet_file):
    args = [
        "process",
        str(sheet_file),
        "-o",
        str(tmp_path / "out"),
        "--templates",
        str(tmp_path / "no_templates"),
    ]
    assert main(args) == EXIT_CONFIG
