import json

import numpy as np
import pytest

from sheet_to_notes.errors import DecodeError, OutOfBoundsError, WriteError
from sheet_to_notes.image_store import (
    ImageStore,
    crop,
    load_reference_table,
    save_reference_table,
    write_json,
)
from sheet_to_notes.models.core_models import Box, StaffReferenceTable


def test_save_and_load_png(tmp_path, staff_strip):
    store = ImageStore()
    path = tmp_path / "nested" / "dir" / "strip.png"
    store.save(staff_strip, path)
    assert path.is_file()
    assert np.array_equal(store.load(path), staff_strip)


def test_load_missing_file(tmp_path):
    with pytest.raises(DecodeError):
        ImageStore().load(tmp_path / "missing.png")


def test_load_corrupt_file(tmp_path):
    path = tmp_path / "corrupt.png"
    path.write_bytes(b"\x89PNG garbage")
    with pytest.raises(DecodeError):
        ImageStore().load(path)


def test_save_unknown_format(tmp_path, staff_strip):
    with pytest.raises(WriteError):
        ImageStore().save(staff_strip, tmp_path / "strip.unknown")


def test_save_unwritable_destination(tmp_path, staff_strip):
    blocker = tmp_path / "file"
    blocker.write_text("not a directory")
    with pytest.raises(WriteError):
        ImageStore().save(staff_strip, blocker / "strip.png")


def test_crop_returns_independent_copy(staff_strip):
    box = Box(x=10, y=15, width=30, height=20)
    piece = crop(staff_strip, box)
    assert piece.shape == (20, 30)
    piece[:] = 0
    assert staff_strip[15, 10] == 255


def test_crop_out_of_bounds(staff_strip):
    with pytest.raises(OutOfBoundsError):
        crop(staff_strip, Box(x=390, y=0, width=20, height=10))


def test_reference_table_round_trip(tmp_path, reference_lines):
    path = tmp_path / "staff.json"
    table = StaffReferenceTable(reference_lines=reference_lines)
    save_reference_table(table, path)
    assert json.loads(path.read_text()) == {"referenceLines": reference_lines}
    assert load_reference_table(path) == table
    assert not (tmp_path / "staff.json.tmp").exists()


@pytest.mark.parametrize(
    "content",
    ["not json", '{"referenceLines": [30, 20]}', '{"referenceLines": "x"}'],
)
def test_load_reference_table_invalid(tmp_path, content):
    path = tmp_path / "staff.json"
    path.write_text(content)
    with pytest.raises(DecodeError):
        load_reference_table(path)


def test_load_reference_table_missing(tmp_path):
    with pytest.raises(DecodeError):
        load_reference_table(tmp_path / "missing.json")


def test_write_json_unwritable(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("not a directory")
    with pytest.raises(WriteError):
        write_json("{}", blocker / "out.json")
