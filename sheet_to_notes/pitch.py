"""Coordinate-to-pitch mapping against a staff reference table.

A glyph's representative coordinate is matched to the nearest reference
coordinate; the reference index selects a letter from the treble-staff
sequence, top-most reference first (G above the top line down to F on the
bottom line). Only the letter name is inferred, never the octave.

Targets far outside the staff still map to the nearest end of the table.
"""

from collections.abc import Sequence
from typing import Literal

import numpy as np

from sheet_to_notes.errors import EmptyReferenceTable
from sheet_to_notes.models.core_models import (
    GlyphCandidate,
    Note,
    PitchLetter,
    StaffReferenceTable,
)

PITCH_LETTERS: tuple[PitchLetter, ...] = ("G", "F", "E", "D", "C", "B", "A", "G", "F")


def _coordinates(reference: StaffReferenceTable | Sequence[float]) -> np.ndarray:
    if isinstance(reference, StaffReferenceTable):
        reference = reference.reference_lines
    return np.asarray(reference, dtype=np.float64)


def nearest_index(reference: StaffReferenceTable | Sequence[float], target: float) -> int:
    """Index of the reference coordinate closest to ``target``.

    Ties resolve to the lower index.

    Raises:
        EmptyReferenceTable: If the table has no entries.
    """
    coords = _coordinates(reference)
    if coords.size == 0:
        raise EmptyReferenceTable("Cannot map a pitch against an empty reference table")
    return int(np.argmin(np.abs(coords - target)))


def map_letter(index: int) -> PitchLetter:
    """Pitch letter of a reference index."""
    return PITCH_LETTERS[index % len(PITCH_LETTERS)]


def infer_pitch(reference: StaffReferenceTable | Sequence[float], target: float) -> PitchLetter:
    """Pitch letter of the reference coordinate nearest to ``target``."""
    return map_letter(nearest_index(reference, target))


def assign_pitches(
    glyphs: Sequence[GlyphCandidate],
    reference: StaffReferenceTable | Sequence[float],
    axis: Literal["y", "x"] = "y",
) -> list[Note]:
    """Promote glyphs to notes using their center coordinate on ``axis``.

    ``axis="x"`` serves strips rotated a quarter turn, where the staff runs
    vertically and the table holds x-coordinates.

    Raises:
        EmptyReferenceTable: If there are glyphs and the table is empty.
    """
    notes = []
    for i, glyph in enumerate(glyphs):
        target = glyph.box.cy if axis == "y" else glyph.box.cx
        idx = nearest_index(reference, target)
        notes.append(Note(index=i, glyph=glyph, letter=map_letter(idx), reference_index=idx))
    return notes
