import pytest

from sheet_to_notes.models import Box, GlyphCandidate


@pytest.fixture
def valid_box():
    return Box(x=10, y=20, width=6, height=4)


@pytest.fixture
def valid_glyph(valid_box):
    return GlyphCandidate(
        box=valid_box, area=20.0, perimeter=18.0, aspect_ratio=1.5, circularity=0.78
    )
