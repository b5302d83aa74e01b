"""Core domain models for sheet-music segmentation and pitch inference."""

from typing import Literal

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator

# Raster: an in-memory pixel grid, H×W (single channel) or H×W×C, uint8.
Raster = np.ndarray

PitchLetter = Literal["A", "B", "C", "D", "E", "F", "G"]


class Box(BaseModel):
    """Axis-aligned rectangle in the coordinate space of its parent raster.

    The coordinates follow standard computer vision conventions with (0,0)
    at the top-left. Containment in the parent is checked where a box meets
    its raster (cropping, clipping), not here.

    Attributes:
        x: Left edge position in pixels.
        y: Top edge position in pixels.
        width: Width in pixels (positive).
        height: Height in pixels (positive).
    """

    model_config = ConfigDict(frozen=True)

    x: int = Field(..., ge=0, description="Left edge position in pixels")
    y: int = Field(..., ge=0, description="Top edge position in pixels")
    width: int = Field(..., ge=1, description="Width in pixels")
    height: int = Field(..., ge=1, description="Height in pixels")

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def cx(self) -> float:
        """Horizontal center coordinate of the box."""
        return self.x + self.width / 2

    @property
    def cy(self) -> float:
        """Vertical center coordinate of the box."""
        return self.y + self.height / 2

    def translated(self, dx: int, dy: int) -> "Box":
        """Return the same box expressed in a coordinate space offset by (dx, dy)."""
        return self.model_copy(update={"x": self.x + dx, "y": self.y + dy})

    def as_tuple(self) -> tuple[int, int, int, int]:
        return self.x, self.y, self.width, self.height


class Region(BaseModel):
    """A located sub-area of a parent raster together with its pixel content.

    Attributes:
        index: Ordinal position within the parent (reading order).
        box: Location in the parent raster's coordinates.
        image: Cropped pixel content, an independent copy of the parent pixels.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    index: int = Field(..., ge=0, description="Ordinal position within the parent")
    box: Box
    image: np.ndarray = Field(..., description="Cropped pixel content")


class GlyphCandidate(BaseModel):
    """A connected component with the contour metrics used for classification.

    Attributes:
        box: Bounding box in the coordinates of the analysed raster.
        area: Enclosed contour area in px².
        perimeter: Closed contour length in px.
        aspect_ratio: Bounding box width / height.
        circularity: 4π·area/perimeter², 1.0 for a perfect circle.
    """

    model_config = ConfigDict(frozen=True)

    box: Box
    area: float = Field(..., ge=0)
    perimeter: float = Field(..., ge=0)
    aspect_ratio: float = Field(..., ge=0)
    circularity: float = Field(..., ge=0)


class DensityMarker(BaseModel):
    """A wide component classified by its black-pixel density.

    ``density`` is the percentage of non-ink pixels inside the bounding box
    of the ink-is-white mask, following the "green box" rule used to spot
    the closing note of a measure.
    """

    model_config = ConfigDict(frozen=True)

    box: Box
    density: float = Field(..., ge=0.0, le=100.0)
    is_marker: bool = False


class Note(BaseModel):
    """A glyph promoted with its inferred pitch letter (no octave).

    Attributes:
        index: Ordinal position of the glyph (left to right) in its measure.
        glyph: The underlying glyph candidate.
        letter: Inferred pitch letter.
        reference_index: Index of the nearest staff reference coordinate.
    """

    model_config = ConfigDict(frozen=True)

    index: int = Field(..., ge=0)
    glyph: GlyphCandidate
    letter: PitchLetter
    reference_index: int = Field(..., ge=0)


class StaffReferenceTable(BaseModel):
    """Ordered staff anchors: 5 lines plus 4 interpolated spaces.

    Serialises to the ``{"referenceLines": [...]}`` artifact exchanged between
    staff detection and pitch mapping. Fewer than 9 entries marks a partial
    detection; the table is still usable for nearest-match lookups.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    reference_lines: list[int] = Field(
        default_factory=list,
        alias="referenceLines",
        max_length=9,
        description="Increasing reference coordinates",
    )

    @field_validator("reference_lines")
    @classmethod
    def _strictly_increasing(cls, v: list[int]) -> list[int]:
        if any(b <= a for a, b in zip(v, v[1:])):
            raise ValueError("reference lines must be strictly increasing")
        return v

    @property
    def is_complete(self) -> bool:
        return len(self.reference_lines) == 9

    def __len__(self) -> int:
        return len(self.reference_lines)


class BarlineSet(BaseModel):
    """Ordered, proximity-merged barline x-coordinates of one strip."""

    model_config = ConfigDict(frozen=True)

    positions: list[int] = Field(default_factory=list)

    @field_validator("positions")
    @classmethod
    def _sorted_non_negative(cls, v: list[int]) -> list[int]:
        if any(p < 0 for p in v):
            raise ValueError("barline positions must be non-negative")
        if any(b <= a for a, b in zip(v, v[1:])):
            raise ValueError("barline positions must be strictly increasing")
        return v

    def intervals(self) -> list[tuple[int, int]]:
        """Consecutive (left, right) pairs, one per measure."""
        return list(zip(self.positions, self.positions[1:]))
