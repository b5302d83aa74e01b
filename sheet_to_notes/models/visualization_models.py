"""Models for visualization outputs.

This module defines data structures for holding the debug overlays produced
alongside the pipeline. They are side artifacts for visual QA and are never
consumed by a later stage.
"""

import numpy as np
from matplotlib.figure import Figure
from pydantic import BaseModel, ConfigDict, Field


class VisualizationSet(BaseModel):
    """Complete set of debug visualizations for one strip or sheet.

    Attributes:
        binary_mask: RGB rendering of the binary mask, or None if unavailable.
        sections: Sheet with localized section boxes overlaid, or None.
        staff_lines: Strip with staff reference lines overlaid, or None.
        barlines: Strip with barlines overlaid, or None.
        glyphs: Strip with glyph boxes and pitch letters overlaid, or None.
        staff_histogram: Row histogram figure of horizontal-line pixels, or None.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    binary_mask: np.ndarray | None = Field(
        None, description="Binary image mask from preprocessing"
    )
    sections: np.ndarray | None = Field(None, description="Section boxes overlay")
    staff_lines: np.ndarray | None = Field(None, description="Staff lines overlay")
    barlines: np.ndarray | None = Field(None, description="Barlines overlay")
    glyphs: np.ndarray | None = Field(None, description="Glyphs with letters overlay")
    staff_histogram: Figure | None = Field(
        None, description="Histogram of horizontal-line pixels per row"
    )
