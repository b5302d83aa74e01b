import numpy as np
from matplotlib.figure import Figure

from sheet_to_notes.models import VisualizationSet


def test_visualization_set_defaults():
    vis = VisualizationSet()
    assert vis.binary_mask is None
    assert vis.sections is None
    assert vis.staff_histogram is None


def test_visualization_set_accepts_arrays_and_figures():
    overlay = np.zeros((4, 4, 3), dtype=np.uint8)
    vis = VisualizationSet(glyphs=overlay, staff_histogram=Figure())
    assert vis.glyphs is overlay
    assert isinstance(vis.staff_histogram, Figure)
