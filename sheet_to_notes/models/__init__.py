"""Domain models for the sheet-to-notes application.

This module provides a centralized location for all data models used throughout
the segmentation and pitch inference pipeline. It includes:

- Core domain models (Box, Region, GlyphCandidate, Note, StaffReferenceTable, ...)
- Pipeline processing stage results (BinaryResult, StaffResult, ...)
- Configuration parameters for each processing stage
- Visualization data containers

All models are built using Pydantic for data validation and serialization,
ensuring type safety and clear interfaces between pipeline components.
"""

# Re-export core models
from sheet_to_notes.models.core_models import (
    Raster,
    PitchLetter,
    Box,
    Region,
    GlyphCandidate,
    DensityMarker,
    Note,
    StaffReferenceTable,
    BarlineSet,
)

# Re-export pipeline models
from sheet_to_notes.models.pipeline_models import (
    Diagnostic,
    BinaryResult,
    LocalizationResult,
    StaffResult,
    BarlineResult,
    GlyphResult,
    PitchResult,
    MeasureResult,
    SectionResult,
    SheetResult,
    NoteRecord,
    ImageReport,
)

# Re-export setting models
from sheet_to_notes.models.settings_models import (
    BinarizeParams,
    LocalizerParams,
    StaffParams,
    BarlineParams,
    GlyphParams,
    DensityParams,
    ProcessingParameters,
    load_parameters,
)

# Re-export visualization models
from sheet_to_notes.models.visualization_models import VisualizationSet
