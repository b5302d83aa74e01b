"""Parameter models for pipeline configuration.

This module defines Pydantic models that encapsulate all configurable
parameters for each stage of the segmentation pipeline. Every field accepts
both its Python name and the camelCase key of the run configuration
(``minArea``, ``matchThreshold``, ``barlineProximityPx``...), so a config
file may use either spelling.

``ProcessingParameters`` additionally accepts the flat configuration surface:
stage keys given at the top level are routed to the stage that owns them.
"""

import math
from pathlib import Path
from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from sheet_to_notes.errors import ConfigurationError


class _StageParams(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="forbid"
    )


class BinarizeParams(_StageParams):
    """Configuration parameters for binarization and morphological cleanup.

    Attributes:
        mode: Thresholding mode ("adaptive-gaussian", "otsu" or "fixed").
        block_size: Neighbourhood size for adaptive thresholding (odd, default 19).
        c: Constant subtracted from the adaptive mean (default 1).
        fixed_threshold: Grayscale cutoff for "fixed" mode (0-255, default 128).
        clean: Run the open/close speckle cleanup after thresholding (off by
            default: opening erases thin staff lines).
        kernel_size: Side of the square cleanup structuring element (default 3).
        line_removal_width: Width of the 1px-tall element that isolates
            horizontal runs for staff-line removal (default 30).
    """

    mode: Literal["adaptive-gaussian", "otsu", "fixed"] = Field(
        "otsu", description="Thresholding mode"
    )
    block_size: int = Field(19, ge=3, description="Adaptive neighbourhood size")
    c: float = Field(1.0, description="Constant subtracted from the adaptive mean")
    fixed_threshold: int = Field(
        128, ge=0, le=255, description="Grayscale cutoff for fixed mode"
    )
    clean: bool = Field(False, description="Apply open/close cleanup")
    kernel_size: int = Field(3, ge=1, description="Cleanup kernel side in pixels")
    line_removal_width: int = Field(
        30, ge=30, description="Horizontal line removal kernel width"
    )

    @field_validator("block_size")
    @classmethod
    def _odd_block(cls, v: int) -> int:
        if v % 2 == 0:
            raise ValueError("block_size must be odd")
        return v


class LocalizerParams(_StageParams):
    """Configuration parameters for template-matched region localization.

    Attributes:
        match_threshold: Minimum normalized correlation score (0-1, default 0.5).
        nms_overlap_threshold: Overlap at which a box is suppressed (0-1, default 0.3).
        x_scale: Factor applied to the match x to obtain the region left edge.
        height_scale: Factor applied to the template height for the region height.
        template_folder: Folder holding the template images, if any.
    """

    match_threshold: float = Field(
        0.5, ge=0.0, le=1.0, description="Minimum normalized correlation score"
    )
    nms_overlap_threshold: float = Field(
        0.3, ge=0.0, le=1.0, description="Suppression overlap threshold"
    )
    x_scale: float = Field(1.75, gt=0.0, description="Region left-edge scale factor")
    height_scale: float = Field(1.2, gt=0.0, description="Region height scale factor")
    template_folder: str | None = Field(None, description="Template image folder")


class StaffParams(_StageParams):
    """Configuration parameters for staff-line detection.

    Attributes:
        kernel_width: Width of the horizontal opening element (default 40).
        staff_line_proximity_px: Rows this close merge into one line (default 10,
            at least 1).
        max_lines: Number of printed staff lines kept (default 5).
    """

    kernel_width: int = Field(40, ge=2, description="Horizontal opening width")
    staff_line_proximity_px: float = Field(
        10.0, ge=1.0, description="Staff line merge distance in pixels"
    )
    max_lines: int = Field(5, ge=2, le=5, description="Staff lines to keep")


class BarlineParams(_StageParams):
    """Configuration parameters for barline detection and measure splitting.

    Attributes:
        blur_size: Gaussian kernel side (odd, default 5).
        canny_low: Lower Canny hysteresis threshold (default 50).
        canny_high: Upper Canny hysteresis threshold (default 150).
        closing_height: Height of the 1px-wide vertical closing element (default 9).
        rho: Hough distance resolution in pixels (default 1).
        theta: Hough angle resolution in radians (default π/180).
        min_votes: Hough accumulator threshold (default 40).
        min_line_length: Minimum segment length in pixels (default 20).
        max_line_gap: Maximum gap joined within one segment (default 10).
        verticality_px: Segments with a smaller x delta count as vertical (default 10).
        barline_proximity_px: Barlines closer than this merge (default 30).
    """

    blur_size: int = Field(5, ge=1, description="Gaussian kernel side")
    canny_low: float = Field(50.0, ge=0.0, description="Lower Canny threshold")
    canny_high: float = Field(150.0, ge=0.0, description="Upper Canny threshold")
    closing_height: int = Field(9, ge=1, description="Vertical closing height")
    rho: float = Field(1.0, gt=0.0, description="Hough distance resolution")
    theta: float = Field(math.pi / 180, gt=0.0, description="Hough angle resolution")
    min_votes: int = Field(40, ge=1, description="Hough accumulator threshold")
    min_line_length: float = Field(20.0, ge=0.0, description="Minimum segment length")
    max_line_gap: float = Field(10.0, ge=0.0, description="Maximum segment gap")
    verticality_px: float = Field(10.0, ge=0.0, description="Vertical x-delta limit")
    barline_proximity_px: float = Field(
        30.0, ge=0.0, description="Barline merge distance in pixels"
    )

    @field_validator("blur_size")
    @classmethod
    def _odd_blur(cls, v: int) -> int:
        if v % 2 == 0:
            raise ValueError("blur_size must be odd")
        return v


class GlyphParams(_StageParams):
    """Configuration parameters for glyph extraction via contour analysis.

    Controls the geometric filter that separates round note heads from
    stems, beams and staff-line remnants.

    Attributes:
        min_area: Minimum contour area in pixels (default 20).
        max_area: Maximum contour area in pixels (default 100).
        aspect_ratio_threshold: Minimum width/height ratio (default 0.1).
        circularity_threshold: Minimum circularity (default 0.1).
        min_contour_width: Narrower bounding boxes are ignored (default 0).
        min_contour_height: Shorter bounding boxes are ignored (default 0).
        max_contour_width: Wider bounding boxes are ignored (default 100).
        max_contour_height: Taller bounding boxes are ignored (default 100).
    """

    min_area: float = Field(20.0, ge=0.0, description="Minimum contour area")
    max_area: float = Field(100.0, ge=0.0, description="Maximum contour area")
    aspect_ratio_threshold: float = Field(
        0.1, ge=0.0, description="Minimum width/height ratio"
    )
    circularity_threshold: float = Field(
        0.1, ge=0.0, le=1.0, description="Minimum circularity"
    )
    min_contour_width: int = Field(0, ge=0, description="Minimum bounding box width")
    min_contour_height: int = Field(0, ge=0, description="Minimum bounding box height")
    max_contour_width: int = Field(100, ge=1, description="Maximum bounding box width")
    max_contour_height: int = Field(
        100, ge=1, description="Maximum bounding box height"
    )


class DensityParams(_StageParams):
    """Configuration parameters for the density-based final-note marker.

    The band defaults were tuned on a single sample sheet; keep them
    configurable rather than assuming they generalize.

    Attributes:
        relative_width_threshold: Minimum component width as a fraction of
            the strip width (default 0.02).
        min_density: Lower bound of the black-pixel percentage band (default 1).
        max_density: Upper bound of the black-pixel percentage band (default 60).
    """

    relative_width_threshold: float = Field(
        0.02, ge=0.0, le=1.0, description="Minimum relative component width"
    )
    min_density: float = Field(1.0, ge=0.0, le=100.0, description="Band lower bound")
    max_density: float = Field(60.0, ge=0.0, le=100.0, description="Band upper bound")

    @model_validator(mode="after")
    def _ordered_band(self) -> "DensityParams":
        if self.min_density > self.max_density:
            raise ValueError("min_density must not exceed max_density")
        return self


_STAGE_MODELS: dict[str, type[_StageParams]] = {
    "binarize": BinarizeParams,
    "localizer": LocalizerParams,
    "staff": StaffParams,
    "barline": BarlineParams,
    "glyph": GlyphParams,
    "density": DensityParams,
}


class ProcessingParameters(BaseModel):
    """Complete configuration for one pipeline run.

    Aggregates all parameter sets for every stage, providing a single object
    that is validated once before any image is processed.

    Attributes:
        binarize: Parameters for binarization.
        localizer: Parameters for template localization and NMS.
        staff: Parameters for staff-line detection.
        barline: Parameters for barline detection.
        glyph: Parameters for glyph extraction.
        density: Parameters for the final-note density marker.
        workers: Worker processes for batch runs (None = CPU count).
        image_timeout: Optional wall-clock budget per image in seconds.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="forbid"
    )

    binarize: BinarizeParams = Field(
        default_factory=BinarizeParams, description="Binarization parameters"
    )
    localizer: LocalizerParams = Field(
        default_factory=LocalizerParams, description="Localization parameters"
    )
    staff: StaffParams = Field(
        default_factory=StaffParams, description="Staff detection parameters"
    )
    barline: BarlineParams = Field(
        default_factory=BarlineParams, description="Barline detection parameters"
    )
    glyph: GlyphParams = Field(
        default_factory=GlyphParams, description="Glyph extraction parameters"
    )
    density: DensityParams = Field(
        default_factory=DensityParams, description="Density marker parameters"
    )
    workers: int | None = Field(None, ge=1, description="Batch worker processes")
    image_timeout: float | None = Field(
        None, gt=0.0, description="Per-image wall-clock budget in seconds"
    )

    @model_validator(mode="before")
    @classmethod
    def _route_flat_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        routed = dict(data)
        for stage, model in _STAGE_MODELS.items():
            keys = set()
            for name, info in model.model_fields.items():
                keys.update({name, info.alias or name})
            flat = {k: routed.pop(k) for k in list(routed) if k in keys}
            if not flat:
                continue
            nested = routed.get(stage, {})
            if isinstance(nested, BaseModel):
                nested = nested.model_dump()
            routed[stage] = {**nested, **flat}
        return routed


def load_parameters(path: str | Path) -> ProcessingParameters:
    """Read and validate a JSON parameter file.

    Nested (``{"glyph": {"minArea": 30}}``) and flat (``{"minArea": 30}``)
    layouts are both accepted.

    Raises:
        ConfigurationError: If the file cannot be read or fails validation.
    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            return ProcessingParameters.model_validate_json(f.read())
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration {path}: {e}") from e
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration {path}: {e}") from e
