"""Exception taxonomy for the sheet-to-notes pipeline.

Hard failures are exceptions. Soft detection failures (too few staff lines,
too few barlines) are not: they travel with the stage result as a
``Diagnostic`` so downstream stages can degrade gracefully.
"""


class PipelineError(Exception):
    """Base exception for pipeline processing errors."""

    pass


class InputError(PipelineError):
    """Exception raised when in-memory input data is invalid."""

    pass


class ConfigurationError(PipelineError):
    """Exception raised when a parameter file cannot be read or validated."""

    pass


class DecodeError(PipelineError):
    """Exception raised when an image or artifact cannot be decoded."""

    pass


class WriteError(PipelineError):
    """Exception raised when an image or artifact cannot be written."""

    pass


class TemplateLoadError(PipelineError):
    """Exception raised when a template image cannot be read."""

    pass


class OutOfBoundsError(PipelineError):
    """Exception raised when a crop box is not contained in its raster."""

    pass


class EmptyReferenceTable(PipelineError):
    """Exception raised when a pitch lookup is attempted on an empty table."""

    pass


class ImageTimeoutError(PipelineError):
    """Exception raised when an image exceeds its wall-clock budget."""

    pass
