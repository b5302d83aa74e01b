"""Caching mechanisms for the segmentation pipeline.

Templates are loaded once per folder and shared read-only by every
localizer call in the process (each batch worker builds its own copy).
Section results are cached by registered image id and parameter JSON so
the tuning UI can reuse them when only the view changes.
"""

from functools import lru_cache

import numpy as np

from sheet_to_notes.template_matching import load_templates

TEMPLATE_CACHE_SIZE = 8
SECTION_CACHE_SIZE = 32


@lru_cache(maxsize=TEMPLATE_CACHE_SIZE)
def cached_templates(folder: str) -> tuple[np.ndarray, ...]:
    """Load the templates of ``folder`` once and freeze them.

    Args:
        folder: Template folder path.

    Returns:
        Tuple of read-only grayscale template arrays.

    Raises:
        TemplateLoadError: If the folder does not exist.
    """
    templates = load_templates(folder)
    for template in templates:
        template.setflags(write=False)
    return tuple(templates)


@lru_cache(maxsize=SECTION_CACHE_SIZE)
def cached_section_processing(image_id: str, params_json: str):
    """Cached processing of a registered image as one section strip.

    Args:
        image_id: Unique identifier for the registered image.
        params_json: ``ProcessingParameters`` serialized as JSON.

    Returns:
        SectionResult for the whole image, or None if the image id is
        unknown.
    """
    from sheet_to_notes.app_state import get_image_by_id
    from sheet_to_notes.models.settings_models import ProcessingParameters
    from sheet_to_notes.pipeline import process_section, whole_image_region

    image = get_image_by_id(image_id)
    if image is None:
        return None

    params = ProcessingParameters.model_validate_json(params_json)
    return process_section(whole_image_region(image), params)


def clear_all_caches() -> None:
    """Clear the template and section caches."""
    cached_templates.cache_clear()
    cached_section_processing.cache_clear()
