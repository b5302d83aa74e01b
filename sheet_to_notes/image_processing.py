"""Image preprocessing functions for the segmentation pipeline.

This module converts input rasters into canonical binary masks where ink is
white (255) and background is black (0). Three thresholding modes are
available: adaptive Gaussian, Otsu, and a fixed grayscale cutoff. Optional
morphological passes remove speckle noise, and a dedicated sub-pass strips
staff lines while preserving glyph ink.

Every function returns a new array; inputs are never modified.
"""

import logging

import cv2
import numpy as np

from sheet_to_notes.errors import InputError
from sheet_to_notes.models.settings_models import BinarizeParams

logger = logging.getLogger(__name__)


def to_grayscale(image: np.ndarray) -> np.ndarray:
    """Convert a raster to a single-channel uint8 intensity image.

    Args:
        image: H×W, H×W×1, H×W×3 (BGR) or H×W×4 (BGRA) array.

    Returns:
        A new 2D uint8 array.

    Raises:
        InputError: If the array is empty or has an unsupported shape.
    """
    if image is None or image.size == 0:
        raise InputError("Cannot convert an empty raster to grayscale")
    if image.dtype != np.uint8:
        image = cv2.convertScaleAbs(image)
    if image.ndim == 2:
        return image.copy()
    if image.ndim != 3:
        raise InputError(f"Expected a 2D or 3D raster, got {image.ndim}D")

    channels = image.shape[2]
    if channels == 1:
        return image[:, :, 0].copy()
    if channels == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    if channels == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    raise InputError(f"Unsupported channel count: {channels}")


def mask_image(gray: np.ndarray, threshold_value: int) -> np.ndarray:
    """Binarize a grayscale image with a fixed inverted threshold.

    Pixels darker than or equal to ``threshold_value`` become ink (255).
    """
    _, binary = cv2.threshold(gray, threshold_value, 255, cv2.THRESH_BINARY_INV)
    return binary


def otsu_mask(gray: np.ndarray) -> np.ndarray:
    """Binarize with an Otsu-selected global threshold, inverted."""
    _, binary = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY_INV + cv2.THRESH_OTSU)
    return binary


def adaptive_mask(gray: np.ndarray, block_size: int, c: float) -> np.ndarray:
    """Binarize against a Gaussian-weighted local mean, inverted."""
    return cv2.adaptiveThreshold(
        gray,
        255,
        cv2.ADAPTIVE_THRESH_GAUSSIAN_C,
        cv2.THRESH_BINARY_INV,
        block_size,
        c,
    )


def clean_mask(binary: np.ndarray, kernel_size: int = 3) -> np.ndarray:
    """Remove speckle noise and close small stroke gaps.

    Runs a morphological open followed by a close with a square structuring
    element.
    """
    kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (kernel_size, kernel_size))
    opened = cv2.morphologyEx(binary, cv2.MORPH_OPEN, kernel)
    return cv2.morphologyEx(opened, cv2.MORPH_CLOSE, kernel)


def isolate_horizontal_lines(binary: np.ndarray, kernel_width: int) -> np.ndarray:
    """Keep only horizontal runs at least ``kernel_width`` pixels long.

    Args:
        binary: Binary mask (ink = 255).
        kernel_width: Width of the 1px-tall opening element.

    Returns:
        Mask containing only the near-horizontal runs.
    """
    kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (kernel_width, 1))
    return cv2.morphologyEx(binary, cv2.MORPH_OPEN, kernel)


def remove_horizontal_lines(binary: np.ndarray, kernel_width: int = 30) -> np.ndarray:
    """Strip staff lines from a binary mask while preserving glyph ink.

    Isolates near-horizontal runs with a wide opening and subtracts them.
    """
    lines = isolate_horizontal_lines(binary, kernel_width)
    return cv2.subtract(binary, lines)


def binarize(image: np.ndarray, params: BinarizeParams) -> np.ndarray:
    """Convert a raster to a canonical binary mask.

    Args:
        image: Grayscale or color raster.
        params: Thresholding mode and cleanup settings.

    Returns:
        2D uint8 array where ink is 255 and background is 0. A raster without
        any ink yields an all-background mask rather than an error.
    """
    gray = to_grayscale(image)

    if params.mode == "adaptive-gaussian":
        binary = adaptive_mask(gray, params.block_size, params.c)
    elif params.mode == "otsu":
        binary = otsu_mask(gray)
    else:
        binary = mask_image(gray, params.fixed_threshold)

    if params.clean:
        binary = clean_mask(binary, params.kernel_size)

    if cv2.countNonZero(binary) == 0:
        logger.debug("Binarization produced no foreground pixels")
        return np.zeros_like(gray)
    return binary


def strip_staff_lines(image: np.ndarray, params: BinarizeParams) -> np.ndarray:
    """Produce the staff-free mask used for glyph extraction in a measure.

    Otsu binarization, horizontal-line removal, then a closing pass to
    reconnect note heads that the removal split apart.
    """
    binary = otsu_mask(to_grayscale(image))
    stripped = remove_horizontal_lines(binary, params.line_removal_width)
    kernel = cv2.getStructuringElement(
        cv2.MORPH_RECT, (params.kernel_size, params.kernel_size)
    )
    return cv2.morphologyEx(stripped, cv2.MORPH_CLOSE, kernel)
