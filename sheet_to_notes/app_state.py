"""Application state management for image registration and caching.

This module provides functionality for registering and retrieving images
by unique identifiers, enabling efficient result caching and state management
across the tuning UI. Images are identified by CRC32 checksums of their
binary data and stored in OpenCV's BGR channel order.
"""

import logging
import zlib

import cv2
import numpy as np

logger = logging.getLogger(__name__)

# In-memory registry of images by ID
_image_registry: dict[str, np.ndarray] = {}


def register_image(image: np.ndarray, image_id: str | None = None) -> str:
    """Register an image in the global registry with a unique identifier.

    Stores the image in an in-memory registry for later retrieval. If no
    ID is provided, generates a unique identifier using CRC32 hash of the
    image's binary data.

    Args:
        image: NumPy array representing the image data.
        image_id: Optional unique identifier for the image. If None, a
                 CRC32-based ID will be generated.

    Returns:
        The image identifier (either provided or generated) as a string.
    """
    if image_id is None:
        data = image.tobytes()
        crc = zlib.crc32(data) & 0xFFFFFFFF
        image_id = f"img_{crc:08x}"

    _image_registry[image_id] = image
    logger.debug(f"Registered {image_id} with shape {image.shape}")
    return image_id


def register_upload(rgb_image: np.ndarray | None) -> str | None:
    """Register an RGB image coming from the browser.

    Args:
        rgb_image: RGB image as delivered by Gradio, or None.

    Returns:
        The image identifier, or None if no image was given.
    """
    if rgb_image is None:
        return None
    if rgb_image.ndim == 3 and rgb_image.shape[2] == 3:
        image = cv2.cvtColor(rgb_image, cv2.COLOR_RGB2BGR)
    else:
        image = rgb_image.copy()
    return register_image(image)


def get_image_by_id(image_id: str) -> np.ndarray | None:
    """Retrieve a registered image by its identifier.

    Args:
        image_id: Unique identifier for the image.

    Returns:
        The registered image as a NumPy array, or None if not found.
    """
    return _image_registry.get(image_id)


def clear_registry() -> None:
    """Forget every registered image."""
    _image_registry.clear()
