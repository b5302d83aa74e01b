"""Raster and artifact I/O at the pipeline boundary.

``ImageStore`` decodes and encodes raster files, ``crop`` is the crop-export
collaborator shared by every region-producing stage, and the reference-table
helpers persist the staff-detection artifact so staff detection and pitch
mapping can run as separate invocations.
"""

import logging
import os
from pathlib import Path

import cv2
import numpy as np
from pydantic import ValidationError

from sheet_to_notes.errors import DecodeError, OutOfBoundsError, WriteError
from sheet_to_notes.geometry import contains
from sheet_to_notes.models.core_models import Box, StaffReferenceTable

logger = logging.getLogger(__name__)


class ImageStore:
    """Loads and saves rasters on the local filesystem.

    Attributes:
        flags: OpenCV imread flags used when decoding.
    """

    def __init__(self, flags: int = cv2.IMREAD_UNCHANGED):
        self.flags = flags

    def load(self, path: str | Path) -> np.ndarray:
        """Decode an image file into a raster.

        Raises:
            DecodeError: If the file is missing, unsupported or corrupt.
        """
        path = Path(path)
        if not path.is_file():
            raise DecodeError(f"Image file not found: {path}")
        image = cv2.imread(str(path), self.flags)
        if image is None or image.size == 0:
            raise DecodeError(f"Unsupported or corrupt image file: {path}")
        logger.debug(f"Loaded {path} with shape {image.shape}")
        return image

    def save(self, image: np.ndarray, path: str | Path) -> None:
        """Encode a raster to ``path``, creating parent directories.

        Raises:
            WriteError: If the destination is unwritable or the format unknown.
        """
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            written = cv2.imwrite(str(path), image)
        except (OSError, cv2.error) as e:
            raise WriteError(f"Cannot write image {path}: {e}") from e
        if not written:
            raise WriteError(f"Cannot write image {path}")
        logger.debug(f"Saved {path}")


def crop(image: np.ndarray, box: Box) -> np.ndarray:
    """Copy the pixels under ``box`` out of ``image``.

    Raises:
        OutOfBoundsError: If ``box`` is not fully contained in ``image``.
    """
    height, width = image.shape[:2]
    if not contains(width, height, box):
        raise OutOfBoundsError(
            f"Box {box.as_tuple()} exceeds raster bounds {width}x{height}"
        )
    return image[box.y : box.bottom, box.x : box.right].copy()


def write_json(text: str, path: str | Path) -> None:
    """Write a JSON document atomically, creating parent directories.

    Raises:
        WriteError: If the file cannot be written.
    """
    path = Path(path)
    temp_path = path.with_name(path.name + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(temp_path, "w", encoding="utf-8") as f:
            f.write(text)
        # Atomic rename (overwrites existing file if present)
        os.replace(temp_path, path)
    except OSError as e:
        raise WriteError(f"Cannot write {path}: {e}") from e
    logger.debug(f"Wrote {path}")


def save_reference_table(table: StaffReferenceTable, path: str | Path) -> None:
    """Write the ``{"referenceLines": [...]}`` artifact atomically.

    Raises:
        WriteError: If the file cannot be written.
    """
    write_json(table.model_dump_json(by_alias=True, indent=2), path)


def load_reference_table(path: str | Path) -> StaffReferenceTable:
    """Read and validate a reference-table artifact.

    Raises:
        DecodeError: If the file is missing, not JSON, or fails validation.
    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            return StaffReferenceTable.model_validate_json(f.read())
    except OSError as e:
        raise DecodeError(f"Cannot read reference table {path}: {e}") from e
    except ValidationError as e:
        raise DecodeError(f"Invalid reference table {path}: {e}") from e
