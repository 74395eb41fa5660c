"""Utility functions for the passport MRZ reader."""

import hashlib
from typing import Any
import numpy as np
from PIL import Image

SUPPORTED_IMAGE_FORMATS = {'jpg', 'jpeg', 'png', 'webp', 'bmp', 'tif', 'tiff', 'gif'}


def compute_content_hash(data: bytes) -> str:
    """Compute the cache/deduplication key for image bytes.

    Args:
        data: Raw image bytes

    Returns:
        str: SHA-256 hex digest
    """
    return hashlib.sha256(data).hexdigest()


def validate_image_format(extension: str) -> bool:
    """Validate that file extension (or data URL subtype) is a supported raster format.

    Args:
        extension: File extension (without dot), case-insensitive

    Returns:
        bool: True if format is supported
    """
    return extension.lower().lstrip('.') in SUPPORTED_IMAGE_FORMATS


def image_to_array(image: Image.Image) -> np.ndarray:
    """Convert PIL Image to numpy array.

    Args:
        image: PIL Image object

    Returns:
        np.ndarray: Image as numpy array (RGB)
    """
    return np.array(image.convert('RGB'))


def array_to_image(array: np.ndarray) -> Image.Image:
    """Convert numpy array to PIL Image.

    Args:
        array: Numpy array (RGB or single channel)

    Returns:
        Image.Image: PIL Image object
    """
    return Image.fromarray(array.astype(np.uint8))


def mask_value(value: Any, visible: int = 2) -> str:
    """Mask an identity value for log output, keeping only the last characters."""
    text = str(value or "")
    if len(text) <= visible:
        return "*" * len(text)
    return "*" * (len(text) - visible) + text[-visible:]
