"""MRZ band extraction: decode, crop to the bottom of the page, grayscale.

The ICAO 9303 machine-readable zone sits in the bottom quarter of a passport
data page. Cropping to it before OCR keeps the photo, guilloche patterns and
visual-zone text away from the recognizer.
"""

import io
import math
import numpy as np
from PIL import Image, UnidentifiedImageError
from core.logging import log
from core.config import settings
from core.errors import ErrorCode, OcrError
from core.utils import image_to_array, array_to_image
from preprocessing.quality import QualityScorer

# ITU-R BT.601 luma weights
LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float64)


def to_grayscale(rgb: np.ndarray) -> np.ndarray:
    """Luminance grayscale of an RGB array, rounded to uint8."""
    gray = rgb[..., :3].astype(np.float64) @ LUMA_WEIGHTS
    return np.clip(np.rint(gray), 0, 255).astype(np.uint8)


class MrzRegionPreprocessor:
    """Crops a passport photo to its MRZ band and converts it to grayscale."""

    def __init__(self, crop_ratio: float = None, log_quality: bool = True):
        """Initialize preprocessor.

        Args:
            crop_ratio: Share of the frame height kept at the bottom
                        (default from config, 0.25)
            log_quality: Log blur/contrast diagnostics for each crop
        """
        self.crop_ratio = crop_ratio if crop_ratio is not None else settings.MRZ_CROP_RATIO
        if not 0.0 < self.crop_ratio <= 1.0:
            raise ValueError(f"crop_ratio must be in (0, 1], got {self.crop_ratio}")
        self.log_quality = log_quality

    def decode(self, image_bytes: bytes) -> Image.Image:
        """Decode raw bytes into an RGB image.

        Raises:
            OcrError: INVALID_INPUT when the bytes are not an image,
                      PROCESSING_FAILED when decoding breaks midway
        """
        try:
            image = Image.open(io.BytesIO(image_bytes))
            image.load()
        except UnidentifiedImageError as e:
            raise OcrError(ErrorCode.INVALID_INPUT, f"Not a decodable image: {e}")
        except (OSError, ValueError, Image.DecompressionBombError) as e:
            raise OcrError(ErrorCode.PROCESSING_FAILED, f"Failed to load image: {e}")

        if image.mode != 'RGB':
            converted = image.convert('RGB')
            image.close()
            image = converted
        return image

    def crop(self, image: Image.Image) -> Image.Image:
        """Crop to the bottom ``crop_ratio`` of the frame (full width)."""
        width, height = image.size
        crop_height = int(math.floor(height * self.crop_ratio))
        if crop_height < 1:
            raise OcrError(ErrorCode.INVALID_INPUT, f"Image too small to contain an MRZ: {width}x{height}")
        return image.crop((0, height - crop_height, width, height))

    def process(self, image_bytes: bytes) -> Image.Image:
        """Run decode → crop → grayscale.

        The decoded full-size image is released before returning; the caller
        owns the returned crop and must ``close()`` it.

        Args:
            image_bytes: Raw encoded image

        Returns:
            Image.Image: Grayscale (mode ``L``) MRZ band
        """
        image = self.decode(image_bytes)
        try:
            width, height = image.size
            log.info(f"Image decoded: {width}x{height}")

            region = self.crop(image)
            try:
                gray = array_to_image(to_grayscale(image_to_array(region)))
            finally:
                region.close()
        finally:
            image.close()

        log.info(f"MRZ region: {gray.size[0]}x{gray.size[1]} (bottom {self.crop_ratio:.0%})")

        if self.log_quality:
            QualityScorer.log_quality(gray)

        return gray
