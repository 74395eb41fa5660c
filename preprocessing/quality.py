"""Blur and contrast diagnostics for the MRZ crop."""

import cv2
import numpy as np
from typing import Tuple
from PIL import Image
from core.logging import log


class QualityScorer:
    """Handles image quality assessment (diagnostic only, never rejects)."""

    @staticmethod
    def detect_blur(image: np.ndarray, threshold: float = 100.0) -> Tuple[bool, float]:
        """Detect blur using Laplacian variance.

        Args:
            image: Input image as numpy array (grayscale or BGR)
            threshold: Blur threshold (lower = more sensitive)

        Returns:
            Tuple[bool, float]: (is_blurred, variance_score)
        """
        if len(image.shape) == 3:
            gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        else:
            gray = image

        laplacian = cv2.Laplacian(gray, cv2.CV_64F)
        variance = laplacian.var()

        is_blurred = bool(variance < threshold)  # Convert to native Python bool

        return is_blurred, float(variance)

    @staticmethod
    def calculate_quality_score(gray: np.ndarray) -> float:
        """Calculate overall quality score (0-1) for a grayscale image.

        Combines blur, contrast, and brightness metrics.
        """
        _, blur_variance = QualityScorer.detect_blur(gray, threshold=50.0)
        blur_score = min(blur_variance / 200.0, 1.0)

        contrast_score = min(float(np.std(gray)) / 64.0, 1.0)

        # Avoid too dark or too bright
        mean_brightness = float(np.mean(gray))
        brightness_score = 1.0 - abs(mean_brightness - 127.5) / 127.5

        quality_score = (
            0.5 * blur_score +
            0.3 * contrast_score +
            0.2 * brightness_score
        )

        return float(np.clip(quality_score, 0.0, 1.0))

    @staticmethod
    def log_quality(image: Image.Image) -> None:
        """Log blur and quality diagnostics for an MRZ crop (grayscale PIL Image)."""
        gray = np.asarray(image.convert('L'), dtype=np.uint8)
        if gray.size == 0:
            log.warning("MRZ crop is empty, quality not assessed")
            return

        is_blurred, blur_variance = QualityScorer.detect_blur(gray)
        quality_score = QualityScorer.calculate_quality_score(gray)
        log.info(f"MRZ crop quality: score={quality_score:.3f}, blur_variance={blur_variance:.2f}, blurred={is_blurred}")
