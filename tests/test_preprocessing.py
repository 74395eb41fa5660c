"""Tests for MRZ band preprocessing."""

import numpy as np
import pytest
from PIL import Image

from core.errors import ErrorCode, OcrError
from core.logging import log
from preprocessing.mrz_region import MrzRegionPreprocessor, to_grayscale
from preprocessing.quality import QualityScorer
from conftest import encode_image


class TestMrzRegionPreprocessor:
    """Decode, crop and grayscale."""

    def test_bottom_quarter_grayscale(self, make_image_bytes):
        region = MrzRegionPreprocessor().process(make_image_bytes(size=(320, 240)))
        try:
            assert region.mode == "L"
            assert region.size == (320, 60)
        finally:
            region.close()

    def test_crop_keeps_bottom_rows(self):
        """Top half white, bottom half black: the crop is all black."""
        image = Image.new("RGB", (40, 40), (255, 255, 255))
        image.paste((0, 0, 0), (0, 20, 40, 40))
        region = MrzRegionPreprocessor(log_quality=False).process(encode_image(image))
        assert np.asarray(region).max() == 0

    def test_luma_weights(self):
        red = np.zeros((2, 2, 3), dtype=np.uint8)
        red[..., 0] = 255
        assert to_grayscale(red)[0, 0] == 76

    def test_non_image_bytes(self):
        with pytest.raises(OcrError) as exc_info:
            MrzRegionPreprocessor().process(b"definitely not an image")
        assert exc_info.value.code == ErrorCode.INVALID_INPUT

    def test_too_small_for_mrz(self):
        """Three rows leave nothing after a 25% crop."""
        with pytest.raises(OcrError) as exc_info:
            MrzRegionPreprocessor().process(encode_image(Image.new("RGB", (100, 3))))
        assert exc_info.value.code == ErrorCode.INVALID_INPUT

    def test_invalid_crop_ratio(self):
        with pytest.raises(ValueError):
            MrzRegionPreprocessor(crop_ratio=0)


class TestQualityScorer:
    """Blur diagnostics."""

    def test_flat_image_is_blurred(self):
        is_blurred, variance = QualityScorer.detect_blur(np.full((50, 50), 128, dtype=np.uint8))
        assert is_blurred
        assert variance == 0.0

    def test_checkerboard_is_sharp(self):
        board = (np.indices((64, 64)).sum(axis=0) % 2 * 255).astype(np.uint8)
        is_blurred, _ = QualityScorer.detect_blur(board)
        assert not is_blurred
        assert 0.0 <= QualityScorer.calculate_quality_score(board) <= 1.0

    def test_log_quality_reports_score(self):
        board = (np.indices((64, 64)).sum(axis=0) % 2 * 255).astype(np.uint8)
        messages = []
        sink = log.add(messages.append, format="{message}")
        try:
            QualityScorer.log_quality(Image.fromarray(board))
        finally:
            log.remove(sink)
        assert any(message.startswith("MRZ crop quality: score=") for message in messages)
