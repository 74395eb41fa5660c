"""OCR module.

This module provides:
- Tesseract worker lifecycle (isolated)
- MRZ recognizer with primary/fallback models
- Extraction pipeline orchestrator with cache and deduplication
- Per-owner extraction sessions
"""

from ocr.tesseract_worker import TesseractWorker, RecognitionOutput
from ocr.recognizer import MrzRecognizer
from ocr.cache import ProcessingCache, InFlightRegistry
from ocr.pipeline import (
    MrzExtractor,
    ProgressUpdate,
    extract_mrz,
    extract_mrz_quick,
    is_ocr_supported
)
from ocr.session import PassportOcrSession

__all__ = [
    'TesseractWorker',
    'RecognitionOutput',
    'MrzRecognizer',
    'ProcessingCache',
    'InFlightRegistry',
    'MrzExtractor',
    'ProgressUpdate',
    'extract_mrz',
    'extract_mrz_quick',
    'is_ocr_supported',
    'PassportOcrSession'
]
