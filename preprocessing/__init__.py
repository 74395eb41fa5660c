"""Preprocessing module (MRZ band extraction and crop diagnostics)."""

from preprocessing.mrz_region import MrzRegionPreprocessor, to_grayscale
from preprocessing.quality import QualityScorer

__all__ = [
    'MrzRegionPreprocessor',
    'QualityScorer',
    'to_grayscale'
]
