"""Postprocessing module.

This module turns recognized text into validated passport fields:
- MRZ line normalization and TD3 grammar parsing
- Heuristic extraction and merge rule
- Plausibility validation
"""

from postprocessing.models import MrzResult
from postprocessing.mrz_parser import MrzParser, ParsedMrz
from postprocessing.validator import ResultValidator

__all__ = [
    'MrzResult',
    'MrzParser',
    'ParsedMrz',
    'ResultValidator'
]
