"""
Normalization of raw source records.

This package contains:
- values.py: pure value normalizers (date, time, category, cost, coordinates)
- sources.py: SourceKind dispatch and one transform per source
- normalizer.py: EventNormalizer and its per-record outcomes
"""

from .normalizer import EventNormalizer, NormalizationReport, Normalized, Skip
from .sources import RawRecord, SourceKind, register_transform, transform_record

__all__ = [
    "EventNormalizer",
    "NormalizationReport",
    "Normalized",
    "RawRecord",
    "Skip",
    "SourceKind",
    "register_transform",
    "transform_record",
]
