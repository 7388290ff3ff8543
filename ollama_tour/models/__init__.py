"""Data models for tour results."""

from .result import ResponseItem, SectionResult, SectionStatus, TourReport

__all__ = [
    "ResponseItem",
    "SectionResult",
    "SectionStatus",
    "TourReport",
]
