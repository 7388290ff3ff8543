"""Cosine similarity over embedding vectors."""

from .scorer import (
    DegenerateVectorError,
    DimensionMismatchError,
    SimilarityError,
    SimilarityMatrix,
    SimilarityScorer,
    cosine_similarity,
)

__all__ = [
    "DegenerateVectorError",
    "DimensionMismatchError",
    "SimilarityError",
    "SimilarityMatrix",
    "SimilarityScorer",
    "cosine_similarity",
]
