"""
Pairwise cosine similarity over embedding vectors.

The embedding vectors come from the Ollama ``/api/embed`` endpoint (one call
per input text); this module only does the arithmetic:

    similarity(a, b) = (Σ a_k·b_k) / (sqrt(Σ a_k²) · sqrt(Σ b_k²))

Error policy:
  - Vectors of different lengths raise ``DimensionMismatchError`` before any
    pair is computed.
  - A zero-norm vector raises ``DegenerateVectorError``, and NaN or infinite
    components raise ``SimilarityError``. We never hand back a NaN score.
  - Norms are taken on max-abs-scaled copies, so very large or very small
    magnitudes give the same score as moderate ones.
  - An empty input list gives an empty (0 x 0) matrix.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Iterator, Sequence

import numpy as np

logger = logging.getLogger(__name__)


class SimilarityError(ValueError):
    """Base class for invalid similarity input."""


class DimensionMismatchError(SimilarityError):
    """Raised when embedding vectors do not all have the same length."""

    def __init__(self, expected: int, actual: int, index: int | None = None):
        self.expected = expected
        self.actual = actual
        self.index = index
        where = f"vector {index}" if index is not None else "vector"
        super().__init__(
            f"Dimension mismatch: {where} has {actual} dimensions, expected {expected}"
        )


class DegenerateVectorError(SimilarityError):
    """Raised when a vector has zero norm, so its direction is undefined."""

    def __init__(self, index: int | None = None):
        self.index = index
        where = f"Vector {index}" if index is not None else "Vector"
        super().__init__(
            f"{where} has zero norm; cosine similarity is undefined. "
            f"Check that the embedding model returned a real embedding."
        )


def _as_vector(values: Sequence[float] | np.ndarray, index: int | None = None) -> np.ndarray:
    """Copy into a read-only 1-D float64 array of finite values."""
    arr = np.array(values, dtype=np.float64)
    where = f"Vector {index}" if index is not None else "Vector"
    if arr.ndim != 1:
        raise SimilarityError(f"{where} must be one-dimensional, got shape {arr.shape}")
    if not np.isfinite(arr).all():
        raise SimilarityError(f"{where} contains NaN or infinite values")
    arr.setflags(write=False)
    return arr


def _unit_vector(arr: np.ndarray, index: int | None = None) -> np.ndarray:
    """
    Direction of ``arr`` as a unit vector.

    The vector is divided by its largest absolute component before the norm
    is taken, so sums of squares neither overflow nor underflow.
    """
    scale = float(np.max(np.abs(arr))) if arr.size else 0.0
    if scale == 0.0:
        raise DegenerateVectorError(index=index)
    scaled = arr / scale
    return scaled / math.sqrt(float(np.dot(scaled, scaled)))


def _unit_dot(a_unit: np.ndarray, b_unit: np.ndarray) -> float:
    score = float(np.dot(a_unit, b_unit))
    if not math.isfinite(score):
        raise SimilarityError(f"Cosine similarity is not finite: {score}")
    # Rounding can push |score| a hair past 1.0
    return max(-1.0, min(1.0, score))


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity between two vectors.

    Args:
        a: First embedding vector.
        b: Second embedding vector, same length as ``a``.

    Returns:
        Score in [-1, 1]. 1.0 = same direction, 0.0 = orthogonal,
        -1.0 = opposite.

    Raises:
        DimensionMismatchError: If the vectors differ in length.
        DegenerateVectorError: If either vector has zero norm.
        SimilarityError: If either vector contains NaN or infinity.
    """
    a_arr, b_arr = _as_vector(a, index=0), _as_vector(b, index=1)
    if a_arr.shape != b_arr.shape:
        raise DimensionMismatchError(expected=a_arr.shape[0], actual=b_arr.shape[0], index=1)
    return _unit_dot(_unit_vector(a_arr, index=0), _unit_vector(b_arr, index=1))


@dataclass(frozen=True)
class SimilarityMatrix:
    """
    Square matrix of pairwise cosine similarities.

    ``values[i, j]`` is the similarity between input vector i and input
    vector j. The array is read-only; labels (usually the embedded texts)
    are kept for display.
    """
    values: np.ndarray
    labels: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if self.values.ndim != 2 or self.values.shape[0] != self.values.shape[1]:
            raise SimilarityError(f"Similarity matrix must be square, got {self.values.shape}")
        if self.labels and len(self.labels) != self.values.shape[0]:
            raise SimilarityError(
                f"Got {len(self.labels)} labels for a {self.values.shape[0]}x"
                f"{self.values.shape[0]} matrix"
            )
        self.values.setflags(write=False)

    @classmethod
    def empty(cls) -> SimilarityMatrix:
        return cls(values=np.zeros((0, 0), dtype=np.float64))

    @property
    def size(self) -> int:
        return self.values.shape[0]

    def __len__(self) -> int:
        return self.size

    def __getitem__(self, key: tuple[int, int]) -> float:
        i, j = key
        return float(self.values[i, j])

    def label(self, index: int) -> str:
        """Label for row/column ``index`` (falls back to ``text{index+1}``)."""
        if self.labels:
            return self.labels[index]
        return f"text{index + 1}"

    def pairs(self) -> Iterator[tuple[int, int, float]]:
        """Yield (i, j, score) for every unordered pair i < j."""
        for i in range(self.size):
            for j in range(i + 1, self.size):
                yield i, j, float(self.values[i, j])

    def most_similar(self, index: int) -> tuple[int, float] | None:
        """Closest other entry to ``index``, or None for a 1x1 matrix."""
        best: tuple[int, float] | None = None
        for j in range(self.size):
            if j == index:
                continue
            score = float(self.values[index, j])
            if best is None or score > best[1]:
                best = (j, score)
        return best

    def rounded(self, decimals: int = 3) -> list[list[float]]:
        return [[round(float(v), decimals) for v in row] for row in self.values]

    def to_dict(self, decimals: int | None = None) -> dict:
        values = (
            self.rounded(decimals)
            if decimals is not None
            else [[float(v) for v in row] for row in self.values]
        )
        return {
            "labels": [self.label(i) for i in range(self.size)],
            "values": values,
        }


class SimilarityScorer:
    """
    Compute the full pairwise similarity matrix for a list of vectors.

    Every ordered pair is computed, including the diagonal and both
    (i, j) and (j, i); there is no symmetry shortcut.

    Usage:
        scorer = SimilarityScorer()
        matrix = scorer.score([[1, 1, 0], [1, 0, 0]])
        matrix[0, 1]            # 0.7071...

        # With an embedding function (one call per text, in order)
        matrix = scorer.score_texts(texts, embed=client.embed)
    """

    def score(
        self,
        vectors: Sequence[Sequence[float]],
        labels: Sequence[str] | None = None,
    ) -> SimilarityMatrix:
        """
        Build the similarity matrix.

        Args:
            vectors: Embedding vectors, all the same length.
            labels: Optional display labels, one per vector.

        Returns:
            SimilarityMatrix (0 x 0 when ``vectors`` is empty).

        Raises:
            DimensionMismatchError: If any vector's length differs from the first.
            DegenerateVectorError: If any vector has zero norm.
            SimilarityError: If any vector contains NaN or infinity.
        """
        if len(vectors) == 0:
            return SimilarityMatrix.empty()

        arrays = [_as_vector(v, index=idx) for idx, v in enumerate(vectors)]

        # Validate everything up front, before computing any pair
        expected = arrays[0].shape[0]
        for idx, arr in enumerate(arrays):
            if arr.shape[0] != expected:
                raise DimensionMismatchError(expected=expected, actual=arr.shape[0], index=idx)
        units = [_unit_vector(arr, index=idx) for idx, arr in enumerate(arrays)]

        n = len(units)
        values = np.empty((n, n), dtype=np.float64)
        for i in range(n):
            for j in range(n):
                values[i, j] = _unit_dot(units[i], units[j])

        logger.debug(f"Computed {n}x{n} similarity matrix ({expected} dimensions)")
        return SimilarityMatrix(
            values=values,
            labels=tuple(labels) if labels is not None else (),
        )

    def score_texts(
        self,
        texts: Sequence[str],
        embed: Callable[[str], Sequence[float]],
    ) -> SimilarityMatrix:
        """
        Embed each text (one ``embed`` call per text, in input order) and
        score the resulting vectors, labelled with the texts.
        """
        vectors = []
        for i, text in enumerate(texts, 1):
            logger.debug(f"Embedding text {i}/{len(texts)}")
            vectors.append(embed(text))
        return self.score(vectors, labels=list(texts))
