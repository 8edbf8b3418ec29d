"""
Vector Math - Cosine similarity and embedding aggregation

WHAT: Pure numpy helpers for similarity and averaging of embeddings
WHERE: sona/runtime/memory/vector_math.py - leaf module, no state
WHO: Pattern store, cluster index, retriever, consolidator
TIME: Single cosine <10us at 768 dims; batched similarity O(n·d)

Similarity functions never raise on malformed input: vectors of different
length, empty vectors and zero vectors all compare as 0.0 so retrieval stays
resilient. Aggregations (averages, centroids) do raise
EmbeddingDimensionMismatch because they have no meaningful fallback.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence, Union

import numpy as np

from .errors import EmbeddingDimensionMismatch

DEFAULT_EMBEDDING_DIM = 768

VectorLike = Union[np.ndarray, Sequence[float]]


def as_embedding(values: VectorLike) -> np.ndarray:
    """Return a 1-D float32 copy of ``values``."""
    return np.array(values, dtype=np.float32).reshape(-1)


def zeros(dim: int = DEFAULT_EMBEDDING_DIM) -> np.ndarray:
    return np.zeros(dim, dtype=np.float32)


def cosine_similarity(a: VectorLike, b: VectorLike) -> float:
    """Compute cosine similarity between two vectors.

    Returns 0.0 for mismatched lengths, empty inputs or zero-norm vectors.
    """
    v1 = np.asarray(a, dtype=np.float64).reshape(-1)
    v2 = np.asarray(b, dtype=np.float64).reshape(-1)
    if v1.size == 0 or v1.shape != v2.shape:
        return 0.0
    norm = np.linalg.norm(v1) * np.linalg.norm(v2)
    if norm <= 0.0:
        return 0.0
    return float(np.dot(v1, v2) / norm)


def normalize_rows(matrix: np.ndarray) -> np.ndarray:
    """Return a row-normalised float64 copy; zero rows stay zero."""
    m = np.asarray(matrix, dtype=np.float64)
    if m.ndim == 1:
        m = m.reshape(1, -1)
    norms = np.linalg.norm(m, axis=1, keepdims=True)
    safe = np.where(norms > 0.0, norms, 1.0)
    return m / safe


def stack(vectors: Sequence[VectorLike]) -> Optional[np.ndarray]:
    """Stack equal-length vectors into a matrix, or None if lengths differ."""
    if not vectors:
        return None
    dim = len(vectors[0])
    if any(len(v) != dim for v in vectors):
        return None
    return np.vstack([np.asarray(v, dtype=np.float64) for v in vectors])


def similarities(query: VectorLike, vectors: Sequence[VectorLike]) -> np.ndarray:
    """Cosine similarity of ``query`` against each vector.

    Vectors whose length differs from the query score 0.0, like
    :func:`cosine_similarity`.
    """
    q = np.asarray(query, dtype=np.float64).reshape(-1)
    out = np.zeros(len(vectors), dtype=np.float64)
    if q.size == 0 or not vectors:
        return out
    q_norm = np.linalg.norm(q)
    if q_norm <= 0.0:
        return out

    same = [i for i, v in enumerate(vectors) if len(v) == q.size]
    if not same:
        return out
    matrix = normalize_rows(np.vstack([np.asarray(vectors[i], dtype=np.float64) for i in same]))
    out[same] = matrix @ (q / q_norm)
    return out


def similarity_matrix(vectors: Sequence[VectorLike]) -> np.ndarray:
    """Pairwise cosine similarity matrix for equal-length vectors."""
    matrix = stack(vectors)
    if matrix is None:
        if vectors:
            raise EmbeddingDimensionMismatch("Cannot build similarity matrix over mixed dimensions")
        return np.zeros((0, 0), dtype=np.float64)
    unit = normalize_rows(matrix)
    return unit @ unit.T


def weighted_average(vectors: Sequence[VectorLike], weights: Iterable[float]) -> np.ndarray:
    """Weighted mean of equal-length vectors (float32 result)."""
    w = np.asarray(list(weights), dtype=np.float64)
    if not vectors:
        raise ValueError("weighted_average requires at least one vector")
    if w.shape[0] != len(vectors):
        raise ValueError(f"Expected {len(vectors)} weights, got {w.shape[0]}")
    matrix = stack(vectors)
    if matrix is None:
        dims = sorted({len(v) for v in vectors})
        raise EmbeddingDimensionMismatch(f"Cannot average embeddings of dimensions {dims}")
    total = float(w.sum())
    if total <= 0.0:
        w = np.ones_like(w)
        total = float(w.sum())
    return ((w[:, None] * matrix).sum(axis=0) / total).astype(np.float32)


def mean_embedding(vectors: Sequence[VectorLike]) -> np.ndarray:
    return weighted_average(vectors, [1.0] * len(vectors))


def recency_weighted_embedding(
    vectors: Sequence[VectorLike], dim: int = DEFAULT_EMBEDDING_DIM
) -> np.ndarray:
    """Length-weighted average where item i weighs (i+1)/n (later items weigh more).

    An empty sequence yields a zero vector of ``dim``.
    """
    n = len(vectors)
    if n == 0:
        return zeros(dim)
    weights: List[float] = [(i + 1) / n for i in range(n)]
    return weighted_average(vectors, weights)


__all__ = [
    "DEFAULT_EMBEDDING_DIM",
    "as_embedding",
    "zeros",
    "cosine_similarity",
    "normalize_rows",
    "stack",
    "similarities",
    "similarity_matrix",
    "weighted_average",
    "mean_embedding",
    "recency_weighted_embedding",
]
