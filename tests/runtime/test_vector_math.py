import numpy as np
import pytest

from sona.runtime.memory.errors import EmbeddingDimensionMismatch
from sona.runtime.memory.vector_math import (
    cosine_similarity,
    mean_embedding,
    recency_weighted_embedding,
    similarities,
    similarity_matrix,
    weighted_average,
)


def test_cosine_self_similarity_is_one():
    rng = np.random.default_rng(7)
    for _ in range(5):
        v = rng.normal(size=32)
        assert cosine_similarity(v, v) == pytest.approx(1.0)


def test_cosine_is_symmetric():
    rng = np.random.default_rng(11)
    a = rng.normal(size=64)
    b = rng.normal(size=64)
    assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))


def test_cosine_returns_zero_for_mismatched_or_degenerate_vectors():
    assert cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0]) == 0.0
    assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0
    assert cosine_similarity([], []) == 0.0


def test_similarities_scores_mismatched_rows_as_zero():
    scores = similarities([1.0, 0.0], [[2.0, 0.0], [0.0, 1.0], [1.0, 0.0, 0.0]])
    np.testing.assert_allclose(scores, [1.0, 0.0, 0.0])


def test_similarity_matrix_rejects_mixed_dimensions():
    with pytest.raises(EmbeddingDimensionMismatch):
        similarity_matrix([[1.0, 0.0], [1.0]])


def test_similarity_matrix_is_symmetric_with_unit_diagonal():
    rng = np.random.default_rng(3)
    matrix = similarity_matrix([rng.normal(size=8) for _ in range(4)])
    np.testing.assert_allclose(np.diag(matrix), np.ones(4))
    np.testing.assert_allclose(matrix, matrix.T)


def test_recency_weighting_favours_later_vectors():
    result = recency_weighted_embedding([[1.0, 0.0], [0.0, 1.0]], dim=2)
    # weights 1/2 and 2/2
    np.testing.assert_allclose(result, [1.0 / 3.0, 2.0 / 3.0], rtol=1e-6)
    assert result.dtype == np.float32


def test_recency_weighted_embedding_of_nothing_is_zero_vector():
    result = recency_weighted_embedding([], dim=16)
    assert result.shape == (16,)
    assert not result.any()


def test_weighted_average_raises_on_mixed_dimensions():
    with pytest.raises(EmbeddingDimensionMismatch):
        weighted_average([[1.0, 0.0], [1.0]], [1.0, 1.0])


def test_mean_embedding():
    np.testing.assert_allclose(mean_embedding([[1.0, 3.0], [3.0, 5.0]]), [2.0, 4.0])
