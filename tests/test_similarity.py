"""Unit tests for cosine similarity and top-k ranking."""

import math
import random

import pytest

from mdchat.core.errors import DimensionMismatchError
from mdchat.services.similarity import cosine_similarities, cosine_similarity, rank_top_k


def test_identical_vectors_score_one():
    assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)


def test_orthogonal_and_opposite_vectors():
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
    assert cosine_similarity([1.0, 2.0], [-1.0, -2.0]) == pytest.approx(-1.0)


def test_zero_vector_scores_zero():
    assert cosine_similarity([0.0, 0.0, 0.0], [1.0, 2.0, 3.0]) == 0.0
    assert cosine_similarity([0.0, 0.0], [0.0, 0.0]) == 0.0


def test_dimension_mismatch_is_an_error():
    with pytest.raises(DimensionMismatchError):
        cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0])


def test_similarity_bounds_on_random_vectors():
    rng = random.Random(42)
    for _ in range(200):
        dims = rng.randint(1, 32)
        a = [rng.uniform(-10, 10) for _ in range(dims)]
        b = [rng.uniform(-10, 10) for _ in range(dims)]
        assert -1.0 <= cosine_similarity(a, b) <= 1.0
        if any(a):
            assert math.isclose(cosine_similarity(a, a), 1.0, abs_tol=1e-9)


def test_rank_orders_by_descending_score():
    query = [1.0, 0.0]
    candidates = [
        ([0.0, 1.0], "orthogonal"),
        ([1.0, 0.0], "same"),
        ([1.0, 1.0], "diagonal"),
    ]
    ranked = rank_top_k(query, candidates, limit=3)
    assert [r.payload for r in ranked] == ["same", "diagonal", "orthogonal"]


def test_rank_threshold_excludes_low_scores_even_if_limit_not_filled():
    query = [1.0, 0.0]
    candidates = [
        ([1.0, 0.0], "same"),
        ([0.0, 1.0], "orthogonal"),
        ([-1.0, 0.0], "opposite"),
    ]
    ranked = rank_top_k(query, candidates, limit=5, threshold=0.3)
    assert [r.payload for r in ranked] == ["same"]
    assert all(r.score >= 0.3 for r in ranked)


def test_rank_ties_keep_input_order():
    query = [1.0, 0.0]
    candidates = [([2.0, 0.0], f"item-{i}") for i in range(5)]
    ranked = rank_top_k(query, candidates, limit=3)
    assert [r.payload for r in ranked] == ["item-0", "item-1", "item-2"]


def test_rank_with_zero_limit():
    assert rank_top_k([1.0], [([1.0], "a")], limit=0) == []


def test_batch_scores_match_pairwise_cosine():
    rng = random.Random(7)
    query = [rng.uniform(-1, 1) for _ in range(16)]
    rows = [[rng.uniform(-1, 1) for _ in range(16)] for _ in range(10)]

    scores = cosine_similarities(query, rows)

    assert scores.shape == (10,)
    for row, score in zip(rows, scores):
        assert float(score) == pytest.approx(cosine_similarity(query, row))


def test_batch_zero_rows_score_zero():
    scores = cosine_similarities([1.0, 0.0], [[0.0, 0.0], [2.0, 0.0]])
    assert scores[0] == 0.0
    assert float(scores[1]) == pytest.approx(1.0)
    assert len(cosine_similarities([1.0, 0.0], [])) == 0


def test_batch_dimension_mismatch_is_an_error():
    with pytest.raises(DimensionMismatchError):
        cosine_similarities([1.0, 0.0], [[1.0, 0.0], [1.0, 0.0, 0.0]])
