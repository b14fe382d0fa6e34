"""Cosine similarity and top-k ranking."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

import numpy as np

from mdchat.core.errors import DimensionMismatchError

T = TypeVar("T")


@dataclass(frozen=True)
class ScoredItem(Generic[T]):
    payload: T
    score: float


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """dot(a, b) / (|a| * |b|), or 0.0 when either vector has zero norm.

    Raises:
        DimensionMismatchError: if the vectors differ in length.
    """
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    score = float(np.dot(va, vb) / (norm_a * norm_b))
    return max(-1.0, min(1.0, score))


def cosine_similarities(query: Sequence[float], vectors: Sequence[Sequence[float]]) -> np.ndarray:
    """Cosine of ``query`` against every row of ``vectors`` in one matrix product.

    Rows with zero norm score 0.0.

    Raises:
        DimensionMismatchError: if any row differs in length from ``query``.
    """
    for vector in vectors:
        if len(vector) != len(query):
            raise DimensionMismatchError(len(query), len(vector))
    if not len(vectors):
        return np.zeros(0)

    q = np.asarray(query, dtype=np.float64)
    matrix = np.asarray(vectors, dtype=np.float64)
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(q)
    dots = matrix @ q
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = np.where(norms > 0, dots / norms, 0.0)
    return np.clip(scores, -1.0, 1.0)


def score_candidates(
    query: Sequence[float],
    candidates: Iterable[tuple[Sequence[float], T]],
    threshold: float | None = None,
) -> list[ScoredItem[T]]:
    """Score every candidate, keeping input order and dropping those below threshold."""
    candidates = list(candidates)
    scores = cosine_similarities(query, [vector for vector, _ in candidates])
    scored: list[ScoredItem[T]] = []
    for (_, payload), score in zip(candidates, scores):
        if threshold is not None and score < threshold:
            continue
        scored.append(ScoredItem(payload=payload, score=float(score)))
    return scored


def top_k(items: Iterable[ScoredItem[T]], limit: int) -> list[ScoredItem[T]]:
    """Highest scores first; equal scores keep their original relative order."""
    if limit <= 0:
        return []
    return sorted(items, key=lambda item: item.score, reverse=True)[:limit]


def rank_top_k(
    query: Sequence[float],
    candidates: Iterable[tuple[Sequence[float], T]],
    limit: int,
    threshold: float | None = None,
) -> list[ScoredItem[T]]:
    """Return the ``limit`` best candidates at or above ``threshold``."""
    return top_k(score_candidates(query, candidates, threshold), limit)
