"""
Maximal Marginal Relevance (MMR) selection for diverse top-k results.
"""

from __future__ import annotations

from typing import List, Sequence

import numpy as np


def _unit_rows(vectors: np.ndarray) -> np.ndarray:
    """Scale rows to unit length so row dot products are cosine similarities."""
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    safe = np.where(norms > 0, norms, 1.0)
    return np.where(norms > 0, vectors / safe, 0.0)


def mmr_select(
    relevance: Sequence[float],
    vectors: Sequence[Sequence[float]] | np.ndarray,
    k: int,
    mmr_lambda: float = 0.7,
) -> List[int]:
    """
    Greedily pick up to k candidate indices trading relevance against redundancy.

    Args:
        relevance: Relevance score per candidate (higher is better).
        vectors: Embedding per candidate, same order as relevance.
        k: Maximum number of picks.
        mmr_lambda: 1.0 ranks purely by relevance, 0.0 purely by novelty.

    Returns:
        Candidate indices in pick order. Ties go to the earliest candidate.
    """
    n = len(relevance)
    if k <= 0 or n == 0:
        return []
    if not 0.0 <= mmr_lambda <= 1.0:
        raise ValueError(f"mmr_lambda must be in [0, 1], got {mmr_lambda}")

    rel = np.asarray(relevance, dtype=np.float64)
    mat = np.asarray(vectors, dtype=np.float64)
    if mat.ndim != 2 or mat.shape[0] != n:
        raise ValueError(f"Expected {n} embedding rows, got shape {mat.shape}")
    if mat.shape[1] == 0:
        mat = np.zeros((n, 1))
    unit = _unit_rows(mat)

    # Max similarity of each candidate to anything picked so far.
    max_sim = np.full(n, -np.inf)
    picked = np.zeros(n, dtype=bool)
    order: List[int] = []

    for _ in range(min(k, n)):
        diversity = max_sim if order else np.zeros(n)
        scores = mmr_lambda * rel - (1.0 - mmr_lambda) * diversity
        scores[picked] = -np.inf
        best = int(np.argmax(scores))
        order.append(best)
        picked[best] = True
        max_sim = np.maximum(max_sim, unit @ unit[best])

    return order
