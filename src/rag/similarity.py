"""
Cosine similarity for query/passage and passage/passage scoring.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """dot(a, b) / (|a| * |b|), or 0.0 when either vector has zero norm."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"Vector dimensions differ: {va.shape} vs {vb.shape}")
    na = float(np.linalg.norm(va))
    nb = float(np.linalg.norm(vb))
    if na == 0.0 or nb == 0.0:
        return 0.0
    return float(np.dot(va, vb) / (na * nb))


def cosine_similarities(matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
    """Row-wise cosine similarity of ``matrix`` against ``query``; zero-norm rows score 0."""
    if matrix.size == 0:
        return np.zeros(matrix.shape[0], dtype=np.float64)
    q_norm = float(np.linalg.norm(query))
    if q_norm == 0.0:
        return np.zeros(matrix.shape[0], dtype=np.float64)
    row_norms = np.linalg.norm(matrix, axis=1)
    dots = matrix @ query
    with np.errstate(divide="ignore", invalid="ignore"):
        sims = np.where(row_norms > 0, dots / (row_norms * q_norm), 0.0)
    return sims.astype(np.float64)
