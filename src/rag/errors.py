"""
Error taxonomy for the retrieval pipeline.

Only InvalidRequest and a total IndexUnavailable are meant to reach the caller;
the remaining errors are caught inside the pipeline and reported as a degraded
(fallback) result.
"""

from __future__ import annotations


class RetrievalError(Exception):
    """Base class for retrieval errors."""


class InvalidRequest(RetrievalError, ValueError):
    """Malformed or out-of-range request input."""


class IndexUnavailable(RetrievalError):
    """Passage index could not be loaded or reached."""


class EmbeddingFailure(RetrievalError):
    """Embedding provider call failed or timed out."""


class ExpansionFailure(RetrievalError):
    """Query expansion or reranking collaborator failed."""
