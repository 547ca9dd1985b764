"""
Unified retrieval interfaces: passage index backends and their collaborators.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence, runtime_checkable

from .hybrid import HybridSignals


@dataclass
class RetrievedPassage:
    """A passage returned by a search; never persisted."""

    material_id: str
    page: int
    quote: str
    score: float
    offset: int
    query_hits: int = 1

    @property
    def fusion_key(self) -> str:
        """Identity used to collapse the same excerpt across queries and re-chunkings."""
        return f"{self.material_id}|{self.page}|{self.offset}"

    def to_dict(self) -> dict:
        return {
            "materialId": self.material_id,
            "page": self.page,
            "quote": self.quote,
            "score": self.score,
            "offset": self.offset,
        }


@dataclass
class SearchOptions:
    """Per-call search parameters."""

    k: int = 6
    mmr_lambda: Optional[float] = None
    min_score: float = 0.65
    hybrid: HybridSignals = field(default_factory=HybridSignals)


@runtime_checkable
class PassageIndex(Protocol):
    """Search capability shared by the in-memory and remote backends."""

    backend: str

    async def search(
        self, query_embedding: Sequence[float], options: SearchOptions
    ) -> List[RetrievedPassage]:
        """
        Return at most options.k passages ordered by descending score.

        An empty index yields an empty list rather than an error.
        """
        ...

    async def keyword_search(
        self, text: str, signals: HybridSignals, k: int
    ) -> List[RetrievedPassage]:
        """Lexical-only search used when no query embedding is available."""
        ...

    def __len__(self) -> int:
        ...


class Embedder(Protocol):
    """Embedding provider with a fixed output dimensionality."""

    async def embed(self, text: str) -> List[float]:
        ...

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        ...


@dataclass
class RerankResult:
    """Single best passage chosen by the reranking collaborator."""

    page: int
    score: float
    confidence: float
    exact_quote: str = ""
    rationale: str = ""


class QueryAssistant(Protocol):
    """Optional LLM collaborator for query expansion and reranking."""

    async def expand_query(self, question: str, explanation: Optional[str] = None) -> List[str]:
        ...

    async def rerank(
        self,
        question: str,
        passages: Sequence[RetrievedPassage],
        explanation: Optional[str] = None,
    ) -> RerankResult:
        ...
