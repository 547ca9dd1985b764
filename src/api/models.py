"""
Request and response models for the retrieval API.

Field names are accepted and emitted in camelCase (``stableId``,
``materialId``) to match the study app's JSON; snake_case is accepted too.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.rag import RetrievedPassage


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PassageOut(_CamelModel):
    """A retrieved passage as returned to the client."""

    material_id: str
    page: int = Field(..., ge=1)
    quote: str
    score: float
    offset: int = 0

    @classmethod
    def from_passage(cls, p: RetrievedPassage) -> "PassageOut":
        return cls(
            material_id=p.material_id,
            page=p.page,
            quote=p.quote,
            score=round(p.score, 4),
            offset=p.offset,
        )

    def to_passage(self) -> RetrievedPassage:
        return RetrievedPassage(
            material_id=self.material_id,
            page=self.page,
            quote=self.quote,
            score=self.score,
            offset=self.offset,
        )


class RetrieveRequest(_CamelModel):
    """Request body for POST /api/retrieve."""

    question: str = Field(..., min_length=3, max_length=5000)
    stable_id: Optional[str] = Field(
        None, pattern=r"^[A-Za-z0-9_-]+$", max_length=128, description="Question id used as cache key"
    )
    k: Optional[int] = Field(None, ge=0, le=20)
    use_advanced_search: bool = False
    use_full_question: bool = False
    explanation: Optional[str] = Field(None, max_length=5000)


class RetrieveResponse(_CamelModel):
    """Response for POST /api/retrieve; error is set only on degraded results."""

    passages: List[PassageOut] = Field(default_factory=list)
    cached: bool = False
    fallback: bool = False
    error: Optional[str] = None
    degraded: Optional[List[str]] = None


class RerankRequest(_CamelModel):
    """Request body for POST /api/rerank."""

    question: str = Field(..., min_length=3, max_length=5000)
    passages: List[PassageOut] = Field(..., min_length=1, max_length=10)
    explanation: Optional[str] = Field(None, max_length=5000)


class RerankResponse(_CamelModel):
    """Response for POST /api/rerank."""

    page: Optional[int] = None
    score: Optional[float] = None
    confidence: Optional[float] = None
    exact_quote: Optional[str] = None
    rationale: Optional[str] = None
    fallback: bool = False
    error: Optional[str] = None


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    status: str = "ok"
    backend: Optional[str] = None
    passages_loaded: int = 0
    error: Optional[str] = None


class StatsResponse(BaseModel):
    """Response for GET /api/stats."""

    cache_size: int = 0
    cache_max_size: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    cache_hit_rate: float = 0.0
