"""
API routes: retrieve, rerank, health, stats.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from src.rag import InvalidRequest, RetrievalRequest, RetrievalService

from .models import (
    HealthResponse,
    PassageOut,
    RerankRequest,
    RerankResponse,
    RetrieveRequest,
    RetrieveResponse,
    StatsResponse,
)

router = APIRouter(prefix="/api", tags=["api"])


def _get_service(request: Request) -> tuple[Optional[RetrievalService], Optional[str]]:
    service = getattr(request.app.state, "service", None)
    error = getattr(request.app.state, "startup_error", None)
    return service, error


def _unavailable(error: Optional[str]) -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={"detail": f"Service unavailable: {error or 'retrieval service not initialized'}"},
    )


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    """Health check."""
    service, error = _get_service(request)
    if service is None:
        return HealthResponse(status="unavailable", error=error)
    return HealthResponse(
        status="ok",
        backend=service.index.backend,
        passages_loaded=len(service.index),
    )


@router.get("/stats", response_model=StatsResponse)
async def stats(request: Request) -> StatsResponse | JSONResponse:
    """Result cache statistics."""
    service, error = _get_service(request)
    if service is None:
        return _unavailable(error)
    s = service.cache.stats()
    return StatsResponse(
        cache_size=s["size"],
        cache_max_size=s["max_size"],
        cache_hits=s["hits"],
        cache_misses=s["misses"],
        cache_hit_rate=s["hit_rate"],
    )


@router.post("/retrieve", response_model=RetrieveResponse, response_model_exclude_none=True)
async def retrieve(request: Request, body: RetrieveRequest) -> Any:
    """Find supporting passages for a question."""
    service, error = _get_service(request)
    if service is None:
        return _unavailable(error)
    try:
        result = await service.retrieve(
            RetrievalRequest(
                question=body.question,
                stable_id=body.stable_id,
                k=body.k,
                use_advanced_search=body.use_advanced_search,
                use_full_question=body.use_full_question,
                explanation=body.explanation,
            )
        )
    except InvalidRequest as e:
        return JSONResponse(status_code=400, content={"detail": str(e)})
    return RetrieveResponse(
        passages=[PassageOut.from_passage(p) for p in result.passages],
        cached=result.cached,
        fallback=result.fallback,
        error=result.error,
        degraded=result.degraded or None,
    )


@router.post("/rerank", response_model=RerankResponse, response_model_exclude_none=True)
async def rerank(request: Request, body: RerankRequest) -> Any:
    """Pick the single best passage for a question (advisory)."""
    service, error = _get_service(request)
    if service is None:
        return _unavailable(error)
    outcome = await service.rerank(
        body.question,
        [p.to_passage() for p in body.passages],
        body.explanation,
    )
    if outcome.result is None:
        return RerankResponse(fallback=True, error=outcome.error)
    r = outcome.result
    return RerankResponse(
        page=r.page,
        score=r.score,
        confidence=r.confidence,
        exact_quote=r.exact_quote,
        rationale=r.rationale,
    )
