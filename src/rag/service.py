"""
Retrieval service: normalize, cache check, expand, embed, search, fuse, cache.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .cache import ResultCache, make_cache_key
from .config import RetrievalConfig
from .errors import IndexUnavailable, InvalidRequest
from .fusion import QueryFusion
from .hybrid import HybridSignals, extract_signals
from .local_index import LocalPassageIndex
from .normalize import extract_key_phrase, prepare_query
from .qdrant_index import QdrantPassageIndex
from .retriever import (
    Embedder,
    PassageIndex,
    QueryAssistant,
    RerankResult,
    RetrievedPassage,
    SearchOptions,
)

logger = logging.getLogger(__name__)

STABLE_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


@dataclass
class RetrievalRequest:
    """A question to find supporting passages for."""

    question: str
    stable_id: Optional[str] = None
    k: Optional[int] = None
    use_advanced_search: bool = False
    use_full_question: bool = False
    explanation: Optional[str] = None


@dataclass
class RetrievalResponse:
    """Passages plus flags telling a clean result from a best-effort one."""

    passages: List[RetrievedPassage]
    cached: bool = False
    fallback: bool = False
    error: Optional[str] = None
    degraded: List[str] = field(default_factory=list)


@dataclass
class RerankResponse:
    """Outcome of an advisory rerank call."""

    result: Optional[RerankResult]
    fallback: bool = False
    error: Optional[str] = None


async def _open_local(config: RetrievalConfig) -> LocalPassageIndex:
    return LocalPassageIndex.from_file(
        config.index_path,
        default_mmr_lambda=config.local_mmr_lambda,
        catalog=config.materials,
    )


async def _open_qdrant(config: RetrievalConfig) -> QdrantPassageIndex:
    if not config.qdrant_url:
        raise IndexUnavailable("QDRANT_URL is not configured")
    return await QdrantPassageIndex.connect(
        config.qdrant_url,
        config.qdrant_collection,
        api_key=config.qdrant_api_key,
        timeout=config.search_timeout,
        default_mmr_lambda=config.remote_mmr_lambda,
        min_pool=config.remote_min_pool,
        pool_factor=config.remote_pool_factor,
        catalog=config.materials,
    )


async def build_passage_index(config: RetrievalConfig) -> PassageIndex:
    """
    Open the configured backend, falling back once to the other one.

    Raises IndexUnavailable only when neither backend can be opened.
    """
    if config.use_qdrant:
        primary, alternate = _open_qdrant, _open_local
    else:
        primary, alternate = _open_local, (_open_qdrant if config.qdrant_url else None)

    try:
        return await primary(config)
    except IndexUnavailable as e:
        if alternate is None:
            raise
        logger.warning("Primary passage index unavailable (%s); trying fallback backend", e)
        try:
            return await alternate(config)
        except IndexUnavailable as fallback_error:
            raise IndexUnavailable(
                f"No passage index available: {e}; fallback: {fallback_error}"
            ) from fallback_error


class RetrievalService:
    """Orchestrates one retrieval per request; only the cache is shared."""

    def __init__(
        self,
        index: PassageIndex,
        embedder: Embedder,
        cache: ResultCache,
        *,
        config: Optional[RetrievalConfig] = None,
        assistant: Optional[QueryAssistant] = None,
    ):
        self.index = index
        self.embedder = embedder
        self.cache = cache
        self.config = config or RetrievalConfig()
        self.assistant = assistant
        self.fusion = QueryFusion(
            index,
            embedder,
            fusion_boost=self.config.fusion_boost,
            embedding_timeout=self.config.embedding_timeout,
            search_timeout=self.config.search_timeout,
        )

    def validate(self, request: RetrievalRequest) -> int:
        """Check bounds and return the effective k."""
        cfg = self.config
        question = request.question
        if not isinstance(question, str):
            raise InvalidRequest("question must be a string")
        length = len(question.strip())
        if length < cfg.min_question_length or length > cfg.max_question_length:
            raise InvalidRequest(
                f"question length must be between {cfg.min_question_length} and {cfg.max_question_length}"
            )
        if request.stable_id is not None and not STABLE_ID_RE.match(request.stable_id):
            raise InvalidRequest("stable_id may only contain letters, digits, '_' and '-'")
        k = cfg.default_k if request.k is None else request.k
        if isinstance(k, bool) or not isinstance(k, int) or not 0 <= k <= cfg.max_k:
            raise InvalidRequest(f"k must be an integer between 0 and {cfg.max_k}")
        return k

    def prepare(self, request: RetrievalRequest) -> str:
        """Key phrase (unless full question requested), normalized and alias-expanded."""
        source = request.question if request.use_full_question else extract_key_phrase(request.question)
        query = prepare_query(source) or prepare_query(request.question)
        if not query:
            raise InvalidRequest("question has no searchable text")
        return query

    async def retrieve(self, request: RetrievalRequest) -> RetrievalResponse:
        """
        Run the full pipeline for one request.

        Raises InvalidRequest for malformed input. Every downstream failure
        is reported on the response (fallback=True) instead of raised.
        """
        k = self.validate(request)
        if k == 0:
            return RetrievalResponse(passages=[])

        query = self.prepare(request)
        key = make_cache_key(query, request.stable_id)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Cache hit for %s", key[:12])
            return RetrievalResponse(passages=cached[:k], cached=True)

        degraded: List[str] = []
        phrasings = [query]
        signals = HybridSignals()
        if request.use_advanced_search:
            signals = extract_signals(request.question)
            for extra in await self._expand(request, degraded):
                phrasing = prepare_query(extra)
                if phrasing and phrasing not in phrasings and len(phrasings) < self.config.max_phrasings:
                    phrasings.append(phrasing)

        options = self._search_options(k, multi=len(phrasings) > 1, signals=signals)
        outcome = await self.fusion.run(phrasings, options, k)
        degraded.extend(f"{f.stage} failed: {f.error}" for f in outcome.failures)

        if outcome.all_failed:
            passages: List[RetrievedPassage] = []
            if outcome.embedding_failed:
                passages = await self._keyword_fallback(query, signals, k, degraded)
                error = "Embedding provider unavailable; returning keyword matches"
            else:
                error = "Passage search failed"
            logger.warning("Retrieval degraded for query %r: %s", query[:80], error)
            return RetrievalResponse(
                passages=passages, fallback=True, error=error, degraded=degraded
            )

        logger.info(
            "Retrieved %s passages from %s phrasing(s) (%s failed)",
            len(outcome.passages),
            len(phrasings),
            len(outcome.failures),
        )
        if degraded:
            return RetrievalResponse(
                passages=outcome.passages,
                fallback=True,
                error="; ".join(degraded),
                degraded=degraded,
            )

        self.cache.set(key, outcome.passages)
        return RetrievalResponse(passages=outcome.passages)

    def _search_options(self, k: int, *, multi: bool, signals: HybridSignals) -> SearchOptions:
        if multi:
            return SearchOptions(
                k=min(max(k, self.config.multi_query_k), self.config.max_k),
                min_score=self.config.multi_query_min_score,
                hybrid=signals,
            )
        return SearchOptions(k=k, min_score=self.config.min_score, hybrid=signals)

    async def _expand(self, request: RetrievalRequest, degraded: List[str]) -> List[str]:
        if self.assistant is None:
            return []
        try:
            return await asyncio.wait_for(
                self.assistant.expand_query(request.question, request.explanation),
                self.config.expansion_timeout,
            )
        except Exception as e:
            reason = str(e) or type(e).__name__
            logger.warning("Query expansion failed, continuing with original query: %s", reason)
            degraded.append(f"expansion failed: {reason}")
            return []

    async def _keyword_fallback(
        self, query: str, signals: HybridSignals, k: int, degraded: List[str]
    ) -> List[RetrievedPassage]:
        try:
            return await asyncio.wait_for(
                self.index.keyword_search(query, signals, k), self.config.search_timeout
            )
        except Exception as e:
            reason = str(e) or type(e).__name__
            logger.warning("Keyword fallback failed: %s", reason)
            degraded.append(f"keyword search failed: {reason}")
            return []

    async def rerank(
        self,
        question: str,
        passages: Sequence[RetrievedPassage],
        explanation: Optional[str] = None,
    ) -> RerankResponse:
        """Advisory best-passage choice; failures come back as a fallback response."""
        if self.assistant is None:
            return RerankResponse(result=None, fallback=True, error="Reranking is not configured")
        if not passages:
            return RerankResponse(result=None, fallback=True, error="No passages to rerank")
        try:
            result = await asyncio.wait_for(
                self.assistant.rerank(question, passages, explanation),
                self.config.expansion_timeout,
            )
        except Exception as e:
            reason = str(e) or type(e).__name__
            logger.warning("Rerank failed: %s", reason)
            return RerankResponse(result=None, fallback=True, error=reason)
        return RerankResponse(result=result)
