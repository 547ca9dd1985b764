"""
Build the retrieval service for the API (used in lifespan).
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple

from src.llm import LLMQueryAssistant, UnavailableEmbedder, create_embedder
from src.rag import (
    IndexUnavailable,
    KeywordQueryExpander,
    ResultCache,
    RetrievalConfig,
    RetrievalService,
    build_passage_index,
)

logger = logging.getLogger(__name__)


def _build_assistant():
    """LLM assistant when credentials are present, otherwise the rule-based expander."""
    try:
        return LLMQueryAssistant.from_env()
    except ValueError as e:
        logger.warning("LLM assistant disabled (%s); using keyword expansion", e)
        return KeywordQueryExpander()


async def build_service(
    config: Optional[RetrievalConfig] = None,
) -> Tuple[Optional[RetrievalService], Optional[str]]:
    """
    Open the passage index, embedder and cache.

    Returns (service, None) on success or (None, reason) when no passage index
    can be opened, so routes can answer 503. Without an embedding provider the
    service still starts and every request degrades to keyword matches.
    """
    config = config or RetrievalConfig()
    try:
        index = await build_passage_index(config)
    except IndexUnavailable as e:
        logger.error("Passage index unavailable: %s", e)
        return None, str(e)
    try:
        embedder = create_embedder()
    except (ValueError, ImportError) as e:
        logger.error("Embedding provider unavailable, serving keyword matches only: %s", e)
        embedder = UnavailableEmbedder(str(e))

    cache = ResultCache(max_size=config.cache_max_size, ttl_seconds=config.cache_ttl_seconds)
    service = RetrievalService(
        index,
        embedder,
        cache,
        config=config,
        assistant=_build_assistant(),
    )
    logger.info("Retrieval service ready (%s backend, %s passages)", index.backend, len(index))
    return service, None
