"""
Multi-query fusion: search several phrasings of a question and merge the results.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from .errors import EmbeddingFailure
from .retriever import Embedder, PassageIndex, RetrievedPassage, SearchOptions

logger = logging.getLogger(__name__)

DEFAULT_FUSION_BOOST = 1.1


def fuse_results(
    result_lists: Sequence[Sequence[RetrievedPassage]],
    k: int,
    boost: float = DEFAULT_FUSION_BOOST,
) -> List[RetrievedPassage]:
    """
    Merge per-phrasing result lists keyed on material, page and offset.

    A passage found again keeps the larger score times ``boost`` (never less
    than its best single score) and counts one more query hit. Results are
    ordered by query hits, then score, and truncated to k only after merging.
    A single list passes through unchanged.
    """
    if k <= 0:
        return []
    if len(result_lists) == 1:
        return [dataclasses.replace(p, query_hits=1) for p in result_lists[0]][:k]

    fused: Dict[str, RetrievedPassage] = {}
    for results in result_lists:
        for p in results:
            existing = fused.get(p.fusion_key)
            if existing is None:
                fused[p.fusion_key] = dataclasses.replace(p, query_hits=1)
                continue
            best = max(existing.score, p.score)
            existing.score = max(best, best * boost)
            existing.query_hits += 1

    merged = sorted(fused.values(), key=lambda p: (-p.query_hits, -p.score))
    return merged[:k]


@dataclass
class SubQueryFailure:
    """A phrasing that was skipped during fusion."""

    phrasing: str
    stage: str  # "embed" or "search"
    error: str


@dataclass
class FusionOutcome:
    """Fused passages plus the sub-queries that failed along the way."""

    passages: List[RetrievedPassage]
    attempted: int
    failures: List[SubQueryFailure] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.failures)

    @property
    def all_failed(self) -> bool:
        return self.attempted > 0 and len(self.failures) >= self.attempted

    @property
    def embedding_failed(self) -> bool:
        return any(f.stage == "embed" for f in self.failures)


class QueryFusion:
    """Embeds and searches each phrasing sequentially, skipping failures."""

    def __init__(
        self,
        index: PassageIndex,
        embedder: Embedder,
        *,
        fusion_boost: float = DEFAULT_FUSION_BOOST,
        embedding_timeout: float = 10.0,
        search_timeout: float = 10.0,
    ):
        self.index = index
        self.embedder = embedder
        self.fusion_boost = fusion_boost
        self.embedding_timeout = embedding_timeout
        self.search_timeout = search_timeout

    async def _embed(self, phrasing: str) -> List[float]:
        try:
            return await asyncio.wait_for(self.embedder.embed(phrasing), self.embedding_timeout)
        except asyncio.TimeoutError as e:
            raise EmbeddingFailure(f"embedding timed out after {self.embedding_timeout}s") from e
        except Exception as e:
            raise EmbeddingFailure(str(e) or type(e).__name__) from e

    async def run(
        self, phrasings: Sequence[str], options: SearchOptions, k: int
    ) -> FusionOutcome:
        """Search every phrasing with ``options`` and fuse down to k results."""
        result_lists: List[List[RetrievedPassage]] = []
        failures: List[SubQueryFailure] = []

        for phrasing in phrasings:
            try:
                embedding = await self._embed(phrasing)
            except EmbeddingFailure as e:
                logger.warning("Skipping phrasing %r: %s", phrasing[:80], e)
                failures.append(SubQueryFailure(phrasing=phrasing, stage="embed", error=str(e)))
                continue
            try:
                results = await asyncio.wait_for(
                    self.index.search(embedding, options), self.search_timeout
                )
            except Exception as e:
                logger.warning("Search failed for phrasing %r: %s", phrasing[:80], e)
                failures.append(
                    SubQueryFailure(phrasing=phrasing, stage="search", error=str(e) or type(e).__name__)
                )
                continue
            result_lists.append(results)

        passages = fuse_results(result_lists, k, self.fusion_boost) if result_lists else []
        logger.debug(
            "Fused %s of %s phrasings into %s passages",
            len(result_lists),
            len(phrasings),
            len(passages),
        )
        return FusionOutcome(passages=passages, attempted=len(phrasings), failures=failures)
