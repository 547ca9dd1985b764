"""
Remote passage index backed by a Qdrant collection.

One approximate-nearest-neighbour query fetches an oversized candidate pool
together with the stored vectors, so MMR diversity can be computed locally
without further round trips.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence

from qdrant_client import AsyncQdrantClient

from .errors import IndexUnavailable
from .hybrid import HybridSignals
from .materials import MaterialCatalog
from .mmr import mmr_select
from .retriever import RetrievedPassage, SearchOptions

logger = logging.getLogger(__name__)

DEFAULT_MMR_LAMBDA = 0.5


@dataclass
class Candidate:
    """A decoded Qdrant hit."""

    passage: RetrievedPassage
    vector: List[float]


def _as_int(value: Any, default: int, minimum: Optional[int] = None) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number) or math.isinf(number):
        return default
    result = int(number)
    if minimum is not None and result < minimum:
        return default
    return result


def decode_payload(payload: Optional[Mapping[str, Any]], score: Any) -> RetrievedPassage:
    """
    Build a passage from a raw Qdrant payload.

    Missing or invalid fields are defaulted explicitly: page 1, offset 0 and
    empty strings, so a sparse payload never yields a NaN page.
    """
    payload = payload or {}
    try:
        score_value = float(score)
    except (TypeError, ValueError):
        score_value = 0.0
    if math.isnan(score_value):
        score_value = 0.0
    return RetrievedPassage(
        material_id=str(payload.get("materialId") or ""),
        page=_as_int(payload.get("pageNumber"), default=1, minimum=1),
        quote=str(payload.get("plainText") or ""),
        score=score_value,
        offset=_as_int(payload.get("offset"), default=0, minimum=0),
    )


def _decode_vector(raw: Any, dim: int) -> List[float]:
    """Unnamed or single named vector; anything unusable becomes a zero vector."""
    if isinstance(raw, dict):
        raw = next(iter(raw.values()), None)
    if isinstance(raw, (list, tuple)) and len(raw) == dim:
        try:
            return [float(v) for v in raw]
        except (TypeError, ValueError):
            pass
    return [0.0] * dim


class QdrantPassageIndex:
    """Passage index served by Qdrant."""

    backend = "qdrant"

    def __init__(
        self,
        client: AsyncQdrantClient,
        collection: str,
        *,
        points_count: int = 0,
        default_mmr_lambda: float = DEFAULT_MMR_LAMBDA,
        min_pool: int = 20,
        pool_factor: int = 4,
        catalog: Optional[MaterialCatalog] = None,
    ):
        self.client = client
        self.collection = collection
        self.points_count = points_count
        self.default_mmr_lambda = default_mmr_lambda
        self.min_pool = min_pool
        self.pool_factor = pool_factor
        self.catalog = catalog or MaterialCatalog()

    @classmethod
    async def connect(
        cls,
        url: str,
        collection: str,
        *,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        **kwargs,
    ) -> "QdrantPassageIndex":
        """Create a client and verify the collection is reachable."""
        client = AsyncQdrantClient(url=url, api_key=api_key, timeout=int(math.ceil(timeout)))
        try:
            info = await asyncio.wait_for(client.get_collection(collection), timeout)
        except Exception as e:
            await client.close()
            raise IndexUnavailable(f"Qdrant collection {collection!r} at {url} unreachable: {e}") from e
        points = info.points_count or 0
        logger.info("Connected to Qdrant collection %s (%s points)", collection, points)
        return cls(client, collection, points_count=points, **kwargs)

    def __len__(self) -> int:
        return self.points_count

    def pool_size(self, k: int) -> int:
        return max(self.min_pool, k * self.pool_factor)

    async def search(
        self, query_embedding: Sequence[float], options: SearchOptions
    ) -> List[RetrievedPassage]:
        """ANN query over an oversized pool, then client-side MMR."""
        k = options.k
        if k <= 0:
            return []

        query = [float(v) for v in query_embedding]
        response = await self.client.query_points(
            collection_name=self.collection,
            query=query,
            limit=self.pool_size(k),
            with_payload=True,
            with_vectors=True,
        )

        candidates: List[Candidate] = []
        seen: set[str] = set()
        for point in response.points:
            passage = self.catalog.resolve(decode_payload(point.payload, point.score))
            if passage is None or passage.score < options.min_score:
                continue
            # Legacy ids can point at the same excerpt twice.
            if passage.fusion_key in seen:
                continue
            seen.add(passage.fusion_key)
            candidates.append(Candidate(passage=passage, vector=_decode_vector(point.vector, len(query))))
        if not candidates:
            return []

        mmr_lambda = (
            options.mmr_lambda if options.mmr_lambda is not None else self.default_mmr_lambda
        )
        picks = mmr_select(
            [c.passage.score for c in candidates],
            [c.vector for c in candidates],
            k,
            mmr_lambda,
        )
        selected = [candidates[i].passage for i in picks]
        selected.sort(key=lambda p: p.score, reverse=True)
        return selected

    async def keyword_search(
        self, text: str, signals: HybridSignals, k: int
    ) -> List[RetrievedPassage]:
        # No lexical index on the collection.
        logger.debug("Keyword search is not supported by the Qdrant backend")
        return []

    async def close(self) -> None:
        await self.client.close()

