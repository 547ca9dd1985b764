"""
TTL + LRU result cache keyed by question identity.

One instance per process, injected into the retrieval service. Entries are
idempotent functions of their key, so concurrent writers to the same key are
harmless (last write wins).
"""

from __future__ import annotations

import dataclasses
import hashlib
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, List, Optional

from .retriever import RetrievedPassage

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 1000
DEFAULT_TTL_SECONDS = 24 * 60 * 60


@dataclass
class CacheEntry:
    """Cached passages and their absolute expiry time."""

    passages: List[RetrievedPassage]
    expires_at: float


def make_cache_key(query_text: str, stable_id: Optional[str] = None) -> str:
    """sha256 over the stable identifier when given, otherwise over the query text."""
    raw = f"qid:{stable_id}" if stable_id else query_text
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class ResultCache:
    """Bounded in-memory cache; expiry is checked lazily on read."""

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> Optional[List[RetrievedPassage]]:
        """Return copies of the cached passages, or None on a miss or expired entry."""
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None
        if entry.expires_at <= self._clock():
            del self._entries[key]
            self._misses += 1
            logger.debug("Cache entry %s expired", key[:12])
            return None
        self._entries.move_to_end(key)
        self._hits += 1
        return [dataclasses.replace(p) for p in entry.passages]

    def set(self, key: str, passages: List[RetrievedPassage]) -> None:
        """Insert or refresh an entry, evicting the least recently used on overflow."""
        if key in self._entries:
            del self._entries[key]
        while len(self._entries) >= self.max_size:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Cache evicted %s", evicted[:12])
        self._entries[key] = CacheEntry(
            passages=[dataclasses.replace(p) for p in passages],
            expires_at=self._clock() + self.ttl_seconds,
        )

    def clear(self) -> None:
        self._entries.clear()
        self._hits = 0
        self._misses = 0

    def stats(self) -> dict:
        total = self._hits + self._misses
        return {
            "size": len(self._entries),
            "max_size": self.max_size,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total, 4) if total else 0.0,
        }
