"""
In-memory passage index loaded once from the persisted JSON index file.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import numpy as np

from .bm25 import KeywordIndex
from .hybrid import AMOUNT_MATCH_SCORE, AMOUNT_RE, SECTION_MATCH_SCORE, HybridSignals
from .index import PassageRecord, load_passages
from .materials import MaterialCatalog
from .mmr import mmr_select
from .retriever import RetrievedPassage, SearchOptions
from .similarity import cosine_similarities

logger = logging.getLogger(__name__)

DEFAULT_MMR_LAMBDA = 0.7


def _to_passage(record: PassageRecord, score: float) -> RetrievedPassage:
    return RetrievedPassage(
        material_id=record.material_id,
        page=record.page_number,
        quote=record.plain_text,
        score=float(score),
        offset=record.offset,
    )


def _apply_catalog(records: List[PassageRecord], catalog: MaterialCatalog) -> List[PassageRecord]:
    kept: List[PassageRecord] = []
    for record in records:
        material_id = catalog.canonical_id(record.material_id)
        if material_id is None or not catalog.valid_page(material_id, record.page_number):
            continue
        if material_id != record.material_id:
            record = dataclasses.replace(record, material_id=material_id)
        kept.append(record)
    if len(kept) < len(records):
        logger.warning(
            "Skipped %s of %s records with unknown material or out-of-range page",
            len(records) - len(kept),
            len(records),
        )
    return kept


def _merge_unique(*groups: List[RetrievedPassage]) -> List[RetrievedPassage]:
    """Concatenate groups, keeping the first passage seen for each excerpt."""
    seen: set[str] = set()
    merged: List[RetrievedPassage] = []
    for group in groups:
        for p in group:
            if p.fusion_key in seen:
                continue
            seen.add(p.fusion_key)
            merged.append(p)
    return merged


@dataclass
class LocalPassageIndex:
    """Read-only in-memory index with MMR selection and lexical lookups."""

    records: List[PassageRecord]
    embeddings: np.ndarray  # shape: (n_records, dim)
    keyword_index: KeywordIndex
    default_mmr_lambda: float = DEFAULT_MMR_LAMBDA
    amount_index: Dict[str, List[PassageRecord]] = field(default_factory=dict)
    section_index: Dict[str, List[PassageRecord]] = field(default_factory=dict)
    backend: str = "local"

    @classmethod
    def from_records(
        cls,
        records: List[PassageRecord],
        *,
        default_mmr_lambda: float = DEFAULT_MMR_LAMBDA,
        catalog: Optional[MaterialCatalog] = None,
    ) -> "LocalPassageIndex":
        """
        Build the index and its amount/section lookup tables.

        With a catalog, material ids are canonicalized and records for unknown
        materials or out-of-range pages are left out.
        """
        if catalog is not None:
            records = _apply_catalog(records, catalog)
        if records:
            embeddings = np.asarray([r.embedding for r in records], dtype=np.float64)
        else:
            embeddings = np.zeros((0, 0), dtype=np.float64)

        amount_index: Dict[str, List[PassageRecord]] = {}
        section_index: Dict[str, List[PassageRecord]] = {}
        for record in records:
            amounts = {m.group(0) for m in AMOUNT_RE.finditer(record.plain_text)}
            amounts.update(record.contains_amounts)
            for amount in amounts:
                amount_index.setdefault(amount, []).append(record)
            if record.section_title:
                section_index.setdefault(record.section_title.lower(), []).append(record)

        logger.info(
            "Built local passage index: %s records, %s amounts, %s sections",
            len(records),
            len(amount_index),
            len(section_index),
        )
        return cls(
            records=records,
            embeddings=embeddings,
            keyword_index=KeywordIndex.from_records(records),
            default_mmr_lambda=default_mmr_lambda,
            amount_index=amount_index,
            section_index=section_index,
        )

    @classmethod
    def from_file(cls, path: Path, **kwargs) -> "LocalPassageIndex":
        """Load from disk; raises IndexUnavailable if the file is missing or malformed."""
        return cls.from_records(load_passages(path), **kwargs)

    def __len__(self) -> int:
        return len(self.records)

    @property
    def dimension(self) -> int:
        return int(self.embeddings.shape[1]) if self.records else 0

    def search_by_amount(self, amount: str) -> List[RetrievedPassage]:
        """Exact amount lookup; every hit scores AMOUNT_MATCH_SCORE."""
        records = self.amount_index.get(amount, [])
        logger.debug("Amount lookup %r matched %s records", amount, len(records))
        return [_to_passage(r, AMOUNT_MATCH_SCORE) for r in records]

    def search_by_section(self, keywords: Sequence[str]) -> List[RetrievedPassage]:
        """Section-title lookup; every hit scores SECTION_MATCH_SCORE."""
        hits: List[RetrievedPassage] = []
        for keyword in keywords:
            key = keyword.lower()
            for title, records in self.section_index.items():
                if key in title:
                    hits.extend(_to_passage(r, SECTION_MATCH_SCORE) for r in records)
        return _merge_unique(hits)

    def _hybrid_hits(self, signals: HybridSignals) -> List[RetrievedPassage]:
        hits: List[RetrievedPassage] = []
        for amount in signals.amounts:
            hits.extend(self.search_by_amount(amount))
        if signals.sections:
            hits.extend(self.search_by_section(signals.sections))
        if hits:
            logger.debug("Hybrid lookups produced %s priority results", len(hits))
        return hits

    async def search(
        self, query_embedding: Sequence[float], options: SearchOptions
    ) -> List[RetrievedPassage]:
        """Cosine similarity, min-score filter, MMR selection, then hybrid merge."""
        k = options.k
        if k <= 0 or not self.records:
            return []

        query = np.asarray(query_embedding, dtype=np.float64)
        if query.shape != (self.dimension,):
            raise ValueError(
                f"Query embedding has shape {query.shape}, index dimension is {self.dimension}"
            )

        sims = cosine_similarities(self.embeddings, query)
        pool = [int(i) for i in np.flatnonzero(sims >= options.min_score)]
        pool.sort(key=lambda i: sims[i], reverse=True)
        logger.debug(
            "Vector search: %s of %s records at or above %.2f",
            len(pool),
            len(self.records),
            options.min_score,
        )

        mmr_lambda = (
            options.mmr_lambda if options.mmr_lambda is not None else self.default_mmr_lambda
        )
        picks = mmr_select(
            [sims[i] for i in pool],
            self.embeddings[pool] if pool else np.zeros((0, self.dimension)),
            k,
            mmr_lambda,
        )
        vector_hits = [_to_passage(self.records[pool[p]], sims[pool[p]]) for p in picks]

        hybrid_hits = [p for p in self._hybrid_hits(options.hybrid) if p.score >= options.min_score]
        merged = _merge_unique(hybrid_hits, vector_hits)
        merged.sort(key=lambda p: p.score, reverse=True)
        return merged[:k]

    async def keyword_search(
        self, text: str, signals: HybridSignals, k: int
    ) -> List[RetrievedPassage]:
        """Hybrid lookups first, then BM25 over normalized text."""
        if k <= 0:
            return []
        bm25_hits = self.keyword_index.search(text, top_k=k)
        top = max((score for _, score in bm25_hits), default=0.0)
        # BM25 scores are unbounded; rescale below the hybrid match scores.
        lexical = [
            _to_passage(record, SECTION_MATCH_SCORE * score / top) for record, score in bm25_hits
        ]
        return _merge_unique(self._hybrid_hits(signals), lexical)[:k]
