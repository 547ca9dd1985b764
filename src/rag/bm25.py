"""
BM25 keyword index over passage records, used for the keyword-only fallback.

Amounts such as ``£85,000`` or ``100%`` stay single tokens so an exact figure
in the question can match the figure in the text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from rank_bm25 import BM25Okapi

from .index import PassageRecord

TOKEN_RE = re.compile(r"[£$]?\d[\d,]*%?|\w+")

# Exam boilerplate and function words carry no topical signal.
STOPWORDS = frozenset(
    """
    the and or of in on for to is are was were be been as that this these those
    with by at from it its which what who whom when where how why not any all
    following true false correct incorrect statement statements regarding
    best most least likely describes under
    """.split()
)


def tokenize(text: str) -> List[str]:
    """Lowercase content tokens; short words are dropped but numbers are kept."""
    tokens = []
    for match in TOKEN_RE.finditer((text or "").lower()):
        tok = match.group(0).rstrip(",")
        if not tok or tok in STOPWORDS:
            continue
        if len(tok) <= 2 and not tok[0].isdigit():
            continue
        tokens.append(tok)
    return tokens


@dataclass
class KeywordIndex:
    """BM25 sparse retrieval index."""

    bm25: Optional[BM25Okapi]
    records: List[PassageRecord]

    @classmethod
    def from_records(cls, records: List[PassageRecord]) -> "KeywordIndex":
        """Build BM25 over the normalized text of each record."""
        if not records:
            return cls(bm25=None, records=[])
        corpus = [tokenize(r.normalized_text or r.plain_text) for r in records]
        return cls(bm25=BM25Okapi(corpus), records=records)

    def search(self, query: str, top_k: int = 5) -> List[Tuple[PassageRecord, float]]:
        """Top-k records for the query; zero-score hits are dropped."""
        if self.bm25 is None or top_k <= 0:
            return []
        query_tokens = tokenize(query)
        if not query_tokens:
            return []
        scores = self.bm25.get_scores(query_tokens)
        ranked = sorted(range(len(scores)), key=lambda i: scores[i], reverse=True)
        return [
            (self.records[i], float(scores[i])) for i in ranked[:top_k] if scores[i] > 0
        ]
