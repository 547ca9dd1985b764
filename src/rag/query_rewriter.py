"""
Rule-based query expansion for multi-query retrieval.

Used when no LLM collaborator is configured: produces a cleaned phrasing and a
keyword-enriched phrasing of the question.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .errors import ExpansionFailure
from .retriever import RerankResult, RetrievedPassage


@dataclass
class KeywordQueryExpander:
    """Offline expander that appends related terminology for known topics."""

    keyword_expansions: Dict[str, str] | None = None

    def __post_init__(self) -> None:
        """Initialize default keyword expansions if not provided."""
        if self.keyword_expansions is None:
            self.keyword_expansions = {
                # Compensation and protection
                "compensation": "fscs financial services compensation scheme limits eligible claimants",
                "deposit": "deposit guarantee scheme limit protected deposits",
                "client money": "client money rules cass segregation client bank account",
                # Market conduct
                "insider": "insider dealing inside information criminal justice act",
                "market abuse": "market abuse regulation manipulation unlawful disclosure",
                "money laundering": "anti money laundering placement layering integration suspicious activity report",
                # Governance
                "senior manager": "senior managers and certification regime duty of responsibility conduct rules",
                "principles": "principles for businesses integrity skill care diligence",
                "complaint": "complaints handling financial ombudsman service dispute resolution",
                "promotion": "financial promotions fair clear not misleading",
            }

    async def expand_query(self, question: str, explanation: Optional[str] = None) -> List[str]:
        """
        Return extra phrasings of the question (the original is not included).

        The explanation, when given, only widens topic detection.
        """
        base = self._clean(question)
        haystack = f"{base} {explanation or ''}".lower()
        additions = [
            extra
            for phrase, extra in (self.keyword_expansions or {}).items()
            if phrase in haystack
        ]

        phrasings: List[str] = []
        if base and base != question.strip():
            phrasings.append(base)
        if additions:
            phrasings.append(base + " " + " ".join(additions))
        return phrasings

    async def rerank(
        self,
        question: str,
        passages: Sequence[RetrievedPassage],
        explanation: Optional[str] = None,
    ) -> RerankResult:
        raise ExpansionFailure("Reranking requires an LLM; set OPENAI_API_KEY")

    def _clean(self, query: str) -> str:
        """Drop exam boilerplate so the phrasing embeds closer to textbook prose."""
        q = query.strip()
        lower = q.lower()
        for prefix in (
            "which of the following is true regarding ",
            "which of the following statements about ",
            "which of the following ",
            "according to ",
        ):
            if lower.startswith(prefix):
                q = q[len(prefix) :]
                break
        q = q.rstrip(" ?")
        return q.strip()
