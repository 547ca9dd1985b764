"""
Lexical signals (amounts and section keywords) extracted from query text.

Signals are advisory: backends may use them to inject exact matches, and an
empty signal set never affects the success of a search.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List

AMOUNT_RE = re.compile(r"£[\d,]+|\d{2,3},\d{3}ポンド|\$[\d,]+|\d+%|[\d,]+円")

# Controlled vocabulary of section keywords worth a direct lookup.
SECTION_KEYWORDS = (
    "fscs",
    "compensation scheme",
    "deposit guarantee",
    "scheme limits",
    "client money",
    "client assets",
    "conduct risk",
    "market abuse",
    "money laundering",
    "insider dealing",
    "treating customers fairly",
    "senior managers",
    "certification regime",
    "approved person",
    "prudential regulation",
    "financial promotions",
    "complaints",
    "financial ombudsman",
    "data protection",
    "whistleblowing",
)

AMOUNT_MATCH_SCORE = 1.0
SECTION_MATCH_SCORE = 0.95


@dataclass
class HybridSignals:
    """Lexical hints attached to a search."""

    amounts: List[str] = field(default_factory=list)
    sections: List[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.amounts or self.sections)


def extract_amounts(text: str) -> List[str]:
    """Currency and percentage tokens in first-seen order, deduplicated."""
    seen: dict[str, None] = {}
    for match in AMOUNT_RE.finditer(text or ""):
        seen.setdefault(match.group(0), None)
    return list(seen)


def extract_sections(text: str) -> List[str]:
    """Section keywords from the controlled vocabulary that occur in text."""
    lower = (text or "").lower()
    return [kw for kw in SECTION_KEYWORDS if kw in lower]


def extract_signals(text: str) -> HybridSignals:
    return HybridSignals(amounts=extract_amounts(text), sections=extract_sections(text))
