"""
Query text normalization and regulatory acronym expansion.

Applied to queries the same way the indexer applied it to passage text, so
embeddings and lexical lookups see comparable strings.
"""

from __future__ import annotations

import re
from typing import Dict, Mapping

WHITESPACE_RE = re.compile(r"\s+")
HYPHEN_BREAK_RE = re.compile(r"(?<=\w)-\s+(?=\w)")
OPTION_LINE_RE = re.compile(r"\n[A-E]\.\s")
SENTENCE_END_RE = re.compile(r"[？。]")

KEY_PHRASE_MAX_CHARS = 200
KEY_PHRASE_MIN_SENTENCE = 50

ALIAS_MAP: Dict[str, str] = {
    "fca": "financial conduct authority",
    "pra": "prudential regulation authority",
    "fsma": "financial services and markets act",
    "cobs": "conduct of business sourcebook",
    "cisi": "chartered institute for securities and investment",
    "mifid": "markets in financial instruments directive",
    "prin": "principles for businesses",
    "sysc": "senior management arrangements systems and controls",
    "fit": "fit and proper test",
    "smcr": "senior managers and certification regime",
    "mar": "market abuse regulation",
    "aml": "anti money laundering",
    "kyc": "know your customer",
    "tcf": "treating customers fairly",
    "rdr": "retail distribution review",
}


def normalize_text(text: str) -> str:
    """Lowercase, collapse whitespace and join words split by a line-break hyphen."""
    if not text:
        return ""
    s = WHITESPACE_RE.sub(" ", text.lower())
    s = HYPHEN_BREAK_RE.sub("", s)
    return s.strip()


def _alias_pattern(aliases: Mapping[str, str]) -> re.Pattern[str] | None:
    keys = sorted({normalize_text(a) for a in aliases if normalize_text(a)}, key=len, reverse=True)
    if not keys:
        return None
    return re.compile(r"\b(" + "|".join(re.escape(k) for k in keys) + r")\b")


def apply_alias_expansion(text: str, aliases: Mapping[str, str] = ALIAS_MAP) -> str:
    """
    Replace whole-word acronyms with their canonical form in a single pass.

    An acronym that already starts its own expansion (``fit and proper test``)
    is left alone, so applying the expansion twice changes nothing.
    """
    norm = normalize_text(text)
    canonical = {normalize_text(a): normalize_text(c) for a, c in aliases.items()}
    pattern = _alias_pattern(aliases)
    if pattern is None:
        return norm

    def _replace(match: re.Match[str]) -> str:
        expansion = canonical.get(match.group(1))
        if not expansion or norm.startswith(expansion, match.start()):
            return match.group(0)
        return expansion

    return pattern.sub(_replace, norm)


def extract_key_phrase(question: str) -> str:
    """
    Reduce a long exam question to the part that carries the actual ask.

    Answer options ("\\nA. ...") are dropped. Questions longer than 200
    characters keep their last sentence when it is substantial, otherwise
    their last 200 characters.
    """
    main = OPTION_LINE_RE.split(question or "")[0].strip()
    if len(main) <= KEY_PHRASE_MAX_CHARS:
        return main
    last = SENTENCE_END_RE.split(main)[-1].strip()
    if len(last) > KEY_PHRASE_MIN_SENTENCE:
        return last[:KEY_PHRASE_MAX_CHARS]
    return main[-KEY_PHRASE_MAX_CHARS:]


def prepare_query(text: str, aliases: Mapping[str, str] = ALIAS_MAP) -> str:
    """Normalize and alias-expand; idempotent."""
    return normalize_text(apply_alias_expansion(text, aliases))
