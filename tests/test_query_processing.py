"""
Tests for query normalization, alias expansion, key-phrase extraction,
hybrid signal extraction and rule-based expansion.
"""

from __future__ import annotations

import pytest

from src.rag import (
    KeywordQueryExpander,
    apply_alias_expansion,
    extract_amounts,
    extract_key_phrase,
    extract_sections,
    extract_signals,
    normalize_text,
    prepare_query,
)
from src.rag.errors import ExpansionFailure

SAMPLES = [
    "",
    "   ",
    "What is the FSCS limit?",
    "Multi-\n  line  hyphen- ated\tword",
    "x- y- z",
    "a - b -- c",
    "UPPER\r\nCASE TEXT",
    "The FCA and the PRA regulate firms under FSMA.",
    "fit and proper test for a FIT person",
]


@pytest.mark.parametrize("text", SAMPLES)
def test_normalize_is_idempotent(text: str):
    once = normalize_text(text)
    assert normalize_text(once) == once


@pytest.mark.parametrize("text", SAMPLES)
def test_prepare_query_is_idempotent(text: str):
    once = prepare_query(text)
    assert prepare_query(once) == once


def test_normalize_lowercases_and_collapses_whitespace():
    assert normalize_text("  Client\n\nMoney   RULES ") == "client money rules"


def test_normalize_joins_hyphenated_line_breaks():
    assert normalize_text("compen-\nsation scheme") == "compensation scheme"
    assert normalize_text("x- y- z") == "xyz"


def test_alias_expansion_whole_words_only():
    out = apply_alias_expansion("The FCA and principles")
    assert out == "the financial conduct authority and principles"
    assert apply_alias_expansion("fcap rules") == "fcap rules"


def test_alias_expansion_does_not_repeat_self_prefixed_alias():
    once = apply_alias_expansion("FIT test")
    assert once == "fit and proper test test"
    assert apply_alias_expansion(once) == once


def test_extract_key_phrase_drops_options():
    question = "Which body authorises banks?\nA. FCA\nB. PRA\nC. HMT"
    assert extract_key_phrase(question) == "Which body authorises banks?"


def test_extract_key_phrase_long_question_without_sentence_marks():
    question = "Background. " * 30 + "What is the maximum compensation for eligible deposits"
    assert extract_key_phrase(question) == question[:200]


def test_extract_key_phrase_prefers_substantial_last_sentence():
    tail = "FSCS limits apply to eligible deposits held with authorised banks and building societies"
    question = "前提。" * 80 + tail
    assert extract_key_phrase(question) == tail


def test_extract_key_phrase_short_last_sentence_keeps_tail():
    question = "前提。" * 80 + "限度額は？"
    phrase = extract_key_phrase(question)
    assert len(phrase) == 200
    assert phrase == question[-200:]


def test_extract_amounts_dedupes_in_order():
    text = "Limits of £85,000 and £85,000 plus 100% cover, $500 and 85,000ポンド and 1,000円"
    assert extract_amounts(text) == ["£85,000", "100%", "$500", "85,000ポンド", "1,000円"]


def test_extract_amounts_none():
    assert extract_amounts("no numbers here") == []
    assert extract_amounts("") == []


def test_extract_sections_uses_controlled_vocabulary():
    sections = extract_sections("Which FSCS scheme limits apply to client money?")
    assert "fscs" in sections
    assert "scheme limits" in sections
    assert "client money" in sections
    assert extract_sections("unrelated text") == []


def test_extract_signals_empty_is_falsy():
    assert not extract_signals("nothing relevant")
    assert extract_signals("limit is £85,000")


@pytest.mark.anyio
async def test_keyword_expander_adds_topic_terms():
    expander = KeywordQueryExpander()
    phrasings = await expander.expand_query("Which of the following is true regarding market abuse?")
    assert phrasings[0] == "market abuse"
    assert any("manipulation" in p for p in phrasings)


@pytest.mark.anyio
async def test_keyword_expander_no_match_returns_nothing():
    expander = KeywordQueryExpander()
    assert await expander.expand_query("Define an ISA") == []


@pytest.mark.anyio
async def test_keyword_expander_cannot_rerank():
    with pytest.raises(ExpansionFailure):
        await KeywordQueryExpander().rerank("q", [])
