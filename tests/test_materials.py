"""
Tests for the material catalog and its use by both passage index backends.
"""

from __future__ import annotations

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.rag import (
    DEFAULT_MATERIAL_CATALOG,
    LocalPassageIndex,
    MaterialCatalog,
    PassageRecord,
    QdrantPassageIndex,
    RetrievalConfig,
    RetrievedPassage,
    SearchOptions,
)

STUDY_COMPANION = "UKFR_ED32_Study_Companion"
CHECKPOINT = "UKFR_ED32_Checkpoint"


def _record(material: str, page: int, chunk: int, emb: list[float], offset: int = 0) -> PassageRecord:
    return PassageRecord(
        id=f"{material}#{page}-{chunk}",
        material_id=material,
        page_number=page,
        offset=offset,
        chunk_index=chunk,
        plain_text=f"{material} page {page}",
        normalized_text=f"{material} page {page}".lower(),
        embedding=emb,
    )


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("StudyCompanion.pdf", STUDY_COMPANION),
        ("study_companion.html", STUDY_COMPANION),
        ("Study_Companion", STUDY_COMPANION),
        (STUDY_COMPANION, STUDY_COMPANION),
        ("Checkpoint.txt", CHECKPOINT),
        (CHECKPOINT, CHECKPOINT),
        ("Checkpoint_backup", None),
        ("Other_Textbook", None),
        ("", None),
        (None, None),
    ],
)
def test_default_catalog_canonical_ids(raw, expected):
    assert DEFAULT_MATERIAL_CATALOG.canonical_id(raw) == expected


def test_default_catalog_page_bounds():
    assert DEFAULT_MATERIAL_CATALOG.valid_page(STUDY_COMPANION, 117)
    assert not DEFAULT_MATERIAL_CATALOG.valid_page(STUDY_COMPANION, 118)
    assert DEFAULT_MATERIAL_CATALOG.valid_page(CHECKPOINT, 44)
    assert not DEFAULT_MATERIAL_CATALOG.valid_page(CHECKPOINT, 45)
    assert not DEFAULT_MATERIAL_CATALOG.valid_page(CHECKPOINT, 0)


def test_empty_catalog_only_strips_extensions():
    catalog = MaterialCatalog()
    assert catalog.canonical_id("Anything.PDF") == "Anything"
    assert catalog.valid_page("Anything", 9999)
    assert not catalog.valid_page("Anything", 0)


def test_resolve_rewrites_id_and_drops_out_of_range():
    passage = RetrievedPassage("StudyCompanion.pdf", 12, "text", 0.9, 30)
    resolved = DEFAULT_MATERIAL_CATALOG.resolve(passage)
    assert resolved.material_id == STUDY_COMPANION
    assert resolved.fusion_key == f"{STUDY_COMPANION}|12|30"
    assert passage.material_id == "StudyCompanion.pdf"
    assert DEFAULT_MATERIAL_CATALOG.resolve(RetrievedPassage("Checkpoint", 80, "x", 0.9, 0)) is None


def test_catalog_from_json():
    catalog = MaterialCatalog.from_json(
        [{"id": "BOOK", "pageCount": 10, "aliases": ["book_v1"], "exclude": ["draft"]}]
    )
    assert catalog.canonical_id("book_v1.pdf") == "BOOK"
    assert catalog.canonical_id("book_v1_draft") is None
    assert not catalog.valid_page("BOOK", 11)


@pytest.mark.parametrize("data", [{"id": "BOOK"}, [{"pageCount": 3}], ["BOOK"]])
def test_catalog_from_json_rejects_bad_shapes(data):
    with pytest.raises(ValueError):
        MaterialCatalog.from_json(data)


@pytest.mark.anyio
async def test_local_index_applies_catalog():
    records = [
        _record("StudyCompanion.pdf", 12, 0, [1.0, 0.0]),
        _record(STUDY_COMPANION, 12, 1, [0.99, 0.1]),
        _record("Study_Companion", 500, 0, [1.0, 0.0]),
        _record("Other_Textbook", 1, 0, [1.0, 0.0]),
    ]
    index = LocalPassageIndex.from_records(records, catalog=DEFAULT_MATERIAL_CATALOG)

    assert len(index) == 2
    results = await index.search([1.0, 0.0], SearchOptions(k=5, min_score=0.0))

    assert [(r.material_id, r.page) for r in results] == [(STUDY_COMPANION, 12)]


@pytest.mark.anyio
async def test_qdrant_index_applies_catalog():
    points = [
        SimpleNamespace(
            score=0.9,
            vector=[1.0, 0.0],
            payload={"materialId": "StudyCompanion.pdf", "pageNumber": 12, "plainText": "a"},
        ),
        SimpleNamespace(
            score=0.88,
            vector=[1.0, 0.0],
            payload={"materialId": "Study_Companion", "pageNumber": 12, "plainText": "a"},
        ),
        SimpleNamespace(
            score=0.87,
            vector=[0.0, 1.0],
            payload={"materialId": "Checkpoint", "pageNumber": 300, "plainText": "b"},
        ),
    ]
    client = MagicMock()
    client.query_points = AsyncMock(return_value=SimpleNamespace(points=points))
    index = QdrantPassageIndex(client, "materials_passages", catalog=DEFAULT_MATERIAL_CATALOG)

    results = await index.search([1.0, 0.0], SearchOptions(k=3, min_score=0.5))

    assert len(results) == 1
    assert results[0].material_id == STUDY_COMPANION
    assert results[0].score == pytest.approx(0.9)


def test_config_loads_catalog_from_env(tmp_path, monkeypatch):
    path = tmp_path / "materials.json"
    path.write_text(json.dumps([{"id": "BOOK", "pageCount": 5}]), encoding="utf-8")
    monkeypatch.setenv("MATERIAL_CATALOG_PATH", str(path))
    assert RetrievalConfig().materials.canonical_id("BOOK.pdf") == "BOOK"
    monkeypatch.delenv("MATERIAL_CATALOG_PATH")
    assert RetrievalConfig().materials is DEFAULT_MATERIAL_CATALOG
