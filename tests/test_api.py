"""
Tests for the retrieval API routes.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import List

import pytest
from fastapi.testclient import TestClient

from src.api import deps
from src.api.main import app
from src.rag import (
    KeywordQueryExpander,
    LocalPassageIndex,
    RerankResult,
    ResultCache,
    RetrievalConfig,
    RetrievalRequest,
    RetrievalService,
    load_passages,
)

client = TestClient(app)


class FakeEmbedder:
    async def embed(self, text: str) -> List[float]:
        return [1.0, 0.0]

    async def embed_batch(self, texts):
        return [[1.0, 0.0] for _ in texts]


class FakeAssistant:
    async def expand_query(self, question, explanation=None):
        return []

    async def rerank(self, question, passages, explanation=None):
        return RerankResult(page=passages[0].page, score=passages[0].score, confidence=0.9, exact_quote="£85,000")


@pytest.fixture
def service(tmp_path: Path):
    records = [
        {
            "id": "Study_Companion#12-0",
            "materialId": "Study_Companion",
            "pageNumber": 12,
            "offset": 0,
            "chunkIndex": 0,
            "plainText": "The FSCS limit is £85,000.",
            "normalizedText": "the fscs limit is £85,000.",
            "embedding": [1.0, 0.0],
        },
        {
            "id": "Checkpoint#3-0",
            "materialId": "Checkpoint",
            "pageNumber": 3,
            "offset": 0,
            "chunkIndex": 0,
            "plainText": "Money laundering stages.",
            "normalizedText": "money laundering stages.",
            "embedding": [0.0, 1.0],
        },
    ]
    path = tmp_path / "materials_index.json"
    path.write_text(json.dumps(records), encoding="utf-8")
    config = RetrievalConfig(vector_backend="local", index_path=path, qdrant_url=None, min_score=0.65)
    svc = RetrievalService(
        LocalPassageIndex.from_records(load_passages(path)),
        FakeEmbedder(),
        ResultCache(),
        config=config,
        assistant=FakeAssistant(),
    )
    app.state.service = svc
    app.state.startup_error = None
    yield svc
    app.state.service = None


def test_health_without_service_is_unavailable():
    app.state.service = None
    app.state.startup_error = "index file missing"
    r = client.get("/api/health")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "unavailable"
    assert data["error"] == "index file missing"


def test_retrieve_without_service_returns_503():
    app.state.service = None
    r = client.post("/api/retrieve", json={"question": "What is the FSCS limit?"})
    assert r.status_code == 503
    assert "detail" in r.json()


def test_retrieve_requires_question():
    r = client.post("/api/retrieve", json={})
    assert r.status_code == 422


@pytest.mark.parametrize(
    "body",
    [
        {"question": "hi"},
        {"question": "What is the FSCS limit?", "k": 21},
        {"question": "What is the FSCS limit?", "stableId": "has spaces"},
    ],
)
def test_retrieve_rejects_out_of_bounds(body):
    r = client.post("/api/retrieve", json=body)
    assert r.status_code == 422


def test_health_with_service(service):
    r = client.get("/api/health")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "ok"
    assert data["backend"] == "local"
    assert data["passages_loaded"] == 2


def test_retrieve_returns_camel_case_passages(service):
    r = client.post("/api/retrieve", json={"question": "What is the FSCS limit?", "stableId": "q-1", "k": 3})
    assert r.status_code == 200
    data = r.json()
    assert data["cached"] is False
    assert data["fallback"] is False
    assert "error" not in data
    assert data["passages"][0]["materialId"] == "Study_Companion"
    assert data["passages"][0]["page"] == 12

    again = client.post("/api/retrieve", json={"question": "What is the FSCS limit?", "stableId": "q-1"})
    assert again.json()["cached"] is True


def test_retrieve_whitespace_question_is_bad_request(service):
    r = client.post("/api/retrieve", json={"question": "  a   "})
    assert r.status_code == 400


def test_stats_reports_cache(service):
    client.post("/api/retrieve", json={"question": "What is the FSCS limit?"})
    r = client.get("/api/stats")
    assert r.status_code == 200
    data = r.json()
    assert data["cache_size"] == 1
    assert data["cache_misses"] == 1


def test_rerank_returns_choice(service):
    body = {
        "question": "What is the FSCS limit?",
        "passages": [{"materialId": "Study_Companion", "page": 12, "quote": "The FSCS limit is £85,000.", "score": 0.9}],
    }
    r = client.post("/api/rerank", json=body)
    assert r.status_code == 200
    data = r.json()
    assert data["page"] == 12
    assert data["exactQuote"] == "£85,000"
    assert data["fallback"] is False


def test_rerank_requires_passages(service):
    r = client.post("/api/rerank", json={"question": "What is the FSCS limit?", "passages": []})
    assert r.status_code == 422


@pytest.mark.anyio
async def test_service_without_embedding_provider_serves_keyword_matches(tmp_path: Path, monkeypatch):
    records = [
        {
            "id": "Checkpoint#3-0",
            "materialId": "Checkpoint",
            "pageNumber": 3,
            "offset": 0,
            "chunkIndex": 0,
            "plainText": "Money laundering has three stages: placement, layering and integration.",
            "normalizedText": "money laundering has three stages: placement, layering and integration.",
            "embedding": [1.0, 0.0],
        }
    ] + [
        {
            "id": f"Study_Companion#{page}-0",
            "materialId": "Study_Companion",
            "pageNumber": page,
            "offset": 0,
            "chunkIndex": 0,
            "plainText": text,
            "normalizedText": text.lower(),
            "embedding": [0.0, 1.0],
        }
        for page, text in [(12, "The FSCS limit is £85,000."), (40, "Market abuse and insider dealing.")]
    ]
    path = tmp_path / "materials_index.json"
    path.write_text(json.dumps(records), encoding="utf-8")

    def no_credentials():
        raise ValueError("API key required")

    monkeypatch.setattr(deps, "create_embedder", no_credentials)
    monkeypatch.setattr(deps, "_build_assistant", KeywordQueryExpander)
    config = RetrievalConfig(vector_backend="local", index_path=path, qdrant_url=None)

    svc, error = await deps.build_service(config)

    assert error is None
    response = await svc.retrieve(RetrievalRequest(question="What are the money laundering placement stages?"))
    assert response.fallback
    assert response.passages[0].material_id == "UKFR_ED32_Checkpoint"
    assert len(svc.cache) == 0
