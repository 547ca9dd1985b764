"""
Configuration for the passage retrieval pipeline.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .materials import DEFAULT_MATERIAL_CATALOG, MaterialCatalog

ROOT = Path(__file__).resolve().parents[2]

env_file = ROOT / ".env"
if env_file.exists():
    load_dotenv(env_file)

DEFAULT_INDEX_PATH = ROOT / "data" / "materials_index.json"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw else default


def _material_catalog() -> MaterialCatalog:
    """Catalog from MATERIAL_CATALOG_PATH (JSON array) or the built-in study materials."""
    path = os.getenv("MATERIAL_CATALOG_PATH")
    if path:
        return MaterialCatalog.from_file(Path(path))
    return DEFAULT_MATERIAL_CATALOG


@dataclass
class RetrievalConfig:
    """Settings for retrieval, fusion, caching and backend selection."""

    # Backend selection
    vector_backend: str = field(default_factory=lambda: os.getenv("VECTOR_BACKEND", "local"))
    index_path: Path = field(
        default_factory=lambda: Path(os.getenv("PASSAGE_INDEX_PATH", str(DEFAULT_INDEX_PATH)))
    )
    qdrant_url: Optional[str] = field(default_factory=lambda: os.getenv("QDRANT_URL"))
    qdrant_api_key: Optional[str] = field(default_factory=lambda: os.getenv("QDRANT_API_KEY"))
    qdrant_collection: str = field(
        default_factory=lambda: os.getenv("QDRANT_COLLECTION", "materials_passages")
    )
    materials: MaterialCatalog = field(default_factory=_material_catalog)

    # Search defaults
    default_k: int = 6
    max_k: int = 20
    local_mmr_lambda: float = field(default_factory=lambda: _env_float("LOCAL_MMR_LAMBDA", 0.7))
    remote_mmr_lambda: float = field(default_factory=lambda: _env_float("REMOTE_MMR_LAMBDA", 0.5))
    min_score: float = field(default_factory=lambda: _env_float("MIN_SCORE", 0.65))
    remote_min_pool: int = 20
    remote_pool_factor: int = 4

    # Multi-query fusion
    multi_query_k: int = 10
    multi_query_min_score: float = field(
        default_factory=lambda: _env_float("MULTI_QUERY_MIN_SCORE", 0.7)
    )
    fusion_boost: float = field(default_factory=lambda: _env_float("FUSION_BOOST", 1.1))
    max_phrasings: int = 4

    # Result cache
    cache_max_size: int = field(default_factory=lambda: _env_int("CACHE_MAX_SIZE", 1000))
    cache_ttl_seconds: float = field(
        default_factory=lambda: _env_float("CACHE_TTL_SECONDS", 24 * 60 * 60)
    )

    # External call timeouts (seconds)
    embedding_timeout: float = field(default_factory=lambda: _env_float("EMBEDDING_TIMEOUT", 10.0))
    expansion_timeout: float = field(default_factory=lambda: _env_float("EXPANSION_TIMEOUT", 8.0))
    search_timeout: float = field(default_factory=lambda: _env_float("SEARCH_TIMEOUT", 10.0))

    # Request bounds
    min_question_length: int = 3
    max_question_length: int = 5000

    @property
    def use_qdrant(self) -> bool:
        """True when the remote backend is selected and configured."""
        return self.vector_backend.lower() == "qdrant" and bool(self.qdrant_url)
