"""
Passage retrieval over pre-embedded study material.

Provides the retrieval engine behind the "supporting material" lookup:
- Cosine similarity and MMR diverse top-k selection
- In-memory and Qdrant passage index backends
- Hybrid lexical signals (amounts, section keywords)
- Multi-query fusion
- TTL + LRU result caching
- The RetrievalService orchestrator
"""

from .cache import ResultCache, make_cache_key
from .config import RetrievalConfig
from .errors import (
    EmbeddingFailure,
    ExpansionFailure,
    IndexUnavailable,
    InvalidRequest,
    RetrievalError,
)
from .fusion import FusionOutcome, QueryFusion, fuse_results
from .hybrid import HybridSignals, extract_amounts, extract_sections, extract_signals
from .index import PassageRecord, load_passages
from .local_index import LocalPassageIndex
from .materials import DEFAULT_MATERIAL_CATALOG, Material, MaterialCatalog
from .mmr import mmr_select
from .normalize import apply_alias_expansion, extract_key_phrase, normalize_text, prepare_query
from .qdrant_index import QdrantPassageIndex
from .query_rewriter import KeywordQueryExpander
from .retriever import PassageIndex, RerankResult, RetrievedPassage, SearchOptions
from .service import (
    RerankResponse,
    RetrievalRequest,
    RetrievalResponse,
    RetrievalService,
    build_passage_index,
)
from .similarity import cosine_similarity

__all__ = [
    "DEFAULT_MATERIAL_CATALOG",
    "EmbeddingFailure",
    "ExpansionFailure",
    "FusionOutcome",
    "HybridSignals",
    "IndexUnavailable",
    "InvalidRequest",
    "KeywordQueryExpander",
    "LocalPassageIndex",
    "Material",
    "MaterialCatalog",
    "PassageIndex",
    "PassageRecord",
    "QdrantPassageIndex",
    "QueryFusion",
    "RerankResponse",
    "RerankResult",
    "ResultCache",
    "RetrievalConfig",
    "RetrievalError",
    "RetrievalRequest",
    "RetrievalResponse",
    "RetrievalService",
    "RetrievedPassage",
    "SearchOptions",
    "apply_alias_expansion",
    "build_passage_index",
    "cosine_similarity",
    "extract_amounts",
    "extract_key_phrase",
    "extract_sections",
    "extract_signals",
    "fuse_results",
    "load_passages",
    "make_cache_key",
    "mmr_select",
    "normalize_text",
    "prepare_query",
]
