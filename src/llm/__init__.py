"""
LLM and embedding clients for OpenAI-compatible APIs.
"""

from .client import LLMQueryAssistant, create_async_client
from .embeddings import (
    OpenAIEmbedder,
    SentenceTransformerEmbedder,
    UnavailableEmbedder,
    create_embedder,
)

__all__ = [
    "LLMQueryAssistant",
    "OpenAIEmbedder",
    "SentenceTransformerEmbedder",
    "UnavailableEmbedder",
    "create_async_client",
    "create_embedder",
]
