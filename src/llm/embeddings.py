"""
Embedding providers: OpenAI embeddings API or a local sentence-transformers model.

The passage index must have been built with the same provider and model, since
only the vector dimensionality is checked at query time.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import List, Optional, Sequence

from openai import AsyncOpenAI

from src.rag.errors import EmbeddingFailure

from .client import create_async_client

logger = logging.getLogger(__name__)

EMBEDDING_PROVIDER = os.getenv("EMBEDDING_PROVIDER", "openai")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
LOCAL_EMBEDDING_MODEL = os.getenv("LOCAL_EMBEDDING_MODEL", "all-MiniLM-L6-v2")

BATCH_SIZE = 100


class OpenAIEmbedder:
    """Embeddings via the OpenAI (or compatible) embeddings endpoint."""

    def __init__(self, client: AsyncOpenAI, model: str = EMBEDDING_MODEL):
        self.client = client
        self.model = model

    async def embed(self, text: str) -> List[float]:
        embeddings = await self.embed_batch([text])
        return embeddings[0]

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed texts in batches of BATCH_SIZE, preserving order."""
        out: List[List[float]] = []
        for i in range(0, len(texts), BATCH_SIZE):
            batch = list(texts[i : i + BATCH_SIZE])
            response = await self.client.embeddings.create(model=self.model, input=batch)
            out.extend(list(item.embedding) for item in response.data)
        return out


class UnavailableEmbedder:
    """Stands in when no embedding provider could be configured; every call fails."""

    def __init__(self, reason: str):
        self.reason = reason

    async def embed(self, text: str) -> List[float]:
        raise EmbeddingFailure(self.reason)

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        raise EmbeddingFailure(self.reason)


class SentenceTransformerEmbedder:
    """Local embeddings with sentence-transformers (install the ``local`` extra)."""

    def __init__(self, model_name: str = LOCAL_EMBEDDING_MODEL):
        from sentence_transformers import SentenceTransformer

        self.model_name = model_name
        self.model = SentenceTransformer(model_name)

    def _encode(self, texts: List[str]) -> List[List[float]]:
        emb = self.model.encode(
            texts,
            batch_size=64,
            convert_to_numpy=True,
            normalize_embeddings=True,
        )
        return emb.tolist()

    async def embed(self, text: str) -> List[float]:
        embeddings = await self.embed_batch([text])
        return embeddings[0]

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        return await asyncio.to_thread(self._encode, list(texts))


def create_embedder(provider: Optional[str] = None, model: Optional[str] = None):
    """Build the embedder selected by EMBEDDING_PROVIDER (``openai`` or ``local``)."""
    provider = (provider or EMBEDDING_PROVIDER).lower()
    if provider == "local":
        logger.info("Using local sentence-transformers embeddings")
        return SentenceTransformerEmbedder(model or LOCAL_EMBEDDING_MODEL)
    if provider != "openai":
        raise ValueError(f"Unknown embedding provider: {provider}")
    return OpenAIEmbedder(create_async_client(), model=model or EMBEDDING_MODEL)
