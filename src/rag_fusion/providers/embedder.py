"""Embedding provider abstractions and deterministic baseline implementation."""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from hashlib import blake2b
from math import sqrt
from typing import Any


class EmbeddingProvider(ABC):
    """Opaque embedding service used by the retrieval core."""

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Embed one text."""


class HashingEmbeddingProvider(EmbeddingProvider):
    """Deterministic sparse-like embedding without external model calls.

    This class is primarily used for local tests and deterministic integration
    tests. In production, replace it with OpenAI or other embedding providers.
    """

    def __init__(self, dimension: int = 256) -> None:
        self.dimension = dimension
        self.calls = 0

    async def embed(self, text: str) -> list[float]:
        self.calls += 1
        return self.vectorize(text)

    def vectorize(self, text: str) -> list[float]:
        vector = [0.0 for _ in range(self.dimension)]
        tokens = text.lower().split()
        if not tokens:
            return vector

        for token in tokens:
            digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
            idx = int.from_bytes(digest[:4], "little") % self.dimension
            sign = -1.0 if digest[4] % 2 else 1.0
            vector[idx] += sign

        norm = sqrt(sum(value * value for value in vector))
        if norm == 0:
            return vector
        return [value / norm for value in vector]


class LangChainEmbeddingProvider(EmbeddingProvider):
    """Adapts any LangChain `Embeddings` implementation to the provider contract."""

    def __init__(self, embeddings: Any) -> None:
        self._embeddings = embeddings

    async def embed(self, text: str) -> list[float]:
        return list(await self._embeddings.aembed_query(text))


def create_embedding_provider() -> EmbeddingProvider:
    """Build the embedding provider from the environment.

    Uses OpenAI embeddings when `OPENAI_API_KEY` is configured and falls back to
    the deterministic hashing provider otherwise.
    """

    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        return HashingEmbeddingProvider()

    from langchain_openai import OpenAIEmbeddings

    return LangChainEmbeddingProvider(
        OpenAIEmbeddings(model=os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small"))
    )
