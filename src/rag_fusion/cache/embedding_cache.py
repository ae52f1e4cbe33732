"""Adaptive-TTL LRU embedding cache and the caching embedder built on it."""

from __future__ import annotations

import asyncio
import logging
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from rag_fusion.config import CacheConfig, EmbeddingConfig
from rag_fusion.errors import ProviderError
from rag_fusion.providers.embedder import EmbeddingProvider
from rag_fusion.resilience.retry import retry_async

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CacheEntry:
    embedding: list[float]
    created_at: float
    hit_count: int
    last_access: float


@dataclass(slots=True, frozen=True)
class CacheStats:
    size: int
    max_size: int
    hits: int
    misses: int
    evictions: int
    expirations: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class EmbeddingCache:
    """Maps normalized text to embedding vectors.

    Keys are trimmed, lowercased and truncated to `max_key_chars`. Truncation
    is lossy: two long inputs sharing a prefix share an entry. That trades a
    small precision risk for bounded key memory.

    Entry lifetime grows with use: `ttl = min(max_ttl, base_ttl * (1 + ln(hits + 1)))`.
    When full, the entry with the oldest `last_access` is evicted by a linear
    scan, which is acceptable for caches of a few hundred entries.
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or CacheConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    def normalize_key(self, text: str) -> str:
        return text.strip().lower()[: self.config.max_key_chars]

    def adaptive_ttl(self, hit_count: int) -> float:
        ttl = self.config.base_ttl_seconds * (1 + math.log(hit_count + 1))
        return min(self.config.max_ttl_seconds, ttl)

    def get(self, text: str) -> list[float] | None:
        key = self.normalize_key(text)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            now = self._clock()
            if now - entry.created_at > self.adaptive_ttl(entry.hit_count):
                del self._entries[key]
                self._misses += 1
                self._expirations += 1
                return None

            entry.hit_count += 1
            entry.last_access = now
            self._hits += 1
            return entry.embedding

    def set(self, text: str, embedding: list[float]) -> None:
        key = self.normalize_key(text)
        with self._lock:
            now = self._clock()
            if key not in self._entries and len(self._entries) >= self.config.max_size:
                self._evict_oldest()
            self._entries[key] = CacheEntry(
                embedding=embedding,
                created_at=now,
                hit_count=0,
                last_access=now,
            )

    def __contains__(self, text: str) -> bool:
        with self._lock:
            return self.normalize_key(text) in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                size=len(self._entries),
                max_size=self.config.max_size,
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                expirations=self._expirations,
            )

    def _evict_oldest(self) -> None:
        oldest_key = min(self._entries, key=lambda k: self._entries[k].last_access)
        del self._entries[oldest_key]
        self._evictions += 1


class CachingEmbedder:
    """Cache-first front for an `EmbeddingProvider` with timeout and retries.

    Concurrent misses on the same key may both call the provider; the second
    `set` simply overwrites the first.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        cache: EmbeddingCache,
        config: EmbeddingConfig | None = None,
    ) -> None:
        self.provider = provider
        self.cache = cache
        self.config = config or EmbeddingConfig()

    async def embed(self, text: str) -> list[float]:
        cached = self.cache.get(text)
        if cached is not None:
            return cached

        max_chars = self.config.max_input_chars
        payload = text
        if len(text) > max_chars:
            logger.warning(
                "Embedding input truncated from %d to %d chars", len(text), max_chars
            )
            payload = text[:max_chars]

        embedding = await retry_async(
            lambda: self._embed_once(payload),
            max_attempts=self.config.max_attempts,
            backoff_seconds=self.config.backoff_seconds,
        )
        self.cache.set(text, embedding)
        return embedding

    async def _embed_once(self, text: str) -> list[float]:
        try:
            embedding = await asyncio.wait_for(
                self.provider.embed(text), timeout=self.config.timeout_seconds
            )
        except asyncio.TimeoutError as exc:
            raise ProviderError(
                f"Embedding call timed out after {self.config.timeout_seconds}s"
            ) from exc
        except ProviderError:
            raise
        except Exception as exc:
            raise ProviderError(f"Failed to generate embedding: {exc}") from exc

        if not isinstance(embedding, list) or not embedding:
            raise ProviderError("Invalid embedding format from provider")
        return embedding
