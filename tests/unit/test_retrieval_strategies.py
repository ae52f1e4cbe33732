import asyncio
from collections.abc import Collection

import pytest

from rag_fusion.cache.embedding_cache import CachingEmbedder, EmbeddingCache
from rag_fusion.config import CircuitBreakerConfig, EmbeddingConfig, RetrievalConfig
from rag_fusion.errors import EmptyInputError, ProviderError
from rag_fusion.providers.completion import CompletionProvider
from rag_fusion.providers.embedder import EmbeddingProvider, HashingEmbeddingProvider
from rag_fusion.resilience.circuit_breaker import CircuitBreaker
from rag_fusion.retrieval.hyde import HypotheticalAnswerGenerator
from rag_fusion.retrieval.strategies import (
    HybridSearchStrategy,
    MultiQueryStrategy,
    VectorSearchStrategy,
    extract_keywords,
    keyword_indicator,
)
from rag_fusion.types import Chunk, RankedList, Score, ScoredChunk, ScoreRegime


def _scored(chunk_id: int, content: str, value: float) -> ScoredChunk:
    return ScoredChunk(
        chunk=Chunk(
            chunk_id=chunk_id,
            document_id="doc-a",
            content=content,
            index_in_document=chunk_id * 10,
        ),
        score=Score.cosine(value),
    )


class FixedIndex:
    def __init__(self, results: RankedList) -> None:
        self.results = results
        self.calls = 0

    async def search(
        self, query_embedding: list[float], document_ids: Collection[str], limit: int
    ) -> RankedList:
        self.calls += 1
        return self.results[:limit]


class SelectiveFailureProvider(EmbeddingProvider):
    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = failing
        self._inner = HashingEmbeddingProvider()

    async def embed(self, text: str) -> list[float]:
        if self.failing is None or text in self.failing:
            raise RuntimeError(f"cannot embed {text!r}")
        return await self._inner.embed(text)


class StaticCompletion(CompletionProvider):
    async def complete(self, prompt: str, *, temperature: float, max_tokens: int) -> str:
        return "Caching keeps hot embeddings in memory."


def _embedder(provider: EmbeddingProvider | None = None) -> CachingEmbedder:
    return CachingEmbedder(
        provider or HashingEmbeddingProvider(),
        EmbeddingCache(),
        EmbeddingConfig(max_attempts=1),
    )


def _corpus() -> RankedList:
    return [
        _scored(1, "unrelated text about parking", 0.6),
        _scored(2, "notes on vector search tuning", 0.5),
        _scored(3, "keyword search uses inverted indexes", 0.4),
    ]


def test_vector_strategy_rejects_blank_query_and_skips_empty_selection() -> None:
    index = FixedIndex(_corpus())
    strategy = VectorSearchStrategy(_embedder(), index)

    with pytest.raises(EmptyInputError):
        asyncio.run(strategy.retrieve("   ", ["doc-a"], 5))
    assert asyncio.run(strategy.retrieve("vector search", [], 5)) == []
    assert index.calls == 0


def test_vector_strategy_returns_cosine_scores() -> None:
    strategy = VectorSearchStrategy(_embedder(), FixedIndex(_corpus()))

    ranked = asyncio.run(strategy.retrieve("vector search", ["doc-a"], 2))

    assert [item.chunk_id for item in ranked] == [1, 2]
    assert all(item.regime is ScoreRegime.COSINE for item in ranked)


def test_hybrid_strategy_blends_keyword_hits() -> None:
    strategy = HybridSearchStrategy(_embedder(), FixedIndex(_corpus()))

    ranked = asyncio.run(strategy.retrieve("vector search", ["doc-a"], 2))

    assert [item.chunk_id for item in ranked] == [2, 1]
    assert ranked[0].value == pytest.approx(0.7 * 0.5 + 0.3)
    assert ranked[1].value == pytest.approx(0.7 * 0.6)
    assert all(item.regime is ScoreRegime.BLENDED for item in ranked)


def test_keyword_helpers() -> None:
    assert extract_keywords("What is the vector search") == "what vector search"
    assert keyword_indicator("", "anything") == 0.0
    assert keyword_indicator("vector search", "Fast VECTOR SEARCH engines") == 1.0
    assert keyword_indicator("vector search", "vector based search") == 0.0


def test_multi_query_fuses_variants() -> None:
    index = FixedIndex(_corpus())
    strategy = MultiQueryStrategy(_embedder(), index)
    query = "Compare vector search and keyword search"

    fused = asyncio.run(strategy.retrieve(query, ["doc-a"], 3))

    assert strategy.plan_queries(query) == [query, "vector search", "keyword search"]
    assert index.calls == 3
    assert [item.chunk_id for item in fused] == [1, 2, 3]
    assert fused[0].value == pytest.approx(3 / 61)
    assert all(item.regime is ScoreRegime.FUSED for item in fused)


def test_multi_query_drops_failed_variant() -> None:
    index = FixedIndex(_corpus())
    provider = SelectiveFailureProvider(failing={"keyword search"})
    strategy = MultiQueryStrategy(_embedder(provider), index)

    fused = asyncio.run(strategy.retrieve("Compare vector search and keyword search", ["doc-a"], 3))

    assert index.calls == 2
    assert fused[0].value == pytest.approx(2 / 61)


def test_multi_query_fails_when_every_variant_fails() -> None:
    strategy = MultiQueryStrategy(_embedder(SelectiveFailureProvider()), FixedIndex(_corpus()))

    with pytest.raises(ProviderError):
        asyncio.run(strategy.retrieve("Compare vector search and keyword search", ["doc-a"], 3))


def test_multi_query_adds_hypothetical_answer() -> None:
    index = FixedIndex(_corpus())
    hyde = HypotheticalAnswerGenerator(
        StaticCompletion(), CircuitBreaker("completion", CircuitBreakerConfig())
    )
    strategy = MultiQueryStrategy(_embedder(), index, hyde=hyde)

    asyncio.run(strategy.retrieve("Tell me about caching", ["doc-a"], 3))
    assert index.calls == 2

    asyncio.run(strategy.retrieve("Tell me about caching", ["doc-a"], 3, use_hyde=False))
    assert index.calls == 3


class ConcurrencyTrackingIndex:
    def __init__(self, results: RankedList) -> None:
        self.results = results
        self.active = 0
        self.peak = 0

    async def search(
        self, query_embedding: list[float], document_ids: Collection[str], limit: int
    ) -> RankedList:
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(0.01)
            return self.results[:limit]
        finally:
            self.active -= 1


class BrokenIndex:
    async def search(
        self, query_embedding: list[float], document_ids: Collection[str], limit: int
    ) -> RankedList:
        raise RuntimeError("vector backend connection reset")


def test_multi_query_bounds_concurrent_searches() -> None:
    index = ConcurrencyTrackingIndex(_corpus())
    strategy = MultiQueryStrategy(_embedder(), index, RetrievalConfig(batch_size=2))

    fused = asyncio.run(strategy.retrieve("Compare vector search and keyword search", ["doc-a"], 3))

    assert 1 < index.peak <= 2
    assert fused[0].value == pytest.approx(3 / 61)


def test_index_errors_surface_as_provider_error() -> None:
    strategy = VectorSearchStrategy(_embedder(), BrokenIndex())

    with pytest.raises(ProviderError, match="connection reset"):
        asyncio.run(strategy.retrieve("vector search", ["doc-a"], 3))
