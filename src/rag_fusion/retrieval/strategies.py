"""Retrieval strategies: plain vector search, hybrid vector+keyword, multi-query."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Collection, Sequence

from rag_fusion.cache.embedding_cache import CachingEmbedder
from rag_fusion.config import RetrievalConfig
from rag_fusion.errors import EmptyInputError, ProviderError
from rag_fusion.retrieval.fusion import reciprocal_rank_fusion
from rag_fusion.retrieval.hyde import HypotheticalAnswerGenerator
from rag_fusion.retrieval.query_analysis import classify, decompose, generate_variations
from rag_fusion.retrieval.vector_index import VectorIndex
from rag_fusion.types import ConversationTurn, FusionResult, RankedList, Score, ScoredChunk

logger = logging.getLogger(__name__)

_STOP_WORDS = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of",
        "with", "by", "from", "as", "is", "was", "are", "were", "be", "been", "being",
    }
)


class RetrievalStrategy(ABC):
    """Shared embedding + index plumbing for all strategies."""

    def __init__(
        self,
        embedder: CachingEmbedder,
        index: VectorIndex,
        config: RetrievalConfig | None = None,
    ) -> None:
        self.embedder = embedder
        self.index = index
        self.config = config or RetrievalConfig()

    @abstractmethod
    async def retrieve(
        self, query: str, document_ids: Collection[str], limit: int
    ) -> RankedList:
        """Return chunks ranked best-first."""

    async def _search(
        self, embedding: list[float], document_ids: Collection[str], limit: int
    ) -> RankedList:
        try:
            return await asyncio.wait_for(
                self.index.search(embedding, document_ids, limit),
                timeout=self.config.search_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise ProviderError(
                f"Vector search timed out after {self.config.search_timeout_seconds}s"
            ) from exc
        except ProviderError:
            raise
        except Exception as exc:
            raise ProviderError(f"Vector search failed: {exc}") from exc

    @staticmethod
    def _validate(query: str) -> str:
        cleaned = query.strip()
        if not cleaned:
            raise EmptyInputError("query is empty")
        return cleaned


class VectorSearchStrategy(RetrievalStrategy):
    """One embedding, one index call; scores are raw cosine similarity."""

    async def retrieve(
        self, query: str, document_ids: Collection[str], limit: int
    ) -> RankedList:
        query = self._validate(query)
        if not document_ids:
            return []
        embedding = await self.embedder.embed(query)
        return await self._search(embedding, document_ids, limit)


class HybridSearchStrategy(RetrievalStrategy):
    """Blends cosine similarity with a binary keyword-match indicator.

    `score = w * cosine + (1 - w) * keyword_hit`. The indicator is 1 when the
    stopword-filtered query terms, joined by spaces, occur verbatim in the chunk.
    It is not a TF-IDF weight, which caps how much lexical signal can help.
    Candidates are oversampled from the index before re-scoring.
    """

    async def retrieve(
        self, query: str, document_ids: Collection[str], limit: int
    ) -> RankedList:
        query = self._validate(query)
        if not document_ids:
            return []
        embedding = await self.embedder.embed(query)
        candidates = await self._search(
            embedding, document_ids, limit * self.config.hybrid_oversample
        )

        keywords = extract_keywords(query)
        weight = self.config.vector_weight
        blended: RankedList = []
        for item in candidates:
            hit = keyword_indicator(keywords, item.chunk.content)
            blended.append(
                ScoredChunk(
                    chunk=item.chunk,
                    score=Score.blended(weight * item.value + (1.0 - weight) * hit),
                )
            )
        blended.sort(key=lambda item: (-item.value, item.chunk_id))
        return blended[:limit]


class MultiQueryStrategy(RetrievalStrategy):
    """Searches with several reformulations of the query and fuses the lists.

    Variants are embedded and searched concurrently, at most `batch_size` at a
    time. A variant whose embedding or search fails is dropped; the call only
    fails when every variant failed. Output is always an RRF-fused list.
    """

    def __init__(
        self,
        embedder: CachingEmbedder,
        index: VectorIndex,
        config: RetrievalConfig | None = None,
        *,
        hyde: HypotheticalAnswerGenerator | None = None,
    ) -> None:
        super().__init__(embedder, index, config)
        self.hyde = hyde

    def plan_queries(self, query: str) -> list[str]:
        """Reformulations to search with, original first."""
        max_variants = self.config.max_query_variants
        variants = generate_variations(query, classify(query), max_variations=max_variants)
        if len(variants) == 1:
            variants = list(dict.fromkeys(variants + decompose(query)))[:max_variants]
        return variants

    async def retrieve(
        self,
        query: str,
        document_ids: Collection[str],
        limit: int,
        *,
        history: Sequence[ConversationTurn] = (),
        use_hyde: bool = True,
    ) -> FusionResult:
        query = self._validate(query)
        if not document_ids:
            return []

        variants = self.plan_queries(query)
        if use_hyde and self.hyde is not None and self.hyde.available:
            hypothetical = await self.hyde.generate(query, history)
            if hypothetical not in variants:
                variants.append(hypothetical)

        semaphore = asyncio.Semaphore(self.config.batch_size)

        async def _run(variant: str) -> RankedList:
            async with semaphore:
                embedding = await self.embedder.embed(variant)
                return await self._search(embedding, document_ids, limit)

        outcomes = await asyncio.gather(*(_run(v) for v in variants), return_exceptions=True)

        ranked_lists: list[RankedList] = []
        failures: list[Exception] = []
        for variant, outcome in zip(variants, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.warning("Dropping query variant %r from fusion: %s", variant[:80], outcome)
                failures.append(outcome)
                continue
            ranked_lists.append(outcome)

        if not ranked_lists and failures:
            raise ProviderError(f"All {len(variants)} query variants failed") from failures[-1]

        logger.info(
            "Multi-query retrieval fused %d/%d lists", len(ranked_lists), len(variants)
        )
        return reciprocal_rank_fusion(ranked_lists, k=self.config.rrf_k)[:limit]


def extract_keywords(query: str) -> str:
    words = query.lower().split()
    return " ".join(word for word in words if len(word) > 2 and word not in _STOP_WORDS)


def keyword_indicator(keywords: str, content: str) -> float:
    if not keywords:
        return 0.0
    return 1.0 if keywords in content.lower() else 0.0
