"""Context building entry point: strategy choice, retrieval, fusion and assembly."""

from __future__ import annotations

import logging
from collections.abc import Collection, Sequence

from rag_fusion.cache.embedding_cache import CachingEmbedder, EmbeddingCache
from rag_fusion.config import ContextBuilderConfig
from rag_fusion.context.assembler import ContextAssembler
from rag_fusion.errors import CircuitOpenError, ProviderError
from rag_fusion.obs.tracing import PerformanceLog, StrategyInsights, Timer
from rag_fusion.providers.completion import CompletionProvider, create_completion_provider
from rag_fusion.providers.embedder import EmbeddingProvider, create_embedding_provider
from rag_fusion.resilience.circuit_breaker import CircuitBreakerRegistry
from rag_fusion.retrieval.compression import compress_chunks
from rag_fusion.retrieval.dedup import deduplicate
from rag_fusion.retrieval.document_store import DocumentStore
from rag_fusion.retrieval.fusion import KeywordOverlapReranker, Reranker
from rag_fusion.retrieval.hyde import HypotheticalAnswerGenerator
from rag_fusion.retrieval.query_analysis import classify
from rag_fusion.retrieval.strategies import (
    HybridSearchStrategy,
    MultiQueryStrategy,
    RetrievalStrategy,
    VectorSearchStrategy,
)
from rag_fusion.retrieval.vector_index import VectorIndex
from rag_fusion.strategy.momentum import analyze_momentum, build_momentum_query
from rag_fusion.strategy.selector import StrategySelector
from rag_fusion.types import ContextResult, ConversationTurn, RankedList, ScoreRegime

logger = logging.getLogger(__name__)

COMPLETION_BREAKER = "completion"


class ContextBuilder:
    """Builds the retrieved-context blob for one chat turn.

    Shared state (embedding cache, breaker registry, performance log) is passed
    in by the application root so several builders, or parallel tests, never
    share it by accident.

    Flow:
    1. `StrategySelector` picks the fast or rich path.
    2. Fast path: one vector (or hybrid) search on the query, widened with
       earlier user turns when `momentum_query` is on;
       scores stay cosine (or blended) and the similarity threshold applies.
    3. Rich path: query variants + HyDE answer, concurrent searches, RRF fusion,
       reranking and optional compression; scores are fused and only the chunk
       limit applies. Any provider failure falls back to the fast path.
    4. Duplicates are removed, consecutive chunks merged, and the result is
       serialized by `ContextAssembler`. Total failure yields an empty context.
    """

    def __init__(
        self,
        *,
        embedding_provider: EmbeddingProvider,
        index: VectorIndex,
        completion_provider: CompletionProvider | None = None,
        document_store: DocumentStore | None = None,
        config: ContextBuilderConfig | None = None,
        cache: EmbeddingCache | None = None,
        breakers: CircuitBreakerRegistry | None = None,
        performance_log: PerformanceLog | None = None,
        selector: StrategySelector | None = None,
        reranker: Reranker | None = None,
    ) -> None:
        self.config = config or ContextBuilderConfig()
        self.cache = cache or EmbeddingCache(self.config.cache)
        self.breakers = breakers or CircuitBreakerRegistry(self.config.breaker)
        self.performance_log = performance_log
        self.selector = selector or StrategySelector()
        self.reranker = reranker or KeywordOverlapReranker()
        self.assembler = ContextAssembler(document_store)

        embedder = CachingEmbedder(embedding_provider, self.cache, self.config.embedding)
        retrieval = self.config.retrieval
        self.hyde = HypotheticalAnswerGenerator(
            completion_provider,
            self.breakers.get(COMPLETION_BREAKER, self.config.breaker),
            self.config.hyde,
        )
        self.vector_search = VectorSearchStrategy(embedder, index, retrieval)
        self.hybrid_search = HybridSearchStrategy(embedder, index, retrieval)
        self.multi_query = MultiQueryStrategy(embedder, index, retrieval, hyde=self.hyde)

    @classmethod
    def from_env(
        cls,
        index: VectorIndex,
        *,
        document_store: DocumentStore | None = None,
        config: ContextBuilderConfig | None = None,
        performance_log: PerformanceLog | None = None,
    ) -> "ContextBuilder":
        return cls(
            embedding_provider=create_embedding_provider(),
            completion_provider=create_completion_provider(),
            index=index,
            document_store=document_store,
            config=config,
            performance_log=performance_log,
        )

    async def build_context(
        self,
        query: str,
        document_ids: Collection[str],
        conversation_history: Sequence[ConversationTurn] = (),
        max_chunks: int | None = None,
        similarity_threshold: float | None = None,
        use_advanced: bool = False,
    ) -> ContextResult:
        """Return ranked, deduplicated, filtered context for `query`.

        A blank query or an empty document selection is a normal outcome and
        returns an empty result.
        """

        cleaned = query.strip()
        doc_ids = list(dict.fromkeys(document_ids))
        if not cleaned or not doc_ids:
            return ContextResult(text="")

        history = list(conversation_history)
        context_cfg = self.config.context
        limit = context_cfg.max_chunks if max_chunks is None else max_chunks
        threshold = (
            context_cfg.similarity_threshold
            if similarity_threshold is None
            else similarity_threshold
        )

        with Timer() as total_timer:
            decision = self.selector.decide(cleaned, len(history), len(doc_ids), use_advanced)
            momentum = analyze_momentum(cleaned, history)
            if context_cfg.adapt_chunk_limit:
                limit = momentum.recommended_chunk_limit
            fast_query = cleaned
            if context_cfg.momentum_query:
                fast_query = build_momentum_query(cleaned, history, momentum.momentum)

            with Timer() as retrieval_timer:
                chunks, regime, degraded = await self._retrieve(
                    cleaned, fast_query, doc_ids, history, limit, decision.use_rich_path
                )
            result = self.assembler.assemble(chunks, threshold, limit, regime)

        result.query_type = classify(cleaned)
        result.decision = decision
        result.degraded = degraded
        result.elapsed_ms = total_timer.elapsed_ms

        if self.performance_log is not None:
            self.performance_log.record(
                query=cleaned,
                rich_path=decision.use_rich_path,
                reason=decision.reason,
                decision_confidence=decision.confidence,
                document_count=len(doc_ids),
                conversation_length=len(history),
                chunks_found=len(result.chunk_ids),
                total_ms=total_timer.elapsed_ms,
                retrieval_ms=retrieval_timer.elapsed_ms,
                cache_hit_rate=self.cache.stats().hit_rate,
                degraded=degraded,
            )
        return result

    def strategy_insights(self) -> StrategyInsights | None:
        if self.performance_log is None:
            return None
        return self.performance_log.analyze()

    async def _retrieve(
        self,
        query: str,
        fast_query: str,
        document_ids: list[str],
        history: list[ConversationTurn],
        max_chunks: int,
        rich_path: bool,
    ) -> tuple[RankedList, ScoreRegime, bool]:
        """Return (chunks, regime, degraded); never raises for provider failures."""

        try:
            if not rich_path:
                chunks, regime = await self._fast_path(fast_query, document_ids, max_chunks)
                return chunks, regime, False
            try:
                chunks, regime = await self._rich_path(query, document_ids, history, max_chunks)
                return chunks, regime, False
            except (ProviderError, CircuitOpenError) as exc:
                logger.warning("Rich retrieval failed, falling back to fast path: %s", exc)
            chunks, regime = await self._fast_path(fast_query, document_ids, max_chunks)
            return chunks, regime, True
        except (ProviderError, CircuitOpenError) as exc:
            logger.error("Context retrieval failed, continuing without context: %s", exc)
            return [], self._fast_regime(), True

    async def _fast_path(
        self, search_query: str, document_ids: list[str], max_chunks: int
    ) -> tuple[RankedList, ScoreRegime]:
        strategy = self._fast_strategy()
        candidates = max_chunks * self.config.retrieval.candidate_multiplier
        ranked = await strategy.retrieve(search_query, document_ids, candidates)
        ranked = deduplicate(ranked, self.config.context.merge_consecutive)
        return ranked, self._fast_regime()

    async def _rich_path(
        self,
        query: str,
        document_ids: list[str],
        history: list[ConversationTurn],
        max_chunks: int,
    ) -> tuple[RankedList, ScoreRegime]:
        context_cfg = self.config.context
        candidates = max_chunks * self.config.retrieval.candidate_multiplier
        fused = await self.multi_query.retrieve(query, document_ids, candidates, history=history)
        if context_cfg.use_reranking:
            fused = self.reranker.rerank(query, fused)
        if context_cfg.use_compression:
            fused = compress_chunks(fused, query)
        fused = deduplicate(fused, context_cfg.merge_consecutive)
        return fused, ScoreRegime.FUSED

    def _fast_strategy(self) -> RetrievalStrategy:
        if self.config.retrieval.fast_path_strategy == "hybrid":
            return self.hybrid_search
        return self.vector_search

    def _fast_regime(self) -> ScoreRegime:
        if self.config.retrieval.fast_path_strategy == "hybrid":
            return ScoreRegime.BLENDED
        return ScoreRegime.COSINE
