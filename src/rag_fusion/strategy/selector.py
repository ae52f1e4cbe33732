"""Per-request choice between the fast single-search path and the rich path."""

from __future__ import annotations

import logging
import re

from rag_fusion.retrieval.query_analysis import word_count
from rag_fusion.types import StrategyDecision

logger = logging.getLogger(__name__)

_SIMPLE_FACTUAL = (
    re.compile(r"^what is ", re.I),
    re.compile(r"^who is ", re.I),
    re.compile(r"^when did ", re.I),
    re.compile(r"^when was ", re.I),
    re.compile(r"^where is ", re.I),
    re.compile(r"^define ", re.I),
)

_COMPLEX_ANALYTICAL = (
    re.compile(r"\b(compare|contrast|difference|versus|vs)\b", re.I),
    re.compile(r"\b(analyze|analysis|evaluate)\b", re.I),
    re.compile(r"\bexplain (how|why)\b", re.I),
    re.compile(r"\bwhy (does|do|is|are)\b", re.I),
    re.compile(r"\b(implications?|consequences?|effects?)\b", re.I),
)


class StrategySelector:
    """Fixed first-match-wins decision table.

    The rich path (HyDE + multi-query fusion) costs several embedding calls and
    one completion, so it is reserved for queries that benefit from it. Rule
    order is part of the contract; confidence values are for observability only.
    """

    def decide(
        self,
        query: str,
        conversation_length: int,
        document_count: int,
        advanced_rag_enabled: bool,
    ) -> StrategyDecision:
        decision = self._evaluate(
            query.strip(), conversation_length, document_count, advanced_rag_enabled
        )
        logger.info(
            "Retrieval strategy: %s (%s, confidence %.0f%%)",
            "rich path" if decision.use_rich_path else "fast path",
            decision.reason,
            decision.confidence * 100,
        )
        return decision

    @staticmethod
    def _evaluate(
        query: str,
        conversation_length: int,
        document_count: int,
        advanced_rag_enabled: bool,
    ) -> StrategyDecision:
        if not advanced_rag_enabled:
            return StrategyDecision(False, "Advanced retrieval not enabled", 1.0)

        words = word_count(query)

        if words < 10 and any(p.search(query) for p in _SIMPLE_FACTUAL):
            return StrategyDecision(
                False, "Simple factual query - fast retrieval sufficient", 0.85
            )
        if words < 5:
            return StrategyDecision(
                False, "Query too short for meaningful HyDE improvement", 0.9
            )
        if conversation_length < 6:
            return StrategyDecision(
                False, "Early in conversation - insufficient context for HyDE", 0.8
            )
        if any(p.search(query) for p in _COMPLEX_ANALYTICAL):
            return StrategyDecision(
                True, "Complex analytical query benefits from HyDE retrieval", 0.85
            )
        if document_count >= 3:
            return StrategyDecision(
                True, "Multiple documents - HyDE improves cross-doc retrieval", 0.75
            )
        if words > 20:
            return StrategyDecision(
                True, "Detailed query - HyDE can capture nuanced intent", 0.7
            )
        return StrategyDecision(False, "Standard query - fast retrieval recommended", 0.7)
