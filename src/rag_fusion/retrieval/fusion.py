"""Rank fusion and reranking of retrieval results."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from rag_fusion.retrieval.query_analysis import significant_terms
from rag_fusion.types import FusionResult, RankedList, Score, ScoredChunk


def reciprocal_rank_fusion(lists: Sequence[RankedList], k: float = 60.0) -> FusionResult:
    """Merge ranked lists with Reciprocal Rank Fusion.

    `rrf(chunk) = sum(1 / (k + rank + 1))` over every list containing the chunk,
    with `rank` 0-indexed. Input scores are ignored, so lists from different
    score regimes can be fused safely. Output is sorted by descending RRF score
    (lowest chunk id first on ties) and is not truncated.
    """

    totals: dict[int, float] = {}
    first_seen: dict[int, ScoredChunk] = {}
    for ranked in lists:
        for rank, item in enumerate(ranked):
            chunk_id = item.chunk_id
            totals[chunk_id] = totals.get(chunk_id, 0.0) + 1.0 / (k + rank + 1)
            first_seen.setdefault(chunk_id, item)

    ordered = sorted(totals.items(), key=lambda entry: (-entry[1], entry[0]))
    return [
        ScoredChunk(
            chunk=first_seen[chunk_id].chunk,
            score=Score.fused(total),
            merged_chunk_ids=first_seen[chunk_id].merged_chunk_ids,
        )
        for chunk_id, total in ordered
    ]


class Reranker(ABC):
    """Reranker interface used after score fusion."""

    @abstractmethod
    def rerank(self, query: str, candidates: list[ScoredChunk]) -> list[ScoredChunk]:
        """Return candidates in the final ranking order."""


class KeywordOverlapReranker(Reranker):
    """Lightweight reranker using query-document lexical overlap.

    `new = original_weight * score + (1 - original_weight) * overlap` where
    overlap is the share of query terms (longer than three characters) found
    in the chunk. The score regime of each candidate is preserved.
    """

    def __init__(self, original_weight: float = 0.8) -> None:
        self.original_weight = original_weight

    def rerank(self, query: str, candidates: list[ScoredChunk]) -> list[ScoredChunk]:
        query_terms = significant_terms(query)
        if not query_terms:
            # Nothing to match on; keep the incoming scores.
            return sorted(candidates, key=lambda x: (-x.value, x.chunk_id))

        rescored: list[ScoredChunk] = []
        for item in candidates:
            chunk_terms = significant_terms(item.chunk.content)
            overlap = len(query_terms & chunk_terms) / len(query_terms)
            new_value = (item.value * self.original_weight) + (
                overlap * (1.0 - self.original_weight)
            )
            rescored.append(
                ScoredChunk(
                    chunk=item.chunk,
                    score=item.score.with_value(new_value),
                    merged_chunk_ids=item.merged_chunk_ids,
                )
            )
        return sorted(rescored, key=lambda x: (-x.value, x.chunk_id))
