"""Filtering, truncation and serialization of the final LLM context."""

from __future__ import annotations

import statistics
from collections.abc import Sequence

from rag_fusion.errors import ScoreRegimeMismatchError
from rag_fusion.retrieval.document_store import DocumentStore
from rag_fusion.types import ChunkMetadata, Citation, ContextResult, ScoredChunk, ScoreRegime

ANSWER_INSTRUCTION = (
    "Use the above information to answer the user's question. You have access to this "
    "information and should answer confidently based on it. Do not use phrases like "
    '"I don\'t have specific guidance" or "based on the information provided" - simply '
    "answer the question directly using this knowledge as if it were your own expertise."
)

# Regimes whose scores live on a similarity scale where a fixed threshold means something.
THRESHOLD_REGIMES = frozenset({ScoreRegime.COSINE, ScoreRegime.BLENDED})


class ContextAssembler:
    """Turns ranked chunks into the context blob handed to the LLM.

    The threshold is applied only for cosine and blended scores. RRF scores sit
    around 0.016 and below, so filtering them with a similarity threshold would
    silently drop every result; fused lists are only truncated.
    """

    def __init__(
        self,
        document_store: DocumentStore | None = None,
        *,
        instruction: str = ANSWER_INSTRUCTION,
        excerpt_chars: int = 100,
    ) -> None:
        self.document_store = document_store
        self.instruction = instruction
        self.excerpt_chars = excerpt_chars

    def assemble(
        self,
        chunks: Sequence[ScoredChunk],
        similarity_threshold: float,
        max_chunks: int,
        score_regime: ScoreRegime,
    ) -> ContextResult:
        for item in chunks:
            if item.regime is not score_regime:
                raise ScoreRegimeMismatchError(
                    f"chunk {item.chunk_id} carries a {item.regime.value} score "
                    f"but assembly was declared {score_regime.value}"
                )

        if score_regime in THRESHOLD_REGIMES:
            kept = [item for item in chunks if item.value > similarity_threshold]
        else:
            kept = list(chunks)
        selected = kept[:max_chunks]

        if not selected:
            return ContextResult(text="", score_regime=score_regime)

        parts: list[str] = []
        citations: list[Citation] = []
        for item in selected:
            metadata = self._metadata_for(item)
            parts.append(f"{item.chunk.content}{_source_annotation(metadata)}")
            citations.append(self._citation(item, metadata))

        text = "\n\n".join(parts) + "\n\n" + self.instruction
        return ContextResult(
            text=text,
            citations=citations,
            avg_score=sum(item.value for item in selected) / len(selected),
            score_regime=score_regime,
            chunk_ids=[item.chunk_id for item in selected],
            confidence=retrieval_confidence(selected),
        )

    def _metadata_for(self, item: ScoredChunk) -> ChunkMetadata:
        metadata = item.chunk.metadata
        if metadata.is_empty() and self.document_store is not None:
            stored = self.document_store.chunk_metadata(item.chunk_id)
            if stored is not None:
                return stored
        return metadata

    def _citation(self, item: ScoredChunk, metadata: ChunkMetadata) -> Citation:
        title = None
        if self.document_store is not None:
            title = self.document_store.document_title(item.chunk.document_id)
        content = item.chunk.content
        excerpt = content
        if len(content) > self.excerpt_chars:
            excerpt = content[: self.excerpt_chars] + "..."
        return Citation(
            chunk_id=item.chunk_id,
            document_id=item.chunk.document_id,
            document_title=title or "Unknown Document",
            page=metadata.page,
            section=metadata.section,
            score=item.value,
            excerpt=excerpt,
        )


def retrieval_confidence(chunks: Sequence[ScoredChunk]) -> str | None:
    """Grade retrieval quality as high/medium/low from similarity scores.

    Uses the mean score, penalised for spread (stdev > 0.15) and for fewer than
    three chunks, with a bonus when the top score exceeds 0.8. Fused scores are
    rank-derived and carry no similarity meaning, so they get no grade.
    """

    if not chunks:
        return "low"
    if any(item.regime not in THRESHOLD_REGIMES for item in chunks):
        return None

    values = [item.value for item in chunks]
    score = statistics.fmean(values)
    if statistics.pstdev(values) > 0.15:
        score *= 0.8
    if len(values) < 3:
        score *= 0.9
    if values[0] > 0.8:
        score = min(1.0, score * 1.1)

    if score >= 0.7:
        return "high"
    if score >= 0.4:
        return "medium"
    return "low"


def _source_annotation(metadata: ChunkMetadata) -> str:
    info: list[str] = []
    if metadata.page:
        info.append(f"page {metadata.page}")
    if metadata.section:
        info.append(metadata.section)
    return f" [{', '.join(info)}]" if info else ""
