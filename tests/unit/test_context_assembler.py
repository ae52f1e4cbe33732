import pytest

from rag_fusion.context.assembler import ANSWER_INSTRUCTION, ContextAssembler, retrieval_confidence
from rag_fusion.errors import ScoreRegimeMismatchError
from rag_fusion.retrieval.document_store import InMemoryDocumentStore
from rag_fusion.types import Chunk, ChunkMetadata, Score, ScoredChunk, ScoreRegime


def _scored(
    chunk_id: int,
    content: str,
    score: Score,
    *,
    document_id: str = "doc-a",
    metadata: ChunkMetadata | None = None,
) -> ScoredChunk:
    return ScoredChunk(
        chunk=Chunk(
            chunk_id=chunk_id,
            document_id=document_id,
            content=content,
            index_in_document=chunk_id * 10,
            metadata=metadata or ChunkMetadata(),
        ),
        score=score,
    )


def test_cosine_assembly_filters_annotates_and_appends_instruction() -> None:
    store = InMemoryDocumentStore()
    store.add_document("doc-a", "Security Handbook")
    chunks = [
        _scored(
            1,
            "alpha content",
            Score.cosine(0.9),
            metadata=ChunkMetadata(page=3, section="Intro"),
        ),
        _scored(2, "beta content", Score.cosine(0.5), document_id="doc-b"),
        _scored(3, "gamma content", Score.cosine(0.2)),
    ]

    result = ContextAssembler(store).assemble(chunks, 0.3, 5, ScoreRegime.COSINE)

    assert result.text == (
        "alpha content [page 3, Intro]\n\nbeta content\n\n" + ANSWER_INSTRUCTION
    )
    assert result.chunk_ids == [1, 2]
    assert result.avg_score == pytest.approx(0.7)
    assert result.score_regime is ScoreRegime.COSINE
    assert result.confidence == "medium"
    assert [c.document_title for c in result.citations] == ["Security Handbook", "Unknown Document"]
    assert result.citations[0].page == 3
    assert result.citations[0].section == "Intro"


def test_threshold_is_strict() -> None:
    chunks = [_scored(1, "alpha", Score.cosine(0.3))]

    result = ContextAssembler().assemble(chunks, 0.3, 5, ScoreRegime.COSINE)

    assert result.is_empty
    assert result.text == ""
    assert result.citations == []


def test_fused_assembly_truncates_without_threshold() -> None:
    chunks = [
        _scored(1, "alpha", Score.fused(0.016)),
        _scored(2, "beta", Score.fused(0.012)),
        _scored(3, "gamma", Score.fused(0.008)),
    ]

    result = ContextAssembler().assemble(chunks, 0.3, 2, ScoreRegime.FUSED)

    assert result.chunk_ids == [1, 2]
    assert result.confidence is None


def test_stored_metadata_used_when_chunk_has_none() -> None:
    store = InMemoryDocumentStore()
    store.add_chunk_metadata(1, '{"pageNumber": 7, "section": "Appendix"}')

    result = ContextAssembler(store).assemble(
        [_scored(1, "alpha", Score.cosine(0.8))], 0.3, 5, ScoreRegime.COSINE
    )

    assert result.text.startswith("alpha [page 7, Appendix]\n\n")
    assert result.citations[0].page == 7


def test_citation_excerpt_is_truncated() -> None:
    content = "x" * 150

    result = ContextAssembler().assemble(
        [_scored(1, content, Score.cosine(0.8))], 0.3, 5, ScoreRegime.COSINE
    )

    assert result.citations[0].excerpt == "x" * 100 + "..."


def test_mismatched_regime_is_rejected() -> None:
    chunks = [_scored(1, "alpha", Score.fused(0.016))]

    with pytest.raises(ScoreRegimeMismatchError):
        ContextAssembler().assemble(chunks, 0.3, 5, ScoreRegime.COSINE)


def test_retrieval_confidence_grades() -> None:
    high = [_scored(i, "x", Score.cosine(v)) for i, v in enumerate([0.9, 0.85, 0.8])]
    low = [_scored(i, "x", Score.cosine(v)) for i, v in enumerate([0.2, 0.1])]

    assert retrieval_confidence(high) == "high"
    assert retrieval_confidence(low) == "low"
    assert retrieval_confidence([]) == "low"
