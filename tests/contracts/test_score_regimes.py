import pytest

from rag_fusion.context.assembler import ANSWER_INSTRUCTION, ContextAssembler
from rag_fusion.errors import ScoreRegimeMismatchError
from rag_fusion.types import Chunk, Score, ScoredChunk, ScoreRegime

RRF_VALUES = [0.016, 0.012, 0.008]


def _chunks(make_score) -> list[ScoredChunk]:
    return [
        ScoredChunk(
            chunk=Chunk(
                chunk_id=i,
                document_id="doc-a",
                content=f"chunk {i}",
                index_in_document=i * 10,
            ),
            score=make_score(value),
        )
        for i, value in enumerate(RRF_VALUES, start=1)
    ]


def test_fused_scores_are_not_dropped_by_similarity_threshold() -> None:
    assembler = ContextAssembler()

    as_cosine = assembler.assemble(_chunks(Score.cosine), 0.3, 5, ScoreRegime.COSINE)
    as_fused = assembler.assemble(_chunks(Score.fused), 0.3, 5, ScoreRegime.FUSED)

    assert as_cosine.chunk_ids == []
    assert as_fused.chunk_ids == [1, 2, 3]


def test_scores_from_different_regimes_do_not_compare() -> None:
    with pytest.raises(ScoreRegimeMismatchError):
        _ = Score.cosine(0.5) < Score.fused(0.01)
    with pytest.raises(ScoreRegimeMismatchError):
        ContextAssembler().assemble(_chunks(Score.fused), 0.3, 5, ScoreRegime.BLENDED)


def test_instruction_asks_for_direct_answers() -> None:
    assert ANSWER_INSTRUCTION.startswith("Use the above information to answer")
    assert "answer the question directly" in ANSWER_INSTRUCTION
