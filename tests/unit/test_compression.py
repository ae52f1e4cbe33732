from rag_fusion.retrieval.compression import compress_chunks
from rag_fusion.types import Chunk, Score, ScoredChunk

RELEVANT = [
    "Vector search uses embeddings to find similar passages",
    "Vector indexes are rebuilt nightly for search freshness",
]
NOISE = [
    "The cafeteria opens at noon on weekdays",
    "Parking permits are issued by the front desk",
    "Holiday schedules are posted in January",
]


def _scored(content: str) -> ScoredChunk:
    return ScoredChunk(
        chunk=Chunk(chunk_id=1, document_id="doc-a", content=content, index_in_document=0),
        score=Score.fused(0.016),
    )


def test_keeps_only_query_relevant_sentences() -> None:
    sentences = [RELEVANT[0], NOISE[0], RELEVANT[1], NOISE[1], NOISE[2]]
    item = _scored(". ".join(sentences) + ".")

    [compressed] = compress_chunks([item], "vector search")

    assert compressed.chunk.content == f"{RELEVANT[0]}. {RELEVANT[1]}."
    assert compressed.score == item.score


def test_short_chunks_and_termless_queries_are_untouched() -> None:
    short = _scored(". ".join([RELEVANT[0], NOISE[0]]) + ".")
    long = _scored(". ".join(RELEVANT + NOISE) + ".")

    assert compress_chunks([short], "vector search") == [short]
    assert compress_chunks([long], "is it ok") == [long]
