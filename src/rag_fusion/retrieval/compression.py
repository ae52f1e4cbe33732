"""Contextual compression: keep only the sentences that talk about the query."""

from __future__ import annotations

import re
from dataclasses import replace

from rag_fusion.retrieval.query_analysis import significant_terms
from rag_fusion.types import ScoredChunk

_SENTENCE_SPLIT = re.compile(r"[.!?]+")


def compress_chunks(
    chunks: list[ScoredChunk],
    query: str,
    *,
    min_sentence_overlap: float = 0.1,
    min_ratio: float = 0.4,
    max_ratio: float = 0.8,
) -> list[ScoredChunk]:
    """Trim each chunk to its query-relevant sentences.

    A chunk is rewritten only when the compressed text keeps between
    `min_ratio` and `max_ratio` of the original length; otherwise it is
    returned untouched. Scores are never changed.
    """

    query_terms = significant_terms(query)
    if not query_terms:
        return list(chunks)

    compressed: list[ScoredChunk] = []
    for item in chunks:
        content = item.chunk.content
        sentences = [s.strip() for s in _SENTENCE_SPLIT.split(content) if s.strip()]
        keep_all = len(sentences) <= 3
        relevant = [
            sentence
            for sentence in sentences
            if keep_all or _overlap(sentence, query_terms) > min_sentence_overlap
        ]
        candidate = ". ".join(relevant)
        ratio = len(candidate) / len(content) if content else 1.0
        if min_ratio < ratio < max_ratio:
            compressed.append(replace(item, chunk=replace(item.chunk, content=candidate + ".")))
        else:
            compressed.append(item)
    return compressed


def _overlap(sentence: str, query_terms: set[str]) -> float:
    terms = re.split(r"\W+", sentence.lower())
    matches = sum(1 for term in terms if term in query_terms)
    return matches / len(query_terms)
