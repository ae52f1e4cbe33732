"""Duplicate removal and merging of adjacent same-document chunks."""

from __future__ import annotations

from dataclasses import replace

from rag_fusion.types import ScoredChunk


def deduplicate(chunks: list[ScoredChunk], merge_consecutive: bool = True) -> list[ScoredChunk]:
    """Drop repeated chunk ids and merge neighbouring chunks of one document.

    Only the first occurrence of a chunk id is kept. With `merge_consecutive`,
    a chunk followed by a chunk of the same document whose index differs by
    one is merged with it: contents joined in document order, score is the
    max of the two. A merged chunk never merges again, so three consecutive
    chunks yield one merged pair plus a single, and running the function on
    its own output changes nothing.
    """

    seen: set[int] = set()
    unique: list[ScoredChunk] = []
    for item in chunks:
        if item.chunk_id in seen:
            continue
        seen.add(item.chunk_id)
        unique.append(item)

    if not merge_consecutive:
        return unique

    result: list[ScoredChunk] = []
    i = 0
    while i < len(unique):
        current = unique[i]
        if i + 1 < len(unique) and _mergeable(current, unique[i + 1]):
            result.append(_merge(current, unique[i + 1]))
            i += 2
            continue
        result.append(current)
        i += 1
    return result


def _mergeable(a: ScoredChunk, b: ScoredChunk) -> bool:
    if a.merged_chunk_ids or b.merged_chunk_ids:
        return False
    return (
        a.chunk.document_id == b.chunk.document_id
        and abs(a.chunk.index_in_document - b.chunk.index_in_document) == 1
    )


def _merge(a: ScoredChunk, b: ScoredChunk) -> ScoredChunk:
    first, second = (a, b) if a.chunk.index_in_document < b.chunk.index_in_document else (b, a)
    content = f"{first.chunk.content}\n\n{second.chunk.content}"
    return ScoredChunk(
        chunk=replace(a.chunk, content=content),
        score=max(a.score, b.score),
        merged_chunk_ids=(first.chunk_id, second.chunk_id),
    )
