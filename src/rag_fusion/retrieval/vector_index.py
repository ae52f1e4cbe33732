"""Vector index interfaces and concrete adapters."""

from __future__ import annotations

import asyncio
from collections.abc import Collection
from dataclasses import dataclass, replace
from math import sqrt
from typing import Any, Protocol

from rag_fusion.types import Chunk, ChunkMetadata, RankedList, Score, ScoredChunk


class VectorIndex(Protocol):
    """Nearest-neighbour search over chunk embeddings.

    Results are sorted by descending cosine similarity with ties broken by
    ascending chunk id, and restricted to `document_ids`. An empty id set
    yields an empty list.
    """

    async def search(
        self,
        query_embedding: list[float],
        document_ids: Collection[str],
        limit: int,
    ) -> RankedList:
        """Search by cosine similarity within the given documents."""


@dataclass(slots=True)
class _StoredVector:
    chunk: Chunk
    embedding: list[float]


class InMemoryVectorIndex:
    """Deterministic vector index used for tests and local prototyping."""

    def __init__(self) -> None:
        self._store: dict[int, _StoredVector] = {}

    def upsert(self, chunks: list[Chunk], embeddings: list[list[float]]) -> None:
        if len(chunks) != len(embeddings):
            raise ValueError("chunks and embeddings must have the same length")
        for chunk, embedding in zip(chunks, embeddings, strict=True):
            self._store[chunk.chunk_id] = _StoredVector(
                chunk=replace(chunk, embedding=tuple(embedding)), embedding=embedding
            )

    def __len__(self) -> int:
        return len(self._store)

    async def search(
        self,
        query_embedding: list[float],
        document_ids: Collection[str],
        limit: int,
    ) -> RankedList:
        if not document_ids or limit <= 0:
            return []
        allowed = set(document_ids)
        scored = [
            (_cosine_similarity(query_embedding, record.embedding), record.chunk)
            for record in self._store.values()
            if record.chunk.document_id in allowed
        ]
        scored.sort(key=lambda item: (-item[0], item[1].chunk_id))
        return [
            ScoredChunk(chunk=chunk, score=Score.cosine(similarity))
            for similarity, chunk in scored[:limit]
        ]


class FaissVectorIndexAdapter:
    """FAISS adapter via LangChain community integration.

    Vectors are L2-normalised and searched by inner product, so the returned
    score is cosine similarity. This adapter keeps the same contract as
    `InMemoryVectorIndex` so it can be swapped in production.
    """

    def __init__(self, *, fetch_k_multiplier: int = 4) -> None:
        try:
            from langchain_community.vectorstores import FAISS
            from langchain_community.vectorstores.utils import DistanceStrategy
            from langchain_core.embeddings import Embeddings
        except Exception as exc:  # pragma: no cover - import path is environment-dependent
            raise RuntimeError(
                "FAISS dependencies are not available. Install langchain-community/faiss-cpu."
            ) from exc

        class _PrecomputedEmbeddings(Embeddings):
            # Query vectors are always supplied by the caller.
            def embed_documents(self, texts: list[str]) -> list[list[float]]:
                raise NotImplementedError("FaissVectorIndexAdapter requires precomputed vectors")

            def embed_query(self, text: str) -> list[float]:
                raise NotImplementedError("FaissVectorIndexAdapter requires precomputed vectors")

        self._faiss_cls = FAISS
        self._distance_strategy = DistanceStrategy.MAX_INNER_PRODUCT
        self._embeddings = _PrecomputedEmbeddings()
        self._fetch_k_multiplier = fetch_k_multiplier
        self._index: Any | None = None

    def upsert(self, chunks: list[Chunk], embeddings: list[list[float]]) -> None:
        if len(chunks) != len(embeddings):
            raise ValueError("chunks and embeddings must have the same length")
        text_embeddings = list(zip([chunk.content for chunk in chunks], embeddings, strict=True))
        metadatas = [_chunk_to_metadata(chunk) for chunk in chunks]
        ids = [str(chunk.chunk_id) for chunk in chunks]

        if self._index is None:
            self._index = self._faiss_cls.from_embeddings(
                text_embeddings=text_embeddings,
                embedding=self._embeddings,
                metadatas=metadatas,
                ids=ids,
                distance_strategy=self._distance_strategy,
                normalize_L2=True,
            )
            return

        self._index.add_embeddings(text_embeddings=text_embeddings, metadatas=metadatas, ids=ids)

    async def search(
        self,
        query_embedding: list[float],
        document_ids: Collection[str],
        limit: int,
    ) -> RankedList:
        if self._index is None or not document_ids or limit <= 0:
            return []
        allowed = set(document_ids)
        docs_and_scores = await asyncio.to_thread(
            self._index.similarity_search_with_score_by_vector,
            list(query_embedding),
            k=limit,
            filter=lambda metadata: metadata.get("document_id") in allowed,
            fetch_k=limit * self._fetch_k_multiplier,
        )
        results = [
            ScoredChunk(
                chunk=_metadata_to_chunk(doc.page_content, doc.metadata),
                score=Score.cosine(float(score)),
            )
            for doc, score in docs_and_scores
        ]
        results.sort(key=lambda item: (-item.value, item.chunk_id))
        return results[:limit]


def _chunk_to_metadata(chunk: Chunk) -> dict[str, Any]:
    return {
        "chunk_id": chunk.chunk_id,
        "document_id": chunk.document_id,
        "index_in_document": chunk.index_in_document,
        "page": chunk.metadata.page,
        "section": chunk.metadata.section,
        "hierarchy": list(chunk.metadata.hierarchy) if chunk.metadata.hierarchy else None,
    }


def _metadata_to_chunk(content: str, metadata: dict[str, Any]) -> Chunk:
    return Chunk(
        chunk_id=int(metadata["chunk_id"]),
        document_id=str(metadata["document_id"]),
        content=content,
        index_in_document=int(metadata["index_in_document"]),
        metadata=ChunkMetadata.from_raw(metadata),
    )


def _cosine_similarity(a: list[float], b: list[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    numerator = sum(x * y for x, y in zip(a, b, strict=True))
    norm_a = sqrt(sum(x * x for x in a))
    norm_b = sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return numerator / (norm_a * norm_b)
