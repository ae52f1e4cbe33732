"""Read-only document metadata lookups used for citation formatting."""

from __future__ import annotations

from typing import Any, Protocol

from rag_fusion.types import ChunkMetadata


class DocumentStore(Protocol):
    """Minimal document metadata contract."""

    def document_title(self, document_id: str) -> str | None:
        """Return the display title of a document."""

    def chunk_metadata(self, chunk_id: int) -> ChunkMetadata | None:
        """Return typed metadata recorded for a chunk."""


class InMemoryDocumentStore:
    """Dictionary-backed store; raw metadata is decoded once on registration."""

    def __init__(self) -> None:
        self._titles: dict[str, str] = {}
        self._chunk_metadata: dict[int, ChunkMetadata] = {}

    def add_document(self, document_id: str, title: str) -> None:
        self._titles[document_id] = title

    def add_chunk_metadata(
        self, chunk_id: int, raw: str | dict[str, Any] | ChunkMetadata | None
    ) -> None:
        metadata = raw if isinstance(raw, ChunkMetadata) else ChunkMetadata.from_raw(raw)
        self._chunk_metadata[chunk_id] = metadata

    def document_title(self, document_id: str) -> str | None:
        return self._titles.get(document_id)

    def chunk_metadata(self, chunk_id: int) -> ChunkMetadata | None:
        return self._chunk_metadata.get(chunk_id)
