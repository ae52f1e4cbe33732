"""Shared domain models."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from functools import total_ordering
from typing import Any

from rag_fusion.errors import ScoreRegimeMismatchError


class ScoreRegime(str, Enum):
    """Scale a retrieval score belongs to."""

    COSINE = "cosine"
    BLENDED = "blended"
    FUSED = "fused"


class QueryType(str, Enum):
    FACTUAL = "factual"
    COMPARATIVE = "comparative"
    SUMMARY = "summary"
    PROCEDURAL = "procedural"
    EXPLORATORY = "exploratory"


@dataclass(slots=True, frozen=True)
class ChunkMetadata:
    """Typed citation metadata for a chunk."""

    page: int | None = None
    section: str | None = None
    hierarchy: tuple[str, ...] | None = None

    @classmethod
    def from_raw(cls, raw: str | dict[str, Any] | None) -> "ChunkMetadata":
        """Decode a loosely-typed metadata blob (JSON text or dict)."""
        if raw is None or raw == "":
            return cls()
        if isinstance(raw, str):
            raw = json.loads(raw)
        if not isinstance(raw, dict):
            raise ValueError(f"Unsupported chunk metadata payload: {type(raw).__name__}")

        page = raw.get("pageNumber", raw.get("page"))
        hierarchy = raw.get("hierarchy")
        return cls(
            page=int(page) if page else None,
            section=str(raw["section"]) if raw.get("section") else None,
            hierarchy=tuple(str(part) for part in hierarchy) if hierarchy else None,
        )

    def is_empty(self) -> bool:
        return self.page is None and self.section is None and not self.hierarchy


@dataclass(slots=True, frozen=True)
class Chunk:
    """Immutable unit of retrievable document text."""

    chunk_id: int
    document_id: str
    content: str
    index_in_document: int
    metadata: ChunkMetadata = field(default_factory=ChunkMetadata)
    embedding: tuple[float, ...] = ()


@total_ordering
@dataclass(slots=True, frozen=True)
class Score:
    """A numeric score tagged with its regime.

    Ordering is only defined between scores of the same regime; comparing a
    cosine similarity with an RRF aggregate raises `ScoreRegimeMismatchError`.
    """

    value: float
    regime: ScoreRegime

    @classmethod
    def cosine(cls, value: float) -> "Score":
        return cls(value=value, regime=ScoreRegime.COSINE)

    @classmethod
    def blended(cls, value: float) -> "Score":
        return cls(value=value, regime=ScoreRegime.BLENDED)

    @classmethod
    def fused(cls, value: float) -> "Score":
        return cls(value=value, regime=ScoreRegime.FUSED)

    def with_value(self, value: float) -> "Score":
        return Score(value=value, regime=self.regime)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Score):
            return NotImplemented
        if other.regime is not self.regime:
            raise ScoreRegimeMismatchError(
                f"Cannot compare {self.regime.value} score with {other.regime.value} score"
            )
        return self.value < other.value


@dataclass(slots=True, frozen=True)
class ScoredChunk:
    """A chunk annotated with a regime-tagged score."""

    chunk: Chunk
    score: Score
    merged_chunk_ids: tuple[int, ...] = ()

    @property
    def chunk_id(self) -> int:
        return self.chunk.chunk_id

    @property
    def value(self) -> float:
        return self.score.value

    @property
    def regime(self) -> ScoreRegime:
        return self.score.regime


# Ordered best-first output of one strategy invocation.
RankedList = list[ScoredChunk]
# RankedList whose scores are RRF aggregates, unique by chunk id.
FusionResult = list[ScoredChunk]


@dataclass(slots=True, frozen=True)
class ConversationTurn:
    role: str
    content: str


@dataclass(slots=True, frozen=True)
class StrategyDecision:
    use_rich_path: bool
    reason: str
    confidence: float


@dataclass(slots=True, frozen=True)
class Citation:
    chunk_id: int
    document_id: str
    document_title: str
    page: int | None
    section: str | None
    score: float
    excerpt: str


@dataclass(slots=True)
class ContextResult:
    """Final context blob plus citation and retrieval metadata."""

    text: str
    citations: list[Citation] = field(default_factory=list)
    avg_score: float = 0.0
    score_regime: ScoreRegime | None = None
    chunk_ids: list[int] = field(default_factory=list)
    confidence: str | None = None
    query_type: QueryType | None = None
    decision: StrategyDecision | None = None
    elapsed_ms: float = 0.0
    degraded: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.text
