"""Pattern-based query classification, reformulation and decomposition.

Everything here is pure string processing: no I/O, no model calls.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass

from rag_fusion.types import ConversationTurn, QueryType

# Tested in this order; the first match wins.
_CLASS_PATTERNS: tuple[tuple[QueryType, re.Pattern[str]], ...] = (
    (QueryType.FACTUAL, re.compile(r"^(who|what|when|where|which|how many|how much)\s")),
    (
        QueryType.COMPARATIVE,
        re.compile(r"\b(compare|difference|versus|vs|better|worse|contrast)\b"),
    ),
    (
        QueryType.SUMMARY,
        re.compile(r"\b(summari[sz]e|summary|overview|explain|describe)\b"),
    ),
    (
        QueryType.PROCEDURAL,
        re.compile(r"\b(how to|steps|procedure|process|guide|tutorial)\b"),
    ),
)

_FACTUAL_PREFIX = re.compile(r"^(what|who|where|when|which)\s+(is|are|was|were)\s+", re.I)
_COMPARATIVE_SPLIT = re.compile(r"\b(?:vs|versus|and|or)\b", re.I)
_COMPARATIVE_LEAD = re.compile(
    r"^(?:compare|contrast|(?:the\s+)?differences?\s+between)\s+", re.I
)
_SUMMARY_MARKERS = re.compile(r"\b(summari[sz]e|summary|overview|explain|describe)\b", re.I)
_PROCEDURAL_MARKERS = re.compile(r"\b(how to|steps to|procedure for)\b", re.I)

_DECOMPOSE_COMPARATIVE = re.compile(r"\b(vs|versus|compare|difference|between)\b", re.I)
_DECOMPOSE_COMPARATIVE_SPLIT = re.compile(r"\b(?:vs|versus|and|or|between)\b", re.I)
_DECOMPOSE_CONJUNCTION = re.compile(r"\band\b|\bor\b", re.I)
_DECOMPOSE_PROCEDURAL = re.compile(r"\bhow (?:do|to|can)\b", re.I)
_PROCEDURAL_ACTION = re.compile(r"\bhow (?:do|to|can) (?:I |we )?(.+?)(?:\?|$)", re.I)

_PROPER_NOUN = re.compile(r"\b[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*\b")
_TECHNICAL_TERM = re.compile(r"\b(?:[A-Z]{2,}|[a-z]+[A-Z][a-z]+)\b")
_ENTITY_STOPLIST = frozenset({"The", "This", "That", "What", "How"})

_TRIM_CHARS = " \t\n?.!,;:"


@dataclass(slots=True)
class ConversationEntity:
    kind: str
    value: str
    frequency: int


def classify(query: str) -> QueryType:
    lowered = query.lower()
    for query_type, pattern in _CLASS_PATTERNS:
        if pattern.search(lowered):
            return query_type
    return QueryType.EXPLORATORY


def generate_variations(
    query: str, query_type: QueryType, *, max_variations: int = 3
) -> list[str]:
    """Return reformulations of `query`, the original always first."""

    variations = [query]

    if query_type is QueryType.FACTUAL:
        variations.append(_FACTUAL_PREFIX.sub("", query, count=1))
    elif query_type is QueryType.COMPARATIVE:
        parts = _COMPARATIVE_SPLIT.split(query)
        if len(parts) > 1:
            for part in parts:
                cleaned = _COMPARATIVE_LEAD.sub("", part.strip(_TRIM_CHARS)).strip(_TRIM_CHARS)
                if len(cleaned) > 10:
                    variations.append(cleaned)
    elif query_type is QueryType.SUMMARY:
        variations.append(_collapse_spaces(_SUMMARY_MARKERS.sub("", query)))
    elif query_type is QueryType.PROCEDURAL:
        variations.append(_collapse_spaces(_PROCEDURAL_MARKERS.sub("", query)))

    unique = [v for v in _dedupe(variations) if len(v) > 5]
    return unique[:max_variations]


def decompose(query: str, *, max_parts: int = 3) -> list[str]:
    """Split a compound question into simpler sub-questions.

    Comparative fragments are kept above 10 characters, conjunctive ones above
    15. Returns `[query]` when no trigger matches.
    """

    queries = [query]

    if _DECOMPOSE_COMPARATIVE.search(query):
        for part in _DECOMPOSE_COMPARATIVE_SPLIT.split(query):
            cleaned = part.strip()
            if len(cleaned) > 10:
                queries.append(cleaned)

    if _DECOMPOSE_CONJUNCTION.search(query):
        parts = _DECOMPOSE_CONJUNCTION.split(query)
        if len(parts) <= 3:
            for part in parts:
                cleaned = part.strip()
                if len(cleaned) > 15:
                    queries.append(cleaned)

    if _DECOMPOSE_PROCEDURAL.search(query):
        match = _PROCEDURAL_ACTION.search(query)
        if match:
            queries.append(match.group(1).strip())

    return _dedupe(queries)[:max_parts]


def significant_terms(text: str) -> set[str]:
    """Lowercase word tokens longer than three characters."""
    return {term for term in re.split(r"\W+", text.lower()) if len(term) > 3}


def word_count(text: str) -> int:
    return len(text.split())


def extract_entities(
    turns: Sequence[ConversationTurn], *, limit: int = 10
) -> list[ConversationEntity]:
    """Collect proper nouns and technical terms ranked by frequency."""

    entities: dict[str, ConversationEntity] = {}
    text = " ".join(turn.content for turn in turns)

    for noun in _PROPER_NOUN.findall(text):
        if len(noun) <= 2 or noun in _ENTITY_STOPLIST:
            continue
        _count(entities, noun, "concept")

    for term in _TECHNICAL_TERM.findall(text):
        _count(entities, term, "technology")

    ranked = sorted(entities.values(), key=lambda entity: entity.frequency, reverse=True)
    return ranked[:limit]


def _count(entities: dict[str, ConversationEntity], value: str, kind: str) -> None:
    key = value.lower()
    existing = entities.get(key)
    if existing is None:
        entities[key] = ConversationEntity(kind=kind, value=value, frequency=1)
    else:
        existing.frequency += 1


def _dedupe(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


def _collapse_spaces(text: str) -> str:
    return " ".join(text.split())
