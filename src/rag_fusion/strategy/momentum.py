"""Conversation momentum: is the user digging deeper, switching topic, or continuing?"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from rag_fusion.retrieval.query_analysis import extract_entities, word_count
from rag_fusion.types import ConversationTurn

_HOW_OR_WHY = re.compile(r"\b(how|why)\b", re.I)
_EXPLAIN = re.compile(r"\bexplain\b", re.I)
_FOLLOW_UP = re.compile(r"\b(also|additionally|furthermore|moreover|specifically)\b", re.I)
_CAMEL_PREFIX = re.compile(r"^[A-Z][a-z]+[A-Z]")


class Momentum(str, Enum):
    INITIAL = "initial"
    DEEPENING = "deepening"
    SWITCHING = "switching"
    CONTINUING = "continuing"


@dataclass(slots=True, frozen=True)
class MomentumAnalysis:
    momentum: Momentum
    entity_overlap: float
    topic_consistency: float
    depth_indicator: float
    recommended_chunk_limit: int
    use_more_history: bool = False
    reset_context: bool = False


def analyze_momentum(
    message: str, history: Sequence[ConversationTurn]
) -> MomentumAnalysis:
    """Compare the current message with recent turns.

    Entity overlap is the Jaccard similarity between entities of the message
    and of the last six turns. Depth is a capped sum of cheap lexical signals.
    """

    if not history:
        return MomentumAnalysis(
            momentum=Momentum.INITIAL,
            entity_overlap=0.0,
            topic_consistency=0.0,
            depth_indicator=0.0,
            recommended_chunk_limit=5,
        )

    current_entities = extract_entities([ConversationTurn(role="user", content=message)])
    recent_entities = extract_entities(history[-6:])
    current_set = {entity.value.lower() for entity in current_entities}
    recent_set = {entity.value.lower() for entity in recent_entities}
    union = current_set | recent_set
    entity_overlap = len(current_set & recent_set) / len(union) if union else 0.0

    words = word_count(message)
    depth = 0.0
    if words > 15:
        depth += 0.2
    if words > 30:
        depth += 0.1
    if _HOW_OR_WHY.search(message):
        depth += 0.2
    if _EXPLAIN.search(message):
        depth += 0.15
    if any(
        _CAMEL_PREFIX.match(entity.value) or entity.value.upper() == entity.value
        for entity in current_entities
    ):
        depth += 0.2
    if _FOLLOW_UP.search(message):
        depth += 0.15
    depth_indicator = min(1.0, depth)

    topic_consistency = _topic_consistency(history)

    if entity_overlap > 0.7 and depth_indicator > 0.5:
        momentum, limit = Momentum.DEEPENING, 7
    elif entity_overlap < 0.3:
        momentum, limit = Momentum.SWITCHING, 4
    else:
        momentum, limit = Momentum.CONTINUING, 5

    return MomentumAnalysis(
        momentum=momentum,
        entity_overlap=entity_overlap,
        topic_consistency=topic_consistency,
        depth_indicator=depth_indicator,
        recommended_chunk_limit=limit,
        use_more_history=momentum is Momentum.DEEPENING,
        reset_context=momentum is Momentum.SWITCHING,
    )


def build_momentum_query(
    message: str, history: Sequence[ConversationTurn], momentum: Momentum
) -> str:
    """Widen the search query with earlier user turns according to momentum."""

    if momentum is Momentum.SWITCHING:
        return message

    window = 4 if momentum is Momentum.DEEPENING else 2
    previous = [turn.content for turn in history if turn.role == "user"][-window:]
    if not previous:
        return message
    return f"{message} {' '.join(previous)}"


def _topic_consistency(history: Sequence[ConversationTurn]) -> float:
    user_turns = [turn for turn in history if turn.role == "user"][-3:]
    if len(user_turns) < 2:
        return 0.0
    entities = extract_entities(user_turns)
    if not entities:
        return 0.0
    repeated = sum(1 for entity in entities if entity.frequency > 1)
    return repeated / len(entities)
