"""Error taxonomy for the retrieval-fusion engine."""

from __future__ import annotations

import math


class RagFusionError(Exception):
    """Base class for all library errors."""


class ProviderError(RagFusionError):
    """An embedding, completion or vector-index call failed or timed out."""


class EmptyInputError(RagFusionError):
    """The query is blank or no documents were selected."""


class ScoreRegimeMismatchError(RagFusionError):
    """Scores from different regimes were compared or filtered together."""


class CircuitOpenError(RagFusionError):
    """The circuit protecting a dependency is open; the call was not attempted."""

    def __init__(self, name: str, retry_after: float) -> None:
        self.name = name
        self.retry_after = max(0.0, retry_after)
        super().__init__(
            f'Circuit breaker "{name}" is open. Retry in {math.ceil(self.retry_after)} seconds.'
        )
