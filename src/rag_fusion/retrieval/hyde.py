"""Hypothetical Document Embeddings: generate an answer to embed alongside the query."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from rag_fusion.config import HydeConfig
from rag_fusion.errors import CircuitOpenError
from rag_fusion.providers.completion import CompletionProvider
from rag_fusion.resilience.circuit_breaker import CircuitBreaker
from rag_fusion.types import ConversationTurn

logger = logging.getLogger(__name__)

_HYDE_PROMPT = """{history}Given the question: "{query}"

Write a detailed, professional answer to this question as if you had access to comprehensive documentation. Focus on technical accuracy and include specific terminology that would appear in authoritative sources.

Answer (2-3 sentences):"""


class HypotheticalAnswerGenerator:
    """Produces a hypothetical answer text for HyDE retrieval.

    The completion call is not retried. Any failure, an open circuit included,
    falls back to the original query.
    """

    def __init__(
        self,
        provider: CompletionProvider | None,
        breaker: CircuitBreaker,
        config: HydeConfig | None = None,
    ) -> None:
        self.provider = provider
        self.breaker = breaker
        self.config = config or HydeConfig()

    @property
    def available(self) -> bool:
        return self.config.enabled and self.provider is not None

    def build_prompt(self, query: str, history: Sequence[ConversationTurn] = ()) -> str:
        recent = history[-self.config.history_turns :] if self.config.history_turns else ()
        context = "\n".join(f"{turn.role}: {turn.content}" for turn in recent)
        return _HYDE_PROMPT.format(history=f"{context}\n\n" if context else "", query=query)

    async def generate(self, query: str, history: Sequence[ConversationTurn] = ()) -> str:
        provider = self.provider
        if provider is None or not self.config.enabled:
            return query
        prompt = self.build_prompt(query, history)

        try:
            answer = await self.breaker.execute(
                lambda: provider.complete(
                    prompt,
                    temperature=self.config.temperature,
                    max_tokens=self.config.max_tokens,
                ),
                timeout=self.config.timeout_seconds,
            )
        except CircuitOpenError as exc:
            logger.warning(
                "HyDE skipped, circuit %s open (retry in %.0fs); using original query",
                exc.name,
                exc.retry_after,
            )
            return query
        except Exception as exc:
            logger.warning("HyDE generation failed, using original query: %s", exc)
            return query

        answer = answer.strip()
        return answer or query
