import asyncio

from rag_fusion.config import CircuitBreakerConfig, HydeConfig
from rag_fusion.providers.completion import CompletionProvider
from rag_fusion.resilience.circuit_breaker import CircuitBreaker, CircuitState
from rag_fusion.retrieval.hyde import HypotheticalAnswerGenerator
from rag_fusion.types import ConversationTurn


class FakeCompletion(CompletionProvider):
    def __init__(self, answer: str = "", fail: bool = False) -> None:
        self.answer = answer
        self.fail = fail
        self.prompts: list[str] = []

    async def complete(self, prompt: str, *, temperature: float, max_tokens: int) -> str:
        self.prompts.append(prompt)
        if self.fail:
            raise RuntimeError("completion backend down")
        return self.answer


def test_without_provider_returns_query() -> None:
    generator = HypotheticalAnswerGenerator(None, CircuitBreaker("completion"))

    assert generator.available is False
    assert asyncio.run(generator.generate("what is hyde")) == "what is hyde"


def test_generates_answer_with_recent_history() -> None:
    provider = FakeCompletion("  HyDE embeds a hypothetical answer.  ")
    generator = HypotheticalAnswerGenerator(
        provider, CircuitBreaker("completion"), HydeConfig(history_turns=1)
    )
    history = [
        ConversationTurn(role="user", content="older question"),
        ConversationTurn(role="assistant", content="latest answer"),
    ]

    answer = asyncio.run(generator.generate("what is hyde", history))

    assert answer == "HyDE embeds a hypothetical answer."
    assert 'Given the question: "what is hyde"' in provider.prompts[0]
    assert "assistant: latest answer" in provider.prompts[0]
    assert "older question" not in provider.prompts[0]


def test_failure_and_empty_answer_fall_back_to_query() -> None:
    breaker = CircuitBreaker("completion")
    failing = HypotheticalAnswerGenerator(FakeCompletion(fail=True), breaker)
    empty = HypotheticalAnswerGenerator(FakeCompletion("   "), CircuitBreaker("completion"))

    assert asyncio.run(failing.generate("what is hyde")) == "what is hyde"
    assert asyncio.run(empty.generate("what is hyde")) == "what is hyde"
    assert breaker.stats().failures == 1


def test_open_circuit_skips_provider() -> None:
    provider = FakeCompletion(fail=True)
    breaker = CircuitBreaker("completion", CircuitBreakerConfig(failure_threshold=1))
    generator = HypotheticalAnswerGenerator(provider, breaker)

    asyncio.run(generator.generate("what is hyde"))
    assert breaker.state is CircuitState.OPEN

    assert asyncio.run(generator.generate("what is hyde")) == "what is hyde"
    assert len(provider.prompts) == 1


def test_disabled_generation_is_unavailable() -> None:
    provider = FakeCompletion("answer")
    generator = HypotheticalAnswerGenerator(
        provider, CircuitBreaker("completion"), HydeConfig(enabled=False)
    )

    assert generator.available is False
    assert asyncio.run(generator.generate("what is hyde")) == "what is hyde"
    assert provider.prompts == []
