"""Completion provider used for hypothetical-answer generation."""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from typing import Any


class CompletionProvider(ABC):
    """Opaque text-completion service."""

    @abstractmethod
    async def complete(self, prompt: str, *, temperature: float, max_tokens: int) -> str:
        """Return the completion text for `prompt`."""


class LangChainCompletionProvider(CompletionProvider):
    """Adapts a LangChain chat model to the completion contract."""

    def __init__(self, llm: Any) -> None:
        self._llm = llm

    async def complete(self, prompt: str, *, temperature: float, max_tokens: int) -> str:
        bound = self._llm.bind(temperature=temperature, max_tokens=max_tokens)
        response = await bound.ainvoke(prompt)
        return str(getattr(response, "content", response))


def create_completion_provider() -> CompletionProvider | None:
    """Return an OpenAI-backed provider, or None when no API key is configured."""

    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        return None

    from langchain_openai import ChatOpenAI

    return LangChainCompletionProvider(
        ChatOpenAI(model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"), temperature=0)
    )
