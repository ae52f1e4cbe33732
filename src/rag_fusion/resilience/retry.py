"""Retry combinator for provider calls."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from rag_fusion.errors import ProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    *,
    max_attempts: int,
    backoff_seconds: float,
    retry_on: tuple[type[BaseException], ...] = (ProviderError,),
) -> T:
    """Await `fn` until it succeeds or `max_attempts` calls have failed.

    Waits grow linearly: `backoff_seconds`, `2 * backoff_seconds`, ... The last
    exception is re-raised unchanged.
    """

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_incrementing(start=backoff_seconds, increment=backoff_seconds),
        retry=retry_if_exception_type(retry_on),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            return await fn()
    raise AssertionError("unreachable")  # pragma: no cover
