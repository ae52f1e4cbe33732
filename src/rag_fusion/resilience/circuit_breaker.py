"""Circuit breaker for isolating failing external dependencies."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import TypeVar

from rag_fusion.config import CircuitBreakerConfig
from rag_fusion.errors import CircuitOpenError, ProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


@dataclass(slots=True, frozen=True)
class CircuitBreakerStats:
    state: CircuitState
    failures: int
    successes: int
    total_calls: int
    last_failure: float | None
    next_attempt: float | None
    recent_failures: int


class CircuitBreaker:
    """Failure isolation for one named dependency.

    State machine:
    - CLOSED: calls pass through; `failure_threshold` consecutive failures open
      the circuit.
    - OPEN: calls are rejected with `CircuitOpenError` until `timeout_seconds`
      have elapsed; the next call then moves to HALF_OPEN before executing.
    - HALF_OPEN: a failure re-opens the circuit with a fresh timeout;
      `success_threshold` consecutive successes close it. Trial calls are not
      capped: every call arriving while HALF_OPEN is executed, so concurrent
      callers may run several trials at once.

    Counter updates and transitions happen under one lock per breaker. The
    wrapped call itself runs outside the lock.
    """

    def __init__(
        self,
        name: str,
        config: CircuitBreakerConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._total_calls = 0
        self._last_failure: float | None = None
        self._next_attempt: float | None = None
        self._recent_errors: list[float] = []

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._state

    async def execute(
        self,
        fn: Callable[[], Awaitable[T]],
        *,
        timeout: float | None = None,
    ) -> T:
        """Run `fn` under breaker protection.

        A call exceeding `timeout` counts as a failure and surfaces as
        `ProviderError`.
        """

        self._before_call()
        try:
            if timeout is None:
                result = await fn()
            else:
                result = await asyncio.wait_for(fn(), timeout=timeout)
        except asyncio.TimeoutError as exc:
            self._on_failure()
            raise ProviderError(f"{self.name} call timed out after {timeout}s") from exc
        except asyncio.CancelledError:
            raise
        except Exception:
            self._on_failure()
            raise
        self._on_success()
        return result

    def reset(self) -> None:
        with self._lock:
            self._enter_closed()
            self._last_failure = None
            self._recent_errors = []
        logger.info("Circuit breaker %s manually reset", self.name)

    def stats(self) -> CircuitBreakerStats:
        with self._lock:
            now = self._clock()
            cutoff = now - self.config.monitoring_period_seconds
            return CircuitBreakerStats(
                state=self._state,
                failures=self._failures,
                successes=self._successes,
                total_calls=self._total_calls,
                last_failure=self._last_failure,
                next_attempt=self._next_attempt,
                recent_failures=sum(1 for ts in self._recent_errors if ts > cutoff),
            )

    def _before_call(self) -> None:
        with self._lock:
            if self._state is CircuitState.OPEN:
                now = self._clock()
                if self._next_attempt is not None and now >= self._next_attempt:
                    self._state = CircuitState.HALF_OPEN
                    self._successes = 0
                    logger.info("Circuit breaker %s attempting half-open state", self.name)
                else:
                    retry_after = (self._next_attempt or now) - now
                    raise CircuitOpenError(self.name, retry_after)
            self._total_calls += 1

    def _on_success(self) -> None:
        with self._lock:
            self._failures = 0
            if self._state is CircuitState.HALF_OPEN:
                self._successes += 1
                logger.info(
                    "Circuit breaker %s half-open success %d/%d",
                    self.name,
                    self._successes,
                    self.config.success_threshold,
                )
                if self._successes >= self.config.success_threshold:
                    self._enter_closed()
                    logger.info("Circuit breaker %s closed, service recovered", self.name)

    def _on_failure(self) -> None:
        with self._lock:
            now = self._clock()
            self._failures += 1
            self._last_failure = now
            cutoff = now - self.config.monitoring_period_seconds
            self._recent_errors = [ts for ts in self._recent_errors if ts > cutoff]
            self._recent_errors.append(now)

            if self._state is CircuitState.HALF_OPEN:
                self._state = CircuitState.OPEN
                self._successes = 0
                self._next_attempt = now + self.config.timeout_seconds
                logger.error(
                    "Circuit breaker %s failed in half-open state, reopening", self.name
                )
            elif (
                self._state is CircuitState.CLOSED
                and self._failures >= self.config.failure_threshold
            ):
                self._state = CircuitState.OPEN
                self._next_attempt = now + self.config.timeout_seconds
                logger.error(
                    "Circuit breaker %s opening after %d failures", self.name, self._failures
                )

    def _enter_closed(self) -> None:
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._total_calls = 0
        self._next_attempt = None


class CircuitBreakerRegistry:
    """Breakers keyed by dependency name, created lazily on first lookup."""

    def __init__(
        self,
        default_config: CircuitBreakerConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._default_config = default_config or CircuitBreakerConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._breakers: dict[str, CircuitBreaker] = {}

    def get(self, name: str, config: CircuitBreakerConfig | None = None) -> CircuitBreaker:
        with self._lock:
            breaker = self._breakers.get(name)
            if breaker is None:
                breaker = CircuitBreaker(
                    name, config or self._default_config, clock=self._clock
                )
                self._breakers[name] = breaker
            return breaker

    def reset(self, name: str) -> None:
        with self._lock:
            breaker = self._breakers.get(name)
        if breaker is not None:
            breaker.reset()

    def all_stats(self) -> dict[str, CircuitBreakerStats]:
        with self._lock:
            breakers = dict(self._breakers)
        return {name: breaker.stats() for name, breaker in breakers.items()}
