"""
Bounded, fault-tolerant access to an LLM provider.

Every call is limited by a timeout, guarded by a circuit breaker, and
returned as a ProviderResult; provider failures never escape as exceptions.
"""

import asyncio
import time
from enum import Enum
from typing import Any, Awaitable, Callable

import structlog

from product_search.errors import UpstreamUnavailableError
from product_search.llm.base import BaseLLMProvider, GenerationConfig, Message
from product_search.llm.results import ProviderResult
from product_search.llm.streaming import StreamAccumulator
from product_search.llm.text_extractor import extract_json_object

logger = structlog.get_logger()


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Stops calling a provider that keeps failing.

    While closed, consecutive failures are counted; reaching
    ``failure_threshold`` opens the breaker and every call is rejected for
    ``cooldown`` seconds. After that, up to ``trial_calls`` calls are let
    through: if all of them succeed the breaker closes, and any failure
    opens it again.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        cooldown: float = 30.0,
        trial_calls: int = 3,
        clock: Callable[[], float] = time.monotonic,
        name: str = "llm",
    ):
        self.failure_threshold = failure_threshold
        self.cooldown = cooldown
        self.trial_calls = trial_calls
        self.name = name
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at = 0.0
        self._trials_admitted = 0
        self._trials_passed = 0

    @property
    def state(self) -> CircuitState:
        if self._state is CircuitState.OPEN and self._clock() - self._opened_at > self.cooldown:
            self._enter(CircuitState.HALF_OPEN)
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failures

    def can_execute(self) -> bool:
        state = self.state
        if state is CircuitState.CLOSED:
            return True
        if state is CircuitState.OPEN or self._trials_admitted >= self.trial_calls:
            return False
        self._trials_admitted += 1
        return True

    def record_success(self) -> None:
        if self._state is not CircuitState.HALF_OPEN:
            self._failures = 0
            return
        self._trials_passed += 1
        if self._trials_passed >= self.trial_calls:
            self._failures = 0
            self._enter(CircuitState.CLOSED)

    def record_failure(self) -> None:
        self._failures += 1
        if self._state is CircuitState.HALF_OPEN or self._failures >= self.failure_threshold:
            self._opened_at = self._clock()
            self._enter(CircuitState.OPEN)

    def _enter(self, state: CircuitState) -> None:
        self._trials_admitted = 0
        self._trials_passed = 0
        if state is self._state:
            return
        self._state = state
        log = logger.warning if state is CircuitState.OPEN else logger.info
        log("circuit_state_changed", breaker=self.name, state=state.value, failures=self._failures)


class LLMGateway:
    """Timeout- and breaker-guarded facade over a BaseLLMProvider."""

    def __init__(
        self,
        provider: BaseLLMProvider,
        model: str,
        embedding_model: str,
        timeout: float = 5.0,
        circuit_breaker: CircuitBreaker | None = None,
        stream_max_chars: int = 16000,
    ):
        self.provider = provider
        self.model = model
        self.embedding_model = embedding_model
        self.timeout = timeout
        self.circuit_breaker = circuit_breaker or CircuitBreaker(name=provider.name)
        self.stream_max_chars = stream_max_chars

    async def complete(
        self,
        prompt: str | list[Message],
        config: GenerationConfig | None = None,
        stream: bool = False,
    ) -> ProviderResult[str]:
        """Generate text, optionally consuming a streamed response."""
        if stream:
            async def _run() -> str:
                accumulator = StreamAccumulator(
                    self.provider.generate_stream(prompt, self.model, config),
                    max_chars=self.stream_max_chars,
                )
                return (await accumulator).text
        else:
            async def _run() -> str:
                result = await self.provider.generate(prompt, self.model, config)
                return result.content

        return await self._call("complete", _run)

    async def complete_json(
        self,
        prompt: str | list[Message],
        config: GenerationConfig | None = None,
    ) -> ProviderResult[dict[str, Any]]:
        """Generate text and return the JSON object it contains."""
        config = config or GenerationConfig.structured()
        result = await self.complete(prompt, config)
        if not result.success:
            return ProviderResult.fail(result.error or "completion failed")

        data = extract_json_object(result.data or "")
        if data is None:
            logger.warning("llm_json_parse_failed", model=self.model)
            return ProviderResult.fail("response did not contain a JSON object")
        return ProviderResult.ok(data)

    async def embed(self, text: str) -> ProviderResult[list[float]]:
        """Embed a single text."""

        async def _run() -> list[float]:
            result = await self.provider.embed([text], self.embedding_model)
            return result.first()

        return await self._call("embed", _run)

    async def _call(self, operation: str, func: Callable[[], Awaitable[Any]]) -> ProviderResult:
        if not self.circuit_breaker.can_execute():
            logger.debug("llm_call_rejected", operation=operation, state=self.circuit_breaker.state.value)
            return ProviderResult.fail(f"{self.provider.name} circuit open")

        try:
            data = await asyncio.wait_for(func(), timeout=self.timeout)
        except asyncio.TimeoutError:
            self.circuit_breaker.record_failure()
            logger.warning("llm_call_timeout", operation=operation, timeout=self.timeout)
            return ProviderResult.fail(f"{operation} timed out after {self.timeout}s")
        except UpstreamUnavailableError as e:
            self.circuit_breaker.record_failure()
            logger.warning("llm_call_failed", operation=operation, error=str(e))
            return ProviderResult.fail(str(e))

        self.circuit_breaker.record_success()
        return ProviderResult.ok(data)
