"""Provider interface for the external language and embedding services.

The search core never talks to a model directly: spell checking, the intent
fallback and query embeddings go through a ``BaseLLMProvider`` wrapped by
``LLMGateway``. Provider failures are ``UpstreamUnavailableError`` subclasses,
so callers that only know the search error hierarchy can still catch them.
"""

import asyncio
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, TypeVar

import structlog

from product_search.errors import UpstreamUnavailableError

logger = structlog.get_logger()

T = TypeVar("T")


class LLMProviderStatus(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


@dataclass
class GenerationConfig:
    """Sampling options for a completion."""
    temperature: float = 0.0
    max_tokens: int | None = None
    stop_sequences: list[str] = field(default_factory=list)
    json_mode: bool = False

    @classmethod
    def structured(cls, max_tokens: int | None = None) -> "GenerationConfig":
        """Deterministic settings for prompts that must answer in JSON."""
        return cls(temperature=0.0, max_tokens=max_tokens, json_mode=True)


@dataclass
class Message:
    role: str  # "system", "user", "assistant"
    content: str


def as_chat_messages(prompt: str | list[Message]) -> list[dict[str, str]]:
    """A bare string is sent as a single user turn."""
    if isinstance(prompt, str):
        return [{"role": "user", "content": prompt}]
    return [{"role": m.role, "content": m.content} for m in prompt]


@dataclass
class GenerationResult:
    content: str
    model: str
    provider: str
    finish_reason: str | None = None
    prompt_tokens: int = 0
    completion_tokens: int = 0
    latency_ms: float = 0.0


@dataclass
class EmbeddingResult:
    """One vector per input text, in input order."""
    embeddings: list[list[float]]
    model: str
    provider: str
    latency_ms: float = 0.0

    @property
    def dimensions(self) -> int:
        return len(self.embeddings[0]) if self.embeddings else 0

    def first(self) -> list[float]:
        """Return the first vector, rejecting empty or non-finite output."""
        if not self.embeddings or not self.embeddings[0]:
            raise LLMProviderError("empty embedding", self.provider)
        vector = self.embeddings[0]
        if not all(math.isfinite(v) for v in vector):
            raise LLMProviderError("non-finite embedding", self.provider)
        return vector


class LLMProviderError(UpstreamUnavailableError):
    """A provider call failed. ``retryable`` marks transient failures."""

    def __init__(self, message: str, provider: str, retryable: bool = False):
        super().__init__(provider, message, {"retryable": retryable})
        self.provider = provider
        self.retryable = retryable


class LLMConnectionError(LLMProviderError):
    def __init__(self, message: str, provider: str):
        super().__init__(message, provider, retryable=True)


class LLMRateLimitError(LLMProviderError):
    def __init__(self, message: str, provider: str, retry_after: float | None = None):
        super().__init__(message, provider, retryable=True)
        self.retry_after = retry_after


class LLMModelNotFoundError(LLMProviderError):
    def __init__(self, message: str, provider: str, model: str):
        super().__init__(message, provider, retryable=False)
        self.model = model


def backoff_delay(attempt: int, base_delay: float, retry_after: float | None = None) -> float:
    """Exponential delay for a zero-based attempt, never shorter than ``retry_after``."""
    delay = base_delay * (2 ** attempt)
    if retry_after:
        delay = max(delay, retry_after)
    return delay


class BaseLLMProvider(ABC):
    """Text generation and embedding backend."""

    def __init__(
        self,
        name: str,
        base_url: str | None = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 0.5,
    ):
        """Initialize the provider.

        Args:
            name: Provider name, used in logs and as the failing service name
            base_url: Base URL for API calls
            timeout: Per-request timeout in seconds
            max_retries: Attempts for retryable errors
            retry_delay: Base delay of the exponential backoff
        """
        self.name = name
        self.base_url = base_url
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay

        self._status = LLMProviderStatus.DISCONNECTED
        self._last_error: str | None = None

    @property
    def status(self) -> LLMProviderStatus:
        return self._status

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection; raises LLMConnectionError."""

    @abstractmethod
    async def disconnect(self) -> None:
        ...

    @abstractmethod
    async def health_check(self) -> dict[str, Any]:
        """Return status, latency and provider-specific details."""

    @abstractmethod
    async def generate(
        self,
        prompt: str | list[Message],
        model: str,
        config: GenerationConfig | None = None,
    ) -> GenerationResult:
        ...

    @abstractmethod
    def generate_stream(
        self,
        prompt: str | list[Message],
        model: str,
        config: GenerationConfig | None = None,
    ) -> AsyncIterator[str]:
        """Yield text chunks in arrival order."""

    @abstractmethod
    async def embed(self, texts: list[str], model: str) -> EmbeddingResult:
        ...

    async def _with_retries(self, func: Callable[[], Awaitable[T]]) -> T:
        """Run ``func`` until it succeeds, fails permanently or attempts run out."""
        attempt = 0
        while True:
            try:
                return await func()
            except LLMProviderError as e:
                attempt += 1
                if not e.retryable or attempt >= self.max_retries:
                    self._last_error = str(e)
                    raise

                delay = backoff_delay(
                    attempt - 1,
                    self.retry_delay,
                    getattr(e, "retry_after", None),
                )
                logger.warning(
                    "llm_provider_retry",
                    provider=self.name,
                    attempt=attempt,
                    max_retries=self.max_retries,
                    delay=delay,
                    error=e.message,
                )
                await asyncio.sleep(delay)
