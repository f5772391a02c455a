"""External LLM and embedding providers.

Example:
    from product_search.llm import LLMGateway, OllamaProvider

    provider = OllamaProvider(base_url="http://localhost:11434")
    gateway = LLMGateway(provider, model="llama3.1:8b", embedding_model="nomic-embed-text")

    result = await gateway.complete("Correct the spelling: wirless earbud")
    if result.success:
        print(result.data)
"""

from .adapters import LLMEmbedder, LLMIntentFallback, LLMSpellChecker
from .base import (
    BaseLLMProvider,
    EmbeddingResult,
    GenerationConfig,
    GenerationResult,
    LLMConnectionError,
    LLMModelNotFoundError,
    LLMProviderError,
    LLMProviderStatus,
    LLMRateLimitError,
    Message,
    backoff_delay,
)
from .gateway import CircuitBreaker, CircuitState, LLMGateway
from .ollama_provider import OllamaProvider
from .results import ProviderResult
from .streaming import StreamAccumulator, StreamResult

__all__ = [
    # Base classes and types
    "BaseLLMProvider",
    "GenerationConfig",
    "GenerationResult",
    "EmbeddingResult",
    "Message",
    "LLMProviderStatus",
    "backoff_delay",
    # Exceptions
    "LLMProviderError",
    "LLMConnectionError",
    "LLMRateLimitError",
    "LLMModelNotFoundError",
    # Provider implementations
    "OllamaProvider",
    # Gateway and adapters
    "CircuitBreaker",
    "CircuitState",
    "LLMGateway",
    "LLMEmbedder",
    "LLMIntentFallback",
    "LLMSpellChecker",
    "ProviderResult",
    "StreamAccumulator",
    "StreamResult",
]
