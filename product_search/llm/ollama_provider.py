"""Ollama provider backing spell checking, the intent fallback and embeddings.

Talks to ``/api/chat`` (plain and NDJSON streaming), ``/api/embed`` (batched)
and ``/api/tags`` (connection check and health).
"""

import json
import time
from typing import Any, AsyncIterator

import httpx
import structlog

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
    as_chat_messages,
)

logger = structlog.get_logger()


class OllamaProvider(BaseLLMProvider):

    DEFAULT_BASE_URL = "http://localhost:11434"

    def __init__(
        self,
        name: str = "ollama",
        base_url: str | None = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 0.5,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(
            name=name,
            base_url=base_url or self.DEFAULT_BASE_URL,
            timeout=timeout,
            max_retries=max_retries,
            retry_delay=retry_delay,
        )
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def connected(self) -> bool:
        return self._client is not None and not self._client.is_closed

    async def connect(self) -> None:
        if self.connected:
            return

        client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout, connect=5.0),
            transport=self._transport,
        )
        try:
            response = await client.get("/api/tags")
        except httpx.HTTPError as e:
            await client.aclose()
            self._mark_error(str(e))
            raise LLMConnectionError(f"cannot reach {self.base_url}: {e}", self.name) from e

        if response.status_code != 200:
            await client.aclose()
            self._mark_error(f"HTTP {response.status_code}")
            raise LLMConnectionError(f"tags check returned HTTP {response.status_code}", self.name)

        self._client = client
        self._status = LLMProviderStatus.CONNECTED
        logger.info("ollama_provider_connected", provider=self.name, base_url=self.base_url)

    async def disconnect(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
            self._status = LLMProviderStatus.DISCONNECTED
            logger.info("ollama_provider_disconnected", provider=self.name)

    async def health_check(self) -> dict[str, Any]:
        start_time = time.time()
        report: dict[str, Any] = {"provider": self.name, "base_url": self.base_url}

        try:
            await self.connect()
            data = await self._request("GET", "/api/tags", model="")
        except LLMProviderError as e:
            self._mark_error(e.message)
            report.update(status="unhealthy", error=e.message)
        else:
            self._status = LLMProviderStatus.CONNECTED
            self._last_error = None
            report.update(
                status="healthy",
                models=[m.get("name") for m in data.get("models", [])],
            )

        report["latency_ms"] = (time.time() - start_time) * 1000
        return report

    async def generate(
        self,
        prompt: str | list[Message],
        model: str,
        config: GenerationConfig | None = None,
    ) -> GenerationResult:
        body = self._chat_body(prompt, model, config or GenerationConfig(), stream=False)

        async def _do_generate() -> GenerationResult:
            start_time = time.time()
            data = await self._request("POST", "/api/chat", model=model, body=body)
            try:
                content = data["message"]["content"]
            except (KeyError, TypeError) as e:
                raise LLMProviderError(f"chat response without message content: {e}", self.name) from e

            return GenerationResult(
                content=content,
                model=model,
                provider=self.name,
                finish_reason=data.get("done_reason"),
                prompt_tokens=data.get("prompt_eval_count", 0),
                completion_tokens=data.get("eval_count", 0),
                latency_ms=(time.time() - start_time) * 1000,
            )

        return await self._with_retries(_do_generate)

    async def generate_stream(
        self,
        prompt: str | list[Message],
        model: str,
        config: GenerationConfig | None = None,
    ) -> AsyncIterator[str]:
        """Yield content chunks; undecodable NDJSON lines are skipped."""
        body = self._chat_body(prompt, model, config or GenerationConfig(), stream=True)
        await self.connect()

        try:
            async with self._client.stream("POST", "/api/chat", json=body) as response:
                if response.status_code != 200:
                    error_text = (await response.aread()).decode(errors="replace")
                    self._check_status(response.status_code, model, error_text)

                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError:
                        logger.debug("ollama_stream_line_skipped", provider=self.name)
                        continue
                    chunk = (data.get("message") or {}).get("content")
                    if chunk:
                        yield chunk
                    if data.get("done"):
                        return
        except httpx.TimeoutException as e:
            raise LLMProviderError(f"stream timed out: {e}", self.name, retryable=True) from e
        except httpx.HTTPError as e:
            raise LLMConnectionError(f"stream interrupted: {e}", self.name) from e

    async def embed(self, texts: list[str], model: str) -> EmbeddingResult:
        """Embed all texts in one batched request."""
        if not texts:
            return EmbeddingResult(embeddings=[], model=model, provider=self.name)

        async def _do_embed() -> EmbeddingResult:
            start_time = time.time()
            payload = texts[0] if len(texts) == 1 else texts
            data = await self._request(
                "POST", "/api/embed", model=model, body={"model": model, "input": payload}
            )
            try:
                embeddings = [[float(v) for v in vector] for vector in data["embeddings"]]
            except (KeyError, TypeError, ValueError) as e:
                raise LLMProviderError(f"malformed embedding response: {e}", self.name) from e

            if len(embeddings) != len(texts):
                raise LLMProviderError(
                    f"expected {len(texts)} embeddings, got {len(embeddings)}", self.name
                )

            return EmbeddingResult(
                embeddings=embeddings,
                model=model,
                provider=self.name,
                latency_ms=(time.time() - start_time) * 1000,
            )

        return await self._with_retries(_do_embed)

    def _chat_body(
        self,
        prompt: str | list[Message],
        model: str,
        config: GenerationConfig,
        stream: bool,
    ) -> dict[str, Any]:
        options: dict[str, Any] = {"temperature": config.temperature}
        if config.max_tokens:
            options["num_predict"] = config.max_tokens
        if config.stop_sequences:
            options["stop"] = config.stop_sequences

        body: dict[str, Any] = {
            "model": model,
            "messages": as_chat_messages(prompt),
            "stream": stream,
            "options": options,
        }
        if config.json_mode:
            body["format"] = "json"
        return body

    async def _request(
        self,
        method: str,
        path: str,
        model: str,
        body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Send one request and return its decoded JSON object."""
        await self.connect()
        try:
            response = await self._client.request(method, path, json=body)
        except httpx.TimeoutException as e:
            raise LLMProviderError(f"{path} timed out: {e}", self.name, retryable=True) from e
        except httpx.HTTPError as e:
            raise LLMConnectionError(f"{path} failed: {e}", self.name) from e

        self._check_status(response.status_code, model, response.text)

        try:
            data = response.json()
        except ValueError as e:
            raise LLMProviderError(f"{path} returned invalid JSON", self.name) from e
        if not isinstance(data, dict):
            raise LLMProviderError(f"{path} returned {type(data).__name__}, not an object", self.name)
        return data

    def _check_status(self, status_code: int, model: str, error_text: str) -> None:
        if status_code == 200:
            return
        if status_code == 404:
            raise LLMModelNotFoundError(f"model {model} not found", self.name, model)
        if status_code == 429:
            raise LLMRateLimitError(f"rate limited: {error_text}", self.name)
        raise LLMProviderError(
            f"HTTP {status_code} {error_text}",
            self.name,
            retryable=status_code >= 500,
        )

    def _mark_error(self, error: str) -> None:
        self._status = LLMProviderStatus.ERROR
        self._last_error = error
