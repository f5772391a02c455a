"""Tests for the LLM provider, gateway, streaming and adapters."""

import asyncio
import json

import httpx
import pytest
from conftest import FakeClock

from product_search.errors import UpstreamUnavailableError
from product_search.llm import (
    CircuitBreaker,
    CircuitState,
    LLMEmbedder,
    LLMGateway,
    LLMIntentFallback,
    LLMModelNotFoundError,
    LLMProviderError,
    LLMSpellChecker,
    OllamaProvider,
    ProviderResult,
    StreamAccumulator,
    backoff_delay,
)
from product_search.llm.base import EmbeddingResult
from product_search.llm.text_extractor import (
    extract_choice,
    extract_confidence,
    extract_json_object,
    extract_list_items,
    extract_percentage,
    extract_price,
)
from product_search.models.intent import SearchIntent


def ollama_handler(
    content: str = "ok",
    embedding: list[float] | None = None,
    status_code: int = 200,
    stream_chunks: list[str] | None = None,
    requests: list[httpx.Request] | None = None,
):
    """Build a MockTransport handler imitating the Ollama HTTP API."""

    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)

        if request.url.path == "/api/tags":
            return httpx.Response(200, json={"models": [{"name": "llama3.1:8b"}]})

        if status_code != 200:
            return httpx.Response(status_code, text="upstream error")

        if request.url.path == "/api/chat":
            body = json.loads(request.content)
            if body["stream"]:
                lines = [
                    json.dumps({"message": {"content": chunk}, "done": False})
                    for chunk in stream_chunks or []
                ]
                lines.append(json.dumps({"message": {"content": ""}, "done": True}))
                return httpx.Response(200, content="\n".join(lines).encode())
            return httpx.Response(
                200,
                json={"message": {"role": "assistant", "content": content}, "done": True},
            )

        if request.url.path == "/api/embed":
            return httpx.Response(200, json={"embeddings": [embedding or [0.1, 0.2, 0.3]]})

        return httpx.Response(404)

    return handler


def make_provider(**kwargs) -> OllamaProvider:
    return OllamaProvider(
        transport=httpx.MockTransport(ollama_handler(**kwargs)),
        max_retries=1,
        retry_delay=0,
    )


def make_gateway(**kwargs) -> LLMGateway:
    return LLMGateway(make_provider(**kwargs), model="llama3.1:8b", embedding_model="nomic-embed-text")


class TestOllamaProvider:

    async def test_generate(self):
        provider = make_provider(content="hello")
        result = await provider.generate("hi", "llama3.1:8b")

        assert result.content == "hello"
        assert result.provider == "ollama"

    async def test_generate_stream(self):
        provider = make_provider(stream_chunks=["wire", "less"])
        chunks = [chunk async for chunk in provider.generate_stream("hi", "llama3.1:8b")]
        assert chunks == ["wire", "less"]

    async def test_embed(self):
        provider = make_provider(embedding=[1.0, 2.0])
        result = await provider.embed(["text"], "nomic-embed-text")

        assert result.embeddings == [[1.0, 2.0]]
        assert result.dimensions == 2

    async def test_model_not_found(self):
        provider = make_provider(status_code=404)
        with pytest.raises(LLMModelNotFoundError):
            await provider.generate("hi", "missing-model")

    async def test_server_error_retried(self):
        requests: list[httpx.Request] = []
        provider = OllamaProvider(
            transport=httpx.MockTransport(ollama_handler(status_code=500, requests=requests)),
            max_retries=2,
            retry_delay=0,
        )

        with pytest.raises(LLMProviderError):
            await provider.generate("hi", "llama3.1:8b")
        assert len([r for r in requests if r.url.path == "/api/chat"]) == 2

    async def test_health_check(self):
        health = await make_provider().health_check()

        assert health["status"] == "healthy"
        assert health["models"] == ["llama3.1:8b"]

    async def test_disconnect(self):
        provider = make_provider()
        await provider.connect()
        await provider.disconnect()
        assert provider.status.value == "disconnected"


class TestStreamAccumulator:

    @staticmethod
    async def chunks(*parts, delay: float = 0.0):
        for part in parts:
            if delay:
                await asyncio.sleep(delay)
            yield part

    async def test_accumulates_in_order(self):
        result = await StreamAccumulator(self.chunks("a", "b", "", "c"))

        assert result.text == "abc"
        assert result.chunk_count == 3
        assert not result.truncated

    async def test_truncates_at_limit(self):
        result = await StreamAccumulator(self.chunks("abc", "def", "ghi"), max_chars=5)

        assert result.text == "abcde"
        assert result.truncated

    async def test_awaiting_twice_returns_same_result(self):
        accumulator = StreamAccumulator(self.chunks("x"))
        assert await accumulator == await accumulator
        assert accumulator.done

    async def test_cancel_stops_consumption(self):
        consumed = []
        closed = []

        async def source():
            try:
                for i in range(100):
                    await asyncio.sleep(0.01)
                    consumed.append(i)
                    yield str(i)
            finally:
                closed.append(True)

        accumulator = StreamAccumulator(source())
        accumulator.start()
        await asyncio.sleep(0.03)
        accumulator.cancel()

        with pytest.raises(asyncio.CancelledError):
            await accumulator
        assert closed == [True]
        assert len(consumed) < 100

    async def test_timeout(self):
        accumulator = StreamAccumulator(self.chunks("a", "b", delay=1), timeout=0.01)
        with pytest.raises(asyncio.TimeoutError):
            await accumulator


class TestTextExtractor:

    def test_json_object(self):
        assert extract_json_object('Sure! {"a": 1} hope that helps') == {"a": 1}
        assert extract_json_object("no json here") is None
        assert extract_json_object("{broken") is None
        assert extract_json_object("") is None

    def test_price(self):
        assert extract_price("Optimal price: $49.99 for this item", "optimal price") == 49.99
        assert extract_price("price: $20000", "price") is None
        assert extract_price("nothing useful", "price") is None

    def test_confidence(self):
        assert extract_confidence("confidence: 0.85") == pytest.approx(0.85)
        assert extract_confidence("I am 85% confident") == pytest.approx(0.85)
        assert extract_confidence("certainty 70") == pytest.approx(0.7)
        assert extract_confidence("no number") is None

    def test_percentage(self):
        assert extract_percentage("A sustainability premium of 20% is fair") == 20.0
        assert extract_percentage("Charge a 20% premium for sustainability") == 20.0
        assert extract_percentage("sustainability premium: 75%") == 50.0
        assert extract_percentage("nothing") == 15.0

    def test_list_items(self):
        text = "Options:\n1. First\n2) Second\n- Third\n* Fourth"
        assert extract_list_items(text) == ["First", "Second", "Third", "Fourth"]
        assert extract_list_items(text, limit=2) == ["First", "Second"]

    def test_choice(self):
        assert extract_choice("I'd say compare, not buy", ["buy", "compare"]) == "compare"
        assert extract_choice("buyers guide", ["buy"]) is None
        assert extract_choice("", ["buy"], default="browse") == "browse"


class TestCircuitBreaker:

    def test_opens_after_threshold(self):
        breaker = CircuitBreaker(failure_threshold=2)
        breaker.record_failure()
        assert breaker.state == CircuitState.CLOSED
        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN
        assert not breaker.can_execute()

    def test_half_open_after_recovery(self):
        clock = FakeClock()
        breaker = CircuitBreaker(failure_threshold=1, cooldown=10, trial_calls=1, clock=clock)
        breaker.record_failure()

        clock.advance(11)
        assert breaker.can_execute()
        assert breaker.state == CircuitState.HALF_OPEN

        breaker.record_success()
        assert breaker.state == CircuitState.CLOSED

    def test_half_open_failure_reopens(self):
        clock = FakeClock()
        breaker = CircuitBreaker(failure_threshold=1, cooldown=10, clock=clock)
        breaker.record_failure()
        clock.advance(11)
        breaker.can_execute()

        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN

    def test_half_open_admits_limited_trial_calls(self):
        clock = FakeClock()
        breaker = CircuitBreaker(failure_threshold=1, cooldown=10, trial_calls=2, clock=clock)
        breaker.record_failure()
        clock.advance(11)

        assert [breaker.can_execute() for _ in range(3)] == [True, True, False]

        breaker.record_success()
        assert breaker.state == CircuitState.HALF_OPEN
        breaker.record_success()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0


class TestGateway:

    async def test_complete(self):
        result = await make_gateway(content="hello").complete("hi")
        assert result == ProviderResult.ok("hello")

    async def test_complete_streamed(self):
        result = await make_gateway(stream_chunks=["dash", " cam"]).complete("hi", stream=True)
        assert result.data == "dash cam"

    async def test_complete_json(self):
        gateway = make_gateway(content='Here you go: {"correctedQuery": "dash cam"}')
        result = await gateway.complete_json("fix")
        assert result.data == {"correctedQuery": "dash cam"}

    async def test_complete_json_without_object(self):
        result = await make_gateway(content="no idea").complete_json("fix")
        assert not result.success

    async def test_failure_returns_result(self):
        result = await make_gateway(status_code=500).complete("hi")

        assert not result.success
        assert "500" in result.error
        assert result.unwrap_or("fallback") == "fallback"

    async def test_empty_embedding_rejected(self):
        gateway = LLMGateway(
            OllamaProvider(
                transport=httpx.MockTransport(
                    lambda request: httpx.Response(200, json={"models": [], "embeddings": [[]]})
                ),
                max_retries=1,
            ),
            model="llama3.1:8b",
            embedding_model="nomic-embed-text",
        )
        result = await gateway.embed("text")
        assert not result.success

    async def test_timeout(self):
        class SlowProvider(OllamaProvider):
            async def generate(self, prompt, model, config=None):
                await asyncio.sleep(1)

        gateway = LLMGateway(SlowProvider(), model="m", embedding_model="e", timeout=0.01)
        result = await gateway.complete("hi")

        assert not result.success
        assert "timed out" in result.error

    async def test_circuit_rejects_calls_when_open(self):
        requests: list[httpx.Request] = []
        provider = OllamaProvider(
            transport=httpx.MockTransport(ollama_handler(status_code=500, requests=requests)),
            max_retries=1,
            retry_delay=0,
        )
        gateway = LLMGateway(
            provider,
            model="llama3.1:8b",
            embedding_model="nomic-embed-text",
            circuit_breaker=CircuitBreaker(failure_threshold=2),
        )

        await gateway.complete("a")
        await gateway.complete("b")
        chat_calls = len([r for r in requests if r.url.path == "/api/chat"])

        result = await gateway.complete("c")

        assert not result.success
        assert "circuit open" in result.error
        assert len([r for r in requests if r.url.path == "/api/chat"]) == chat_calls


class TestAdapters:

    async def test_spell_checker(self):
        checker = LLMSpellChecker(make_gateway(content='{"correctedQuery": "wireless earbuds", "confidence": 0.9}'))
        assert await checker.correct("wirless earbuds") == "wireless earbuds"

    async def test_spell_checker_invalid_payload(self):
        checker = LLMSpellChecker(make_gateway(content='{"unexpected": true}'))
        with pytest.raises(UpstreamUnavailableError):
            await checker.correct("wirless earbuds")

    async def test_spell_checker_unavailable(self):
        checker = LLMSpellChecker(make_gateway(status_code=500))
        with pytest.raises(UpstreamUnavailableError):
            await checker.correct("wirless earbuds")

    async def test_intent_from_json(self):
        content = json.dumps({
            "primaryIntent": "Compare",
            "confidence": 0.85,
            "extractedEntities": {
                "category": "Automotive",
                "features": ["Wireless"],
                "urgency": "whenever",
                "priceRange": "cheap",
            },
            "searchTerms": ["Dash", "Cam"],
        })
        intent = await LLMIntentFallback(make_gateway(content=content)).classify("dash cam or action cam")

        assert intent.primary_intent == SearchIntent.COMPARE
        assert intent.confidence == pytest.approx(0.85)
        assert intent.entities.category == "automotive"
        assert intent.entities.features == ["wireless"]
        assert intent.entities.urgency is None
        assert intent.entities.price_range is None
        assert intent.search_terms == ["dash", "cam"]
        assert intent.source == "llm"

    async def test_intent_unknown_category_dropped(self):
        content = json.dumps({"primaryIntent": "buy", "confidence": 0.9, "extractedEntities": {"category": "toys"}})
        intent = await LLMIntentFallback(make_gateway(content=content)).classify("toy car")
        assert intent.entities.category is None

    async def test_intent_from_prose(self):
        gateway = make_gateway(content="The user wants to learn more. Confidence: 0.8")
        intent = await LLMIntentFallback(gateway).classify("how do dash cams work")

        assert intent.primary_intent == SearchIntent.LEARN
        assert intent.confidence == pytest.approx(0.8)

    async def test_intent_prose_entities(self):
        content = "The shopper wants to buy. Confidence: 85%\nBudget: $60\n- Night vision\n- WiFi"
        intent = await LLMIntentFallback(make_gateway(content=content)).classify("cheap dash cam")

        assert intent.primary_intent == SearchIntent.BUY
        assert intent.confidence == pytest.approx(0.85)
        assert intent.entities.features == ["night vision", "wifi"]
        assert intent.entities.price_range.max == 60.0

    async def test_intent_unparseable(self):
        intent = await LLMIntentFallback(make_gateway(content="no idea")).classify("x")
        assert intent is None

    async def test_intent_invalid_json_intent(self):
        content = json.dumps({"primaryIntent": "shop", "confidence": 0.9})
        intent = await LLMIntentFallback(make_gateway(content=content)).classify("x")
        assert intent is None

    async def test_embedder(self):
        embedder = LLMEmbedder(make_gateway(embedding=[0.5, 0.5]))
        assert await embedder.embed("dash cam") == [0.5, 0.5]

    async def test_embedder_unavailable(self):
        with pytest.raises(UpstreamUnavailableError):
            await LLMEmbedder(make_gateway(status_code=500)).embed("dash cam")


class TestProviderBase:

    def test_backoff_grows_exponentially(self):
        assert [backoff_delay(n, 0.5) for n in range(3)] == [0.5, 1.0, 2.0]

    def test_backoff_respects_retry_after(self):
        assert backoff_delay(0, 0.5, retry_after=3.0) == 3.0

    def test_provider_error_is_upstream_unavailable(self):
        error = LLMProviderError("HTTP 503", "ollama", retryable=True)

        assert isinstance(error, UpstreamUnavailableError)
        assert error.details == {"service": "ollama", "retryable": True}
        assert error.message == "Service 'ollama' is unavailable: HTTP 503"

    def test_first_embedding_rejects_bad_vectors(self):
        good = EmbeddingResult(embeddings=[[0.1, 0.2]], model="m", provider="ollama")
        assert good.first() == [0.1, 0.2]
        assert good.dimensions == 2

        for embeddings in ([], [[]], [[float("nan")]]):
            with pytest.raises(LLMProviderError):
                EmbeddingResult(embeddings=embeddings, model="m", provider="ollama").first()
