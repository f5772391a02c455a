"""Tests for settings, error payloads and logging helpers."""

import pytest

from product_search.config import Settings, get_settings
from product_search.errors import (
    InvalidArgumentError,
    PipelineFaultError,
    UpstreamUnavailableError,
    format_error_response,
)
from product_search.log_config import (
    add_request_id,
    bind_request_id,
    configure_logging,
    get_request_id,
)
from product_search.models.product import Product


class TestSettings:

    def test_defaults(self):
        settings = Settings()

        assert settings.cache_max_size == 1000
        assert settings.search_cache_ttl == 300
        assert settings.max_results == 10
        assert settings.llm_fallback_confidence_threshold == 0.7

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("PRODUCT_SEARCH_CACHE_MAX_SIZE", "5000")
        monkeypatch.setenv("PRODUCT_SEARCH_LLM_ENABLED", "false")

        settings = Settings()

        assert settings.cache_max_size == 5000
        assert settings.llm_enabled is False

    def test_get_settings_cached(self):
        assert get_settings() is get_settings()


class TestErrors:

    def test_invalid_argument_is_value_error(self):
        error = InvalidArgumentError("bad ttl", {"ttl": -1})

        assert isinstance(error, ValueError)
        assert error.to_dict() == {
            "code": "INVALID_ARGUMENT",
            "message": "bad ttl",
            "details": {"ttl": -1},
        }

    def test_pipeline_fault_carries_stage(self):
        error = PipelineFaultError("rank", RuntimeError("boom"))

        assert error.stage == "rank"
        assert "boom" in error.message
        assert error.details["error_type"] == "RuntimeError"

    def test_upstream_message(self):
        error = UpstreamUnavailableError("embedder", "timed out")
        assert error.message == "Service 'embedder' is unavailable: timed out"
        assert error.details["service"] == "embedder"

    def test_format_error_response(self):
        payload = format_error_response(PipelineFaultError("retrieve"), request_id="abc")

        assert payload["error"]["code"] == "PIPELINE_FAULT"
        assert payload["error"]["request_id"] == "abc"
        assert "timestamp" in payload["error"]

    def test_product_without_id_rejected(self):
        with pytest.raises(InvalidArgumentError):
            Product.from_record({"id": "  ", "name": "Blank"})


class TestLogging:

    def test_bind_request_id(self):
        request_id = bind_request_id()

        assert len(request_id) == 16
        assert get_request_id() == request_id
        assert bind_request_id("fixed") == "fixed"

    def test_processor_adds_request_id(self):
        bind_request_id("req-1")
        event = add_request_id(None, "info", {"event": "search_started"})
        assert event["request_id"] == "req-1"

    def test_configure_logging(self):
        configure_logging("DEBUG", json_logs=False)
        configure_logging("INFO", json_logs=True)
