"""Application settings for the product search core.

This module provides environment-based configuration using pydantic-settings.
Every knob can be overridden with a ``PRODUCT_SEARCH_`` prefixed variable,
e.g. ``PRODUCT_SEARCH_CACHE_MAX_SIZE=5000``.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Search core settings."""

    service_name: str = "product-search"
    log_level: str = "INFO"
    log_json: bool = True

    # Cache settings (seconds)
    cache_max_size: int = 1000
    cache_default_ttl: float = 300.0     # 5 minutes
    cache_sweep_interval: float = 60.0   # 1 minute
    search_cache_ttl: float = 300.0      # 5 minutes
    query_cache_ttl: float = 300.0       # 5 minutes
    intent_cache_ttl: float = 600.0      # 10 minutes
    embedding_cache_ttl: float = 3600.0  # 1 hour

    # Retrieval
    embedding_similarity_threshold: float = 0.1
    include_inactive: bool = False

    # Query processing
    spell_check_min_length: int = 3
    synonym_term_cap: int = 5
    category_term_cap: int = 3

    # Intent classification
    llm_fallback_confidence_threshold: float = 0.7

    # Ranking
    max_results: int = 10
    exact_match_cap: float = 1.0
    freshness_max_id: int | None = None
    normalize_intent_weights: bool = False

    # External providers
    llm_enabled: bool = True
    ollama_url: str = Field(default="http://localhost:11434")
    llm_model: str = Field(default="llama3.1:8b")
    embedding_model: str = Field(default="nomic-embed-text")
    external_timeout: float = 5.0
    stream_max_chars: int = 16000

    class Config:
        env_prefix = "PRODUCT_SEARCH_"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    return Settings()
