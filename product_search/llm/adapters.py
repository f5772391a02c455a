"""
LLM-backed collaborators for the search pipeline.

- LLMSpellChecker: external spelling correction for QueryNormalizer
- LLMIntentFallback: low-confidence intent classification for IntentClassifier
- LLMEmbedder: query/product embeddings for the Retriever

Payloads are validated with pydantic as soon as they are received; anything
unusable becomes an UpstreamUnavailableError (or None for intents) so the
caller degrades to its local path.
"""

from typing import Any

import structlog
from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from product_search.errors import UpstreamUnavailableError
from product_search.llm.base import GenerationConfig
from product_search.llm.gateway import LLMGateway
from product_search.llm.text_extractor import (
    extract_choice,
    extract_confidence,
    extract_json_object,
    extract_list_items,
    extract_price,
)
from product_search.models.intent import IntentEntities, SearchIntent, Urgency, UserIntent
from product_search.models.query import PriceFilter
from product_search.search.dictionaries import CATEGORIES

logger = structlog.get_logger()

SPELL_CHECK_PROMPT = """Correct any spelling errors in this product search query. Only fix obvious typos, don't change the meaning or add words.

Query: "{query}"

Respond with JSON:
{{"correctedQuery": "corrected version", "confidence": 0.9}}"""

INTENT_PROMPT = """Analyze this shopping search query and determine the user's intent.

Query: "{query}"

Respond with a JSON object containing:
1. primaryIntent: one of "buy", "browse", "compare", "learn", "recommend"
2. confidence: number between 0 and 1
3. extractedEntities: object with productType, category, features, priceRange, useCase, urgency
4. searchTerms: array of key search terms

Categories available: {categories}

Example response:
{{"primaryIntent": "buy", "confidence": 0.9, "extractedEntities": {{"productType": "dash cam", "category": "automotive", "features": ["wireless", "recording"], "useCase": "driving safety", "urgency": "immediate"}}, "searchTerms": ["dash", "cam", "wireless"]}}"""


class SpellCheckPayload(BaseModel):
    """Spell check response."""
    corrected_query: str = Field(validation_alias=AliasChoices("correctedQuery", "corrected_query"))
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)


class EntityPayload(BaseModel):
    """Entities as returned by the model; unknown or malformed values are dropped."""
    product_type: str | None = Field(default=None, validation_alias=AliasChoices("productType", "product_type"))
    category: str | None = None
    features: list[str] = Field(default_factory=list)
    price_range: PriceFilter | None = Field(default=None, validation_alias=AliasChoices("priceRange", "price_range"))
    use_case: str | None = Field(default=None, validation_alias=AliasChoices("useCase", "use_case"))
    urgency: Urgency | None = None
    brand: str | None = None

    @field_validator("category", mode="before")
    @classmethod
    def known_category(cls, value: Any) -> str | None:
        if isinstance(value, str) and value.strip().lower() in CATEGORIES:
            return value.strip().lower()
        return None

    @field_validator("urgency", mode="before")
    @classmethod
    def known_urgency(cls, value: Any) -> Any:
        valid = {u.value for u in Urgency}
        return value.lower() if isinstance(value, str) and value.lower() in valid else None

    @field_validator("features", mode="before")
    @classmethod
    def feature_list(cls, value: Any) -> list[str]:
        if not isinstance(value, list):
            return []
        return [str(v).lower() for v in value if v]

    @field_validator("price_range", mode="before")
    @classmethod
    def price_dict(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None


class IntentPayload(BaseModel):
    """Intent classification response."""
    primary_intent: SearchIntent = Field(validation_alias=AliasChoices("primaryIntent", "primary_intent"))
    confidence: float = Field(ge=0.0, le=1.0)
    extracted_entities: EntityPayload = Field(
        default_factory=EntityPayload,
        validation_alias=AliasChoices("extractedEntities", "extracted_entities", "entities"),
    )
    search_terms: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("searchTerms", "search_terms"),
    )

    @field_validator("primary_intent", mode="before")
    @classmethod
    def lower_intent(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value


class LLMSpellChecker:
    """Spell checker backed by an LLMGateway."""

    def __init__(self, gateway: LLMGateway):
        self.gateway = gateway

    async def correct(self, query: str) -> str | None:
        result = await self.gateway.complete_json(
            SPELL_CHECK_PROMPT.format(query=query),
            GenerationConfig.structured(max_tokens=200),
        )
        if not result.success:
            raise UpstreamUnavailableError("spell_checker", result.error or "")

        try:
            payload = SpellCheckPayload.model_validate(result.data)
        except ValidationError as e:
            raise UpstreamUnavailableError("spell_checker", "invalid payload") from e

        corrected = payload.corrected_query.strip()
        return corrected or None


class LLMIntentFallback:
    """Intent classifier backed by an LLMGateway."""

    def __init__(self, gateway: LLMGateway):
        self.gateway = gateway

    async def classify(self, query: str) -> UserIntent | None:
        result = await self.gateway.complete(
            INTENT_PROMPT.format(query=query, categories=", ".join(CATEGORIES)),
            GenerationConfig.structured(max_tokens=500),
        )
        if not result.success:
            raise UpstreamUnavailableError("intent_classifier", result.error or "")

        text = result.data or ""
        intent = self._from_json(text)
        if intent is None:
            intent = self._from_prose(text)
        return intent

    @staticmethod
    def _from_json(text: str) -> UserIntent | None:
        data = extract_json_object(text)
        if data is None:
            return None

        try:
            payload = IntentPayload.model_validate(data)
        except ValidationError as e:
            logger.warning("llm_intent_payload_invalid", errors=e.error_count())
            return None

        return UserIntent(
            primary_intent=payload.primary_intent,
            confidence=payload.confidence,
            entities=IntentEntities(**payload.extracted_entities.model_dump()),
            search_terms=[t.lower() for t in payload.search_terms][:10],
            source="llm",
        )

    @staticmethod
    def _from_prose(text: str) -> UserIntent | None:
        """Recover intent and confidence from a non-JSON answer."""
        choice = extract_choice(text, [i.value for i in SearchIntent])
        confidence = extract_confidence(text)
        if choice is None or confidence is None:
            return None

        budget = extract_price(text, "budget", "max price", "under")
        return UserIntent(
            primary_intent=SearchIntent(choice),
            confidence=confidence,
            entities=IntentEntities(
                features=[item.lower() for item in extract_list_items(text)],
                price_range=PriceFilter(max=budget) if budget is not None else None,
            ),
            source="llm",
        )


class LLMEmbedder:
    """Embedding provider backed by an LLMGateway."""

    def __init__(self, gateway: LLMGateway):
        self.gateway = gateway

    async def embed(self, text: str) -> list[float]:
        result = await self.gateway.embed(text)
        if not result.success:
            raise UpstreamUnavailableError("embedder", result.error or "")
        return result.data
