"""
Intent classification for search queries.

Pattern matching gives a fast, deterministic answer. When it is not
confident enough, an optional LLM fallback is consulted and its answer is
kept only if it is strictly more confident. Entity fields left unset are
backfilled from the same dictionaries the expander uses.
"""

import asyncio
from typing import Protocol

import structlog

from product_search.cache import TTLCache, make_key
from product_search.models.intent import IntentEntities, SearchIntent, UserIntent
from product_search.models.query import ExpansionResult
from product_search.search.dictionaries import (
    INTENT_PATTERNS,
    categories_in,
    features_in,
    urgency_in,
)
from product_search.search.expander import extract_price_filter, extract_terms
from product_search.search.normalizer import clean_query

logger = structlog.get_logger()

DEFAULT_INTENT = SearchIntent.BROWSE
DEFAULT_CONFIDENCE = 0.5


class IntentFallback(Protocol):
    """External intent classifier."""

    async def classify(self, query: str) -> UserIntent | None:
        ...


class IntentClassifier:
    """Classify queries into buy/browse/compare/learn/recommend."""

    def __init__(
        self,
        llm: IntentFallback | None = None,
        fallback_threshold: float = 0.7,
        timeout: float = 5.0,
        cache: TTLCache | None = None,
        cache_ttl: float | None = None,
    ):
        self.llm = llm
        self.fallback_threshold = fallback_threshold
        self.timeout = timeout
        self.cache = cache
        self.cache_ttl = cache_ttl

    async def classify(self, query: str, expansion: ExpansionResult | None = None) -> UserIntent:
        """Classify a query. Never raises."""
        cache_key = make_key("intent", query)
        if self.cache is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached.model_copy(deep=True)

        text = clean_query(query or "")
        result = self.match_patterns(text)

        if result.confidence < self.fallback_threshold and self.llm is not None:
            llm_result = await self._llm_classify(query)
            # Ties keep the pattern result
            if llm_result is not None and llm_result.confidence > result.confidence:
                result = llm_result

        result = self.backfill(query or "", result, expansion)

        if self.cache is not None:
            self.cache.set(cache_key, result.model_copy(deep=True), self.cache_ttl)

        logger.debug(
            "intent_classified",
            intent=result.primary_intent.value,
            confidence=result.confidence,
            source=result.source,
        )
        return result

    @staticmethod
    def match_patterns(text: str) -> UserIntent:
        """First matching pattern wins; browse @ 0.5 otherwise."""
        for intent_pattern in INTENT_PATTERNS:
            match = intent_pattern.pattern.search(text)
            if not match:
                continue

            entities = {}
            for name, group in intent_pattern.entity_groups.items():
                value = match.group(group)
                if value and value.strip():
                    entities[name] = value.strip()
            if intent_pattern.urgency is not None:
                entities["urgency"] = intent_pattern.urgency

            subject = match.group(1) or text
            return UserIntent(
                primary_intent=intent_pattern.intent,
                confidence=intent_pattern.confidence,
                entities=IntentEntities(**entities),
                search_terms=extract_terms(subject),
                source="pattern",
            )

        return UserIntent(
            primary_intent=DEFAULT_INTENT,
            confidence=DEFAULT_CONFIDENCE,
            search_terms=extract_terms(text),
            source="pattern",
        )

    async def _llm_classify(self, query: str) -> UserIntent | None:
        try:
            return await asyncio.wait_for(self.llm.classify(query), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("llm_intent_timeout", timeout=self.timeout)
        except Exception as e:
            logger.warning("llm_intent_failed", error=str(e))
        return None

    @staticmethod
    def backfill(
        query: str,
        intent: UserIntent,
        expansion: ExpansionResult | None = None,
    ) -> UserIntent:
        """Fill unset entity fields from expansion output or the dictionaries."""
        text = clean_query(query)
        entities = intent.entities
        updates = {}

        if not entities.category:
            categories = expansion.categories if expansion is not None else categories_in(text)
            if categories:
                updates["category"] = categories[0]

        if not entities.features:
            features = expansion.features if expansion is not None else features_in(text)
            if features:
                updates["features"] = list(features)

        if entities.price_range is None or entities.price_range.is_empty():
            if expansion is not None and not expansion.price_filter.is_empty():
                updates["price_range"] = expansion.price_filter
            else:
                price_filter = extract_price_filter(query)
                if not price_filter.is_empty():
                    updates["price_range"] = price_filter

        if entities.urgency is None:
            urgency = urgency_in(text)
            if urgency is not None:
                updates["urgency"] = urgency

        if not updates:
            return intent
        return intent.model_copy(update={"entities": entities.model_copy(update=updates)})
