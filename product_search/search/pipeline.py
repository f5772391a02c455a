"""
Query processing pipeline.

Composes QueryNormalizer and QueryExpander into a ProcessedQuery, adds a
processing confidence, query suggestions and dictionary-based autocomplete.
"""

import structlog

from product_search.cache import TTLCache, make_key
from product_search.models.query import ExpansionResult, NormalizationResult, ProcessedQuery
from product_search.search.dictionaries import (
    CATEGORIES,
    QUERY_COMPLETIONS,
    SYNONYMS,
    categories_in,
    synonym_terms_in,
)
from product_search.search.expander import QueryExpander
from product_search.search.normalizer import QueryNormalizer

logger = structlog.get_logger()

MAX_SUGGESTIONS = 8
MIN_AUTOCOMPLETE_LENGTH = 2


class QueryProcessingPipeline:
    """Normalize and expand queries, with optional result caching."""

    def __init__(
        self,
        normalizer: QueryNormalizer | None = None,
        expander: QueryExpander | None = None,
        cache: TTLCache | None = None,
        cache_ttl: float | None = None,
    ):
        self.normalizer = normalizer or QueryNormalizer()
        self.expander = expander or QueryExpander()
        self.cache = cache
        self.cache_ttl = cache_ttl

    async def process(self, raw_query: str) -> ProcessedQuery:
        """Run normalization and expansion for one query."""
        cache_key = make_key("query", raw_query)
        if self.cache is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug("query_cache_hit", query=raw_query)
                return cached.model_copy(deep=True)

        normalization = await self.normalizer.normalize(raw_query)
        expansion = self.expander.expand(normalization.normalized, source_query=raw_query)
        processed = self.build(raw_query, normalization, expansion)

        if self.cache is not None:
            self.cache.set(cache_key, processed.model_copy(deep=True), self.cache_ttl)

        logger.debug(
            "query_processed",
            query=raw_query,
            normalized=processed.corrected_query,
            confidence=processed.confidence,
        )
        return processed

    def build(
        self,
        raw_query: str,
        normalization: NormalizationResult,
        expansion: ExpansionResult,
    ) -> ProcessedQuery:
        """Assemble a ProcessedQuery from stage outputs."""
        steps = [f'cleaned: "{normalization.cleaned}"']
        if normalization.uncorrected != normalization.cleaned:
            steps.append(f'removed stop words: "{normalization.uncorrected}"')
        if normalization.normalized != normalization.uncorrected:
            source = "external" if normalization.used_external else "static"
            steps.append(f'spell corrected ({source}): "{normalization.normalized}"')
        steps.append(f"expanded with {len(expansion.synonyms)} synonyms")
        if expansion.categories:
            steps.append(f"categories: {', '.join(expansion.categories)}")
        if not expansion.price_filter.is_empty():
            steps.append(f"price filter: {expansion.price_filter.to_dict()}")

        return ProcessedQuery(
            original_query=raw_query,
            normalized_query=normalization.uncorrected,
            corrected_query=normalization.normalized,
            expanded_query=expansion.expanded_query,
            keyword_query=expansion.keyword_query,
            extracted_terms=expansion.extracted_terms,
            synonyms=expansion.synonyms,
            categories=expansion.categories,
            features=expansion.features,
            price_filter=expansion.price_filter,
            corrections=normalization.corrections,
            confidence=self.calculate_confidence(raw_query, normalization, expansion),
            processing_steps=steps,
            suggestions=self.suggestions_for(normalization.normalized),
        )

    @staticmethod
    def calculate_confidence(
        raw_query: str,
        normalization: NormalizationResult,
        expansion: ExpansionResult,
    ) -> float:
        """Processing confidence in [0.3, 1.0]."""
        confidence = 0.8

        # Boost for successful term extraction
        if expansion.extracted_terms:
            confidence += 0.1

        # Each correction lowers confidence
        confidence -= 0.1 * len(normalization.corrections)

        # Longer queries are usually more specific
        if len(raw_query) > 10:
            confidence += 0.05

        return round(max(0.3, min(1.0, confidence)), 6)

    @staticmethod
    def suggestions_for(query: str) -> list[str]:
        """Related queries built from synonyms, categories and completions."""
        suggestions: list[str] = []

        def add(term: str) -> None:
            if term not in suggestions:
                suggestions.append(term)

        for term in synonym_terms_in(query):
            for synonym in SYNONYMS[term][:2]:
                add(synonym)

        for category in categories_in(query):
            add(category)
            for keyword in CATEGORIES[category].keywords[:2]:
                add(keyword)

        for fragment, completion in QUERY_COMPLETIONS.items():
            if fragment in query:
                add(completion)

        return suggestions[:MAX_SUGGESTIONS]

    @staticmethod
    def suggest(partial_query: str) -> list[str]:
        """Autocomplete a partial query from dictionary terms."""
        prefix = partial_query.strip().lower()
        if len(prefix) < MIN_AUTOCOMPLETE_LENGTH:
            return []

        suggestions: list[str] = []

        def add(term: str) -> None:
            if term.startswith(prefix) and term not in suggestions:
                suggestions.append(term)

        for term, synonyms in SYNONYMS.items():
            add(term)
            for synonym in synonyms:
                add(synonym)

        for category, definition in CATEGORIES.items():
            add(category)
            for keyword in definition.keywords:
                add(keyword)

        return suggestions[:MAX_SUGGESTIONS]
