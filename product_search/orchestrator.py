"""
Search orchestration.

Runs one search through the pipeline:

    CACHE_CHECK -> NORMALIZE -> EXPAND -> CLASSIFY -> RETRIEVE -> RANK
    -> CACHE_WRITE -> DONE

External providers (spell check, LLM intent, embeddings, user preferences)
always degrade to a local fallback. Only a fault in a local stage or a bad
request produces a FAILED response; an empty candidate set is
NO_CANDIDATES. Responses are cached only after the full pipeline succeeds.
"""

import asyncio
import time
from typing import Protocol

import structlog

from product_search.cache import TTLCache, make_key
from product_search.config import Settings, get_settings
from product_search.errors import InvalidArgumentError, PipelineFaultError, SearchError
from product_search.llm import (
    LLMEmbedder,
    LLMGateway,
    LLMIntentFallback,
    LLMSpellChecker,
    OllamaProvider,
)
from product_search.llm.base import BaseLLMProvider, LLMProviderError
from product_search.log_config import bind_request_id, configure_logging
from product_search.models.intent import UserIntent
from product_search.models.query import ProcessedQuery
from product_search.models.ranking import RankedProduct, UserPreferences
from product_search.models.search import (
    SearchFilters,
    SearchRequest,
    SearchResponse,
    SearchStage,
    SearchStatus,
)
from product_search.search.catalog import CatalogSnapshot, CatalogSource, Embedder
from product_search.search.expander import QueryExpander
from product_search.search.intent import IntentClassifier
from product_search.search.normalizer import QueryNormalizer
from product_search.search.pipeline import QueryProcessingPipeline
from product_search.search.ranker import Ranker
from product_search.search.retriever import Retriever

logger = structlog.get_logger()

MAX_CATEGORY_SUGGESTIONS = 5


class PreferenceSource(Protocol):
    """Optional per-user preference lookup."""

    async def get_preferences(self, user_id: str) -> UserPreferences | None:
        ...


class SearchOrchestrator:
    """Compose query processing, intent, retrieval and ranking."""

    def __init__(
        self,
        catalog: CatalogSnapshot | CatalogSource,
        cache: TTLCache,
        pipeline: QueryProcessingPipeline,
        classifier: IntentClassifier,
        ranker: Ranker,
        embedder: Embedder | None = None,
        preferences: PreferenceSource | None = None,
        settings: Settings | None = None,
        provider: BaseLLMProvider | None = None,
    ):
        self.settings = settings or get_settings()
        self.cache = cache
        self.pipeline = pipeline
        self.classifier = classifier
        self.ranker = ranker
        self.embedder = embedder
        self.preferences = preferences
        self.provider = provider

        if isinstance(catalog, CatalogSnapshot):
            self._source: CatalogSource | None = None
            self._snapshot: CatalogSnapshot | None = catalog
        else:
            self._source = catalog
            self._snapshot = None

    async def start(self, configure_logs: bool = True) -> None:
        """Apply logging settings, start the cache sweeper and connect the provider.

        A provider that cannot be reached is logged and left disconnected;
        searches then run on the local fallbacks.
        """
        if configure_logs:
            configure_logging(self.settings.log_level, self.settings.log_json)
        logger.info("search_service_starting", service=self.settings.service_name)

        await self.cache.start()

        if self.provider is not None:
            try:
                await self.provider.connect()
            except LLMProviderError as e:
                logger.warning(
                    "llm_provider_connect_failed",
                    provider=self.provider.name,
                    error=e.message,
                )

    async def close(self) -> None:
        """Stop the cache sweeper and release the provider connection."""
        await self.cache.close()
        if self.provider is not None:
            await self.provider.disconnect()
        logger.info("search_service_stopped", service=self.settings.service_name)

    async def __aenter__(self) -> "SearchOrchestrator":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def snapshot(self) -> CatalogSnapshot:
        """Current catalog snapshot, loading it from the source on first use."""
        if self._snapshot is None:
            self._snapshot = await CatalogSnapshot.load(self._source)
        return self._snapshot

    async def refresh_catalog(self) -> CatalogSnapshot:
        """Reload the catalog and drop cached search responses."""
        if self._source is not None:
            self._snapshot = await CatalogSnapshot.load(self._source)
        self.cache.invalidate_pattern("search:")
        return await self.snapshot()

    def invalidate_user(self, user_id: str) -> int:
        """Drop cached responses for one user."""
        return self.cache.invalidate_pattern(f"search:{user_id}:")

    async def process_query(self, query: str) -> ProcessedQuery:
        """Normalize and expand a query without searching."""
        return await self.pipeline.process(query)

    def suggest(self, partial_query: str) -> list[str]:
        """Autocomplete suggestions for a partial query."""
        return self.pipeline.suggest(partial_query)

    async def search(self, request: SearchRequest | str) -> SearchResponse:
        """Run a search. Returns a FAILED response instead of raising."""
        if isinstance(request, str):
            request = SearchRequest(query=request)

        request_id = bind_request_id()
        start_time = time.perf_counter()
        stages: list[SearchStage] = [SearchStage.CACHE_CHECK]

        logger.info("search_started", query=request.query, user_id=request.user_id)

        try:
            max_results = self._max_results(request)
        except InvalidArgumentError as e:
            return self._failed(request, e, stages, start_time, request_id)

        preferences = await self._resolve_preferences(request)
        cache_key = self._cache_key(request, preferences, max_results)

        if request.use_cache:
            cached = self.cache.get(cache_key)
            if cached is not None:
                stages.append(SearchStage.DONE)
                logger.info("search_cache_hit", query=request.query)
                return cached.model_copy(
                    deep=True,
                    update={
                        "cache_hit": True,
                        "stages": stages,
                        "latency_ms": self._elapsed_ms(start_time),
                        "request_id": request_id,
                    }
                )

        try:
            response = await self._run_pipeline(request, preferences, max_results, stages)
        except SearchError as e:
            return self._failed(request, e, stages, start_time, request_id)

        if request.use_cache:
            stages.append(SearchStage.CACHE_WRITE)
        stages.append(SearchStage.DONE)
        response.stages = stages
        response.latency_ms = self._elapsed_ms(start_time)
        response.request_id = request_id

        if request.use_cache:
            self.cache.set(cache_key, response.model_copy(deep=True), self.settings.search_cache_ttl)

        logger.info(
            "search_completed",
            status=response.status.value,
            results=len(response.results),
            total_found=response.total_found,
            mode=response.retrieval_mode.value if response.retrieval_mode else None,
            latency_ms=response.latency_ms,
        )
        return response

    async def _run_pipeline(
        self,
        request: SearchRequest,
        preferences: UserPreferences | None,
        max_results: int,
        stages: list[SearchStage],
    ) -> SearchResponse:
        try:
            snapshot = await self.snapshot()
        except InvalidArgumentError:
            raise
        except Exception as e:
            logger.error("catalog_load_failed", error=str(e))
            raise PipelineFaultError("catalog", e) from e

        stages.append(SearchStage.NORMALIZE)
        try:
            normalization = await self.pipeline.normalizer.normalize(request.query)
        except Exception as e:
            logger.exception("normalize_failed")
            raise PipelineFaultError("normalize", e) from e

        stages.append(SearchStage.EXPAND)
        try:
            expansion = self.pipeline.expander.expand(
                normalization.normalized, source_query=request.query
            )
            processed = self.pipeline.build(request.query, normalization, expansion)
        except Exception as e:
            logger.exception("expand_failed")
            raise PipelineFaultError("expand", e) from e

        stages.append(SearchStage.CLASSIFY)
        try:
            intent = await self.classifier.classify(request.query, expansion)
        except Exception as e:
            logger.exception("classify_failed")
            raise PipelineFaultError("classify", e) from e

        stages.append(SearchStage.RETRIEVE)
        filters = self._filters(request, preferences).with_price(expansion.price_filter)
        retriever = Retriever(
            snapshot,
            embedder=self.embedder,
            cache=self.cache,
            similarity_threshold=self.settings.embedding_similarity_threshold,
            embedding_cache_ttl=self.settings.embedding_cache_ttl,
            timeout=self.settings.external_timeout,
        )
        try:
            retrieval = await retriever.retrieve(
                expansion.expanded_query,
                filters,
                keyword_query=expansion.keyword_query,
                use_semantic=request.use_semantic,
            )
        except Exception as e:
            logger.exception("retrieve_failed")
            raise PipelineFaultError("retrieve", e) from e

        stages.append(SearchStage.RANK)
        try:
            ranked = self.ranker.rank(
                retrieval.products,
                expansion.keyword_query,
                intent,
                preferences,
                retrieval.similarity_scores,
                max_known_id=snapshot.max_id,
            )
            ranked = self._sort(ranked, request.sort_by)
        except Exception as e:
            logger.exception("rank_failed")
            raise PipelineFaultError("rank", e) from e

        status = SearchStatus.OK if ranked else SearchStatus.NO_CANDIDATES
        return SearchResponse(
            status=status,
            query=request.query,
            processed=processed,
            intent=intent,
            results=ranked[:max_results],
            total_found=len(retrieval),
            retrieval_mode=retrieval.mode,
            fallback_reason=retrieval.fallback_reason,
            suggestions=self._suggestions(processed, intent, ranked),
            message=None if ranked else "No products matched the query",
        )

    def _max_results(self, request: SearchRequest) -> int:
        max_results = (
            request.max_results if request.max_results is not None else self.settings.max_results
        )
        if max_results <= 0:
            raise InvalidArgumentError(
                "max_results must be positive", {"max_results": max_results}
            )
        return max_results

    async def _resolve_preferences(self, request: SearchRequest) -> UserPreferences | None:
        if request.preferences is not None:
            return request.preferences
        if self.preferences is None or not request.user_id:
            return None

        try:
            return await asyncio.wait_for(
                self.preferences.get_preferences(request.user_id),
                timeout=self.settings.external_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("preferences_timeout", user_id=request.user_id)
        except Exception as e:
            logger.warning("preferences_failed", user_id=request.user_id, error=str(e))
        return None

    def _cache_key(
        self,
        request: SearchRequest,
        preferences: UserPreferences | None,
        max_results: int,
    ) -> str:
        prefix = f"search:{request.user_id}:" if request.user_id else "search:"
        return make_key(
            prefix.rstrip(":"),
            request.query,
            preferences=preferences.model_dump(mode="json") if preferences else None,
            options=request.model_dump(
                mode="json",
                exclude={"query", "user_id", "preferences", "use_cache"},
            ),
            max_results=max_results,
        )

    def _filters(
        self,
        request: SearchRequest,
        preferences: UserPreferences | None,
    ) -> SearchFilters:
        max_price = request.max_price
        min_sustainability = request.min_sustainability
        if preferences is not None:
            if preferences.max_price is not None:
                max_price = (
                    preferences.max_price
                    if max_price is None
                    else min(max_price, preferences.max_price)
                )
            if preferences.min_sustainability_score is not None:
                min_sustainability = max(
                    min_sustainability or 0.0, preferences.min_sustainability_score
                )

        include_inactive = (
            request.include_inactive
            if request.include_inactive is not None
            else self.settings.include_inactive
        )
        return SearchFilters(
            categories=list(request.categories),
            min_price=request.min_price,
            max_price=max_price,
            min_sustainability=min_sustainability,
            include_inactive=include_inactive,
        )

    @staticmethod
    def _sort(ranked: list[RankedProduct], sort_by: str) -> list[RankedProduct]:
        """Optional re-sort; ties by id, positions reassigned."""
        if sort_by == "price":
            ranked = sorted(ranked, key=lambda r: (r.product.price_usd, r.product.id))
        elif sort_by == "sustainability":
            ranked = sorted(ranked, key=lambda r: (-r.product.sustainability_score, r.product.id))
        elif sort_by == "rating":
            ranked = sorted(ranked, key=lambda r: (-r.product.average_rating, r.product.id))
        else:
            return ranked

        for position, item in enumerate(ranked, start=1):
            item.position = position
        return ranked

    @staticmethod
    def _suggestions(
        processed: ProcessedQuery,
        intent: UserIntent,
        ranked: list[RankedProduct],
    ) -> dict[str, list[str]]:
        categories: list[str] = []
        for item in ranked:
            if item.product.category not in categories:
                categories.append(item.product.category)

        price_filters: list[str] = []
        prices = [r.product.price_usd for r in ranked if r.product.price_usd > 0]
        if prices:
            max_price = max(prices)
            mid_price = round((min(prices) + max_price) / 2)
            price_filters = [
                f"Under ${mid_price}",
                f"${mid_price} - ${max_price:g}",
                f"Over ${max_price:g}",
            ]

        related: list[str] = []
        if intent.entities.category:
            related = [
                f"Best {intent.entities.category}",
                f"Sustainable {intent.entities.category}",
            ]

        return {
            "query_corrections": processed.suggestions,
            "category_filters": categories[:MAX_CATEGORY_SUGGESTIONS],
            "price_filters": price_filters,
            "related_searches": related,
        }

    def _failed(
        self,
        request: SearchRequest,
        error: SearchError,
        stages: list[SearchStage],
        start_time: float,
        request_id: str,
    ) -> SearchResponse:
        logger.error(
            "search_failed",
            query=request.query,
            error_code=error.error_code,
            error=error.message,
        )
        return SearchResponse(
            status=SearchStatus.FAILED,
            query=request.query,
            stages=stages,
            error=error,
            message=error.message,
            latency_ms=self._elapsed_ms(start_time),
            request_id=request_id,
        )

    @staticmethod
    def _elapsed_ms(start_time: float) -> float:
        return (time.perf_counter() - start_time) * 1000


def build_orchestrator(
    settings: Settings | None = None,
    catalog: CatalogSnapshot | CatalogSource | None = None,
    provider: BaseLLMProvider | None = None,
    preferences: PreferenceSource | None = None,
) -> SearchOrchestrator:
    """Wire the default search graph from settings.

    When ``llm_enabled`` is set, an OllamaProvider is created unless a
    provider is passed; the LLM backs spell checking, intent fallback and
    query embeddings.
    """
    settings = settings or get_settings()
    cache = TTLCache(
        max_size=settings.cache_max_size,
        default_ttl=settings.cache_default_ttl,
        sweep_interval=settings.cache_sweep_interval,
    )

    spell_checker = intent_fallback = embedder = None
    if settings.llm_enabled:
        provider = provider or OllamaProvider(
            base_url=settings.ollama_url,
            timeout=settings.external_timeout,
        )
        gateway = LLMGateway(
            provider,
            model=settings.llm_model,
            embedding_model=settings.embedding_model,
            timeout=settings.external_timeout,
            stream_max_chars=settings.stream_max_chars,
        )
        spell_checker = LLMSpellChecker(gateway)
        intent_fallback = LLMIntentFallback(gateway)
        embedder = LLMEmbedder(gateway)

    pipeline = QueryProcessingPipeline(
        normalizer=QueryNormalizer(
            spell_checker=spell_checker,
            min_length=settings.spell_check_min_length,
            timeout=settings.external_timeout,
        ),
        expander=QueryExpander(
            synonym_cap=settings.synonym_term_cap,
            category_cap=settings.category_term_cap,
        ),
        cache=cache,
        cache_ttl=settings.query_cache_ttl,
    )
    classifier = IntentClassifier(
        llm=intent_fallback,
        fallback_threshold=settings.llm_fallback_confidence_threshold,
        timeout=settings.external_timeout,
        cache=cache,
        cache_ttl=settings.intent_cache_ttl,
    )
    ranker = Ranker(
        max_known_id=settings.freshness_max_id,
        exact_match_cap=settings.exact_match_cap,
        normalize_weights=settings.normalize_intent_weights,
    )

    return SearchOrchestrator(
        catalog=catalog if catalog is not None else CatalogSnapshot(),
        cache=cache,
        pipeline=pipeline,
        classifier=classifier,
        ranker=ranker,
        embedder=embedder,
        preferences=preferences,
        settings=settings,
        provider=provider if settings.llm_enabled else None,
    )
