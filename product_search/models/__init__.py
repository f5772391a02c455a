"""Data models for the search core."""

from product_search.models.intent import (
    IntentEntities,
    SearchIntent,
    Urgency,
    UserIntent,
)
from product_search.models.product import Product
from product_search.models.query import (
    Correction,
    ExpansionResult,
    NormalizationResult,
    PriceFilter,
    ProcessedQuery,
)
from product_search.models.ranking import (
    FACTOR_LABELS,
    FACTOR_NAMES,
    RankedProduct,
    RankingFactors,
    UserPreferences,
)
from product_search.models.search import (
    RetrievalMode,
    SearchFilters,
    SearchRequest,
    SearchResponse,
    SearchStage,
    SearchStatus,
)

__all__ = [
    "Correction",
    "ExpansionResult",
    "FACTOR_LABELS",
    "FACTOR_NAMES",
    "IntentEntities",
    "NormalizationResult",
    "PriceFilter",
    "ProcessedQuery",
    "Product",
    "RankedProduct",
    "RankingFactors",
    "RetrievalMode",
    "SearchFilters",
    "SearchIntent",
    "SearchRequest",
    "SearchResponse",
    "SearchStage",
    "SearchStatus",
    "Urgency",
    "UserIntent",
    "UserPreferences",
]
