"""Product search core: query processing, intent, retrieval and ranking.

Example:
    from product_search import SearchRequest, StaticCatalog, build_orchestrator

    orchestrator = build_orchestrator(catalog=StaticCatalog(records))
    response = await orchestrator.search(SearchRequest(query="wireless dash cam"))
"""

from product_search.cache import TTLCache, make_key
from product_search.errors import (
    InvalidArgumentError,
    PipelineFaultError,
    SearchError,
    UpstreamUnavailableError,
)
from product_search.models import (
    Product,
    RankedProduct,
    SearchIntent,
    SearchRequest,
    SearchResponse,
    SearchStatus,
    UserIntent,
    UserPreferences,
)
from product_search.orchestrator import PreferenceSource, SearchOrchestrator, build_orchestrator
from product_search.search import CatalogSnapshot, StaticCatalog

__version__ = "0.1.0"

__all__ = [
    "CatalogSnapshot",
    "InvalidArgumentError",
    "PipelineFaultError",
    "PreferenceSource",
    "Product",
    "RankedProduct",
    "SearchError",
    "SearchIntent",
    "SearchOrchestrator",
    "SearchRequest",
    "SearchResponse",
    "SearchStatus",
    "StaticCatalog",
    "TTLCache",
    "UpstreamUnavailableError",
    "UserIntent",
    "UserPreferences",
    "build_orchestrator",
    "make_key",
]
