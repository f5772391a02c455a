"""Search request/response models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from product_search.errors import SearchError, format_error_response
from product_search.models.intent import UserIntent
from product_search.models.product import Product
from product_search.models.query import PriceFilter, ProcessedQuery
from product_search.models.ranking import RankedProduct, UserPreferences


class SearchStatus(str, Enum):
    """Outcome of a search call."""

    OK = "ok"
    NO_CANDIDATES = "no_candidates"
    FAILED = "failed"


class SearchStage(str, Enum):
    """Pipeline stages, in execution order."""

    CACHE_CHECK = "cache_check"
    NORMALIZE = "normalize"
    EXPAND = "expand"
    CLASSIFY = "classify"
    RETRIEVE = "retrieve"
    RANK = "rank"
    CACHE_WRITE = "cache_write"
    DONE = "done"


class RetrievalMode(str, Enum):
    SEMANTIC = "semantic"
    KEYWORD = "keyword"


@dataclass
class SearchFilters:
    """Hard filters applied to retrieval candidates."""

    categories: list[str] = field(default_factory=list)
    min_price: float | None = None
    max_price: float | None = None
    min_sustainability: float | None = None
    include_inactive: bool = False

    def allows(self, product: Product) -> bool:
        """Check a product against every filter."""
        if not self.include_inactive and not product.is_active:
            return False
        if self.categories:
            wanted = {c.lower() for c in self.categories}
            if product.category.lower() not in wanted:
                return False
        if self.min_price is not None and product.price_usd < self.min_price:
            return False
        if self.max_price is not None and product.price_usd > self.max_price:
            return False
        if (
            self.min_sustainability is not None
            and product.sustainability_score < self.min_sustainability
        ):
            return False
        return True

    def with_price(self, price_filter: PriceFilter | None) -> "SearchFilters":
        """Return a copy narrowed by a query price filter."""
        if price_filter is None or price_filter.is_empty():
            return self

        min_price = self.min_price
        if price_filter.min is not None:
            min_price = price_filter.min if min_price is None else max(min_price, price_filter.min)
        max_price = self.max_price
        if price_filter.max is not None:
            max_price = price_filter.max if max_price is None else min(max_price, price_filter.max)

        return SearchFilters(
            categories=list(self.categories),
            min_price=min_price,
            max_price=max_price,
            min_sustainability=self.min_sustainability,
            include_inactive=self.include_inactive,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, excluding unset filters."""
        result: dict[str, Any] = {}
        if self.categories:
            result["categories"] = self.categories
        if self.min_price is not None:
            result["min_price"] = self.min_price
        if self.max_price is not None:
            result["max_price"] = self.max_price
        if self.min_sustainability is not None:
            result["min_sustainability"] = self.min_sustainability
        if self.include_inactive:
            result["include_inactive"] = True
        return result

    def has_filters(self) -> bool:
        return bool(self.to_dict())


class SearchRequest(BaseModel):
    """A single search call."""

    query: str = ""
    user_id: str | None = None
    preferences: UserPreferences | None = None
    categories: list[str] = Field(default_factory=list)
    min_price: float | None = None
    max_price: float | None = None
    min_sustainability: float | None = None
    max_results: int | None = None
    include_inactive: bool | None = None
    sort_by: Literal["relevance", "price", "sustainability", "rating"] = "relevance"
    use_semantic: bool = True
    use_cache: bool = True


class SearchResponse(BaseModel):
    """Result of a search call.

    A FAILED response carries the error that caused it; callers that prefer
    exceptions can call raise_for_status().
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    status: SearchStatus
    query: str
    processed: ProcessedQuery | None = None
    intent: UserIntent | None = None
    results: list[RankedProduct] = Field(default_factory=list)
    total_found: int = 0
    retrieval_mode: RetrievalMode | None = None
    fallback_reason: str | None = None
    cache_hit: bool = False
    stages: list[SearchStage] = Field(default_factory=list)
    suggestions: dict[str, list[str]] = Field(default_factory=dict)
    error: SearchError | None = Field(default=None, exclude=True)
    message: str | None = None
    latency_ms: float = 0.0
    request_id: str | None = None

    @property
    def ok(self) -> bool:
        return self.status != SearchStatus.FAILED

    def raise_for_status(self) -> None:
        """Re-raise the carried error of a FAILED response."""
        if self.status == SearchStatus.FAILED and self.error is not None:
            raise self.error

    def to_dict(self) -> dict[str, Any]:
        result = self.model_dump(mode="json")
        if self.error is not None:
            result.update(format_error_response(self.error, self.request_id))
        return result
