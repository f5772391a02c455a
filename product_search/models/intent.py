"""Intent models for query understanding."""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from product_search.models.query import PriceFilter


class SearchIntent(str, Enum):
    """Action category behind a search query."""

    BUY = "buy"              # "I need a dash cam", "buy running shoes"
    BROWSE = "browse"        # "show me eco products"
    COMPARE = "compare"      # "dash cam vs action camera"
    LEARN = "learn"          # "what is a fitness tracker"
    RECOMMEND = "recommend"  # "best smartwatch for running"


class Urgency(str, Enum):
    """How soon the user intends to act."""

    IMMEDIATE = "immediate"
    PLANNED = "planned"
    RESEARCH = "research"


class IntentEntities(BaseModel):
    """Structured entities extracted alongside the intent."""

    product_type: str | None = None
    category: str | None = None
    features: list[str] = Field(default_factory=list)
    price_range: PriceFilter | None = None
    use_case: str | None = None
    urgency: Urgency | None = None
    brand: str | None = None


class UserIntent(BaseModel):
    """Classified intent for a query."""

    primary_intent: SearchIntent = SearchIntent.BROWSE
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    entities: IntentEntities = Field(default_factory=IntentEntities)
    search_terms: list[str] = Field(default_factory=list)
    source: Literal["pattern", "llm"] = "pattern"
