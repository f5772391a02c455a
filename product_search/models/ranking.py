"""Ranking models."""

from typing import Literal

from pydantic import BaseModel, Field

from product_search.models.product import Product

# Stable factor order, used for weights, explanations and tie handling
FACTOR_NAMES: tuple[str, ...] = (
    "semantic_relevance",
    "exact_match_bonus",
    "category_relevance",
    "sustainability_score",
    "popularity_score",
    "price_competitiveness",
    "availability_bonus",
    "intent_alignment",
    "user_preference_match",
    "freshness",
)

FACTOR_LABELS: dict[str, str] = {
    "semantic_relevance": "Semantic Relevance",
    "exact_match_bonus": "Exact Match",
    "category_relevance": "Category Match",
    "sustainability_score": "Sustainability",
    "popularity_score": "Popularity",
    "price_competitiveness": "Price",
    "availability_bonus": "Availability",
    "intent_alignment": "Intent Alignment",
    "user_preference_match": "User Preference",
    "freshness": "Freshness",
}


class UserPreferences(BaseModel):
    """Optional per-user preferences. Every field may be absent."""

    preferred_categories: list[str] = Field(default_factory=list)
    max_price: float | None = Field(default=None, gt=0)
    min_sustainability_score: float | None = Field(default=None, ge=0, le=100)
    sustainability_focus: bool = False
    price_bracket: Literal["budget", "mid", "premium"] | None = None


class RankingFactors(BaseModel):
    """Ten independent scores, each in [0, 1]."""

    semantic_relevance: float = Field(default=0.0, ge=0.0, le=1.0)
    exact_match_bonus: float = Field(default=0.0, ge=0.0, le=1.0)
    category_relevance: float = Field(default=0.0, ge=0.0, le=1.0)
    sustainability_score: float = Field(default=0.0, ge=0.0, le=1.0)
    popularity_score: float = Field(default=0.0, ge=0.0, le=1.0)
    price_competitiveness: float = Field(default=0.0, ge=0.0, le=1.0)
    availability_bonus: float = Field(default=0.0, ge=0.0, le=1.0)
    intent_alignment: float = Field(default=0.0, ge=0.0, le=1.0)
    user_preference_match: float = Field(default=0.0, ge=0.0, le=1.0)
    freshness: float = Field(default=0.0, ge=0.0, le=1.0)

    def as_dict(self) -> dict[str, float]:
        return {name: getattr(self, name) for name in FACTOR_NAMES}


class RankedProduct(BaseModel):
    """A product annotated with its call-scoped ranking."""

    product: Product
    final_score: float = Field(ge=0.0, le=1.0)
    ranking_factors: RankingFactors
    explanation: list[str] = Field(default_factory=list)
    position: int = Field(default=0, ge=0)
    similarity: float | None = None
