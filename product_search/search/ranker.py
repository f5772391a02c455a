"""
Multi-factor product ranking.

Each candidate is scored on ten independent factors in [0, 1]. The factors
are combined with intent-specific weights into a final score, clamped to
[0, 1]. Results are sorted by score descending with ties broken by product id
ascending, so output is identical for identical input.

Weights:
- Base distribution sums to 1.0
- Per-intent tables override only the keys they name; with
  ``normalize_weights`` the merged vector is rescaled to sum to 1.0
"""

from typing import Iterable

import structlog

from product_search.models.intent import SearchIntent, UserIntent
from product_search.models.product import Product
from product_search.models.ranking import (
    FACTOR_LABELS,
    FACTOR_NAMES,
    RankedProduct,
    RankingFactors,
    UserPreferences,
)
from product_search.search.dictionaries import (
    CATEGORY_POPULARITY,
    DEFAULT_CATEGORY_POPULARITY,
    RELATED_CATEGORIES,
)

logger = structlog.get_logger()

BASE_WEIGHTS: dict[str, float] = {
    "semantic_relevance": 0.25,
    "exact_match_bonus": 0.15,
    "category_relevance": 0.12,
    "sustainability_score": 0.15,
    "popularity_score": 0.10,
    "price_competitiveness": 0.08,
    "availability_bonus": 0.05,
    "intent_alignment": 0.05,
    "user_preference_match": 0.03,
    "freshness": 0.02,
}

INTENT_WEIGHT_OVERRIDES: dict[SearchIntent, dict[str, float]] = {
    SearchIntent.BUY: {
        "availability_bonus": 0.15,
        "price_competitiveness": 0.12,
        "popularity_score": 0.12,
        "exact_match_bonus": 0.20,
    },
    SearchIntent.BROWSE: {
        "semantic_relevance": 0.30,
        "category_relevance": 0.15,
        "sustainability_score": 0.18,
        "freshness": 0.05,
    },
    SearchIntent.COMPARE: {
        "category_relevance": 0.20,
        "popularity_score": 0.15,
        "sustainability_score": 0.12,
        "price_competitiveness": 0.15,
    },
    SearchIntent.LEARN: {
        "exact_match_bonus": 0.25,
        "category_relevance": 0.20,
        "popularity_score": 0.08,
        "sustainability_score": 0.20,
    },
    SearchIntent.RECOMMEND: {
        "popularity_score": 0.18,
        "sustainability_score": 0.20,
        "user_preference_match": 0.08,
        "price_competitiveness": 0.10,
    },
}

# Upper bound (exclusive) -> score
PRICE_LADDER: list[tuple[float, float]] = [
    (50.0, 1.0),
    (100.0, 0.8),
    (200.0, 0.6),
    (500.0, 0.4),
]
LUXURY_PRICE_SCORE = 0.2

EXPLANATION_THRESHOLD = 0.05
EXPLANATION_FACTORS = 3
HIGHLIGHT_THRESHOLD = 0.8
NEUTRAL_PREFERENCE_SCORE = 0.5
MIN_TOKEN_LENGTH = 3


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def _tokens(query: str) -> list[str]:
    return [t for t in query.lower().split() if len(t) >= MIN_TOKEN_LENGTH]


def _format_number(value: float) -> str:
    return f"{value:g}"


def in_price_bracket(price: float, bracket: str) -> bool:
    if bracket == "budget":
        return price < 100
    if bracket == "mid":
        return 100 <= price < 300
    if bracket == "premium":
        return price >= 300
    return False


class Ranker:
    """Score and order candidates with intent-dependent weighting."""

    def __init__(
        self,
        max_known_id: int | None = None,
        exact_match_cap: float = 1.0,
        normalize_weights: bool = False,
    ):
        self.max_known_id = max_known_id
        self.exact_match_cap = exact_match_cap
        self.normalize_weights = normalize_weights

    def weights_for_intent(self, intent: SearchIntent | None) -> dict[str, float]:
        """Base weights merged with the intent's overrides."""
        weights = dict(BASE_WEIGHTS)
        if intent is not None:
            weights.update(INTENT_WEIGHT_OVERRIDES.get(intent, {}))

        if self.normalize_weights:
            total = sum(weights.values())
            weights = {name: weight / total for name, weight in weights.items()}

        return weights

    def rank(
        self,
        products: Iterable[Product],
        query: str,
        intent: UserIntent | None = None,
        preferences: UserPreferences | None = None,
        semantic_scores: dict[int, float] | None = None,
        max_known_id: int | None = None,
    ) -> list[RankedProduct]:
        """Rank candidates.

        Args:
            products: Candidates; duplicate ids are dropped (first wins)
            query: Query text used for relevance/exact-match factors
            intent: Classified intent (browse when absent)
            preferences: Optional user preferences
            semantic_scores: Retrieval similarity by product id
            max_known_id: Freshness denominator, e.g. the catalog's max id.
                A configured ``self.max_known_id`` takes precedence; the
                candidates' max id is the last resort

        Returns:
            Ranked products with contiguous positions 1..N
        """
        unique: dict[int, Product] = {}
        for product in products:
            unique.setdefault(product.id, product)

        if not unique:
            return []

        intent = intent or UserIntent()
        semantic_scores = semantic_scores or {}
        weights = self.weights_for_intent(intent.primary_intent)
        max_id = self.max_known_id or max_known_id or max(unique)

        ranked = []
        for product in unique.values():
            factors = self.calculate_factors(
                product,
                query,
                intent,
                preferences,
                semantic_scores.get(product.id),
                max_id,
            )
            score = self.final_score(factors, weights)
            ranked.append(
                RankedProduct(
                    product=product,
                    final_score=score,
                    ranking_factors=factors,
                    explanation=self.explain(product, factors, weights),
                    similarity=semantic_scores.get(product.id),
                )
            )

        ranked.sort(key=lambda r: (-r.final_score, r.product.id))
        for position, item in enumerate(ranked, start=1):
            item.position = position

        logger.debug(
            "ranking_complete",
            candidates=len(ranked),
            intent=intent.primary_intent.value,
            top_product=ranked[0].product.id,
            top_score=ranked[0].final_score,
        )
        return ranked

    def calculate_factors(
        self,
        product: Product,
        query: str,
        intent: UserIntent,
        preferences: UserPreferences | None,
        semantic_score: float | None,
        max_id: int,
    ) -> RankingFactors:
        return RankingFactors(
            semantic_relevance=self.semantic_relevance(product, query, semantic_score),
            exact_match_bonus=self.exact_match_bonus(product, query),
            category_relevance=self.category_relevance(product, intent),
            sustainability_score=_clamp(product.sustainability_score / 100),
            popularity_score=self.popularity(product),
            price_competitiveness=self.price_competitiveness(product, preferences),
            availability_bonus=1.0 if product.is_active else 0.0,
            intent_alignment=self.intent_alignment(product, intent.primary_intent),
            user_preference_match=self.user_preference_match(product, preferences),
            freshness=_clamp(product.id / max_id) if max_id > 0 else 0.0,
        )

    @staticmethod
    def final_score(factors: RankingFactors, weights: dict[str, float]) -> float:
        values = factors.as_dict()
        score = sum(values[name] * weights[name] for name in FACTOR_NAMES)
        return round(_clamp(score), 6)

    @staticmethod
    def semantic_relevance(product: Product, query: str, semantic_score: float | None) -> float:
        """Retrieval similarity if present, else query-token coverage."""
        if semantic_score is not None and semantic_score > 0:
            return _clamp(semantic_score)

        tokens = _tokens(query)
        if not tokens:
            return 0.0
        text = f"{product.name} {product.description}".lower()
        return sum(1 for t in tokens if t in text) / len(tokens)

    def exact_match_bonus(self, product: Product, query: str) -> float:
        query = query.lower().strip()
        if not query:
            return 0.0

        name = product.name.lower()
        description = product.description.lower()

        # Full query match in name, then description
        if query in name:
            return min(1.0, self.exact_match_cap)
        if query in description:
            return min(0.8, self.exact_match_cap)

        tokens = _tokens(query)
        if not tokens:
            return 0.0
        name_hits = sum(1 for t in tokens if t in name)
        desc_hits = sum(1 for t in tokens if t in description)
        score = (name_hits / len(tokens)) * 0.6 + (desc_hits / len(tokens)) * 0.3
        return min(score, self.exact_match_cap, 1.0)

    @staticmethod
    def category_relevance(product: Product, intent: UserIntent) -> float:
        category = product.category.lower()
        wanted = (intent.entities.category or "").lower()

        if wanted and category == wanted:
            return 1.0
        if wanted and wanted in RELATED_CATEGORIES.get(category, []):
            return 0.7
        return CATEGORY_POPULARITY.get(category, DEFAULT_CATEGORY_POPULARITY)

    @staticmethod
    def popularity(product: Product) -> float:
        score = product.average_rating / 5
        # Certifications act as social proof
        if product.certifications:
            score += 0.1
        return _clamp(score)

    @staticmethod
    def price_competitiveness(product: Product, preferences: UserPreferences | None) -> float:
        price = product.price_usd

        if preferences is not None and preferences.max_price:
            if price <= preferences.max_price:
                return 1.0 - 0.5 * (price / preferences.max_price)
            return 0.0

        for upper, score in PRICE_LADDER:
            if price < upper:
                return score
        return LUXURY_PRICE_SCORE

    @staticmethod
    def intent_alignment(product: Product, intent: SearchIntent) -> float:
        score = 0.5

        if intent == SearchIntent.BUY:
            if product.is_active and product.price_usd > 0:
                score += 0.3
        elif intent == SearchIntent.BROWSE:
            if product.sustainability_score > 70:
                score += 0.2
            if product.certifications:
                score += 0.1
        elif intent == SearchIntent.COMPARE:
            if product.average_rating > 0:
                score += 0.2
            if product.sustainability_score > 0:
                score += 0.1
        elif intent == SearchIntent.LEARN:
            if len(product.description) > 100:
                score += 0.2
            if product.certifications:
                score += 0.1
        elif intent == SearchIntent.RECOMMEND:
            if product.average_rating >= 4.0:
                score += 0.3
            if product.sustainability_score >= 80:
                score += 0.2

        return _clamp(score)

    @staticmethod
    def user_preference_match(product: Product, preferences: UserPreferences | None) -> float:
        """Fraction of the supplied preferences the product satisfies."""
        if preferences is None:
            return NEUTRAL_PREFERENCE_SCORE

        checks: list[bool] = []
        if preferences.preferred_categories:
            preferred = {c.lower() for c in preferences.preferred_categories}
            checks.append(product.category.lower() in preferred)
        if preferences.sustainability_focus:
            threshold = preferences.min_sustainability_score or 80
            checks.append(product.sustainability_score >= threshold)
        if preferences.price_bracket:
            checks.append(in_price_bracket(product.price_usd, preferences.price_bracket))

        if not checks:
            return NEUTRAL_PREFERENCE_SCORE
        return sum(checks) / len(checks)

    @staticmethod
    def explain(product: Product, factors: RankingFactors, weights: dict[str, float]) -> list[str]:
        """Top weighted contributions plus product highlights."""
        values = factors.as_dict()
        contributions = [(name, values[name] * weights[name]) for name in FACTOR_NAMES]
        # Stable sort keeps factor order for equal contributions
        contributions.sort(key=lambda item: item[1], reverse=True)

        explanation = [
            f"{FACTOR_LABELS[name]}: {value * 100:.1f}%"
            for name, value in contributions[:EXPLANATION_FACTORS]
            if value > EXPLANATION_THRESHOLD
        ]

        if factors.sustainability_score > HIGHLIGHT_THRESHOLD:
            explanation.append(
                f"High sustainability score ({_format_number(product.sustainability_score)})"
            )
        if factors.popularity_score > HIGHLIGHT_THRESHOLD:
            explanation.append(f"Highly rated ({_format_number(product.average_rating)}/5)")

        return explanation
