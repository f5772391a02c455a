"""Tests for multi-factor ranking."""

import re

import pytest

from product_search.models.intent import IntentEntities, SearchIntent, UserIntent
from product_search.models.product import Product
from product_search.models.ranking import FACTOR_NAMES, RankingFactors, UserPreferences
from product_search.search.ranker import BASE_WEIGHTS, Ranker, in_price_bracket


def make_product(**overrides) -> Product:
    record = {
        "id": 1,
        "name": "Test Product",
        "description": "A test product.",
        "category": "Home",
        "priceUSD": 50.0,
        "sustainabilityScore": 50,
        "averageRating": 4.0,
    }
    record.update(overrides)
    return Product.model_validate(record)


@pytest.fixture
def catalog_products(snapshot) -> list[Product]:
    return list(snapshot.products)


class TestRank:

    def test_empty_candidates(self):
        assert Ranker().rank([], "anything") == []

    def test_dash_cam_ranks_first_for_automotive_buy(self, snapshot):
        intent = UserIntent(
            primary_intent=SearchIntent.BUY,
            confidence=0.8,
            entities=IntentEntities(category="automotive"),
        )
        candidates = [snapshot.get(2), snapshot.get(1)]

        ranked = Ranker().rank(candidates, "dash cam car", intent, max_known_id=snapshot.max_id)

        assert ranked[0].product.name == "AutoMate Wireless Dash Cam"
        assert [r.position for r in ranked] == [1, 2]

    def test_equal_scores_ordered_by_id(self):
        first = make_product(id=7)
        second = make_product(id=3)

        ranked = Ranker().rank([first, second], "test", max_known_id=1)

        assert ranked[0].final_score == ranked[1].final_score
        assert [r.product.id for r in ranked] == [3, 7]

    def test_scores_bounded_and_sorted(self, catalog_products):
        ranked = Ranker().rank(catalog_products, "smart watch")

        scores = [r.final_score for r in ranked]
        assert all(0.0 <= s <= 1.0 for s in scores)
        assert scores == sorted(scores, reverse=True)
        assert [r.position for r in ranked] == list(range(1, len(ranked) + 1))

    def test_duplicates_removed(self, snapshot):
        product = snapshot.get(1)
        ranked = Ranker().rank([product, product], "dash cam")
        assert len(ranked) == 1

    def test_deterministic(self, catalog_products):
        ranker = Ranker()
        first = ranker.rank(catalog_products, "dash cam")
        second = ranker.rank(list(reversed(catalog_products)), "dash cam")
        assert [r.product.id for r in first] == [r.product.id for r in second]

    def test_semantic_scores_used(self):
        products = [make_product(id=1), make_product(id=2)]
        ranked = Ranker().rank(products, "", semantic_scores={2: 0.9, 1: 0.1})

        assert ranked[0].product.id == 2
        assert ranked[0].similarity == pytest.approx(0.9)
        assert ranked[0].ranking_factors.semantic_relevance == pytest.approx(0.9)

    def test_configured_max_id_takes_precedence(self):
        product = make_product(id=5)
        ranked = Ranker(max_known_id=10).rank([product], "test", max_known_id=5)
        assert ranked[0].ranking_factors.freshness == pytest.approx(0.5)


class TestWeights:

    def test_base_weights_sum_to_one(self):
        assert sum(BASE_WEIGHTS.values()) == pytest.approx(1.0)
        assert set(BASE_WEIGHTS) == set(FACTOR_NAMES)

    def test_intent_override(self):
        weights = Ranker().weights_for_intent(SearchIntent.BUY)

        assert weights["exact_match_bonus"] == pytest.approx(0.20)
        assert weights["availability_bonus"] == pytest.approx(0.15)
        assert weights["semantic_relevance"] == pytest.approx(0.25)

    def test_normalized_weights(self):
        for intent in SearchIntent:
            weights = Ranker(normalize_weights=True).weights_for_intent(intent)
            assert sum(weights.values()) == pytest.approx(1.0)

    def test_final_score_clamped(self):
        factors = RankingFactors(**{name: 1.0 for name in FACTOR_NAMES})
        weights = Ranker().weights_for_intent(SearchIntent.BUY)
        assert Ranker.final_score(factors, weights) == 1.0


class TestFactors:

    def test_exact_match_in_name(self, snapshot):
        assert Ranker().exact_match_bonus(snapshot.get(1), "dash cam") == pytest.approx(1.0)

    def test_exact_match_in_description(self, snapshot):
        assert Ranker().exact_match_bonus(snapshot.get(1), "car") == pytest.approx(0.8)

    def test_exact_match_token_coverage(self, snapshot):
        score = Ranker().exact_match_bonus(snapshot.get(1), "wireless car mount")
        assert score == pytest.approx(0.5)

    def test_exact_match_cap(self, snapshot):
        assert Ranker(exact_match_cap=0.5).exact_match_bonus(snapshot.get(1), "dash cam") == 0.5

    def test_exact_match_empty_query(self, snapshot):
        assert Ranker().exact_match_bonus(snapshot.get(1), "") == 0.0

    def test_category_relevance(self):
        intent = UserIntent(entities=IntentEntities(category="automotive"))

        assert Ranker.category_relevance(make_product(category="Automotive"), intent) == 1.0
        assert Ranker.category_relevance(make_product(category="Electronics"), intent) == 0.7
        assert Ranker.category_relevance(make_product(category="Home"), intent) == 0.6
        assert Ranker.category_relevance(make_product(category="Garden"), intent) == 0.5

    def test_popularity(self):
        assert Ranker.popularity(make_product(averageRating=4.0)) == pytest.approx(0.8)
        assert Ranker.popularity(make_product(averageRating=4.0, certifications=["FSC"])) == pytest.approx(0.9)
        assert Ranker.popularity(make_product(averageRating=5.0, certifications=["FSC"])) == 1.0

    @pytest.mark.parametrize(
        "price, expected",
        [(45, 1.0), (89.99, 0.8), (149, 0.6), (300, 0.4), (600, 0.2)],
    )
    def test_price_ladder(self, price, expected):
        assert Ranker.price_competitiveness(make_product(priceUSD=price), None) == expected

    def test_price_against_budget(self):
        preferences = UserPreferences(max_price=100)

        assert Ranker.price_competitiveness(make_product(priceUSD=50), preferences) == pytest.approx(0.75)
        assert Ranker.price_competitiveness(make_product(priceUSD=150), preferences) == 0.0

    def test_intent_alignment(self):
        product = make_product(averageRating=4.4, sustainabilityScore=93)

        assert Ranker.intent_alignment(product, SearchIntent.BUY) == pytest.approx(0.8)
        assert Ranker.intent_alignment(product, SearchIntent.RECOMMEND) == pytest.approx(1.0)
        assert Ranker.intent_alignment(product, SearchIntent.LEARN) == pytest.approx(0.5)

    def test_user_preference_match(self):
        preferences = UserPreferences(
            preferred_categories=["home"],
            sustainability_focus=True,
            price_bracket="budget",
        )

        match = make_product(category="Home", sustainabilityScore=93, priceUSD=39.5)
        miss = make_product(category="Wearables", sustainabilityScore=64, priceUSD=199)
        partial = make_product(category="Wearables", sustainabilityScore=81, priceUSD=45)

        assert Ranker.user_preference_match(match, preferences) == 1.0
        assert Ranker.user_preference_match(miss, preferences) == 0.0
        assert Ranker.user_preference_match(partial, preferences) == pytest.approx(2 / 3)

    def test_user_preference_neutral(self):
        assert Ranker.user_preference_match(make_product(), None) == 0.5
        assert Ranker.user_preference_match(make_product(), UserPreferences()) == 0.5

    def test_price_brackets(self):
        assert in_price_bracket(99, "budget")
        assert in_price_bracket(100, "mid")
        assert in_price_bracket(300, "premium")
        assert not in_price_bracket(300, "mid")


class TestExplanation:

    def test_format_and_highlights(self, snapshot):
        ranked = Ranker().rank([snapshot.get(5)], "bamboo laptop stand")
        explanation = ranked[0].explanation

        factor_lines = [line for line in explanation if re.match(r"^[A-Za-z ]+: \d+\.\d%$", line)]
        assert 1 <= len(factor_lines) <= 3
        assert "High sustainability score (93)" in explanation
        assert "Highly rated (4.4/5)" in explanation

    def test_no_highlights_for_average_product(self):
        product = make_product(sustainabilityScore=40, averageRating=3.0)
        explanation = Ranker().rank([product], "test")[0].explanation

        assert not any(line.startswith("High sustainability") for line in explanation)
        assert not any(line.startswith("Highly rated") for line in explanation)
