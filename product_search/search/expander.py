"""
Query expansion.

Appends synonyms and category boost terms to a normalized query and extracts
category, feature and price filters. Pure and deterministic: the output
depends only on the input text and the static dictionaries.
"""

import re

from product_search.models.query import ExpansionResult, PriceFilter
from product_search.search.dictionaries import (
    CATEGORIES,
    STOP_WORDS,
    SYNONYMS,
    categories_in,
    features_in,
    synonym_terms_in,
)

MAX_EXTRACTED_TERMS = 10

_AMOUNT = r"\$?\s*(\d+(?:\.\d+)?)"

# Checked in order, first match wins
_PRICE_MAX = re.compile(rf"(?:\b(?:under|below|less than)|<)\s*{_AMOUNT}")
_PRICE_MIN = re.compile(rf"(?:\b(?:over|above|more than)|>)\s*{_AMOUNT}")
_PRICE_RANGE = re.compile(rf"\b(?:between|from)\s*{_AMOUNT}\s*(?:to|and|-)\s*{_AMOUNT}")


def extract_price_filter(text: str) -> PriceFilter:
    """Extract a single price filter from query text.

    Precedence: "under/below/less than N" -> max, "over/above/more than N"
    -> min, "between/from N to/and/- M" -> min and max.
    """
    text = text.lower()

    match = _PRICE_MAX.search(text)
    if match:
        return PriceFilter(max=float(match.group(1)))

    match = _PRICE_MIN.search(text)
    if match:
        return PriceFilter(min=float(match.group(1)))

    match = _PRICE_RANGE.search(text)
    if match:
        low, high = float(match.group(1)), float(match.group(2))
        if low > high:
            low, high = high, low
        return PriceFilter(min=low, max=high)

    return PriceFilter()


def strip_price_terms(text: str) -> str:
    """Remove price expressions so they do not act as keywords."""
    for pattern in (_PRICE_RANGE, _PRICE_MAX, _PRICE_MIN):
        text = pattern.sub(" ", text)
    return " ".join(text.split())


def extract_terms(text: str, limit: int = MAX_EXTRACTED_TERMS) -> list[str]:
    """Ordered, deduplicated significant tokens (length > 2, not stop words)."""
    terms: list[str] = []
    for token in text.split():
        if len(token) > 2 and token not in STOP_WORDS and token not in terms:
            terms.append(token)
            if len(terms) == limit:
                break
    return terms


def _dedupe(items: list[str]) -> list[str]:
    seen: set[str] = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


def _contains_term(text: str, term: str) -> bool:
    return re.search(rf"(?<![\w-]){re.escape(term)}(?![\w-])", text) is not None


class QueryExpander:
    """Expand normalized queries with synonyms and category terms."""

    def __init__(self, synonym_cap: int = 5, category_cap: int = 3):
        self.synonym_cap = synonym_cap
        self.category_cap = category_cap

    def expand(self, normalized_query: str, source_query: str | None = None) -> ExpansionResult:
        """Expand a normalized query.

        Args:
            normalized_query: Output of QueryNormalizer
            source_query: Raw query used for price extraction, since stop-word
                removal drops words like "and"/"to" that price ranges need

        Returns:
            ExpansionResult with the expanded query and extracted filters
        """
        query = " ".join(normalized_query.split())
        price_filter = extract_price_filter(source_query if source_query is not None else query)

        if not query:
            return ExpansionResult(expanded_query="", price_filter=price_filter)

        keyword_query = strip_price_terms(query)
        synonyms = _dedupe([
            synonym
            for term in synonym_terms_in(query)
            for synonym in SYNONYMS[term]
        ])

        categories = categories_in(query)
        category_terms = _dedupe([
            term
            for category in categories
            for term in CATEGORIES[category].expansion_terms
        ])

        expanded = query
        expanded = self._append(expanded, synonyms, self.synonym_cap)
        expanded = self._append(expanded, category_terms, self.category_cap)

        return ExpansionResult(
            expanded_query=expanded,
            keyword_query=keyword_query,
            categories=categories,
            features=features_in(query),
            price_filter=price_filter,
            synonyms=synonyms,
            category_terms=category_terms,
            extracted_terms=extract_terms(keyword_query),
        )

    @staticmethod
    def _append(text: str, terms: list[str], cap: int) -> str:
        """Append up to ``cap`` terms not already present in ``text``."""
        added = 0
        for term in terms:
            if added >= cap:
                break
            if _contains_term(text, term):
                continue
            text = f"{text} {term}"
            added += 1
        return text
