"""
Candidate retrieval.

Semantic path: embed the expanded query (cached) and keep products whose
cosine similarity exceeds the threshold; products without a vector are
matched by keyword alongside them. Keyword path: every significant
token of the query must occur in the product's searchable text, or the whole
query must. The keyword path is used whenever the semantic path is
unavailable or fails; an empty candidate list is a valid result.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Iterable

import numpy as np
import structlog

from product_search.cache import TTLCache, make_key
from product_search.models.product import Product
from product_search.models.search import RetrievalMode, SearchFilters
from product_search.search.catalog import CatalogSnapshot, Embedder

logger = structlog.get_logger()

MIN_TOKEN_LENGTH = 3


@dataclass
class Candidate:
    """A retrieved, not yet ranked, product."""
    product: Product
    similarity: float | None = None


@dataclass
class RetrievalResult:
    """Candidates plus how they were found."""
    candidates: list[Candidate] = field(default_factory=list)
    mode: RetrievalMode = RetrievalMode.KEYWORD
    fallback_reason: str | None = None

    @property
    def products(self) -> list[Product]:
        return [c.product for c in self.candidates]

    @property
    def similarity_scores(self) -> dict[int, float]:
        return {
            c.product.id: c.similarity
            for c in self.candidates
            if c.similarity is not None
        }

    def __len__(self) -> int:
        return len(self.candidates)


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity; 0.0 for mismatched lengths or zero vectors."""
    if a.shape != b.shape:
        return 0.0
    norm = float(np.linalg.norm(a) * np.linalg.norm(b))
    if norm == 0.0:
        return 0.0
    return float(np.dot(a, b) / norm)


def keyword_match(text: str, query: str) -> bool:
    """All significant tokens present in text, or the full query is."""
    query = query.strip()
    if not query:
        return True

    tokens = [t for t in query.split() if len(t) >= MIN_TOKEN_LENGTH]
    if tokens and all(token in text for token in tokens):
        return True
    return query in text


class Retriever:
    """Find candidate products for an expanded query."""

    def __init__(
        self,
        catalog: CatalogSnapshot,
        embedder: Embedder | None = None,
        cache: TTLCache | None = None,
        similarity_threshold: float = 0.1,
        embedding_cache_ttl: float | None = None,
        timeout: float = 5.0,
    ):
        self.catalog = catalog
        self.embedder = embedder
        self.cache = cache
        self.similarity_threshold = similarity_threshold
        self.embedding_cache_ttl = embedding_cache_ttl
        self.timeout = timeout

    async def retrieve(
        self,
        expanded_query: str,
        filters: SearchFilters | None = None,
        keyword_query: str | None = None,
        use_semantic: bool = True,
    ) -> RetrievalResult:
        """Retrieve filtered, deduplicated candidates.

        Args:
            expanded_query: Query used for embedding similarity
            filters: Hard filters (category, price, sustainability, active)
            keyword_query: Query used by the keyword path, defaults to
                expanded_query
            use_semantic: Allow the semantic path
        """
        filters = filters or SearchFilters()
        fallback_reason = self._semantic_unavailable_reason(expanded_query, use_semantic)

        if fallback_reason is None:
            try:
                candidates = await self._semantic_search(
                    expanded_query,
                    filters,
                    expanded_query if keyword_query is None else keyword_query,
                )
                logger.debug("semantic_retrieval", candidates=len(candidates))
                return RetrievalResult(candidates=candidates, mode=RetrievalMode.SEMANTIC)
            except asyncio.TimeoutError:
                fallback_reason = f"embedding timed out after {self.timeout}s"
            except Exception as e:
                fallback_reason = f"semantic search failed: {e}"
            logger.warning("semantic_retrieval_fallback", reason=fallback_reason)

        if keyword_query is None:
            keyword_query = expanded_query
        candidates = self._keyword_search(keyword_query, filters)
        logger.debug("keyword_retrieval", candidates=len(candidates), reason=fallback_reason)
        return RetrievalResult(
            candidates=candidates,
            mode=RetrievalMode.KEYWORD,
            fallback_reason=fallback_reason,
        )

    def _semantic_unavailable_reason(self, query: str, use_semantic: bool) -> str | None:
        if not use_semantic:
            return "semantic search disabled"
        if self.embedder is None:
            return "no embedding provider"
        if not self.catalog.has_embeddings:
            return "catalog has no embeddings"
        if not query.strip():
            return "empty query"
        return None

    async def _semantic_search(
        self,
        query: str,
        filters: SearchFilters,
        keyword_query: str,
    ) -> list[Candidate]:
        """Similarity over embedded products plus keyword matches among the rest."""
        query_vector = np.asarray(await self._query_embedding(query), dtype=np.float64)

        candidates = []
        for product_id, vector in self.catalog.embeddings.items():
            product = self.catalog.by_id[product_id]
            if not filters.allows(product):
                continue
            similarity = cosine_similarity(query_vector, vector)
            if similarity > self.similarity_threshold:
                candidates.append(Candidate(product=product, similarity=min(similarity, 1.0)))

        candidates.sort(key=lambda c: (-c.similarity, c.product.id))

        unembedded = [p for p in self.catalog.products if p.id not in self.catalog.embeddings]
        if unembedded:
            seen = {c.product.id for c in candidates}
            matches = self._keyword_search(keyword_query, filters, unembedded, seen)
            if matches:
                logger.debug("unembedded_keyword_matches", candidates=len(matches))
            candidates.extend(matches)
        return candidates

    async def _query_embedding(self, query: str) -> list[float]:
        cache_key = make_key("embedding", query)
        if self.cache is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached

        vector = await asyncio.wait_for(self.embedder.embed(query), timeout=self.timeout)
        if not vector:
            raise ValueError("embedding provider returned an empty vector")

        if self.cache is not None:
            self.cache.set(cache_key, vector, self.embedding_cache_ttl)
        return vector

    def _keyword_search(
        self,
        query: str,
        filters: SearchFilters,
        products: Iterable[Product] | None = None,
        seen: set[int] | None = None,
    ) -> list[Candidate]:
        query = query.lower()
        seen = set() if seen is None else seen
        candidates = []

        for product in self.catalog.products if products is None else products:
            if product.id in seen or not filters.allows(product):
                continue
            if keyword_match(product.searchable_text(), query):
                seen.add(product.id)
                candidates.append(Candidate(product=product))

        return candidates
