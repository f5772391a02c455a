"""Search pipeline stages.

- QueryNormalizer / QueryExpander / QueryProcessingPipeline: query text
- IntentClassifier: action category and entities
- CatalogSnapshot / Retriever: candidate products
- Ranker: multi-factor scoring
"""

from product_search.search.catalog import (
    CatalogSnapshot,
    CatalogSource,
    Embedder,
    StaticCatalog,
    build_embedding_index,
    product_document,
)
from product_search.search.expander import QueryExpander, extract_price_filter, extract_terms
from product_search.search.intent import IntentClassifier, IntentFallback
from product_search.search.normalizer import QueryNormalizer, SpellChecker, clean_query
from product_search.search.pipeline import QueryProcessingPipeline
from product_search.search.ranker import Ranker
from product_search.search.retriever import Candidate, RetrievalResult, Retriever

__all__ = [
    "Candidate",
    "CatalogSnapshot",
    "CatalogSource",
    "Embedder",
    "IntentClassifier",
    "IntentFallback",
    "QueryExpander",
    "QueryNormalizer",
    "QueryProcessingPipeline",
    "Ranker",
    "RetrievalResult",
    "Retriever",
    "SpellChecker",
    "StaticCatalog",
    "build_embedding_index",
    "clean_query",
    "extract_price_filter",
    "extract_terms",
    "product_document",
]
