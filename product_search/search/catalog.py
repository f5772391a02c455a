"""
Catalog access for retrieval.

A CatalogSource supplies raw product records; CatalogSnapshot is the
immutable, per-load view the Retriever and Ranker work against.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Protocol

import numpy as np
import structlog

from product_search.models.product import Product

logger = structlog.get_logger()


class CatalogSource(Protocol):
    """Supplies the full, current set of product records."""

    async def load_products(self) -> list[Product | dict[str, Any]]:
        ...


class Embedder(Protocol):
    """Turns text into a fixed-length vector."""

    async def embed(self, text: str) -> list[float]:
        ...


class StaticCatalog:
    """In-memory catalog source, e.g. for fixtures or a preloaded feed."""

    def __init__(self, records: Iterable[Product | dict[str, Any]] = ()):
        self._records = list(records)

    async def load_products(self) -> list[Product | dict[str, Any]]:
        return list(self._records)


def product_document(product: Product) -> str:
    """Text used to embed a product."""
    parts = [product.name, product.description, f"Category: {product.category}"]
    if product.features:
        parts.append(f"Features: {', '.join(product.features)}")
    if product.certifications:
        parts.append(f"Certifications: {', '.join(product.certifications)}")
    return ". ".join(p for p in parts if p)


@dataclass(frozen=True)
class CatalogSnapshot:
    """Read-only products for one or more searches."""

    products: tuple[Product, ...] = ()
    by_id: Mapping[int, Product] = field(default_factory=lambda: MappingProxyType({}))
    embeddings: Mapping[int, np.ndarray] = field(default_factory=lambda: MappingProxyType({}))
    max_id: int = 0

    @classmethod
    def from_products(
        cls,
        products: Iterable[Product | dict[str, Any]],
        embeddings: Mapping[int, list[float]] | None = None,
    ) -> "CatalogSnapshot":
        """Build a snapshot, dropping duplicate ids (first wins).

        Raises:
            InvalidArgumentError: If a raw record has no id or is invalid
        """
        by_id: dict[int, Product] = {}
        for item in products:
            product = item if isinstance(item, Product) else Product.from_record(item)
            if product.id in by_id:
                logger.warning("catalog_duplicate_id", product_id=product.id)
                continue
            by_id[product.id] = product

        vectors: dict[int, np.ndarray] = {}
        for product in by_id.values():
            vector = product.embedding
            if embeddings is not None and product.id in embeddings:
                vector = embeddings[product.id]
            if vector:
                vectors[product.id] = np.asarray(vector, dtype=np.float64)

        return cls(
            products=tuple(by_id.values()),
            by_id=MappingProxyType(by_id),
            embeddings=MappingProxyType(vectors),
            max_id=max(by_id, default=0),
        )

    @classmethod
    async def load(cls, source: CatalogSource) -> "CatalogSnapshot":
        """Load every product from a source."""
        records = await source.load_products()
        snapshot = cls.from_products(records)
        logger.info(
            "catalog_loaded",
            products=len(snapshot),
            embedded=len(snapshot.embeddings),
        )
        return snapshot

    def __len__(self) -> int:
        return len(self.products)

    @property
    def has_embeddings(self) -> bool:
        return bool(self.embeddings)

    def get(self, product_id: int) -> Product | None:
        return self.by_id.get(product_id)

    def with_embeddings(self, embeddings: Mapping[int, list[float]]) -> "CatalogSnapshot":
        """Return a new snapshot with extra/replacement vectors."""
        return CatalogSnapshot.from_products(
            self.products,
            embeddings={
                **{pid: vec.tolist() for pid, vec in self.embeddings.items()},
                **embeddings,
            },
        )


async def build_embedding_index(
    products: Iterable[Product],
    embedder: Embedder,
) -> dict[int, list[float]]:
    """Embed products lacking a precomputed vector.

    Products whose embedding call fails are skipped and stay keyword-only.
    """
    index: dict[int, list[float]] = {}
    failed = 0

    for product in products:
        if product.embedding:
            continue
        try:
            index[product.id] = await embedder.embed(product_document(product))
        except Exception as e:
            failed += 1
            logger.warning("product_embedding_failed", product_id=product.id, error=str(e))

    logger.info("embedding_index_built", embedded=len(index), failed=failed)
    return index
