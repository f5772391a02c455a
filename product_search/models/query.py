"""Query processing models."""

from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, Field


class PriceFilter(BaseModel):
    """Price bounds extracted from a query (USD)."""

    model_config = {"frozen": True}

    min: float | None = None
    max: float | None = None

    def is_empty(self) -> bool:
        return self.min is None and self.max is None

    def contains(self, price: float) -> bool:
        if self.min is not None and price < self.min:
            return False
        if self.max is not None and price > self.max:
            return False
        return True

    def to_dict(self) -> dict[str, float]:
        return self.model_dump(exclude_none=True)


class Correction(BaseModel):
    """A single spelling correction."""

    original: str
    corrected: str
    confidence: float = 1.0
    source: Literal["static", "external"] = "static"


@dataclass
class NormalizationResult:
    """Output of QueryNormalizer.normalize()."""

    normalized: str
    corrections: list[Correction] = field(default_factory=list)
    cleaned: str = ""
    uncorrected: str = ""
    used_external: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.normalized


@dataclass
class ExpansionResult:
    """Output of QueryExpander.expand()."""

    expanded_query: str
    keyword_query: str = ""
    categories: list[str] = field(default_factory=list)
    features: list[str] = field(default_factory=list)
    price_filter: PriceFilter = field(default_factory=PriceFilter)
    synonyms: list[str] = field(default_factory=list)
    category_terms: list[str] = field(default_factory=list)
    extracted_terms: list[str] = field(default_factory=list)


class ProcessedQuery(BaseModel):
    """Fully processed query, one per request."""

    original_query: str
    normalized_query: str
    corrected_query: str
    expanded_query: str
    keyword_query: str = ""
    extracted_terms: list[str] = Field(default_factory=list)
    synonyms: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    features: list[str] = Field(default_factory=list)
    price_filter: PriceFilter = Field(default_factory=PriceFilter)
    corrections: list[Correction] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    processing_steps: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump()
