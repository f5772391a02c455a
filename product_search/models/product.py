"""Catalog product model."""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from product_search.errors import InvalidArgumentError


class Product(BaseModel):
    """Read-only catalog entry.

    Accepts the camelCase field names used by catalog feeds
    (``priceUSD``, ``sustainabilityScore``, ``averageRating``, ``isActive``).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int = Field(gt=0)
    name: str
    description: str = ""
    category: str = ""
    price_usd: float = Field(
        default=0.0,
        ge=0,
        validation_alias=AliasChoices("price_usd", "priceUSD", "price"),
    )
    sustainability_score: float = Field(
        default=0.0,
        ge=0,
        le=100,
        validation_alias=AliasChoices("sustainability_score", "sustainabilityScore"),
    )
    average_rating: float = Field(
        default=0.0,
        ge=0,
        le=5,
        validation_alias=AliasChoices("average_rating", "averageRating", "rating"),
    )
    is_active: bool = Field(
        default=True,
        validation_alias=AliasChoices("is_active", "isActive", "active"),
    )
    features: list[str] = Field(default_factory=list)
    certifications: list[str] = Field(default_factory=list)
    embedding: list[float] | None = None

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Product":
        """Build a product from a raw catalog record.

        Raises:
            InvalidArgumentError: If the id is missing/blank or a field is invalid
        """
        raw_id = record.get("id")
        if raw_id is None or (isinstance(raw_id, str) and not raw_id.strip()):
            raise InvalidArgumentError(
                "Product id must not be empty", {"name": record.get("name")}
            )

        try:
            return cls.model_validate(record)
        except ValidationError as e:
            raise InvalidArgumentError(
                "Invalid product record",
                {"id": raw_id, "errors": e.errors(include_url=False)},
            ) from e

    def searchable_text(self) -> str:
        """Lower-cased concatenation of every indexed text field."""
        parts = [self.name, self.description, self.category]
        parts.extend(self.features)
        parts.extend(self.certifications)
        return " ".join(p for p in parts if p).lower()

    @property
    def has_certifications(self) -> bool:
        return bool(self.certifications)
