"""Tagged result type for external provider calls."""

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class ProviderResult(Generic[T]):
    """Either ``success=True`` with ``data`` or ``success=False`` with ``error``."""

    success: bool
    data: T | None = None
    error: str | None = None

    @classmethod
    def ok(cls, data: T) -> "ProviderResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "ProviderResult[T]":
        return cls(success=False, error=error)

    def unwrap_or(self, default: T) -> T:
        return self.data if self.success else default
