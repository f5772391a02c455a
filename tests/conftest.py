"""Shared fixtures for the product search tests."""

import asyncio

import pytest

from product_search.cache import TTLCache
from product_search.config import Settings
from product_search.models.intent import SearchIntent, UserIntent
from product_search.search.catalog import CatalogSnapshot, StaticCatalog


SAMPLE_PRODUCTS = [
    {
        "id": 1,
        "name": "AutoMate Wireless Dash Cam",
        "description": "Compact wireless dash cam that records every drive. Mounts in any car.",
        "category": "Automotive",
        "priceUSD": 89.99,
        "sustainabilityScore": 72,
        "averageRating": 4.6,
        "isActive": True,
        "features": ["wifi", "night vision"],
        "certifications": ["CE"],
    },
    {
        "id": 2,
        "name": "RoadGuard Dual Dash Cam",
        "description": "Front and rear dash cam for your car with parking mode.",
        "category": "Automotive",
        "priceUSD": 149.0,
        "sustainabilityScore": 55,
        "averageRating": 4.1,
        "isActive": True,
    },
    {
        "id": 3,
        "name": "PulseFit Smart Watch",
        "description": "Lightweight smart watch with heart rate tracking.",
        "category": "Wearables",
        "priceUSD": 45.0,
        "sustainabilityScore": 81,
        "averageRating": 4.3,
        "isActive": True,
    },
    {
        "id": 4,
        "name": "Aurora Pro Smart Watch",
        "description": "Premium smart watch with GPS and titanium case.",
        "category": "Wearables",
        "priceUSD": 199.0,
        "sustainabilityScore": 64,
        "averageRating": 4.8,
        "isActive": True,
    },
    {
        "id": 5,
        "name": "Bamboo Laptop Stand",
        "description": "Sustainable bamboo laptop stand for the home office.",
        "category": "Home",
        "priceUSD": 39.5,
        "sustainabilityScore": 93,
        "averageRating": 4.4,
        "isActive": True,
        "certifications": ["FSC"],
    },
    {
        "id": 6,
        "name": "Legacy Dash Cam",
        "description": "Discontinued dash cam for car owners.",
        "category": "Automotive",
        "priceUSD": 29.0,
        "sustainabilityScore": 40,
        "averageRating": 3.2,
        "isActive": False,
    },
]


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSpellChecker:
    def __init__(self, answer: str | None = None, error: Exception | None = None, delay: float = 0.0):
        self.answer = answer
        self.error = error
        self.delay = delay
        self.calls: list[str] = []

    async def correct(self, query: str) -> str | None:
        self.calls.append(query)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.answer


class FakeIntentFallback:
    def __init__(self, result: UserIntent | None = None, error: Exception | None = None):
        self.result = result
        self.error = error
        self.calls: list[str] = []

    async def classify(self, query: str) -> UserIntent | None:
        self.calls.append(query)
        if self.error is not None:
            raise self.error
        return self.result


VOCABULARY = ("dash", "cam", "watch", "bamboo")


class FakeEmbedder:
    """Bag-of-words vectors over a tiny fixed vocabulary."""

    def __init__(self, error: Exception | None = None):
        self.error = error
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return embed_text(text)


def embed_text(text: str) -> list[float]:
    text = text.lower()
    return [1.0 if word in text else 0.0 for word in VOCABULARY]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock) -> TTLCache:
    return TTLCache(max_size=100, default_ttl=300, clock=clock)


@pytest.fixture
def products() -> list[dict]:
    return [dict(p) for p in SAMPLE_PRODUCTS]


@pytest.fixture
def snapshot(products) -> CatalogSnapshot:
    return CatalogSnapshot.from_products(products)


@pytest.fixture
def embedded_snapshot(products) -> CatalogSnapshot:
    records = [dict(p, embedding=embed_text(f"{p['name']} {p['description']}")) for p in products]
    return CatalogSnapshot.from_products(records)


@pytest.fixture
def catalog(products) -> StaticCatalog:
    return StaticCatalog(products)


@pytest.fixture
def settings() -> Settings:
    return Settings(llm_enabled=False, log_json=False)


@pytest.fixture
def buy_intent() -> UserIntent:
    return UserIntent(primary_intent=SearchIntent.BUY, confidence=0.9)
