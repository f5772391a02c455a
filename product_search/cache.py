"""In-memory TTL + LRU cache for the search pipeline."""

import asyncio
import contextlib
import hashlib
import json
import threading
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

import structlog

from product_search.errors import InvalidArgumentError

logger = structlog.get_logger()

T = TypeVar("T")

_MISSING = object()


@dataclass
class CacheEntry(Generic[T]):
    """A cached value with its expiry and access bookkeeping."""

    data: T
    inserted_at: float
    ttl: float
    access_count: int = 1
    last_accessed_at: float = 0.0

    def is_expired(self, now: float) -> bool:
        return now - self.inserted_at > self.ttl


@dataclass
class CacheStats:
    """Cache statistics snapshot."""

    hits: int = 0
    misses: int = 0
    size: int = 0
    evictions: int = 0
    expirations: int = 0

    @property
    def hit_rate(self) -> float:
        """Fraction of lookups that were hits (0 before any lookup)."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hit_rate,
            "size": self.size,
            "evictions": self.evictions,
            "expirations": self.expirations,
        }


class TTLCache:
    """Capacity-bounded key/value cache with per-entry TTL.

    Features:
    - Expired entries read through get() count as misses and are removed
    - Strict LRU eviction (oldest last access) when inserting at capacity
    - Background sweep of expired entries on a fixed interval
    - Substring-based invalidation for targeted purges

    All reads and writes go through a single lock, so the entry dict is the
    only size counter and is never mutated outside the critical section.
    TTLs are in seconds.
    """

    def __init__(
        self,
        max_size: int = 1000,
        default_ttl: float = 300.0,
        sweep_interval: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size <= 0:
            raise InvalidArgumentError(
                "Cache max_size must be positive", {"max_size": max_size}
            )
        self._validate_ttl(default_ttl)

        self.max_size = max_size
        self.default_ttl = default_ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._entries: dict[str, CacheEntry[Any]] = {}
        self._lock = threading.Lock()
        self._stats = CacheStats()
        self._sweeper: asyncio.Task | None = None

    @staticmethod
    def _validate_ttl(ttl: float) -> None:
        if ttl < 0:
            raise InvalidArgumentError("Cache TTL must not be negative", {"ttl": ttl})

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value, or ``default`` on a miss."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._stats.misses += 1
                return default

            now = self._clock()
            if entry.is_expired(now):
                del self._entries[key]
                self._stats.misses += 1
                self._stats.expirations += 1
                return default

            entry.access_count += 1
            entry.last_accessed_at = now
            self._stats.hits += 1
            return entry.data

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Insert or overwrite a value."""
        actual_ttl = self.default_ttl if ttl is None else ttl
        self._validate_ttl(actual_ttl)

        with self._lock:
            now = self._clock()
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self.max_size:
                self._evict_lru()

            self._entries[key] = CacheEntry(
                data=value,
                inserted_at=now,
                ttl=actual_ttl,
                access_count=1,
                last_accessed_at=now,
            )

    def delete(self, key: str) -> bool:
        """Remove a key; returns whether it was present."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def has(self, key: str) -> bool:
        """Check if a live entry exists without touching hit/miss stats."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if entry.is_expired(self._clock()):
                del self._entries[key]
                self._stats.expirations += 1
                return False
            return True

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def invalidate_pattern(self, pattern: str) -> int:
        """Delete every key containing ``pattern``; returns the count removed."""
        with self._lock:
            keys = [key for key in self._entries if pattern in key]
            for key in keys:
                del self._entries[key]

        if keys:
            logger.info("cache_invalidated", pattern=pattern, count=len(keys))
        return len(keys)

    def sweep(self) -> int:
        """Remove every expired entry regardless of access."""
        with self._lock:
            now = self._clock()
            expired = [
                key for key, entry in self._entries.items() if entry.is_expired(now)
            ]
            for key in expired:
                del self._entries[key]
            self._stats.expirations += len(expired)

        if expired:
            logger.debug("cache_swept", removed=len(expired))
        return len(expired)

    def _evict_lru(self) -> None:
        """Evict the least recently accessed entry. Caller holds the lock."""
        oldest_key: str | None = None
        oldest_time = float("inf")

        # Dict order is insertion order, so ties go to the older insert
        for key, entry in self._entries.items():
            if entry.last_accessed_at < oldest_time:
                oldest_time = entry.last_accessed_at
                oldest_key = key

        if oldest_key is not None:
            del self._entries[oldest_key]
            self._stats.evictions += 1
            logger.debug("cache_evicted", key=oldest_key)

    def get_stats(self) -> CacheStats:
        """Get cache statistics."""
        with self._lock:
            return CacheStats(
                hits=self._stats.hits,
                misses=self._stats.misses,
                size=len(self._entries),
                evictions=self._stats.evictions,
                expirations=self._stats.expirations,
            )

    def get_info(self) -> dict[str, Any]:
        """Get per-entry details, most accessed first."""
        with self._lock:
            now = self._clock()
            entries = [
                {
                    "key": key,
                    "age": now - entry.inserted_at,
                    "ttl": entry.ttl,
                    "access_count": entry.access_count,
                    "last_accessed_at": entry.last_accessed_at,
                }
                for key, entry in self._entries.items()
            ]

        entries.sort(key=lambda e: e["access_count"], reverse=True)
        return {"stats": self.get_stats().to_dict(), "entries": entries}

    async def get_or_set(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[T]],
        ttl: float | None = None,
    ) -> T:
        """Return the cached value or compute, store and return it.

        Nothing is stored if the fetcher raises or is cancelled.
        """
        cached = self.get(key, _MISSING)
        if cached is not _MISSING:
            return cached

        value = await fetcher()
        self.set(key, value, ttl)
        return value

    @property
    def sweeping(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    async def start(self) -> None:
        """Start the background sweep task."""
        if self.sweep_interval <= 0:
            return
        if self.sweeping:
            return
        self._sweeper = asyncio.create_task(self._sweep_loop())
        logger.info("cache_sweeper_started", interval=self.sweep_interval)

    async def close(self) -> None:
        """Stop the background sweep task."""
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._sweeper
        self._sweeper = None

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                self.sweep()
            except Exception as e:
                logger.warning("cache_sweep_failed", error=str(e))


def make_key(prefix: str, *parts: Any, **params: Any) -> str:
    """Generate a stable cache key from query parts and params.

    Params are sorted so dict ordering never changes the key; ``None``
    values are skipped.
    """
    key_parts = [str(part).lower().strip() for part in parts]
    for name, value in sorted(params.items()):
        if value is not None:
            key_parts.append(f"{name}={json.dumps(value, sort_keys=True, default=str)}")

    key_content = "|".join(key_parts)

    # Hash for shorter key
    key_hash = hashlib.sha256(key_content.encode()).hexdigest()[:16]

    return f"{prefix}:{key_hash}"
