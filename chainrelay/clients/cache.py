"""In-memory TTL cache with LRU eviction and metrics, plus the RPC cache policy."""

import json
import logging
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


class CacheMetrics:
    """Tracks cache hit/miss/set/eviction statistics."""

    def __init__(self) -> None:
        self.hits = 0
        self.misses = 0
        self.sets = 0
        self.evictions = 0

    @property
    def hit_rate(self) -> float:
        return self.hits / max(1, self.hits + self.misses)


@dataclass(slots=True)
class CacheEntry:
    value: object
    expires_at: float
    last_accessed_at: float


class BoundedCache:
    """TTL-based cache with LRU eviction.

    Entries are kept in access order, so the head of the store is always the
    entry with the oldest ``last_accessed_at``.

    Args:
        max_size: Maximum number of entries before eviction.
        default_ttl: TTL in seconds used when ``set`` is called without one.
        clock: Time source, ``time.monotonic`` by default.
    """

    def __init__(
        self,
        max_size: int = 1000,
        default_ttl: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_size = max_size
        self.default_ttl = default_ttl
        self._clock = clock
        self._store: OrderedDict[str, CacheEntry] = OrderedDict()
        self.metrics = CacheMetrics()

    def get(self, key: str) -> object | None:
        """Retrieve a value if present and not expired.

        Args:
            key: Cache key.

        Returns:
            Cached value or None.
        """
        entry = self._store.get(key)
        if entry is None:
            self.metrics.misses += 1
            return None

        now = self._clock()
        if now > entry.expires_at:
            del self._store[key]
            self.metrics.misses += 1
            return None

        entry.last_accessed_at = now
        self._store.move_to_end(key)
        self.metrics.hits += 1
        return entry.value

    def set(self, key: str, value: object, ttl: float | None = None) -> None:
        """Store a value, evicting the least recently used entry if at capacity."""
        now = self._clock()
        expires_at = now + (self.default_ttl if ttl is None else ttl)
        self.metrics.sets += 1

        if key in self._store:
            self._store[key] = CacheEntry(value, expires_at, now)
            self._store.move_to_end(key)
            return

        if len(self._store) >= self.max_size:
            evicted, _ = self._store.popitem(last=False)
            self.metrics.evictions += 1
            logger.debug("Evicted LRU cache entry %s", evicted)

        self._store[key] = CacheEntry(value, expires_at, now)

    def delete(self, key: str) -> bool:
        """Remove a specific key. Returns True if the key existed."""
        if key in self._store:
            del self._store[key]
            return True
        return False

    def clear(self) -> None:
        """Remove all entries and reset statistics."""
        self._store.clear()
        self.metrics = CacheMetrics()

    def keys(self) -> list[str]:
        """Snapshot of the current keys, least recently used first."""
        return list(self._store)

    @property
    def size(self) -> int:
        """Current number of entries."""
        return len(self._store)

    def get_stats(self) -> dict:
        return {
            "hits": self.metrics.hits,
            "misses": self.metrics.misses,
            "sets": self.metrics.sets,
            "evictions": self.metrics.evictions,
            "size": self.size,
            "max_size": self.max_size,
            "hit_rate": self.metrics.hit_rate,
        }


# TTLs in seconds per logical RPC method. Values trade RPC cost against
# staleness and may be overridden per deployment.
DEFAULT_TTLS: dict[str, float] = {
    "getBlockNumber": 3,
    "getCode": 3600,
    "getBalance": 10,
    "getTransactionCount": 5,
    "getFeeData": 15,
    "getBlock": 3600,
    "getTransaction": 5,
    "getTransactionReceipt": 5,
    "estimateGas": 5,
}

DEFAULT_METHOD_TTL = 5.0


class RpcCache:
    """Method-aware cache for RPC results.

    Args:
        max_size: Capacity of the underlying ``BoundedCache``.
        default_ttl: TTL for methods missing from the TTL table.
        ttl_overrides: Per-method TTLs merged over ``DEFAULT_TTLS``.
        clock: Time source passed to the underlying cache.
    """

    def __init__(
        self,
        max_size: int = 1000,
        default_ttl: float = DEFAULT_METHOD_TTL,
        ttl_overrides: dict[str, float] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl = default_ttl
        self.ttls = {**DEFAULT_TTLS, **(ttl_overrides or {})}
        self.cache = BoundedCache(max_size=max_size, default_ttl=default_ttl, clock=clock)

    @staticmethod
    def create_key(method: str, params: Iterable[object]) -> str:
        """Build a deterministic key from the method name and its arguments.

        Positional order is preserved; mapping arguments are key-sorted so that
        equal values always produce the same key.
        """
        serialized = json.dumps(
            list(params), sort_keys=True, separators=(",", ":"), default=str
        )
        return f"{method}:{serialized}"

    def get_ttl(self, method: str) -> float:
        return self.ttls.get(method, self.default_ttl)

    def get(self, method: str, params: Iterable[object]) -> object | None:
        return self.cache.get(self.create_key(method, params))

    def set(self, method: str, params: Iterable[object], value: object) -> None:
        self.cache.set(self.create_key(method, params), value, self.get_ttl(method))

    def delete(self, method: str, params: Iterable[object]) -> bool:
        """Drop the single entry for ``method(params)``."""
        return self.cache.delete(self.create_key(method, params))

    def invalidate(self, method: str) -> int:
        """Remove every entry produced for *method*, whatever its params.

        Returns:
            Number of entries removed.
        """
        prefix = f"{method}:"
        removed = 0
        for key in self.cache.keys():
            if key.startswith(prefix) and self.cache.delete(key):
                removed += 1
        if removed:
            logger.info("Invalidated %d cached %s entries", removed, method)
        return removed

    def invalidate_all(self) -> int:
        """Invalidate every method in the TTL table."""
        return sum(self.invalidate(method) for method in self.known_methods)

    @property
    def known_methods(self) -> list[str]:
        return sorted(self.ttls)

    def get_stats(self) -> dict:
        return self.cache.get_stats()
