"""
CacheStore - In-memory TTL cache for query results.

Features:
- TTL (Time To Live) per entry with per-lookup override
- Prefix invalidation for namespaced keys
- Last-known-value lookup for transport failure fallback
- Oldest-first eviction once max_size is reached
"""

import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Generic, TypeVar

from loguru import logger

T = TypeVar("T")

Clock = Callable[[], datetime]


@dataclass
class CacheEntry(Generic[T]):
    """A single cache entry with metadata."""

    data: T
    timestamp: datetime
    ttl: timedelta

    def is_expired(self, now: datetime, ttl: timedelta | None = None) -> bool:
        """Check if entry is past its TTL (or the override given)."""
        return now - self.timestamp > (ttl if ttl is not None else self.ttl)


class CacheStore:
    """
    Synchronous TTL cache shared by every facade of a session.

    Usage:
        cache = CacheStore(default_ttl=timedelta(minutes=5))

        key = cache.generate_key("materia_prima", "list", {"categoria": "x"})
        data = cache.get(key)
        if data is None:
            data = await transport.list(...)
            cache.set(key, data)

        # after a mutation
        cache.invalidate("materia_prima_list_")
    """

    def __init__(
        self,
        max_size: int = 500,
        default_ttl: timedelta = timedelta(minutes=5),
        clock: Clock = datetime.now,
        debug: bool = False,
    ):
        self._memory: dict[str, CacheEntry[Any]] = {}
        self._max_size = max_size
        self._default_ttl = default_ttl
        self._clock = clock
        self._debug = debug
        self._stats = CacheStats()

    @staticmethod
    def generate_key(resource: str, operation: str, params: Any = None) -> str:
        """Generate a namespaced cache key: ``{resource}_{operation}_{params}``."""
        namespace = f"{resource}_{operation}_"
        if params is None:
            return namespace

        if isinstance(params, str):
            serialized = params
        else:
            serialized = json.dumps(params, sort_keys=True, default=str)

        # Hash long params, the namespace must survive for prefix invalidation
        if len(serialized) > 200:
            serialized = hashlib.md5(serialized.encode()).hexdigest()[:16]

        return f"{namespace}{serialized}"

    def get(self, key: str, ttl: timedelta | None = None) -> Any | None:
        """
        Get value from cache.

        Returns the data if present and unexpired. An expired entry is
        removed and reported as a miss.
        """
        entry = self._memory.get(key)
        if entry is None:
            self._stats.misses += 1
            self._log(f"MISS: {key[:50]}...")
            return None

        if entry.is_expired(self._clock(), ttl):
            del self._memory[key]
            self._stats.misses += 1
            self._log(f"EXPIRED: {key[:50]}...")
            return None

        self._stats.hits += 1
        self._log(f"HIT: {key[:50]}...")
        return entry.data

    def get_stale(self, key: str) -> Any | None:
        """Return the last stored value for key regardless of its age."""
        entry = self._memory.get(key)
        if entry is None:
            return None
        self._log(f"STALE READ: {key[:50]}...")
        return entry.data

    def set(self, key: str, data: Any, ttl: timedelta | None = None) -> None:
        """
        Set value in cache.

        Args:
            key: Cache key
            data: Data to cache
            ttl: Time to live (uses default if not specified)
        """
        ttl = ttl if ttl is not None else self._default_ttl

        if len(self._memory) >= self._max_size and key not in self._memory:
            self._evict_oldest()

        self._memory[key] = CacheEntry(data=data, timestamp=self._clock(), ttl=ttl)
        self._log(f"SET: {key[:50]}... (TTL: {ttl.total_seconds()}s)")

    def delete(self, key: str) -> bool:
        """Delete a specific key from cache."""
        if key in self._memory:
            del self._memory[key]
            self._log(f"DELETE: {key[:50]}...")
            return True
        return False

    def invalidate(self, prefix: str) -> int:
        """
        Invalidate all keys starting with prefix.

        Returns:
            Number of entries invalidated
        """
        keys_to_delete = [k for k in self._memory if k.startswith(prefix)]
        for key in keys_to_delete:
            del self._memory[key]

        if keys_to_delete:
            self._log(f"INVALIDATE: {len(keys_to_delete)} entries matching '{prefix}'")

        return len(keys_to_delete)

    def clear(self) -> None:
        """Clear all cache entries."""
        count = len(self._memory)
        self._memory.clear()
        self._log(f"CLEAR: {count} entries removed")

    def sweep(self) -> int:
        """Remove all expired entries. Returns count of removed entries."""
        now = self._clock()
        expired_keys = [k for k, v in self._memory.items() if v.is_expired(now)]
        for key in expired_keys:
            del self._memory[key]

        if expired_keys:
            self._log(f"SWEEP: {len(expired_keys)} expired entries removed")

        return len(expired_keys)

    def keys(self) -> list[str]:
        return list(self._memory.keys())

    def __len__(self) -> int:
        return len(self._memory)

    def __contains__(self, key: str) -> bool:
        return key in self._memory

    def _evict_oldest(self) -> None:
        """Evict the oldest entry."""
        if not self._memory:
            return

        oldest_key = min(
            self._memory.keys(),
            key=lambda k: self._memory[k].timestamp,
        )
        del self._memory[oldest_key]
        self._stats.evictions += 1
        self._log(f"EVICT: {oldest_key[:50]}...")

    def get_stats(self) -> "CacheStats":
        """Get cache statistics."""
        self._stats.size = len(self._memory)
        self._stats.max_size = self._max_size
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[CacheStore] {message}")


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    size: int = 0
    max_size: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "size": self.size,
            "max_size": self.max_size,
            "hit_rate": f"{self.hit_rate:.2%}",
        }
