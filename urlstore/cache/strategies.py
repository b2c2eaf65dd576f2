"""
Read cache strategies using Strategy Pattern.
Allows switching between an in-memory LRU cache and a Null cache.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
import threading

from cachetools import LRUCache


class CacheStrategy(ABC):
    """
    Abstract base class for read cache strategies.

    Lookup-aside cache of resolved URLs keyed by numeric id. It is strictly
    an optimization: never a source of truth, unaware of expiry, and a
    cached URL may outlive its backend record until evicted.

    Lookup statistics are kept by the base class so every strategy reports
    them the same way.
    """

    def __init__(self):
        self._stats_lock = threading.Lock()
        self._hit_count = 0
        self._miss_count = 0

    @abstractmethod
    async def _lookup(self, key: int) -> Optional[str]:
        """Backend-specific lookup; None means miss"""
        pass

    @abstractmethod
    async def set(self, key: int, value: str) -> bool:
        """
        Store a resolved URL.

        Args:
            key: Item id
            value: Resolved URL

        Returns:
            True if stored, False otherwise
        """
        pass

    @abstractmethod
    async def clear(self) -> bool:
        """Drop all entries (statistics are kept)"""
        pass

    async def get(self, key: int) -> Optional[str]:
        """
        Get cached URL and record the hit or miss.

        Returns:
            Cached URL or None if not found
        """
        value = await self._lookup(key)
        with self._stats_lock:
            if value is None:
                self._miss_count += 1
            else:
                self._hit_count += 1
        return value

    @property
    def hit_count(self) -> int:
        return self._hit_count

    @property
    def miss_count(self) -> int:
        return self._miss_count

    @property
    def lookup_count(self) -> int:
        with self._stats_lock:
            return self._hit_count + self._miss_count

    @property
    def hit_rate(self) -> float:
        """hit_count / lookup_count, 0.0 before the first lookup"""
        with self._stats_lock:
            lookups = self._hit_count + self._miss_count
            return self._hit_count / lookups if lookups else 0.0

    def stats(self) -> Dict[str, Any]:
        return {
            "lookup_count": self.lookup_count,
            "hit_count": self.hit_count,
            "miss_count": self.miss_count,
            "hit_rate": f"{self.hit_rate * 100:.4f}%",
        }


class LRUMemoryCache(CacheStrategy):
    """
    In-memory cache with fixed capacity and least-recently-used eviction.

    Pros:
    - Very fast (no network overhead)
    - Bounded memory (oldest entries are evicted when full)

    Cons:
    - Not distributed (each process has its own cache)
    - Lost on restart

    cachetools.LRUCache is not thread-safe, so every access holds a lock.
    """

    def __init__(self, capacity: int = 10000):
        super().__init__()
        if capacity < 1:
            raise ValueError("Cache capacity must be positive")
        self.capacity = capacity
        self._cache: LRUCache = LRUCache(maxsize=capacity)
        self._lock = threading.Lock()

    async def _lookup(self, key: int) -> Optional[str]:
        with self._lock:
            return self._cache.get(key)

    async def set(self, key: int, value: str) -> bool:
        with self._lock:
            self._cache[key] = value
        return True

    async def clear(self) -> bool:
        with self._lock:
            self._cache.clear()
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def stats(self) -> Dict[str, Any]:
        stats = super().stats()
        stats.update({"size": len(self), "capacity": self.capacity})
        return stats


class NullCache(CacheStrategy):
    """
    Null Object Pattern - cache that does nothing.

    Used for:
    - Testing (when you want to hit the backend on every read)
    - Disabling cache in certain environments

    Every lookup is a miss and is counted as one.
    """

    async def _lookup(self, key: int) -> Optional[str]:
        """Always returns None (cache miss)"""
        return None

    async def set(self, key: int, value: str) -> bool:
        """Pretends to set but does nothing"""
        return True

    async def clear(self) -> bool:
        """Pretends to clear but does nothing"""
        return True
