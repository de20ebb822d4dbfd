"""
Core caching functionality for the Evince gateway.

This module provides a lightweight in-process TTL cache for serialized
response payloads. Each entry carries its own expiry and a cost; when the
total cost exceeds the configured capacity, expired entries are purged first
and then the oldest entries are evicted.

The cache is approximate: a lookup may report a miss for an entry that is
still live (for example after an eviction), and callers must tolerate that.
"""
import threading
import time
from typing import Any, Callable, Dict, Optional, Protocol

import structlog

logger = structlog.get_logger()

KEY_SEPARATOR = "."


class PayloadCache(Protocol):
    """Contract shared by the in-memory and Redis cache backends."""

    def get(self, key: str) -> Optional[bytes]:
        ...

    def set_with_ttl(self, key: str, value: bytes, cost: int, ttl: float) -> bool:
        ...


class TTLCache:
    """
    Simple in-memory TTL cache implementation.

    Safe for concurrent use from the request worker threads; callers never
    need to take their own locks.
    """

    def __init__(self, max_cost: int = 10_000, clock: Callable[[], float] = time.time):
        """
        Initialize the cache with specified capacity.

        Args:
            max_cost: Maximum total cost of the entries held at once
            clock: Source of the current time in seconds
        """
        self._cache: Dict[str, Dict[str, Any]] = {}
        self._max_cost = max_cost
        self._total_cost = 0
        self._clock = clock
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[bytes]:
        """
        Get a payload from the cache.

        Args:
            key: Cache key to retrieve

        Returns:
            The cached payload or None if not found or expired
        """
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self._misses += 1
                return None

            if entry['expiry'] <= self._clock():
                self._misses += 1
                self._remove(key)
                return None

            self._hits += 1
            return entry['value']

    def set_with_ttl(self, key: str, value: bytes, cost: int, ttl: float) -> bool:
        """
        Store a payload with its own time-to-live.

        Args:
            key: Cache key
            value: Serialized payload
            cost: Cost charged against the cache capacity
            ttl: Time-to-live in seconds

        Returns:
            True if the entry was stored, False if it can never fit
        """
        if cost > self._max_cost:
            logger.warning("cache_entry_rejected", key=key, cost=cost, max_cost=self._max_cost)
            return False

        with self._lock:
            now = self._clock()
            if key in self._cache:
                self._remove(key)

            self._make_room(cost, now)
            self._cache[key] = {
                'value': value,
                'cost': cost,
                'expiry': now + ttl,
                'timestamp': now,
            }
            self._total_cost += cost

        return True

    def delete(self, key: str) -> bool:
        """
        Delete a key from the cache.

        Returns:
            True if deleted, False if key not found
        """
        with self._lock:
            if key in self._cache:
                self._remove(key)
                return True
            return False

    def flush(self) -> bool:
        """Clear all keys in the cache."""
        with self._lock:
            self._cache.clear()
            self._total_cost = 0
            self._hits = 0
            self._misses = 0
        return True

    def get_stats(self) -> Dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dictionary with cache statistics
        """
        with self._lock:
            total_requests = self._hits + self._misses
            hit_ratio = self._hits / total_requests if total_requests > 0 else 0

            return {
                'size': len(self._cache),
                'cost': self._total_cost,
                'max_cost': self._max_cost,
                'hits': self._hits,
                'misses': self._misses,
                'hit_ratio': hit_ratio,
            }

    def _remove(self, key: str) -> None:
        entry = self._cache.pop(key)
        self._total_cost -= entry['cost']

    def _make_room(self, cost: int, now: float) -> None:
        if self._total_cost + cost <= self._max_cost:
            return

        for key in [k for k, e in self._cache.items() if e['expiry'] <= now]:
            self._remove(key)

        # Dicts keep insertion order and overwrites re-insert, so the first key is the oldest.
        while self._cache and self._total_cost + cost > self._max_cost:
            oldest_key = next(iter(self._cache))
            self._remove(oldest_key)
            logger.debug("cache_evicted", key=oldest_key)


def _escape(part: Any) -> str:
    return str(part).replace("%", "%25").replace(KEY_SEPARATOR, "%2E")


def cache_key(resource: str, *params: Any) -> str:
    """
    Generate a namespaced cache key.

    The first argument is the resource namespace; the remaining arguments are
    escaped so that a separator inside a parameter can never make two
    distinct queries share a key.

    Example:
        cache_key("existingDelegations", "quicksilver-2", "quick1abc")
        -> "existingDelegations.quicksilver-2.quick1abc"
    """
    return KEY_SEPARATOR.join([resource] + [_escape(p) for p in params])
