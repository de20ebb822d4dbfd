"""
Read-through gateway: cache lookup first, resolver on a miss.

Concurrent misses for the same key are not coalesced; each one resolves
independently and the last successful write wins. Resolutions are
idempotent, so this only costs duplicate upstream calls.
"""
import time
from typing import Any, Dict, Optional

import structlog

from cache.core import PayloadCache, TTLCache, cache_key
from cache.monitoring import CacheMonitor
from cache.redis_backend import RedisCache

from .config import Settings
from .errors import EvinceError
from .fetchers import DataFetcher
from .resolvers import Connector, Resolver, build_resolvers
from .rpc import RPCClient

logger = structlog.get_logger()


def create_cache(settings: Settings) -> PayloadCache:
    """Build the process-wide cache for the configured backend."""
    if settings.CACHE_BACKEND == "redis":
        if not settings.REDIS_URL:
            raise ValueError("REDIS_URL is required for the redis cache backend")
        logger.info("cache_backend", backend="redis")
        return RedisCache(settings.REDIS_URL)

    if settings.CACHE_BACKEND != "memory":
        raise ValueError(f"unknown cache backend {settings.CACHE_BACKEND!r}")
    logger.info("cache_backend", backend="memory", max_cost=settings.CACHE_MAX_COST)
    return TTLCache(max_cost=settings.CACHE_MAX_COST)


class Gateway:
    """Serves resource payloads from the cache, resolving on a miss."""

    def __init__(self, cache: PayloadCache, resolvers: Dict[str, Resolver],
                 monitor: Optional[CacheMonitor] = None):
        self.cache = cache
        self.resolvers = resolvers
        self.monitor = monitor or CacheMonitor()

    @classmethod
    def from_settings(cls, settings: Settings, cache: Optional[PayloadCache] = None,
                      fetcher: Optional[DataFetcher] = None,
                      connect: Connector = RPCClient.connect) -> "Gateway":
        fetcher = fetcher or DataFetcher(settings.LCD_ENDPOINT, settings.APR_URL,
                                         timeout=settings.HTTP_TIMEOUT)
        return cls(cache or create_cache(settings), build_resolvers(settings, fetcher, connect))

    def serve(self, resource: str, **params: Any) -> bytes:
        """
        Return the payload for `resource`.

        The cache key is the resource name followed by the parameter values
        in the order given. A cached payload is returned unchanged.

        Raises:
            EvinceError: The payload was not cached and could not be resolved
        """
        key = cache_key(resource, *params.values())

        data = self.cache.get(key)
        if data is not None:
            self.monitor.record_hit(resource)
            return data

        self.monitor.record_miss(resource)
        resolver = self.resolvers[resource]
        start_time = time.time()
        try:
            return resolver.resolve_into(self.cache, key, **params)
        except EvinceError as e:
            self.monitor.record_failure(resource, type(e).__name__)
            raise
        finally:
            self.monitor.record_latency(resource, time.time() - start_time)

    def stats(self) -> Dict[str, Any]:
        """Uptime and cache hit ratio of every served resource."""
        return self.monitor.get_metrics_report(self.resolvers)
