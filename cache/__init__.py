"""
Evince Caching Module

This module provides the response cache used by the gateway: an in-process
TTL cache with per-entry expiry and cost-based eviction, an optional Redis
backend with the same contract, and Prometheus monitoring of hits, misses
and resolver outcomes.
"""

from .core import PayloadCache, TTLCache, cache_key
from .monitoring import CacheMonitor
from .redis_backend import RedisCache

__all__ = [
    'PayloadCache',
    'TTLCache',
    'cache_key',
    'CacheMonitor',
    'RedisCache',
]
