"""
Monitoring module for the Evince response cache.

Tracks cache hits and misses and resolver outcomes per resource so that
short TTLs can be tuned against upstream load.
"""
import time
from typing import Any, Dict

from prometheus_client import Counter, Histogram

# Define Prometheus metrics
CACHE_HITS = Counter('evince_cache_hits_total', 'Total number of cache hits', ['resource'])
CACHE_MISSES = Counter('evince_cache_misses_total', 'Total number of cache misses', ['resource'])
RESOLVE_FAILURES = Counter('evince_resolve_failures_total', 'Total number of failed resolutions',
                           ['resource', 'error'])
RESOLVE_LATENCY = Histogram('evince_resolve_latency_seconds', 'Resolution latency in seconds',
                            ['resource'])


class CacheMonitor:
    """
    Monitor for the gateway cache.

    This class records per-resource cache and resolver metrics and can
    produce a summary report.
    """

    def __init__(self):
        """Initialize the cache monitor."""
        self.start_time = time.time()

    def record_hit(self, resource: str) -> None:
        """
        Record a cache hit.

        Args:
            resource: Resource namespace (validatorList, apr, ...)
        """
        CACHE_HITS.labels(resource=resource).inc()

    def record_miss(self, resource: str) -> None:
        """
        Record a cache miss.

        Args:
            resource: Resource namespace (validatorList, apr, ...)
        """
        CACHE_MISSES.labels(resource=resource).inc()

    def record_failure(self, resource: str, error: str) -> None:
        """Record a failed resolution and the error class that aborted it."""
        RESOLVE_FAILURES.labels(resource=resource, error=error).inc()

    def record_latency(self, resource: str, latency: float) -> None:
        """
        Record resolution latency.

        Args:
            resource: Resource namespace
            latency: Resolution time in seconds
        """
        RESOLVE_LATENCY.labels(resource=resource).observe(latency)

    def get_hit_ratio(self, resource: str) -> float:
        """
        Get cache hit ratio for a resource.

        Returns:
            Hit ratio as a float between 0 and 1
        """
        hits = CACHE_HITS.labels(resource=resource)._value.get()
        misses = CACHE_MISSES.labels(resource=resource)._value.get()
        total = hits + misses

        if total == 0:
            return 0.0

        return hits / total

    def get_metrics_report(self, resources) -> Dict[str, Any]:
        """Generate a metrics report for the given resources."""
        return {
            'uptime_seconds': time.time() - self.start_time,
            'hit_ratios': {resource: self.get_hit_ratio(resource) for resource in resources},
        }
