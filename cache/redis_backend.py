from typing import Optional

import redis
import structlog

logger = structlog.get_logger()

# from_url raises ValueError for a malformed REDIS_URL.
REDIS_ERRORS = (redis.RedisError, ValueError)


class RedisCache:
    """Payload cache backed by Redis; expiry is delegated to the server."""

    def __init__(self, redis_url: str, client: Optional[redis.Redis] = None):
        """Initialize Redis cache with connection URL, or an existing client."""
        self.redis_url = redis_url
        self.redis: Optional[redis.Redis] = client

    def connect(self) -> None:
        """Establish connection to Redis."""
        try:
            self.redis = redis.Redis.from_url(self.redis_url)
            self.redis.ping()
            logger.info("redis_connection_established")
        except REDIS_ERRORS as e:
            logger.error("redis_connection_failed", error=str(e))
            raise

    def get(self, key: str) -> Optional[bytes]:
        """Get payload from cache; Redis failures read as a miss."""
        try:
            if not self.redis:
                self.connect()

            return self.redis.get(key)
        except REDIS_ERRORS as e:
            logger.error("redis_get_failed", key=key, error=str(e))
            return None

    def set_with_ttl(self, key: str, value: bytes, cost: int, ttl: float) -> bool:
        """Set payload with a TTL in seconds. Redis does its own eviction, so cost is unused."""
        try:
            if not self.redis:
                self.connect()

            self.redis.set(key, value, px=max(1, int(ttl * 1000)))
            return True
        except REDIS_ERRORS as e:
            logger.error("redis_set_failed", key=key, error=str(e))
            return False

    def delete(self, key: str) -> bool:
        """Delete key from cache."""
        try:
            if not self.redis:
                self.connect()

            self.redis.delete(key)
            return True
        except REDIS_ERRORS as e:
            logger.error("redis_delete_failed", key=key, error=str(e))
            return False
