"""Redis service for pub/sub fan-out, short-lived cache entries and locks."""

import json
import logging
from typing import Optional, Any
import redis

from teamchat.core.config import settings

logger = logging.getLogger(__name__)


class CacheService:
    """Redis-backed helper shared by realtime, notifications and scheduled jobs."""

    def __init__(self):
        self._client: Optional[redis.Redis] = None

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(
                settings.REDIS_URL,
                decode_responses=True,
                max_connections=100,
            )
        return self._client

    def get(self, key: str) -> Optional[str]:
        """Get a cached value by key."""
        try:
            return self.client.get(key)
        except redis.RedisError:
            return None

    def set(self, key: str, value: str, ttl_seconds: int = 600) -> None:
        """Set a cached value with TTL."""
        try:
            self.client.setex(key, ttl_seconds, value)
        except redis.RedisError:
            logger.debug("Redis unavailable; skipped cache set for %s", key)

    def get_json(self, key: str) -> Optional[Any]:
        """Get and parse a JSON cached value."""
        raw = self.get(key)
        if raw:
            return json.loads(raw)
        return None

    def set_json(self, key: str, value: Any, ttl_seconds: int = 600) -> None:
        """Serialize and cache a JSON value."""
        self.set(key, json.dumps(value, default=str), ttl_seconds)

    def publish(self, channel: str, message: str) -> None:
        """Publish a message to a Redis channel (for WebSocket fanout)."""
        try:
            self.client.publish(channel, message)
        except redis.RedisError:
            logger.debug("Redis unavailable; dropped publish on %s", channel)

    def acquire_lock(self, key: str, owner: str, ttl_seconds: int) -> bool:
        """Take a lock only if nobody holds it. Unreachable Redis means no lock."""
        try:
            return bool(self.client.set(key, owner, nx=True, ex=ttl_seconds))
        except redis.RedisError:
            logger.warning("Redis unavailable; could not acquire lock %s", key)
            return False

    def release_lock(self, key: str, owner: str) -> None:
        """Release a lock held by ``owner``."""
        try:
            if self.client.get(key) == owner:
                self.client.delete(key)
        except redis.RedisError:
            logger.warning("Redis unavailable; lock %s will expire on its own", key)

    def health_check(self) -> bool:
        """Check if Redis is reachable."""
        try:
            return self.client.ping()
        except redis.RedisError:
            return False


cache_service = CacheService()
