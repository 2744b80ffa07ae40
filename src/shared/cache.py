"""Redis cache utilities and cache key helpers."""

import os
import json
import base64
import logging
from typing import Any, Dict, Optional

import redis

from .exceptions import CacheError
from .response import DecimalEncoder

logger = logging.getLogger(__name__)

DEFAULT_REDIS_URL = 'redis://localhost:6379/0'


def expenses_cache_key(user_id: str, filters: Optional[str] = None) -> str:
    """
    Build the cache key for an expense listing.

    Args:
        user_id: User ID
        filters: Optional canonical JSON string of the listing filter

    Returns:
        ``expenses:<user_id>`` optionally suffixed with the base64 filter
    """
    filter_hash = ''
    if filters:
        filter_hash = ':' + base64.b64encode(filters.encode('utf-8')).decode('ascii')
    return f"expenses:{user_id}{filter_hash}"


def expense_summary_cache_key(user_id: str, period: Optional[str] = None) -> str:
    """Build the cache key for an expense summary."""
    period_key = f":{period}" if period else ''
    return f"expense_summary:{user_id}{period_key}"


class CacheClient:
    """Redis client wrapper with JSON helpers and pattern deletion."""

    def __init__(self, redis_url: Optional[str] = None, client: Optional[Any] = None):
        """
        Initialize cache client.

        Args:
            redis_url: Redis connection URL (default: REDIS_URL env var)
            client: Optional pre-built redis client
        """
        self.redis_url = redis_url or os.environ.get('REDIS_URL', DEFAULT_REDIS_URL)

        if client is not None:
            self.client = client
        else:
            # Connections are opened lazily by the pool on first command
            self.client = redis.from_url(self.redis_url, decode_responses=True)

    def get(self, key: str) -> Optional[str]:
        """
        Get a raw string value.

        Raises:
            CacheError: If Redis is unreachable
        """
        try:
            return self.client.get(key)
        except redis.RedisError as e:
            raise CacheError(f"Failed to get cache key {key}: {str(e)}")

    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        """
        Set a raw string value, with an expiry when ttl_seconds is given.

        Raises:
            CacheError: If Redis is unreachable
        """
        try:
            if ttl_seconds:
                self.client.setex(key, ttl_seconds, value)
            else:
                self.client.set(key, value)
        except redis.RedisError as e:
            raise CacheError(f"Failed to set cache key {key}: {str(e)}")

    def set_json(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        """Serialize value to JSON and store it."""
        self.set(key, json.dumps(value, cls=DecimalEncoder), ttl_seconds)

    def get_json(self, key: str) -> Optional[Any]:
        """
        Get and deserialize a JSON value.

        Returns:
            The decoded value, or None if the key is absent or malformed

        Raises:
            CacheError: If Redis is unreachable
        """
        payload = self.get(key)
        if not payload:
            return None

        try:
            return json.loads(payload)
        except (TypeError, ValueError) as e:
            logger.warning(f"Error parsing JSON from cache key {key}: {e}")
            return None

    def delete(self, key: str) -> None:
        """
        Delete a single key.

        Raises:
            CacheError: If Redis is unreachable
        """
        try:
            self.client.delete(key)
        except redis.RedisError as e:
            raise CacheError(f"Failed to delete cache key {key}: {str(e)}")

    def delete_pattern(self, pattern: str) -> int:
        """
        Delete every key matching a glob pattern.

        Args:
            pattern: Redis glob pattern, e.g. ``expenses:<user_id>*``

        Returns:
            Number of keys deleted

        Raises:
            CacheError: If Redis is unreachable
        """
        try:
            keys = list(self.client.scan_iter(match=pattern, count=500))
            if not keys:
                return 0
            return self.client.delete(*keys)
        except redis.RedisError as e:
            raise CacheError(f"Failed to delete cache pattern {pattern}: {str(e)}")

    def exists(self, key: str) -> bool:
        """Check whether a key is present."""
        try:
            return self.client.exists(key) == 1
        except redis.RedisError as e:
            raise CacheError(f"Failed to check cache key {key}: {str(e)}")

    def health_check(self) -> Dict[str, str]:
        """
        Ping Redis.

        Returns:
            Dictionary with connection status
        """
        try:
            self.client.ping()
            return {'status': 'connected'}
        except redis.RedisError as e:
            logger.error(f"Redis health check failed: {e}")
            return {'status': 'disconnected'}
