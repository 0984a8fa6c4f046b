"""Redis cache for the category list."""
import json
import logging
from typing import Any, Dict, List, Optional

import redis

from config import CATEGORY_CACHE_KEY, CATEGORY_CACHE_TTL_SECONDS

logger = logging.getLogger(__name__)


class CategoryCache:
    """
    Caches the serialized category list under a single key.

    Redis failures are logged and treated as a cache miss, so the
    database stays the source of truth.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        key: str = CATEGORY_CACHE_KEY,
        ttl_seconds: int = CATEGORY_CACHE_TTL_SECONDS
    ):
        self.redis_client = redis_client
        self.key = key
        self.ttl_seconds = ttl_seconds

    def get(self) -> Optional[List[Dict[str, Any]]]:
        try:
            cached = self.redis_client.get(self.key)
        except redis.RedisError as e:
            logger.error(f"Error reading category cache: {e}")
            return None

        if cached is None:
            return None
        try:
            return json.loads(cached)
        except ValueError:
            logger.warning("Discarding malformed category cache entry")
            return None

    def set(self, categories: List[Dict[str, Any]]) -> None:
        try:
            self.redis_client.setex(self.key, self.ttl_seconds, json.dumps(categories, default=str))
        except redis.RedisError as e:
            logger.error(f"Error writing category cache: {e}")

    def invalidate(self) -> None:
        try:
            self.redis_client.delete(self.key)
            logger.debug("Category cache invalidated")
        except redis.RedisError as e:
            logger.error(f"Error invalidating category cache: {e}")
