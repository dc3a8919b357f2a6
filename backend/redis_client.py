"""
Redis-backed read cache keyed by query identity.

Each list endpoint caches its JSON payload under the key of the query it
answers. Write paths invalidate the keys they know about, and nothing else
expires a key early, so a read between a write and its invalidation, or of
a key the writer did not invalidate, may be stale until the TTL runs out.
"""
import json
import logging
from typing import Any, Dict, Iterable, List, Optional

import redis

from config import REDIS_ENABLED, REDIS_HOST, REDIS_PORT

logger = logging.getLogger(__name__)

# Query identities
TABLES = "tables"
AVAILABLE_TABLES = "available-tables"
HALLS = "halls"
MENU_ITEMS = "menu-items"
AVAILABLE_MENU_ITEMS = "available-menu-items"
ORDERS = "orders"
UNPAID_ORDERS = "unpaid-orders"

KEY_PREFIX = "query:"

DEFAULT_TTLS = {
    TABLES: 60,
    AVAILABLE_TABLES: 30,
    HALLS: 300,
    MENU_ITEMS: 300,
    AVAILABLE_MENU_ITEMS: 120,
    ORDERS: 30,
    UNPAID_ORDERS: 30,
}


class RedisClient:
    """Query cache on top of a redis connection; a no-op when Redis is down."""

    def __init__(self, client=None, enabled: bool = REDIS_ENABLED):
        self.redis_host = REDIS_HOST
        self.redis_port = REDIS_PORT

        if client is not None or not enabled:
            self.client = client
            return

        try:
            self.client = redis.Redis(
                host=self.redis_host,
                port=self.redis_port,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5
            )
            self.client.ping()
        except redis.RedisError as e:
            logger.warning(f"Could not connect to Redis at {self.redis_host}:{self.redis_port}: {e}")
            self.client = None

    def is_available(self) -> bool:
        if not self.client:
            return False
        try:
            self.client.ping()
            return True
        except redis.RedisError:
            return False

    @staticmethod
    def _key(query_key: str) -> str:
        return f"{KEY_PREFIX}{query_key}"

    def get_cached(self, query_key: str) -> Optional[List[Dict[str, Any]]]:
        if not self.is_available():
            return None
        try:
            cached = self.client.get(self._key(query_key))
            if cached:
                return json.loads(cached)
        except redis.RedisError as e:
            logger.warning(f"Error reading '{query_key}' from cache: {e}")
        return None

    def cache(self, query_key: str, data: List[Dict[str, Any]], ttl: Optional[int] = None) -> bool:
        """
        Cache the payload of a query.
        ttl: seconds to keep it, defaults to the per-query TTL
        """
        if not self.is_available():
            return False
        if ttl is None:
            ttl = DEFAULT_TTLS.get(query_key, 60)
        try:
            self.client.setex(self._key(query_key), ttl, json.dumps(data, default=str))
            return True
        except redis.RedisError as e:
            logger.warning(f"Error caching '{query_key}': {e}")
            return False

    def invalidate(self, *query_keys: str) -> bool:
        if not self.is_available() or not query_keys:
            return False
        try:
            self.client.delete(*(self._key(k) for k in query_keys))
            return True
        except redis.RedisError as e:
            logger.warning(f"Error invalidating {', '.join(query_keys)}: {e}")
            return False

    def get_cache_info(self, query_keys: Iterable[str] = tuple(DEFAULT_TTLS)) -> Dict[str, Any]:
        if not self.is_available():
            return {"status": "unavailable"}

        try:
            return {
                "status": "available",
                "cached": {k: bool(self.client.exists(self._key(k))) for k in query_keys},
            }
        except redis.RedisError as e:
            return {"status": "error", "error": str(e)}


redis_client = RedisClient()
