"""
Plan listing cache
Redis-backed when REDIS_URL is configured and reachable, in-memory otherwise
"""
import json
import logging
import time
from typing import Optional, Dict, Any, List

import redis

logger = logging.getLogger(__name__)

ACTIVE_PLANS_KEY = "plans:active"


def get_redis_client(redis_url: Optional[str] = None) -> Optional[Any]:
    """
    Get Redis client if configured

    Args:
        redis_url: Redis URL (defaults to config.REDIS_URL)

    Returns:
        Redis client instance or None if Redis is not configured or unreachable
    """
    if redis_url is None:
        from ..config import config
        redis_url = config.REDIS_URL

    if not redis_url:
        return None

    try:
        client = redis.Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            health_check_interval=30,
        )
        client.ping()
        logger.info("Redis connection established for plan cache")
        return client
    except redis.RedisError as e:
        logger.warning(f"Redis connection failed: {e}. Using in-memory plan cache.")
        return None


class InMemoryPlanStore:
    """Process-local TTL store"""

    def __init__(self):
        self.cache: Dict[str, Dict] = {}

    def get(self, key: str) -> Optional[str]:
        item = self.cache.get(key)
        if item is None:
            return None
        if time.time() > item['expires_at']:
            del self.cache[key]
            return None
        return item['data']

    def setex(self, key: str, ttl: int, value: str):
        self.cache[key] = {'data': value, 'expires_at': time.time() + ttl}

    def delete(self, *keys: str):
        for key in keys:
            self.cache.pop(key, None)


class PlanCache:
    """Caches serialized active plan listings; invalidated on any plan write"""

    def __init__(self, default_ttl: int = 300, redis_client: Optional[Any] = None):
        """
        Initialize plan cache

        Args:
            default_ttl: Time-to-live in seconds (default: 5 minutes)
            redis_client: Optional Redis client (auto-created from config if not provided)
        """
        self.default_ttl = default_ttl
        self.redis_client = redis_client if redis_client is not None else get_redis_client()
        self.use_redis = self.redis_client is not None
        self.memory_store = InMemoryPlanStore()

        if self.use_redis:
            logger.info("Using Redis plan cache")
        else:
            logger.info("Using in-memory plan cache (Redis not configured)")

    def _store(self):
        return self.redis_client if self.use_redis else self.memory_store

    def get_active_plans(self) -> Optional[List[Dict[str, Any]]]:
        try:
            cached = self._store().get(ACTIVE_PLANS_KEY)
        except redis.RedisError as e:
            logger.warning(f"Redis get failed: {e}")
            return None
        return json.loads(cached) if cached else None

    def set_active_plans(self, plans: List[Dict[str, Any]], ttl: int = None):
        try:
            self._store().setex(ACTIVE_PLANS_KEY, ttl or self.default_ttl, json.dumps(plans, default=str))
        except redis.RedisError as e:
            logger.warning(f"Redis set failed: {e}")

    def invalidate(self):
        try:
            self._store().delete(ACTIVE_PLANS_KEY)
        except redis.RedisError as e:
            logger.warning(f"Redis invalidate failed: {e}")
        # Local copy is dropped regardless of the backend
        self.memory_store.delete(ACTIVE_PLANS_KEY)

    def get_stats(self) -> Dict:
        return {
            'backend': 'redis' if self.use_redis else 'memory',
            'default_ttl': self.default_ttl,
        }


# Global plan cache instance
_plan_cache: Optional[PlanCache] = None


def get_plan_cache() -> PlanCache:
    """Get or create the global plan cache"""
    global _plan_cache
    if _plan_cache is None:
        from ..config import config
        _plan_cache = PlanCache(default_ttl=config.PLAN_CACHE_TTL_SECONDS)
    return _plan_cache
