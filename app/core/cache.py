# app/core/cache.py
"""Redis caching implementation."""
import json
import logging
from typing import Any, Optional, Union
from datetime import timedelta
import redis.asyncio as redis
from .config import settings

logger = logging.getLogger(__name__)

class CacheManager:
    def __init__(self, redis_client: Optional[redis.Redis] = None, url: Optional[str] = None):
        self.redis: Optional[redis.Redis] = redis_client
        self.url = url or settings.redis_url

    async def connect(self):
        """Initialize Redis connection."""
        if not self.redis:
            self.redis = redis.from_url(
                self.url,
                encoding="utf-8",
                decode_responses=True
            )

    async def disconnect(self):
        """Close Redis connection."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None

    @staticmethod
    def make_key(*parts: Any) -> str:
        return ":".join(str(part) for part in parts)

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache."""
        if not self.redis:
            await self.connect()

        try:
            value = await self.redis.get(key)
            if value:
                return json.loads(value)
        except Exception as e:
            logger.error(f"Cache get error [{key}]: {e}")
        return None

    async def set(
        self,
        key: str,
        value: Any,
        expire: Optional[Union[int, timedelta]] = None
    ) -> bool:
        """Set value in cache."""
        if not self.redis:
            await self.connect()

        try:
            serialized = json.dumps(value, default=str)
            if expire:
                if isinstance(expire, timedelta):
                    expire = int(expire.total_seconds())
                return bool(await self.redis.setex(key, expire, serialized))
            return bool(await self.redis.set(key, serialized))
        except Exception as e:
            logger.error(f"Cache set error [{key}]: {e}")
            return False

    async def delete(self, *keys: str) -> int:
        """Delete keys from cache; returns how many existed."""
        if not keys:
            return 0
        if not self.redis:
            await self.connect()

        try:
            return int(await self.redis.delete(*keys))
        except Exception as e:
            logger.error(f"Cache delete error {list(keys)[:3]}...: {e}")
            return 0

    async def ping(self) -> bool:
        if not self.redis:
            await self.connect()
        try:
            return bool(await self.redis.ping())
        except Exception as e:
            logger.error(f"Cache ping failed: {e}")
            return False

# Global cache instance
cache = CacheManager()

async def get_cache():
    """Dependency to get cache instance."""
    return cache
