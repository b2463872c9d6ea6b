import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import redis
from cachetools import TTLCache

logger = logging.getLogger(__name__)


@dataclass
class CacheConfig:
    """Settings for the name resolution cache layers"""
    redis_url: Optional[str] = None
    redis_ttl: int = 3600  # 1 hour
    memory_ttl: int = 3600  # 1 hour
    memory_maxsize: int = 1000


class BaseCache(ABC):
    """String key to string value store used for resolved names"""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        pass


class RedisCache(BaseCache):
    """Shared cache across API workers. Errors degrade to a miss."""

    def __init__(self, redis_url: str):
        self.redis = redis.from_url(redis_url, decode_responses=True)

    async def get(self, key: str) -> Optional[str]:
        try:
            return self.redis.get(key)
        except redis.RedisError as e:
            logger.debug(f"Redis lookup failed for {key}: {e}")
            return None

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        try:
            self.redis.set(key, value, ex=ttl)
        except redis.RedisError as e:
            logger.debug(f"Redis write failed for {key}: {e}")


class MemoryCache(BaseCache):
    def __init__(self, maxsize: int, ttl: int):
        self.cache = TTLCache(maxsize=maxsize, ttl=ttl)

    async def get(self, key: str) -> Optional[str]:
        return self.cache.get(key)

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        self.cache[key] = value


class LayeredCache(BaseCache):
    """Process memory in front of an optional Redis cache"""

    def __init__(self, config: CacheConfig):
        self.ttl = config.redis_ttl
        self.memory_cache = MemoryCache(config.memory_maxsize, config.memory_ttl)
        self.redis_cache = None
        if config.redis_url:
            try:
                self.redis_cache = RedisCache(config.redis_url)
            except ValueError as e:
                logger.warning(f"Invalid REDIS_URL, using memory cache only: {e}")

    async def get(self, key: str) -> Optional[str]:
        if (cached := await self.memory_cache.get(key)) is not None:
            return cached
        if self.redis_cache is None:
            return None
        cached = await self.redis_cache.get(key)
        if cached is not None:
            await self.memory_cache.set(key, cached)
        return cached

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        await self.memory_cache.set(key, value)
        if self.redis_cache is not None:
            await self.redis_cache.set(key, value, ttl=ttl or self.ttl)
