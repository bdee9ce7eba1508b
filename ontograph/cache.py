"""Cache management for ontograph."""
import json
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import redis.asyncio as redis


class Cache(ABC):
    """Async key/value cache with per-entry time to live."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        pass

    async def close(self) -> None:
        pass


class MemoryCache(Cache):
    def __init__(self, ttl: int = 21600):
        self.cache: Dict[str, Dict[str, Any]] = {}
        self.ttl = ttl

    async def get(self, key: str) -> Optional[Any]:
        """Retrieve a value from cache if it exists and hasn't expired."""
        if key in self.cache:
            entry = self.cache[key]
            if datetime.now() < entry['expires_at']:
                return json.loads(entry['data'])
            else:
                # Remove expired entry
                del self.cache[key]
        return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Store a value in cache. Values are held as JSON so callers never share state."""
        self.cache[key] = {
            'data': json.dumps(value),
            'expires_at': datetime.now() + timedelta(seconds=ttl if ttl is not None else self.ttl)
        }
        return True

    async def delete(self, key: str) -> bool:
        return self.cache.pop(key, None) is not None

    def clear(self):
        """Clear all cache entries."""
        self.cache.clear()

    def cleanup(self):
        """Remove expired entries from cache."""
        now = datetime.now()
        expired_keys = [key for key, entry in self.cache.items() if now >= entry['expires_at']]
        for key in expired_keys:
            del self.cache[key]


class RedisCache(Cache):
    """Cache backed by Redis. Values are stored as JSON strings."""

    def __init__(self, host: str = 'localhost', port: int = 6379, password: Optional[str] = None,
                 db: int = 0, ttl: int = 21600, client: Any = None):
        self.ttl = ttl
        self.client = client or redis.Redis(host=host, port=port, password=password, db=db,
                                            decode_responses=True)

    async def get(self, key: str) -> Optional[Any]:
        raw = await self.client.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        result = await self.client.set(key, json.dumps(value), ex=ttl if ttl is not None else self.ttl)
        return bool(result)

    async def delete(self, key: str) -> bool:
        return bool(await self.client.delete(key))

    async def close(self) -> None:
        await self.client.aclose()


class NullCache(Cache):
    """A cache that never holds anything."""

    async def get(self, key: str) -> Optional[Any]:
        return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        return False

    async def delete(self, key: str) -> bool:
        return False


def create_cache(backend: str, ttl: int = 21600, redis_config: Optional[Dict[str, Any]] = None) -> Cache:
    """Create a cache for the configured backend name."""
    if backend == 'memory':
        return MemoryCache(ttl=ttl)
    if backend == 'redis':
        return RedisCache(ttl=ttl, **(redis_config or {}))
    if backend == 'none':
        return NullCache()
    raise ValueError(f"Unsupported cache backend: {backend}")
