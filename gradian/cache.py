"""
Gradian Cache Module
Version: 1.0.0
Author: Gradian Development Team
License: MIT

In-memory TTL caching. Time is read through an injectable clock so that
expiry is deterministic under test, and every cache exposes an explicit
invalidation API.
"""

import asyncio
import copy
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from .config import CacheSettings

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


# ==================== CACHE BACKENDS ====================

class CacheBackend(ABC):
    """Abstract base class for cache backends."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Get value by key."""
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, timeout: Optional[float] = None) -> None:
        """Set key-value pair with optional timeout in seconds."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete key."""
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Clear all cache entries."""
        pass

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check if key exists."""
        pass


class MemoryCacheBackend(CacheBackend):
    """In-memory cache backend storing ``(value, expires_at)`` pairs."""

    def __init__(self, clock: Clock = time.monotonic):
        self.clock = clock
        self._cache: Dict[str, Tuple[Any, Optional[float]]] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            if key not in self._cache:
                return None

            value, expiry = self._cache[key]

            if expiry is not None and expiry <= self.clock():
                del self._cache[key]
                return None

            return value

    async def set(self, key: str, value: Any, timeout: Optional[float] = None) -> None:
        async with self._lock:
            expiry = self.clock() + timeout if timeout is not None else None
            self._cache[key] = (value, expiry)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._cache.pop(key, None)

    async def clear(self) -> None:
        async with self._lock:
            self._cache.clear()

    async def exists(self, key: str) -> bool:
        return await self.get(key) is not None

    def __len__(self) -> int:
        return len(self._cache)


class CacheManager:
    """Front for a cache backend that applies the configured TTL."""

    def __init__(self, settings: CacheSettings, backend: Optional[CacheBackend] = None, clock: Clock = time.monotonic):
        self.settings = settings
        self._backend: Optional[CacheBackend] = None
        if settings.enabled and settings.ttl_seconds > 0:
            self._backend = backend or MemoryCacheBackend(clock=clock)

    @property
    def enabled(self) -> bool:
        return self._backend is not None

    async def get(self, key: str) -> Optional[Any]:
        if not self._backend:
            return None
        return await self._backend.get(key)

    async def set(self, key: str, value: Any, timeout: Optional[float] = None) -> None:
        if not self._backend:
            return
        await self._backend.set(key, value, timeout if timeout is not None else self.settings.ttl_seconds)

    async def delete(self, key: str) -> None:
        if not self._backend:
            return
        await self._backend.delete(key)

    async def clear(self) -> None:
        if not self._backend:
            return
        await self._backend.clear()

    async def exists(self, key: str) -> bool:
        if not self._backend:
            return False
        return await self._backend.exists(key)

    def cache_key(self, prefix: str, *args) -> str:
        """Generate a cache key."""
        key_parts = [prefix] + [str(arg) for arg in args]
        return ':'.join(key_parts)


# ==================== CACHED COLLECTIONS ====================

class CachedCollection:
    """
    A whole collection held in the cache under a single key.

    ``load()`` returns a deep copy so callers can mutate the result freely.
    When ``fallback_on_error`` is set, a failing loader yields an empty list
    instead of propagating.
    """

    def __init__(
        self,
        name: str,
        loader: Callable[[], Awaitable[List[Dict[str, Any]]]],
        cache: CacheManager,
        fallback_on_error: bool = True
    ):
        self.name = name
        self.loader = loader
        self.cache = cache
        self.fallback_on_error = fallback_on_error
        self.key = cache.cache_key("collection", name)

    async def load(self) -> List[Dict[str, Any]]:
        cached = await self.cache.get(self.key)
        if cached is not None:
            return copy.deepcopy(cached)

        try:
            items = await self.loader()
        except Exception as e:
            if not self.fallback_on_error:
                raise
            logger.warning(f"Failed to load {self.name}, serving empty list: {e}")
            return []

        await self.cache.set(self.key, copy.deepcopy(items))
        return items

    async def invalidate(self) -> None:
        await self.cache.delete(self.key)
        logger.debug(f"Invalidated cache for {self.name}")
