"""
In-process lookup cache shared by the order editor widgets.

This module provides a cache-aside store for auxiliary lookups (customer and
product collections, canonical customer records). Each key holds either a
resolved value or the in-flight task loading it, so concurrent readers share
one fetch. Entries live until explicitly invalidated.
"""

import asyncio
from typing import Any, Awaitable, Callable, Collection, Optional

from orderdesk.core.logging import get_logger

logger = get_logger(__name__)

Loader = Callable[[], Awaitable[Any]]


class LookupCache:
    """
    Key to value/in-flight-task cache with explicit invalidation.

    Failed loads are not stored; the next reader triggers a fresh fetch. A
    load that completes after its key was invalidated or overwritten is
    dropped.
    """

    # Cache keys
    CUSTOMERS_KEY = "customers:all"
    PRODUCTS_KEY = "products:all"
    CUSTOMER_PREFIX = "customer:"

    def __init__(self) -> None:
        self._values: dict[str, Any] = {}
        self._pending: dict[str, asyncio.Future] = {}
        self._cache_stats = {
            "hits": 0,
            "misses": 0,
            "invalidations": 0,
        }

    @classmethod
    def customer_key(cls, customer_id: Any) -> str:
        """Generate cache key for a single customer record."""
        return f"{cls.CUSTOMER_PREFIX}{customer_id}"

    def peek(self, key: str, default: Any = None) -> Any:
        """Return the resolved value for key without loading."""
        return self._values.get(key, default)

    def contains(self, key: str) -> bool:
        return key in self._values

    def set(self, key: str, value: Any) -> None:
        """Store a resolved value; an in-flight load for key is discarded."""
        self._pending.pop(key, None)
        self._values[key] = value

    async def get_or_load(self, key: str, loader: Loader) -> Any:
        """
        Return cached value for key, loading it once if missing.

        Args:
            key: Cache key
            loader: Zero-argument coroutine function producing the value

        Returns:
            Cached or freshly loaded value

        Raises:
            Exception: Whatever the loader raised; nothing is cached then
        """
        if key in self._values:
            self._cache_stats["hits"] += 1
            logger.debug("Cache hit", cache_key=key)
            return self._values[key]

        future = self._pending.get(key)
        if future is None:
            self._cache_stats["misses"] += 1
            logger.debug("Cache miss", cache_key=key)
            future = asyncio.ensure_future(loader())
            self._pending[key] = future
            future.add_done_callback(lambda f, key=key: self._on_loaded(key, f))

        return await asyncio.shield(future)

    def _on_loaded(self, key: str, future: asyncio.Future) -> None:
        if self._pending.get(key) is not future:
            return
        del self._pending[key]
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.warning("Cache load failed", cache_key=key, error=str(error))
            return
        self._values[key] = future.result()

    def invalidate(self, key: Optional[str] = None) -> int:
        """
        Drop one key, or everything when key is None.

        Returns:
            Number of entries removed
        """
        known = set(self._values) | set(self._pending)
        keys = known if key is None else known & {key}
        return self._drop(keys)

    def invalidate_prefix(self, prefix: str) -> int:
        """Drop every key starting with prefix."""
        known = set(self._values) | set(self._pending)
        return self._drop({k for k in known if k.startswith(prefix)})

    def _drop(self, keys: Collection[str]) -> int:
        for key in keys:
            self._values.pop(key, None)
            self._pending.pop(key, None)
        self._cache_stats["invalidations"] += len(keys)
        if keys:
            logger.info("Cache invalidated", keys=sorted(keys))
        return len(keys)

    def get_stats(self) -> dict[str, int]:
        """Return hit/miss/invalidation counters."""
        return dict(self._cache_stats)
