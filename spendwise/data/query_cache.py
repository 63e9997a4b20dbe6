"""In-memory cache of read-query results keyed by QueryKey.

Entries are never evicted. Invalidation only marks them stale: the stale
value stays readable through peek() and is replaced on the next fetch().
Concurrent fetches of the same key share a single load.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Optional

from spendwise.data.queries import QueryKey

logger = logging.getLogger(__name__)

Loader = Callable[[QueryKey], Awaitable[Any]]


@dataclass(slots=True)
class _Entry:
    value: Any
    stale: bool = False


class QueryCache:
    """Cache of query results loaded through an async loader.

    Example:
        >>> cache = QueryCache(data_service.load)
        >>> balance = await cache.fetch(store.query_key("partitionBalance", partition_id="p1"))
        >>> cache.invalidate(plan_invalidations(result))
    """

    def __init__(self, loader: Loader):
        """Initialize the cache.

        Args:
            loader: Coroutine function that runs the query for a key
        """
        self._loader = loader
        self._entries: dict[QueryKey, _Entry] = {}
        self._in_flight: dict[QueryKey, asyncio.Task] = {}
        self._invalidated_in_flight: set[QueryKey] = set()

    async def fetch(self, key: QueryKey) -> Any:
        """Get the result of a query, loading it if missing or stale.

        Args:
            key: Query to fetch

        Returns:
            The query result

        Raises:
            asyncio.CancelledError: If the fetch was abandoned
            Exception: Whatever the loader raises; nothing is cached then
        """
        entry = self._entries.get(key)
        if entry is not None and not entry.stale:
            logger.debug(f"Cache hit: {key}")
            return entry.value

        task = self._in_flight.get(key)
        if task is None:
            logger.debug(f"Cache miss: {key}")
            task = asyncio.ensure_future(self._load(key))
            self._in_flight[key] = task
        else:
            logger.debug(f"Joining in-flight fetch: {key}")

        # Shielded so one caller going away does not cancel the shared load
        return await asyncio.shield(task)

    async def _load(self, key: QueryKey) -> Any:
        stale = False
        try:
            value = await self._loader(key)
        finally:
            # A newer fetch may have replaced an abandoned one
            if self._in_flight.get(key) is asyncio.current_task():
                del self._in_flight[key]
                # Invalidated while loading: the value may predate the mutation
                stale = key in self._invalidated_in_flight
                self._invalidated_in_flight.discard(key)

        self._entries[key] = _Entry(value, stale=stale)
        return value

    def invalidate(self, invalidations: Iterable[Any]) -> int:
        """Mark every entry matched by any of the invalidations as stale.

        Args:
            invalidations: Objects with a matches(key) method

        Returns:
            Number of entries marked stale
        """
        invalidations = list(invalidations)
        count = 0
        for key, entry in self._entries.items():
            if any(inv.matches(key) for inv in invalidations):
                entry.stale = True
                count += 1

        for key in self._in_flight:
            if any(inv.matches(key) for inv in invalidations):
                self._invalidated_in_flight.add(key)

        if count:
            logger.info(f"Invalidated {count} cached queries")
        return count

    def abandon(self, active_keys: Iterable[QueryKey]) -> int:
        """Cancel in-flight fetches of keys no longer in use.

        Called after a selection change: fetches for keys derived from the
        previous selection no longer match any displayed view.

        Args:
            active_keys: Keys derived from the current selection

        Returns:
            Number of fetches cancelled
        """
        active = set(active_keys)
        abandoned = [key for key in self._in_flight if key not in active]
        for key in abandoned:
            task = self._in_flight.pop(key)
            self._invalidated_in_flight.discard(key)
            task.cancel()
            logger.debug(f"Abandoned in-flight fetch: {key}")
        return len(abandoned)

    def peek(self, key: QueryKey) -> Optional[Any]:
        """Get a cached value (stale or not) without loading."""
        entry = self._entries.get(key)
        return entry.value if entry is not None else None

    def is_stale(self, key: QueryKey) -> bool:
        """Check if a key is missing or marked stale."""
        entry = self._entries.get(key)
        return entry is None or entry.stale

    def keys(self) -> list[QueryKey]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
