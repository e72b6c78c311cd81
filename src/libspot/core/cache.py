"""In-memory TTL cache with single-flight population.

Concurrent callers asking for the same missing or stale key share one
population instead of each hitting the upstream.  All bookkeeping
happens between ``await`` points, so on a single event loop the
"is something in flight?" check and the marker write are atomic.

Usage::

    cache: TtlCache[date, AggregationSnapshot] = TtlCache(ttl=50)
    lookup = await cache.get_or_populate(day, lambda: build(day))
    snapshot = lookup.value
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    """A cached value and when it was written.

    Freshness depends only on ``written_at``, ``ttl`` and the clock,
    never on the value itself.
    """

    value: V
    written_at: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        """Check if the entry is still within its TTL at ``now``."""
        return now - self.written_at < self.ttl

    def age(self, now: float) -> float:
        """Seconds since the entry was written."""
        return now - self.written_at


@dataclass(frozen=True)
class CacheLookup(Generic[V]):
    """Result of ``TtlCache.get_or_populate``."""

    value: V
    served_from_cache: bool = False
    deduped: bool = False


class TtlCache(Generic[K, V]):
    """Keyed TTL cache allowing at most one in-flight population per key."""

    def __init__(
        self,
        ttl: float,
        *,
        name: str = "cache",
        clock: Callable[[], float] = time.monotonic,
        population_timeout: float | None = None,
    ) -> None:
        """Initialize an empty cache.

        Args:
            ttl: Default time-to-live in seconds for written entries
            name: Label used in log messages and stats
            clock: Monotonic time source (injectable for tests)
            population_timeout: Upper bound for a single population, after
                which it fails with ``TimeoutError`` and releases its key
        """
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self.ttl = ttl
        self.name = name
        self._clock = clock
        self._population_timeout = population_timeout
        self._entries: dict[K, CacheEntry[V]] = {}
        self._in_flight: dict[K, asyncio.Task[V]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    async def get_or_populate(
        self,
        key: K,
        populate: Callable[[], Awaitable[V]],
        *,
        ttl: float | None = None,
        force: bool = False,
    ) -> CacheLookup[V]:
        """Return a fresh value for ``key``, populating it at most once at a time.

        Args:
            key: Cache key
            populate: Zero-argument coroutine factory producing the value
            ttl: TTL for the entry this call writes (defaults to the cache TTL)
            force: Ignore any fresh entry and repopulate.  A population that
                is already running is still shared rather than duplicated.

        Returns:
            CacheLookup with the value and whether it came from the cache
            or from another caller's population

        Raises:
            Exception: Whatever ``populate`` raised, delivered to every
                caller waiting on that population
        """
        entry = self._entries.get(key)
        if not force and entry is not None and entry.is_fresh(self._clock()):
            return CacheLookup(entry.value, served_from_cache=True)

        pending = self._in_flight.get(key)
        if pending is not None:
            logger.debug("%s: joining in-flight population for %s", self.name, key)
            return CacheLookup(await asyncio.shield(pending), deduped=True)

        task = asyncio.ensure_future(
            self._populate(key, populate, ttl if ttl is not None else self.ttl)
        )
        # Failures are logged in _populate; mark them retrieved if every caller left
        task.add_done_callback(lambda t: t.cancelled() or t.exception())
        self._in_flight[key] = task
        return CacheLookup(await asyncio.shield(task))

    async def _populate(
        self,
        key: K,
        populate: Callable[[], Awaitable[V]],
        ttl: float,
    ) -> V:
        try:
            if self._population_timeout is None:
                value = await populate()
            else:
                value = await asyncio.wait_for(populate(), self._population_timeout)
            # Stamp on completion so the TTL bounds the age of the data itself
            self._entries[key] = CacheEntry(value, written_at=self._clock(), ttl=ttl)
            return value
        except Exception as e:
            logger.warning("%s: population for %s failed: %s", self.name, key, e)
            raise
        finally:
            self._in_flight.pop(key, None)

    def invalidate(self, key: K) -> None:
        """Drop the entry for ``key``.  An in-flight population keeps running."""
        self._entries.pop(key, None)

    def clear(self) -> None:
        """Drop every entry."""
        self._entries.clear()

    def peek(self, key: K) -> CacheEntry[V] | None:
        """Return the entry for ``key`` whether fresh or stale."""
        return self._entries.get(key)

    def is_fresh(self, key: K) -> bool:
        """Check if ``key`` has an unexpired entry."""
        entry = self._entries.get(key)
        return entry is not None and entry.is_fresh(self._clock())

    def is_in_flight(self, key: K) -> bool:
        """Check if a population for ``key`` is running."""
        return key in self._in_flight

    def age(self, key: K) -> float | None:
        """Seconds since ``key`` was last written, or None if absent."""
        entry = self._entries.get(key)
        return entry.age(self._clock()) if entry else None

    def stats(self) -> dict:
        """Metadata only, safe to expose in health output."""
        now = self._clock()
        return {
            "name": self.name,
            "entries": len(self._entries),
            "in_flight": len(self._in_flight),
            "ages": {
                str(key): round(entry.age(now), 1) for key, entry in self._entries.items()
            },
        }
