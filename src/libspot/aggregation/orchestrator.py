"""Runs every facility's source for a date and caches the combined snapshot."""

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from datetime import UTC, date, datetime
from typing import assert_never

from libspot.core.cache import CacheLookup, TtlCache
from libspot.core.config import (
    FacilityConfig,
    RenderedWidgetFacility,
    StructuredApiFacility,
    local_today,
)
from libspot.models import AggregationSnapshot, Facility, FaultKind, FetchFault
from libspot.sources.base import Fetched, FetchResult, SourceAdapter

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(UTC)


def to_facility(config: FacilityConfig, result: FetchResult, fetched_at: datetime) -> Facility:
    """Combine static facility metadata with a fetch result.

    A fault yields a degraded facility: no rooms, no hours, fault recorded.
    """
    base = {
        "id": config.id,
        "kind": config.kind,
        "name": config.name,
        "full_name": config.full_name,
        "subtitle": config.subtitle,
        "address": config.address,
        "booking_url": config.booking_url,
        "fetched_at": fetched_at,
    }
    match result:
        case Fetched(rooms=rooms, hours=hours):
            return Facility(**base, rooms=rooms, hours=hours)
        case FetchFault():
            return Facility(**base, fault=result)
        case _:
            assert_never(result)


class AggregationOrchestrator:
    """Builds and caches one ``AggregationSnapshot`` per date.

    Every facility's adapter runs concurrently; a failing or slow source
    degrades only its own facility.  Snapshots are cached per date with
    single-flight population, so a burst of requests for the same date
    triggers one round of upstream calls.
    """

    def __init__(
        self,
        facilities: Iterable[FacilityConfig],
        *,
        structured: SourceAdapter[StructuredApiFacility],
        rendered: SourceAdapter[RenderedWidgetFacility],
        ttl: float = 50.0,
        source_timeout: float | None = 45.0,
        population_timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
        today: Callable[[], date] = local_today,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            facilities: Facility definitions, in display order
            structured: Adapter for structured API facilities
            rendered: Adapter for rendered widget facilities
            ttl: Seconds a snapshot stays fresh
            source_timeout: Budget for one facility's fetch (None for no limit)
            population_timeout: Budget for a whole snapshot population
            clock: Monotonic clock for the snapshot cache
            today: Resolves the default date
        """
        self.facilities = tuple(facilities)
        self._structured = structured
        self._rendered = rendered
        self._source_timeout = source_timeout
        self._today = today
        self.cache: TtlCache[date, AggregationSnapshot] = TtlCache(
            ttl,
            name="snapshots",
            clock=clock,
            population_timeout=population_timeout,
        )

    def _dispatch(self, facility: FacilityConfig, day: date):
        match facility:
            case StructuredApiFacility():
                return self._structured.fetch(facility, day)
            case RenderedWidgetFacility():
                return self._rendered.fetch(facility, day)
            case _:
                assert_never(facility)

    async def _fetch_facility(self, facility: FacilityConfig, day: date) -> Facility:
        try:
            result = await asyncio.wait_for(self._dispatch(facility, day), self._source_timeout)
        except TimeoutError:
            logger.error(f"{facility.id}: no response within {self._source_timeout}s")
            result = FetchFault(
                kind=FaultKind.UPSTREAM_UNAVAILABLE,
                message=f"Timed out after {self._source_timeout}s",
            )
        except Exception as e:
            logger.exception(f"{facility.id}: unexpected error while fetching")
            result = FetchFault(
                kind=FaultKind.UPSTREAM_UNAVAILABLE,
                message=f"Unexpected error: {e}",
            )
        return to_facility(facility, result, utc_now())

    async def _build(self, day: date) -> AggregationSnapshot:
        logger.info(f"Aggregating {len(self.facilities)} facilities for {day}")
        started = time.monotonic()
        facilities = await asyncio.gather(
            *(self._fetch_facility(facility, day) for facility in self.facilities)
        )
        completed_at = utc_now()
        duration_ms = int((time.monotonic() - started) * 1000)

        degraded = [f.id for f in facilities if f.is_degraded]
        if degraded:
            logger.warning(f"Snapshot for {day} is missing: {', '.join(degraded)}")
        logger.info("Snapshot for %s built in %dms", day, duration_ms)

        return AggregationSnapshot(
            date=day,
            facilities=tuple(facilities),
            completed_at=completed_at,
            duration_ms=duration_ms,
        )

    def resolve_day(self, day: date | None) -> date:
        """The requested date, or today in the facilities' timezone."""
        return day if day is not None else self._today()

    async def lookup(
        self, day: date | None = None, *, force: bool = False
    ) -> CacheLookup[AggregationSnapshot]:
        """Get the snapshot for ``day`` along with how it was obtained.

        If the population itself fails and an older snapshot exists, the
        older snapshot is served rather than an error.

        Raises:
            Exception: Whatever aborted the population, when nothing is cached
        """
        day = self.resolve_day(day)
        try:
            return await self.cache.get_or_populate(day, lambda: self._build(day), force=force)
        except Exception as e:
            stale = self.cache.peek(day)
            if stale is None:
                raise
            logger.warning(f"Serving stale snapshot for {day} after failed refresh: {e!r}")
            return CacheLookup(stale.value, served_from_cache=True)

    async def get_snapshot(
        self, day: date | None = None, *, force: bool = False
    ) -> AggregationSnapshot:
        """Snapshot for ``day`` (today if omitted)."""
        lookup = await self.lookup(day, force=force)
        return lookup.value

    async def refresh(self, day: date | None = None) -> AggregationSnapshot:
        """Drop the cached snapshot for ``day`` and rebuild it."""
        day = self.resolve_day(day)
        self.cache.invalidate(day)
        return await self.get_snapshot(day, force=True)

    def status(self) -> dict:
        """Snapshot cache metadata for health output."""
        return self.cache.stats()
