"""Server-rendered HTML document with the next week's snapshots embedded.

The page shell gets a ``<script>`` assigning the payload to
``window.__LIBRARYSPOT_INITIAL__`` so the client can paint without a
round trip.  The payload is JSON with every ``<`` escaped, which keeps
``</script>`` sequences in upstream room names from ending the tag.
"""

import asyncio
import json
import logging
import re
import time
from collections.abc import Callable
from datetime import date

from libspot.aggregation.orchestrator import AggregationOrchestrator
from libspot.core.cache import TtlCache
from libspot.core.dates import upcoming_dates
from libspot.models import AggregationSnapshot

logger = logging.getLogger(__name__)

INITIAL_STATE_GLOBAL = "window.__LIBRARYSPOT_INITIAL__"
DOCUMENT_KEY = "document"

_HEAD_CLOSE_RE = re.compile(r"</head\s*>", re.IGNORECASE)


def to_epoch_ms(snapshot: AggregationSnapshot) -> int:
    return int(snapshot.completed_at.timestamp() * 1000)


def escape_for_script(payload_json: str) -> str:
    """Escape ``<`` so the JSON can't close the surrounding script element."""
    return payload_json.replace("<", "\\u003c")


def snapshot_entry(snapshot: AggregationSnapshot) -> dict:
    """Client cache entry for one date, shaped like the libraries API response."""
    data = snapshot.to_json()
    return {
        "data": data["facilities"],
        "fetchedAt": data["completed_at"],
        "fetchedAtMs": to_epoch_ms(snapshot),
        "fetchDurationMs": snapshot.duration_ms,
    }


def build_payload(snapshots: list[AggregationSnapshot], server_now_ms: int) -> dict:
    """Bootstrap payload keyed by ``YYYY-MM-DD``."""
    return {
        "libraryCache": {s.date.isoformat(): snapshot_entry(s) for s in snapshots},
        "serverNowMs": server_now_ms,
    }


def inject_bootstrap(template: str, payload: dict) -> str:
    """Insert the payload script immediately before ``</head>``.

    Templates without a closing head tag get the script prepended.
    """
    script = (
        f"<script>{INITIAL_STATE_GLOBAL} = "
        f"{escape_for_script(json.dumps(payload, separators=(',', ':')))};</script>"
    )
    match = _HEAD_CLOSE_RE.search(template)
    if match is None:
        logger.warning("Document template has no </head>; prepending bootstrap script")
        return script + template
    return template[: match.start()] + script + template[match.start() :]


class BootstrapSnapshotCache:
    """Caches the bootstrapped document under a single key.

    Populating the document populates (or reuses) the per-date snapshot
    cache for each embedded date, so a cold document render also warms
    the API.
    """

    def __init__(
        self,
        orchestrator: AggregationOrchestrator,
        template: str,
        *,
        days: int = 8,
        ttl: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        wall_clock_ms: Callable[[], int] | None = None,
    ) -> None:
        """Initialize the cache.

        Args:
            orchestrator: Source of per-date snapshots
            template: HTML shell to inject the payload into
            days: Number of dates to embed, starting today
            ttl: Seconds a rendered document stays fresh
            clock: Monotonic clock for the document cache
            wall_clock_ms: Epoch milliseconds for ``serverNowMs``
        """
        self._orchestrator = orchestrator
        self._template = template
        self._days = days
        self._wall_clock_ms = wall_clock_ms or (lambda: int(time.time() * 1000))
        self.cache: TtlCache[str, str] = TtlCache(ttl, name="bootstrap", clock=clock)

    async def get_rendered_document(self) -> str:
        """The HTML document with current snapshots embedded."""
        lookup = await self.cache.get_or_populate(DOCUMENT_KEY, self._render)
        return lookup.value

    def invalidate(self) -> None:
        """Force the next request to re-render the document."""
        self.cache.invalidate(DOCUMENT_KEY)

    def dates(self) -> list[date]:
        """Dates embedded in the document, starting today."""
        return upcoming_dates(self._orchestrator.resolve_day(None), self._days)

    async def _render(self) -> str:
        days = self.dates()
        results = await asyncio.gather(
            *(self._orchestrator.get_snapshot(day) for day in days),
            return_exceptions=True,
        )

        snapshots = []
        for day, result in zip(days, results, strict=True):
            if isinstance(result, Exception):
                logger.warning(f"Leaving {day} out of the bootstrap payload: {result!r}")
                continue
            if isinstance(result, BaseException):
                raise result
            snapshots.append(result)

        payload = build_payload(snapshots, self._wall_clock_ms())
        logger.info(f"Rendered document with {len(snapshots)}/{len(days)} dates")
        return inject_bootstrap(self._template, payload)
