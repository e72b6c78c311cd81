"""LibCal hours grid parsing and the weekly hours service.

The hours widget is third-party markup with no versioning, so parsing
degrades cell by cell: a cell that matches no known pattern becomes an
"Unknown" open-all-day value instead of failing the whole week.
"""

import logging
import re
from collections.abc import Callable
from datetime import date, timedelta

from bs4 import BeautifulSoup, Tag

from libspot.core.cache import TtlCache
from libspot.core.config import HoursWidget
from libspot.core.dates import monday_of_week, parse_clock, to_decimal_hours
from libspot.models import DayHours, Schedule
from libspot.sources.errors import UpstreamMalformed
from libspot.sources.http import UpstreamClient

logger = logging.getLogger(__name__)

CLOSED_CLASS = "s-lc-closed"
TIME_CLASS = "s-lc-time"
DAYS_PER_ROW = 7

_CLOCK = r"\d{1,2}(?::\d{2})?\s*[ap]\.?m\.?"
_RANGE_RE = re.compile(rf"({_CLOCK})\s*(?:–|—|-|to)\s*({_CLOCK})", re.IGNORECASE)
_NOTE_RE = re.compile(r"\(([^)]+)\)")


def _clock_label(text: str) -> str:
    """Normalize ``7:30 am`` to ``7:30AM``."""
    return re.sub(r"\s+", "", text).replace(".", "").upper()


def _decimal(text: str) -> float | None:
    parsed = parse_clock(text.replace(".", ""))
    return to_decimal_hours(*parsed) if parsed else None


def _is_closed(cell: Tag) -> bool:
    if CLOSED_CLASS in (cell.get("class") or []) or cell.select_one(f".{CLOSED_CLASS}"):
        return True
    return cell.get_text(" ", strip=True).lower() == "closed"


def parse_cell(cell: Tag) -> DayHours:
    """Classify one day cell of the hours grid.

    Priority: closed marker, "24 hours" label, time range, unknown.
    """
    if _is_closed(cell):
        return DayHours(closed=True, label="Closed")

    text = cell.get_text(" ", strip=True)

    if "24 hour" in text.lower():
        note_match = _NOTE_RE.search(text)
        note = note_match.group(1).strip() if note_match else None
        return DayHours(open=0, close=24, label="24 Hours", note=note)

    time_span = cell.select_one(f".{TIME_CLASS}")
    range_text = time_span.get_text(" ", strip=True) if time_span else text
    range_match = _RANGE_RE.search(range_text)
    if range_match:
        open_str, close_str = range_match.groups()
        open_time = _decimal(open_str)
        close_time = _decimal(close_str)
        if open_time is not None and close_time is not None:
            # 12am as a closing time is the end of the day, not its start
            if close_time == 0:
                close_time = 24
            return DayHours(
                open=open_time,
                close=close_time,
                label=f"{_clock_label(open_str)} - {_clock_label(close_str)}",
            )

    logger.debug(f"Unrecognized hours cell {text!r}, assuming open all day")
    return DayHours(open=0, close=24, label="Unknown")


def _find_row(soup: BeautifulSoup, row_label: str) -> Tag | None:
    for row in soup.find_all("tr"):
        first_cell = row.find(["td", "th"])
        if first_cell and row_label in first_cell.get_text(" ", strip=True):
            return row
    return None


def parse_schedule_table(
    markup: str,
    row_label: str,
    week_start: date,
) -> dict[date, DayHours] | None:
    """Parse one named row of the hours grid into per-date hours.

    Args:
        markup: Hours grid HTML
        row_label: Text the row's first cell must contain (first match wins)
        week_start: Date of the first day column (a Monday)

    Returns:
        Mapping of date to hours for the (up to 7) day cells of the row,
        or None if no row matches
    """
    soup = BeautifulSoup(markup, "html.parser")
    row = _find_row(soup, row_label)
    if row is None:
        logger.info(f"Could not find hours row for {row_label!r}")
        return None

    day_cells = row.find_all(["td", "th"])[1 : 1 + DAYS_PER_ROW]
    return {week_start + timedelta(days=i): parse_cell(cell) for i, cell in enumerate(day_cells)}


class HoursService:
    """Fetches building and reservation hours a week at a time.

    Hours change on a weekly rhythm while room occupancy changes by the
    minute, so weeks are cached separately from snapshots, keyed by
    ``(facility_id, monday)`` with a much longer TTL.
    """

    def __init__(
        self,
        client: UpstreamClient,
        *,
        widget_url: str,
        iid: int,
        ttl: float = 3600.0,
        clock: Callable[[], float] | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            client: Open upstream HTTP client
            widget_url: LibCal hours grid URL
            iid: LibCal institution id
            ttl: Seconds a fetched week stays fresh
            clock: Optional clock override for the week cache
        """
        self._client = client
        self._widget_url = widget_url
        self._iid = iid
        cache_kwargs = {"clock": clock} if clock else {}
        self.cache: TtlCache[tuple[str, date], Schedule] = TtlCache(
            ttl, name="hours", **cache_kwargs
        )

    async def week_schedule(
        self,
        facility_id: str,
        widget: HoursWidget,
        week_start: date,
    ) -> Schedule:
        """Hours for the week starting ``week_start``, cached per facility and week.

        Raises:
            UpstreamError: If the widget is unreachable or has neither row
        """

        async def populate() -> Schedule:
            return await self._fetch_week(widget, week_start)

        lookup = await self.cache.get_or_populate((facility_id, week_start), populate)
        if lookup.served_from_cache:
            logger.debug(f"Using cached hours for {facility_id} week of {week_start}")
        return lookup.value

    async def hours_for(
        self,
        facility_id: str,
        widget: HoursWidget,
        day: date,
    ) -> Schedule:
        """Hours for a single date, drawn from that date's cached week."""
        week = await self.week_schedule(facility_id, widget, monday_of_week(day))
        return week.for_date(day)

    async def _fetch_week(self, widget: HoursWidget, week_start: date) -> Schedule:
        logger.info(f"Fetching hours for lid={widget.lid} week of {week_start}")
        html = await self._client.get_text(
            self._widget_url,
            params={"iid": self._iid, "lid": widget.lid, "date": week_start.isoformat()},
        )

        building = parse_schedule_table(html, widget.building_row, week_start)
        reservation = parse_schedule_table(html, widget.reservation_row, week_start)
        if building is None and reservation is None:
            raise UpstreamMalformed(
                f"Hours grid for lid={widget.lid} has no row for "
                f"{widget.building_row!r} or {widget.reservation_row!r}"
            )

        return Schedule(building=building or {}, reservation=reservation or {})
