"""Adapter for libraries whose availability is only visible in a rendered widget.

The reservation timeline draws one element per room and half hour, with
an accessible label such as::

    8:00am Wednesday, January 21, 2026 - 360A - Available

Labels are parsed, filtered to the target date, and merged into rooms.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time
from urllib.parse import urlencode

from libspot.core.config import RenderedWidgetFacility
from libspot.core.dates import parse_clock
from libspot.models import Room, Schedule, Slot
from libspot.sources.base import Fetched, SourceAdapter, natural_key
from libspot.sources.browser import PageRenderer, RenderedElement

logger = logging.getLogger(__name__)

SLOT_SELECTOR = ".fc-timeline-event"
AVAILABLE_CLASS = "s-lc-eq-avail"
UNAVAILABLE_CLASS = "s-lc-eq-unavail"

_LABEL_RE = re.compile(
    r"^(\d{1,2}:\d{2}\s*[ap]m)\s+\w+,\s+(.+?\d{4})\s+-\s+([^-]+?)\s+-\s+(.+)$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class SlotObservation:
    """A single parsed timeline element."""

    room: str
    day: date
    start: time
    available: bool


def widget_url(page_url: str, day: date) -> str:
    """Page URL pinned to ``day``."""
    separator = "&" if "?" in page_url else "?"
    return f"{page_url}{separator}{urlencode({'date': day.isoformat()})}"


def parse_slot_label(label: str) -> tuple[time, date, str, str] | None:
    """Split a timeline label into ``(start, date, room, status)``.

    Returns None for labels that don't follow the timeline format.
    """
    match = _LABEL_RE.match(label.strip())
    if not match:
        return None

    clock_text, date_text, room, status = match.groups()
    clock = parse_clock(clock_text.replace(" ", ""))
    if clock is None:
        return None
    try:
        day = datetime.strptime(date_text.strip(), "%B %d, %Y").date()
    except ValueError:
        return None
    return time(*clock), day, room.strip(), status.strip()


def resolve_availability(status: str, class_tokens: frozenset[str]) -> bool:
    """Whether a slot is bookable.

    The element's classes are authoritative; the label's status text is
    only consulted when neither availability class is present.
    """
    if AVAILABLE_CLASS in class_tokens:
        return True
    if UNAVAILABLE_CLASS in class_tokens or any("unavailable" in c for c in class_tokens):
        return False
    return status.strip().lower() == "available"


def observe(element: RenderedElement, day: date) -> SlotObservation | None:
    """Parse ``element``, keeping it only if it belongs to ``day``."""
    parsed = parse_slot_label(element.label)
    if parsed is None:
        if element.label:
            logger.debug(f"Skipping unrecognized slot label {element.label!r}")
        return None

    start, slot_day, room, status = parsed
    if slot_day != day:
        return None
    return SlotObservation(
        room=room,
        day=slot_day,
        start=start,
        available=resolve_availability(status, element.class_tokens),
    )


def merge_observations(observations: list[SlotObservation]) -> dict[str, dict[time, bool]]:
    """Collapse duplicate ``(room, start)`` observations.

    The widget can draw the same slot more than once; available wins, so
    a duplicate may upgrade a slot to available but never downgrade it.
    """
    merged: dict[str, dict[time, bool]] = {}
    for obs in observations:
        slots = merged.setdefault(obs.room, {})
        slots[obs.start] = slots.get(obs.start, False) or obs.available
    return merged


class RenderedWidgetAdapter(SourceAdapter[RenderedWidgetFacility]):
    """Room availability scraped from the rendered reservation timeline."""

    name = "rendered-widget"

    def __init__(self, renderer: PageRenderer) -> None:
        self._renderer = renderer

    async def collect(self, facility: RenderedWidgetFacility, day: date) -> Fetched:
        """Render the timeline for ``day`` and build rooms from its slots.

        Hours come from the facility's static configuration; the timeline
        has no hours of its own.
        """
        elements = await self._renderer.render(widget_url(facility.page_url, day), SLOT_SELECTOR)

        observations = [obs for element in elements if (obs := observe(element, day))]
        merged = merge_observations(observations)
        if elements and not observations:
            logger.warning(f"{facility.id}: {len(elements)} timeline elements, none for {day}")

        rooms = []
        for room_name in sorted(merged, key=natural_key):
            info = facility.info_for(room_name)
            rooms.append(
                Room(
                    name=room_name,
                    display_name=room_name,
                    capacity=info.capacity,
                    floor_label=info.floor,
                    amenities=facility.amenities,
                    slots=tuple(
                        Slot(start_time=start, available=available)
                        for start, available in sorted(merged[room_name].items())
                    ),
                )
            )

        logger.info(f"{facility.id}: {len(rooms)} rooms from {len(observations)} slots for {day}")
        hours = Schedule(reservation={day: facility.fallback_hours.as_day_hours()})
        return Fetched(rooms=tuple(rooms), hours=hours)
