"""Adapter for libraries exposed through the JSON room reservation API."""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import date, time
from typing import Any

from libspot.core.config import StructuredApiFacility
from libspot.core.dates import room_api_date
from libspot.models import Amenity, Room, Schedule, Slot
from libspot.sources.base import Fetched, SourceAdapter, natural_key
from libspot.sources.errors import UpstreamError, UpstreamMalformed
from libspot.sources.hours import HoursService
from libspot.sources.http import UpstreamClient

logger = logging.getLogger(__name__)

_ROOM_KEY_RE = re.compile(r"(\d+[A-Za-z]?)\s*$")

# Boolean flags on each timeslot record and the amenity they advertise
AMENITY_FLAGS = {
    "whiteboard": Amenity.WHITEBOARD,
    "hdtv": Amenity.MONITOR,
    "videoConferencing": Amenity.VIDEO_CONF,
}


def room_key(room_name: str) -> str:
    """Stable room key from the API's room name.

    "18th Avenue Library 126" -> "126", "Thompson 045D" -> "045D".
    Names without a trailing number are used whole.
    """
    match = _ROOM_KEY_RE.search(room_name)
    return match.group(1) if match else room_name.strip()


def floor_label(room_name: str, key: str) -> str:
    """Floor for display: ``LL`` for the lower level, else the leading digit."""
    if "045" in room_name:
        return "LL"
    first = key[:1]
    return first if first.isdigit() and first != "0" else "1"


@dataclass
class _RoomDraft:
    name: str
    display_name: str
    capacity: int
    floor_label: str
    amenities: frozenset[Amenity]
    slots: dict[str, bool] = field(default_factory=dict)

    def build(self) -> Room:
        return Room(
            name=self.name,
            display_name=self.display_name,
            capacity=self.capacity,
            floor_label=self.floor_label,
            amenities=self.amenities,
            slots=tuple(
                Slot(start_time=time.fromisoformat(start), available=available)
                for start, available in sorted(self.slots.items())
            ),
        )


def extract_timeslots(payload: Any) -> list[dict]:
    """Flatten the API payload into its timeslot records.

    Raises:
        UpstreamMalformed: If the payload is not a successful search result
    """
    if not isinstance(payload, dict) or payload.get("status") != "success":
        status = payload.get("status") if isinstance(payload, dict) else type(payload).__name__
        raise UpstreamMalformed(f"Unexpected API status: {status!r}")

    data = payload.get("data")
    rooms = data.get("locationAvailableRooms") if isinstance(data, dict) else None
    if not isinstance(rooms, list):
        raise UpstreamMalformed("API response is missing locationAvailableRooms")

    records: list[dict] = []
    for room in rooms:
        timeslots = room.get("timeslots") if isinstance(room, dict) else None
        if not isinstance(timeslots, list):
            raise UpstreamMalformed("Room entry is missing its timeslots")
        records.extend(timeslots)
    return records


def normalize_rooms(records: list[dict]) -> tuple[Room, ...]:
    """Group raw timeslot records into rooms.

    Hidden rooms are dropped.  Only slots the library is open for are
    kept (a slot outside opening hours is omitted, not marked taken).
    Slots are ordered by start time and rooms by natural room number.

    Raises:
        UpstreamMalformed: If a record lacks the fields we rely on
    """
    drafts: dict[str, _RoomDraft] = {}
    try:
        for record in records:
            if record.get("roomHide") is True:
                continue

            raw_name = str(record["roomName"])
            key = room_key(raw_name)
            draft = drafts.get(key)
            if draft is None:
                draft = drafts[key] = _RoomDraft(
                    name=key,
                    display_name=raw_name,
                    capacity=int(record.get("maximumCapacity") or 0),
                    floor_label=floor_label(raw_name, key),
                    amenities=frozenset(
                        amenity for flag, amenity in AMENITY_FLAGS.items() if record.get(flag)
                    ),
                )

            if record.get("open"):
                start = str(record["starttime"])
                # The same start listed twice counts as available if either says so
                draft.slots[start] = draft.slots.get(start, False) or not record.get("taken")
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise UpstreamMalformed(f"Unexpected timeslot record: {e!r}") from e

    try:
        rooms = [draft.build() for draft in drafts.values()]
    except ValueError as e:
        raise UpstreamMalformed(f"Unparseable slot start time: {e}") from e
    return tuple(sorted(rooms, key=lambda r: natural_key(r.name)))


def fallback_schedule(facility: StructuredApiFacility, day: date) -> Schedule:
    """Static reservation hours for ``day`` when the hours widget can't be used."""
    return Schedule(reservation={day: facility.fallback_hours.as_day_hours()})


class StructuredApiAdapter(SourceAdapter[StructuredApiFacility]):
    """Room availability from the JSON API plus hours from the LibCal grid."""

    name = "room-api"

    def __init__(self, client: UpstreamClient, hours: HoursService, *, api_url: str) -> None:
        """Initialize the adapter.

        Args:
            client: Open upstream HTTP client
            hours: Weekly hours service (owns the hours cache)
            api_url: Room search endpoint
        """
        self._client = client
        self._hours = hours
        self._api_url = api_url.rstrip("/")

    async def collect(self, facility: StructuredApiFacility, day: date) -> Fetched:
        """Fetch rooms and hours for ``day`` concurrently."""
        hours_task = asyncio.ensure_future(self._fetch_hours(facility, day))
        try:
            rooms = await self._fetch_rooms(facility, day)
        except BaseException:
            hours_task.cancel()
            raise
        return Fetched(rooms=rooms, hours=await hours_task)

    async def _fetch_rooms(self, facility: StructuredApiFacility, day: date) -> tuple[Room, ...]:
        url = f"{self._api_url}/{facility.location_id}/{room_api_date(day)}"
        payload = await self._client.get_json(url)
        rooms = normalize_rooms(extract_timeslots(payload))
        logger.info(f"{facility.id}: {len(rooms)} rooms for {day}")
        return rooms

    async def _fetch_hours(self, facility: StructuredApiFacility, day: date) -> Schedule:
        if facility.hours_widget is None:
            return fallback_schedule(facility, day)

        try:
            schedule = await self._hours.hours_for(facility.id, facility.hours_widget, day)
        except UpstreamError as e:
            logger.warning(f"{facility.id}: hours unavailable, using defaults: {e}")
            return fallback_schedule(facility, day)
        except Exception as e:
            # Room data is still good; hours alone never fail the facility
            logger.warning(f"{facility.id}: hours fetch failed, using defaults: {e!r}")
            return fallback_schedule(facility, day)

        if not schedule.covers(day):
            logger.warning(f"{facility.id}: no hours listed for {day}, using defaults")
            return fallback_schedule(facility, day)
        return schedule
