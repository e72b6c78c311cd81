"""Pydantic models for normalized availability data.

Every value here is frozen: each fetch builds fresh instances and
snapshots are swapped whole, never edited in place.
"""

from datetime import date, datetime, time
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_serializer, field_validator


class SourceKind(StrEnum):
    """How a facility's availability is obtained."""

    STRUCTURED_API = "structured-api"
    RENDERED_WIDGET = "rendered-widget"


class Amenity(StrEnum):
    """Room amenity tags."""

    WHITEBOARD = "whiteboard"
    MONITOR = "monitor"
    VIDEO_CONF = "video-conf"


class FaultKind(StrEnum):
    """Why a source produced no data."""

    UPSTREAM_UNAVAILABLE = "upstream-unavailable"
    UPSTREAM_MALFORMED = "upstream-malformed"


def format_clock(value: time) -> str:
    """Format a time as the widgets do, e.g. ``2:30pm``."""
    hour = value.hour % 12 or 12
    period = "pm" if value.hour >= 12 else "am"
    return f"{hour}:{value.minute:02d}{period}"


class Slot(BaseModel):
    """A 30-minute bookable interval."""

    model_config = ConfigDict(frozen=True)

    start_time: time
    available: bool

    @field_validator("start_time")
    @classmethod
    def _half_hour_aligned(cls, value: time) -> time:
        if value.minute not in (0, 30) or value.second or value.microsecond:
            raise ValueError(f"slot start {value.isoformat()} is not 30-minute aligned")
        return value

    @computed_field
    @property
    def label(self) -> str:
        """Display form of the start time."""
        return format_clock(self.start_time)


class Room(BaseModel):
    """A bookable room and its slots for one day."""

    model_config = ConfigDict(frozen=True)

    name: str
    display_name: str
    capacity: int = Field(ge=0)
    floor_label: str
    amenities: frozenset[Amenity] = frozenset()
    slots: tuple[Slot, ...] = ()

    @field_validator("slots")
    @classmethod
    def _ordered_unique(cls, slots: tuple[Slot, ...]) -> tuple[Slot, ...]:
        starts = [s.start_time for s in slots]
        if any(a >= b for a, b in zip(starts, starts[1:], strict=False)):
            raise ValueError("slots must be strictly ascending by start time")
        return slots

    @field_serializer("amenities")
    def _serialize_amenities(self, amenities: frozenset[Amenity]) -> list[str]:
        return sorted(a.value for a in amenities)

    @property
    def available_count(self) -> int:
        """Number of open slots."""
        return sum(1 for s in self.slots if s.available)


class DayHours(BaseModel):
    """Opening hours for one calendar date.

    ``open``/``close`` are decimal hours (7:30pm -> 19.5). A close of 24
    means midnight at the end of the day.
    """

    model_config = ConfigDict(frozen=True)

    open: float | None = None
    close: float | None = None
    closed: bool = False
    label: str = ""
    note: str | None = None


class Schedule(BaseModel):
    """Building and reservation hours keyed by date."""

    model_config = ConfigDict(frozen=True)

    building: dict[date, DayHours] = Field(default_factory=dict)
    reservation: dict[date, DayHours] = Field(default_factory=dict)

    def for_date(self, day: date) -> "Schedule":
        """Restrict both sub-schedules to a single date."""
        return Schedule(
            building={d: h for d, h in self.building.items() if d == day},
            reservation={d: h for d, h in self.reservation.items() if d == day},
        )

    def covers(self, day: date) -> bool:
        """Whether either sub-schedule has an entry for ``day``."""
        return day in self.building or day in self.reservation


class FetchFault(BaseModel):
    """Why a source fetch produced no data."""

    model_config = ConfigDict(frozen=True)

    kind: FaultKind
    message: str


class Facility(BaseModel):
    """One library location with its rooms for a single date."""

    model_config = ConfigDict(frozen=True)

    id: str
    kind: SourceKind
    name: str
    full_name: str = ""
    subtitle: str = ""
    address: str = ""
    booking_url: str = ""
    hours: Schedule | None = None
    rooms: tuple[Room, ...] = ()
    fetched_at: datetime
    fault: FetchFault | None = None

    @property
    def is_degraded(self) -> bool:
        """True when the source failed and rooms are missing."""
        return self.fault is not None


class AggregationSnapshot(BaseModel):
    """All facilities for one date, as produced by a single aggregation run."""

    model_config = ConfigDict(frozen=True)

    date: date
    facilities: tuple[Facility, ...]
    completed_at: datetime
    duration_ms: int = Field(ge=0)

    def find(self, facility_id: str) -> Facility | None:
        """Look up a facility by id."""
        return next((f for f in self.facilities if f.id == facility_id), None)

    def to_json(self) -> dict:
        """Serialize for API responses."""
        return self.model_dump(mode="json")
