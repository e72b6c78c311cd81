"""Configuration loading utilities.

Runtime knobs (upstream URLs, TTLs, timeouts) come from environment
variables via pydantic settings.  The facility list itself lives in
``config/facilities.json`` so adding or reordering a library only
requires editing the JSON file.
"""

import json
from datetime import date, datetime
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Literal
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic_settings import BaseSettings, SettingsConfigDict

from libspot.models import Amenity, DayHours, SourceKind


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="LIBSPOT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Upstreams
    room_api_url: str = Field(
        default="https://content.osu.edu/v2/library/roomreservation/api/v1/locationsearch",
        description="Structured room search endpoint (location id and date are appended)",
    )
    hours_widget_url: str = Field(
        default="https://osul.libcal.com/widget/hours/grid",
        description="LibCal hours grid widget",
    )
    hours_widget_iid: int = Field(default=5296, description="LibCal institution id")

    # Freshness windows (seconds)
    snapshot_ttl: float = Field(default=50.0, description="Per-date snapshot TTL")
    hours_ttl: float = Field(default=3600.0, description="Per-week hours TTL")
    bootstrap_ttl: float = Field(default=60.0, description="Bootstrapped document TTL")
    bootstrap_days: int = Field(default=8, description="Days embedded in the document")

    # Timeouts (seconds)
    http_timeout: float = Field(default=15.0, description="Single HTTP request timeout")
    render_timeout: float = Field(default=30.0, description="Page navigation timeout")
    render_wait_timeout: float = Field(default=15.0, description="Wait for slot elements")
    render_settle: float = Field(default=2.0, description="Extra settle time after slots appear")
    source_timeout: float = Field(default=45.0, description="Budget for one source fetch")
    population_timeout: float = Field(default=60.0, description="Budget for one cache fill")

    # Retries for HTTP upstreams
    retry_attempts: int = Field(default=3, description="Attempts per HTTP request")
    retry_wait: float = Field(default=0.5, description="Initial backoff between attempts")

    # Server
    timezone: str = Field(default="America/New_York", description="Facility local timezone")
    allowed_origin: str = Field(default="https://library.xinci.me", description="CORS origin")
    config_dir: Path = Field(default=Path("config"), description="Config files directory")
    document_template: Path | None = Field(
        default=None, description="HTML shell for the bootstrapped document"
    )
    browser_executable: str | None = Field(
        default=None, description="Chromium executable override for rendering"
    )

    @property
    def facilities_path(self) -> Path:
        """Path to the facility definitions file."""
        return self.config_dir / "facilities.json"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def get_timezone(settings: Settings | None = None) -> ZoneInfo:
    """Get the facilities' local timezone as a ZoneInfo object."""
    return ZoneInfo((settings or get_settings()).timezone)


def local_now(settings: Settings | None = None) -> datetime:
    """Current wall-clock time in the facilities' timezone."""
    return datetime.now(get_timezone(settings))


def local_today(settings: Settings | None = None) -> date:
    """Today's date in the facilities' timezone (not the server's)."""
    return local_now(settings).date()


# ---------------------------------------------------------------------------
# Facility definitions
# ---------------------------------------------------------------------------


class StaticHours(BaseModel):
    """Fallback reservation hours used when the hours widget is unavailable."""

    model_config = ConfigDict(frozen=True)

    open: float
    close: float

    def as_day_hours(self) -> DayHours:
        """Express the fallback as a ``DayHours`` value."""
        return DayHours(open=self.open, close=self.close, label="Default")


class HoursWidget(BaseModel):
    """Where a facility's hours live in the LibCal hours grid."""

    model_config = ConfigDict(frozen=True)

    lid: int
    building_row: str
    reservation_row: str


class RoomInfo(BaseModel):
    """Static metadata for rooms the rendered widget does not describe."""

    model_config = ConfigDict(frozen=True)

    capacity: int = Field(default=5, ge=0)
    floor: str = "3"


class _FacilityBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    full_name: str = ""
    subtitle: str = ""
    address: str = ""
    booking_url: str = ""
    fallback_hours: StaticHours


class StructuredApiFacility(_FacilityBase):
    """A facility served by the JSON room reservation API."""

    kind: Literal[SourceKind.STRUCTURED_API] = SourceKind.STRUCTURED_API
    location_id: int
    hours_widget: HoursWidget | None = None


class RenderedWidgetFacility(_FacilityBase):
    """A facility only reachable through its rendered booking page."""

    kind: Literal[SourceKind.RENDERED_WIDGET] = SourceKind.RENDERED_WIDGET
    page_url: str
    room_info: dict[str, RoomInfo] = Field(default_factory=dict)
    default_room: RoomInfo = RoomInfo()
    amenities: frozenset[Amenity] = frozenset({Amenity.WHITEBOARD, Amenity.MONITOR})

    def info_for(self, room: str) -> RoomInfo:
        """Metadata for ``room``, falling back to the facility default."""
        return self.room_info.get(room, self.default_room)


FacilityConfig = Annotated[
    StructuredApiFacility | RenderedWidgetFacility,
    Field(discriminator="kind"),
]

_facility_list = TypeAdapter(list[FacilityConfig])


def parse_facilities(data: list[dict]) -> tuple[FacilityConfig, ...]:
    """Validate raw facility definitions.

    Raises:
        ValueError: If definitions are invalid or facility ids repeat
    """
    facilities = tuple(_facility_list.validate_python(data))
    ids = [f.id for f in facilities]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise ValueError(f"Duplicate facility ids: {', '.join(duplicates)}")
    return facilities


def load_facilities(path: Path | None = None) -> tuple[FacilityConfig, ...]:
    """Load facility definitions from the config file.

    Order in the file is the order facilities appear in every snapshot.

    Args:
        path: Override for the facilities file (defaults to settings)

    Raises:
        FileNotFoundError: If the config file doesn't exist
    """
    config_path = path or get_settings().facilities_path

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with config_path.open() as f:
        config_data = json.load(f)

    return parse_facilities(config_data["facilities"])
