"""Shared pytest fixtures."""

from pathlib import Path

import pytest

from libspot.core.config import Settings, load_facilities, parse_facilities

FIXTURES_DIR = Path(__file__).parent / "fixtures"
CONFIG_PATH = Path(__file__).resolve().parents[1] / "config" / "facilities.json"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _read_fixture(*parts: str) -> str:
    return FIXTURES_DIR.joinpath(*parts).read_text(encoding="utf-8")


@pytest.fixture
def fake_clock():
    """Controllable monotonic clock."""
    return FakeClock()


@pytest.fixture
def hours_grid():
    """Hours grid with 18th Avenue and FAES rows for the week of 2026-01-19."""
    return _read_fixture("hours", "grid_week.html")


@pytest.fixture
def unrelated_hours_grid():
    """Hours grid for a library none of the facilities use."""
    return _read_fixture("hours", "grid_unrelated.html")


@pytest.fixture
def config_path():
    """Path to the shipped facility definitions."""
    return CONFIG_PATH


@pytest.fixture
def facilities():
    """The shipped facility definitions."""
    return load_facilities(CONFIG_PATH)


@pytest.fixture
def structured_facility(facilities):
    """FAES, a structured-API facility with an hours widget."""
    return next(f for f in facilities if f.id == "faes")


@pytest.fixture
def rendered_facility(facilities):
    """HSL, the rendered-widget facility."""
    return next(f for f in facilities if f.id == "hsl")


@pytest.fixture
def minimal_facilities():
    """One facility of each kind, without an hours widget."""
    return parse_facilities(
        [
            {
                "id": "alpha",
                "kind": "structured-api",
                "name": "Alpha Library",
                "location_id": 1,
                "fallback_hours": {"open": 8, "close": 20},
            },
            {
                "id": "beta",
                "kind": "rendered-widget",
                "name": "Beta Library",
                "page_url": "https://beta.example.com/spaces?lid=2",
                "fallback_hours": {"open": 9, "close": 17},
            },
        ]
    )


@pytest.fixture
def test_settings(tmp_path):
    """Settings with fast retries and no .env influence."""
    return Settings(
        _env_file=None,
        room_api_url="https://rooms.test/api/locationsearch",
        hours_widget_url="https://hours.test/widget/hours/grid",
        retry_attempts=2,
        retry_wait=0,
        config_dir=tmp_path,
    )
