"""Tests for libspot.models and libspot.core.dates."""

from datetime import UTC, date, datetime, time

import pytest
from pydantic import ValidationError

from libspot.core.dates import (
    monday_of_week,
    parse_clock,
    parse_date_key,
    room_api_date,
    upcoming_dates,
    week_dates,
)
from libspot.models import (
    AggregationSnapshot,
    Amenity,
    DayHours,
    Facility,
    FaultKind,
    FetchFault,
    Room,
    Schedule,
    Slot,
    SourceKind,
    format_clock,
)

DAY = date(2026, 1, 21)


class TestSlot:
    @pytest.mark.parametrize(
        ("start", "label"),
        [
            (time(0, 0), "12:00am"),
            (time(9, 30), "9:30am"),
            (time(12, 0), "12:00pm"),
            (time(14, 30), "2:30pm"),
        ],
    )
    def test_label(self, start, label):
        assert Slot(start_time=start, available=True).label == label
        assert format_clock(start) == label

    def test_rejects_unaligned_start(self):
        with pytest.raises(ValidationError, match="30-minute"):
            Slot(start_time=time(9, 15), available=True)

    def test_frozen(self):
        slot = Slot(start_time=time(9), available=True)
        with pytest.raises(ValidationError):
            slot.available = False


class TestRoom:
    def _slots(self, *hours):
        return tuple(Slot(start_time=time(h), available=h % 2 == 0) for h in hours)

    def test_available_count(self):
        room = Room(
            name="1", display_name="1", capacity=4, floor_label="1", slots=self._slots(8, 9, 10)
        )
        assert room.available_count == 2

    def test_slots_must_ascend(self):
        with pytest.raises(ValidationError, match="ascending"):
            Room(name="1", display_name="1", capacity=4, floor_label="1", slots=self._slots(9, 8))

    def test_duplicate_slots_rejected(self):
        with pytest.raises(ValidationError):
            Room(name="1", display_name="1", capacity=4, floor_label="1", slots=self._slots(9, 9))

    def test_negative_capacity_rejected(self):
        with pytest.raises(ValidationError):
            Room(name="1", display_name="1", capacity=-1, floor_label="1")

    def test_amenities_serialized_sorted(self):
        room = Room(
            name="1",
            display_name="1",
            capacity=4,
            floor_label="1",
            amenities=frozenset({Amenity.WHITEBOARD, Amenity.MONITOR}),
        )
        assert room.model_dump(mode="json")["amenities"] == ["monitor", "whiteboard"]


class TestSchedule:
    def test_for_date_restricts_both_sides(self):
        schedule = Schedule(
            building={DAY: DayHours(open=0, close=24), date(2026, 1, 22): DayHours(closed=True)},
            reservation={date(2026, 1, 22): DayHours(open=8, close=20)},
        )

        restricted = schedule.for_date(DAY)

        assert list(restricted.building) == [DAY]
        assert restricted.reservation == {}
        assert restricted.covers(DAY)
        assert not restricted.covers(date(2026, 1, 22))


class TestSnapshot:
    def test_to_json(self):
        now = datetime(2026, 1, 21, 12, tzinfo=UTC)
        snapshot = AggregationSnapshot(
            date=DAY,
            facilities=(
                Facility(
                    id="x",
                    kind=SourceKind.STRUCTURED_API,
                    name="X",
                    fetched_at=now,
                    fault=FetchFault(kind=FaultKind.UPSTREAM_MALFORMED, message="bad"),
                ),
            ),
            completed_at=now,
            duration_ms=10,
        )

        body = snapshot.to_json()

        assert body["date"] == "2026-01-21"
        assert body["facilities"][0]["kind"] == "structured-api"
        assert body["facilities"][0]["fault"] == {"kind": "upstream-malformed", "message": "bad"}
        assert snapshot.facilities[0].is_degraded

    def test_negative_duration_rejected(self):
        with pytest.raises(ValidationError):
            AggregationSnapshot(
                date=DAY, facilities=(), completed_at=datetime.now(UTC), duration_ms=-1
            )


class TestDates:
    def test_parse_date_key(self):
        assert parse_date_key("2026-01-21") == DAY

    @pytest.mark.parametrize("value", ["2026-02-30", "20260121", "next week"])
    def test_parse_date_key_rejects(self, value):
        with pytest.raises(ValueError):
            parse_date_key(value)

    @pytest.mark.parametrize(
        ("day", "monday"),
        [(date(2026, 1, 19), date(2026, 1, 19)), (date(2026, 1, 25), date(2026, 1, 19))],
    )
    def test_monday_of_week(self, day, monday):
        assert monday_of_week(day) == monday

    def test_week_dates_cross_month(self):
        assert week_dates(date(2026, 1, 26))[-1] == date(2026, 2, 1)

    def test_upcoming_dates(self):
        assert upcoming_dates(DAY, 8)[0] == DAY
        assert len(upcoming_dates(DAY, 8)) == 8

    def test_room_api_date(self):
        assert room_api_date(DAY) == "2026-01-21T05:00:00.000Z"

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("7:30am", (7, 30)),
            ("11pm", (23, 0)),
            ("12:00 AM", (0, 0)),
            ("12pm", (12, 0)),
            ("noon", None),
            ("13:00pm", None),
            ("7:75am", None),
        ],
    )
    def test_parse_clock(self, text, expected):
        assert parse_clock(text) == expected
