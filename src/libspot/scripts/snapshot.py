#!/usr/bin/env python3
"""Fetch one availability snapshot and print it.

Usage:
    uv run libspot-snapshot                          # Today, all facilities, table
    uv run libspot-snapshot --date "Jan 21 2026"     # Specific date
    uv run libspot-snapshot --facility hsl --format json
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import date

from dateutil import parser as dateparser
from dotenv import load_dotenv

from libspot.core.config import get_settings, load_facilities
from libspot.models import AggregationSnapshot, Facility
from libspot.services import open_services

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def parse_day(value: str) -> date:
    """Parse a date argument.

    Accepts ISO dates as well as looser forms like "Jan 21 2026".

    Raises:
        ValueError: If the string cannot be parsed
    """
    try:
        return dateparser.parse(value.strip(), dayfirst=False).date()
    except (ValueError, TypeError, OverflowError) as e:
        raise ValueError(f"Cannot parse date: '{value}'. Use YYYY-MM-DD") from e


def _hours_text(facility: Facility, day: date) -> str:
    if facility.hours is None:
        return "-"
    hours = facility.hours.reservation.get(day) or facility.hours.building.get(day)
    return hours.label if hours else "-"


def format_table(snapshot: AggregationSnapshot) -> str:
    """Human-readable summary: one block per facility, one line per room."""
    lines = [
        f"Availability for {snapshot.date:%a %b %d, %Y} "
        f"({snapshot.duration_ms}ms, completed {snapshot.completed_at:%H:%M:%S} UTC)"
    ]
    for facility in snapshot.facilities:
        lines.append("")
        header = f"{facility.name} [{facility.id}]  hours: {_hours_text(facility, snapshot.date)}"
        lines.append(header)
        if facility.fault:
            lines.append(f"  unavailable ({facility.fault.kind}): {facility.fault.message}")
            continue
        if not facility.rooms:
            lines.append("  no rooms listed")
        for room in facility.rooms:
            open_slots = [s.label for s in room.slots if s.available]
            lines.append(
                f"  {room.name:<8} floor {room.floor_label:<3} cap {room.capacity:<3} "
                f"{room.available_count}/{len(room.slots)} free"
                + (f"  next: {', '.join(open_slots[:4])}" if open_slots else "")
            )
    return "\n".join(lines)


async def run(day: date | None, facility_id: str | None, force: bool) -> AggregationSnapshot:
    """Build one snapshot, optionally narrowed to a single facility."""
    settings = get_settings()
    facilities = load_facilities(settings.facilities_path)
    if facility_id:
        selected = tuple(f for f in facilities if f.id == facility_id)
        if not selected:
            known = ", ".join(f.id for f in facilities)
            raise ValueError(f"Unknown facility '{facility_id}' (known: {known})")
        facilities = selected

    async with open_services(settings, facilities=facilities) as services:
        return await services.orchestrator.get_snapshot(day, force=force)


def main() -> int:
    """Main entry point."""
    load_dotenv()

    parser = argparse.ArgumentParser(description="Fetch study room availability")
    parser.add_argument(
        "--date",
        type=str,
        help="Date to fetch (default: today in the library timezone)",
    )
    parser.add_argument(
        "--facility",
        type=str,
        help="Only fetch this facility id",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Skip any cached snapshot",
    )
    parser.add_argument(
        "--format",
        choices=["json", "table"],
        default="table",
        help="Output format (default: table)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    day = None
    if args.date:
        try:
            day = parse_day(args.date)
        except ValueError as e:
            logger.error(str(e))
            return 1

    try:
        snapshot = asyncio.run(run(day, args.facility, args.force))
    except (ValueError, FileNotFoundError) as e:
        logger.error(str(e))
        return 1

    if args.format == "json":
        print(json.dumps(snapshot.to_json(), indent=2))
    else:
        print(format_table(snapshot))

    return 1 if any(f.is_degraded for f in snapshot.facilities) else 0


if __name__ == "__main__":
    sys.exit(main())
