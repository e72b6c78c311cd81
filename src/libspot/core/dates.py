"""Date helpers shared by the sources and the API."""

from datetime import date, datetime, timedelta


def parse_date_key(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` date key.

    Raises:
        ValueError: If the value is not a valid ISO date
    """
    return datetime.strptime(value, "%Y-%m-%d").date()


def monday_of_week(day: date) -> date:
    """Monday of the week containing ``day`` (weeks run Monday-Sunday)."""
    return day - timedelta(days=day.weekday())


def week_dates(week_start: date, days: int = 7) -> list[date]:
    """Consecutive dates starting at ``week_start``."""
    return [week_start + timedelta(days=i) for i in range(days)]


def upcoming_dates(start: date, count: int) -> list[date]:
    """``start`` and the ``count - 1`` dates after it."""
    return week_dates(start, count)


def room_api_date(day: date) -> str:
    """Date path segment expected by the room reservation API.

    The API keys days by local midnight expressed in UTC (Eastern offset).
    """
    return f"{day.isoformat()}T05:00:00.000Z"


def parse_clock(value: str) -> tuple[int, int] | None:
    """Parse ``7:30am`` / ``11pm`` / ``12:00 AM`` into a 24-hour (hour, minute).

    Returns:
        Tuple of (hour, minute), or None if the text is not a 12-hour time
    """
    text = value.strip().lower().replace(" ", "")
    period = text[-2:]
    if period not in ("am", "pm"):
        return None
    hour_str, _, minute_str = text[:-2].partition(":")
    if not hour_str.isdigit() or (minute_str and not minute_str.isdigit()):
        return None
    hour = int(hour_str)
    minute = int(minute_str) if minute_str else 0
    if not 1 <= hour <= 12 or not 0 <= minute < 60:
        return None
    if period == "pm" and hour != 12:
        hour += 12
    if period == "am" and hour == 12:
        hour = 0
    return hour, minute


def to_decimal_hours(hour: int, minute: int) -> float:
    """Express a time of day as decimal hours (7:30 -> 7.5)."""
    return hour + minute / 60
