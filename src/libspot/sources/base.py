"""Adapter contract shared by every availability source."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import Generic, TypeVar

from pydantic import ValidationError

from libspot.models import FaultKind, FetchFault, Room, Schedule
from libspot.sources.errors import UpstreamError

logger = logging.getLogger(__name__)

C = TypeVar("C")


@dataclass(frozen=True)
class Fetched:
    """Rooms and hours obtained from a source.  Empty ``rooms`` is valid data."""

    rooms: tuple[Room, ...]
    hours: Schedule | None = None


FetchResult = Fetched | FetchFault


def natural_key(value: str) -> tuple:
    """Sort key comparing digit runs numerically ("51" < "126", "45A" < "45B")."""
    parts: list[tuple[int, int | str]] = []
    digits = ""
    text = ""
    for ch in value:
        if ch.isdigit():
            if text:
                parts.append((1, text.lower()))
                text = ""
            digits += ch
        else:
            if digits:
                parts.append((0, int(digits)))
                digits = ""
            text += ch
    if digits:
        parts.append((0, int(digits)))
    if text:
        parts.append((1, text.lower()))
    return tuple(parts)


class SourceAdapter(ABC, Generic[C]):
    """Fetches one upstream and normalizes it for a single date.

    Subclasses implement ``collect`` and may raise ``UpstreamError``;
    ``fetch`` never raises for upstream problems and reports them as a
    ``FetchFault`` instead, so one failing source cannot sink the others.
    """

    name = "source"

    async def fetch(self, facility: C, day: date) -> FetchResult:
        """Fetch ``facility`` for ``day``, converting upstream failures to a fault."""
        try:
            return await self.collect(facility, day)
        except UpstreamError as e:
            logger.error(f"{self.name}: {getattr(facility, 'id', facility)} unavailable: {e}")
            return FetchFault(kind=e.kind, message=str(e))
        except ValidationError as e:
            logger.error(
                f"{self.name}: {getattr(facility, 'id', facility)} returned invalid data: {e}"
            )
            return FetchFault(
                kind=FaultKind.UPSTREAM_MALFORMED,
                message=f"Invalid data: {e.error_count()} validation error(s)",
            )

    @abstractmethod
    async def collect(self, facility: C, day: date) -> Fetched:
        """Fetch and normalize rooms for ``day``.

        Raises:
            UpstreamError: If the source is unreachable or answers unexpectedly
        """
