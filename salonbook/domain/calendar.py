"""
Calendar day classification for the booking date picker.

A month is first rendered from a coarse heuristic (salon weekday hours only)
and then fully replaced by the server's per-date availability once it loads.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Iterable, List, Protocol, Sequence

import pendulum
from pendulum import Date

from .models import Service, WorkingHours, parse_date, selection_payload

logger = logging.getLogger(__name__)


class DayState(str, Enum):
    """Display state of one calendar date."""
    PAST = "past"
    OPEN = "open"                # heuristic: salon weekday is open
    CLOSED = "closed"            # heuristic: salon weekday is closed
    AVAILABLE = "available"      # authoritative: at least one fitting slot
    UNAVAILABLE = "unavailable"  # authoritative: no slot, or omitted by server


SELECTABLE_STATES = frozenset({DayState.OPEN, DayState.AVAILABLE})


@dataclass(frozen=True)
class MonthCursor:
    """A visible calendar month; ``month`` runs 1..12."""
    year: int
    month: int

    def __post_init__(self):
        if not 1 <= self.month <= 12:
            raise ValueError(f"Month must be between 1 and 12, got {self.month}")

    @classmethod
    def of(cls, day: Date) -> "MonthCursor":
        return cls(year=day.year, month=day.month)

    def next(self) -> "MonthCursor":
        if self.month == 12:
            return MonthCursor(self.year + 1, 1)
        return MonthCursor(self.year, self.month + 1)

    def previous(self) -> "MonthCursor":
        if self.month == 1:
            return MonthCursor(self.year - 1, 12)
        return MonthCursor(self.year, self.month - 1)

    @property
    def key(self) -> str:
        """Month key as sent to the API (``YYYY-MM``)."""
        return f"{self.year:04d}-{self.month:02d}"

    def first_day(self) -> Date:
        return pendulum.date(self.year, self.month, 1)

    def days(self) -> List[Date]:
        first = self.first_day()
        return [first.add(days=offset) for offset in range(first.days_in_month)]

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class DayCell:
    """One rendered date of the month grid."""
    date: Date
    state: DayState
    is_today: bool = False

    @property
    def selectable(self) -> bool:
        return self.state in SELECTABLE_STATES


@dataclass(frozen=True)
class MonthAvailability:
    """Server-computed availability for one month."""
    available_dates: FrozenSet[Date] = field(default_factory=frozenset)
    unavailable_dates: FrozenSet[Date] = field(default_factory=frozenset)

    @classmethod
    def from_response(cls, data: dict) -> "MonthAvailability":
        return cls(
            available_dates=frozenset(parse_date(d) for d in data.get("available_dates") or ()),
            unavailable_dates=frozenset(parse_date(d) for d in data.get("unavailable_dates") or ()),
        )

    @property
    def is_empty(self) -> bool:
        return not self.available_dates and not self.unavailable_dates


@dataclass(frozen=True)
class MonthView:
    """
    The rendered month: cells plus where their states came from.

    ``authoritative`` is False while only the heuristic is known;
    ``load_failed`` marks a failed availability request so that the grid can
    explain itself instead of looking like an empty month.
    """
    cursor: MonthCursor
    cells: Sequence[DayCell]
    authoritative: bool = False
    load_failed: bool = False

    def cell(self, day: Date) -> DayCell | None:
        for cell in self.cells:
            if cell.date == day:
                return cell
        return None

    def selectable_dates(self) -> List[Date]:
        return [cell.date for cell in self.cells if cell.selectable]


def _past_or(day: Date, today: Date, state: DayState) -> DayState:
    return DayState.PAST if day < today else state


def heuristic_month(cursor: MonthCursor, salon_hours: WorkingHours, today: Date) -> MonthView:
    """
    Coarse month grid from the salon's weekday ``is_open`` flags.

    Never consults staff data or breaks; it may be optimistic.
    """
    cells = [
        DayCell(
            date=day,
            state=_past_or(
                day,
                today,
                DayState.OPEN if salon_hours.is_open_on(day) else DayState.CLOSED,
            ),
            is_today=day == today,
        )
        for day in cursor.days()
    ]
    return MonthView(cursor=cursor, cells=cells)


def authoritative_month(
    cursor: MonthCursor,
    availability: MonthAvailability,
    today: Date,
) -> MonthView:
    """
    Month grid from the server's answer; it fully replaces the heuristic.

    Dates missing from both sets are treated as unavailable.
    """
    cells = []
    for day in cursor.days():
        state = DayState.AVAILABLE if day in availability.available_dates else DayState.UNAVAILABLE
        cells.append(DayCell(date=day, state=_past_or(day, today, state), is_today=day == today))
    return MonthView(cursor=cursor, cells=cells, authoritative=True)


def failed_month(view: MonthView) -> MonthView:
    """Keep the heuristic cells but flag the failed load."""
    return MonthView(cursor=view.cursor, cells=view.cells, authoritative=False, load_failed=True)


class DateAvailabilityClient(Protocol):
    """Client behaviour needed to classify a month."""

    async def get_available_dates(self, staff_id: int, month: str, services: list) -> dict:
        """Return ``{available_dates, unavailable_dates}`` for the month."""


async def classify_month(
    client: DateAvailabilityClient,
    year: int,
    month: int,
    staff_id: int | None,
    selected_services: Iterable[Service],
) -> MonthAvailability:
    """
    Fetch authoritative availability for a whole month.

    Requires a staff member and at least one service; otherwise this is a
    no-op returning empty sets.
    """
    services = list(selected_services)

    if staff_id is None or not services:
        return MonthAvailability()

    cursor = MonthCursor(year, month)
    logger.debug("Requesting month availability staff=%s month=%s", staff_id, cursor.key)

    data = await client.get_available_dates(
        staff_id=staff_id,
        month=cursor.key,
        services=selection_payload(services),
    )
    return MonthAvailability.from_response(data or {})
