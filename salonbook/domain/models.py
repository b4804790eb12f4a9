"""
Domain models for salon schedules, services and time range calculations.

All models are read-only snapshots of what the booking API returns for a
month/day/staff query. ``from_dict`` constructors accept the API's JSON shapes.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pendulum
from pendulum import Date, DateTime


WEEKDAY_NAMES = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

# Appointment statuses that occupy the staff member's time
BLOCKING_STATUSES = frozenset({"pending", "confirmed", "in_progress"})


def weekday_name(day: Date) -> str:
    """Return the lowercase weekday name used as WorkingHours key."""
    return WEEKDAY_NAMES[day.weekday()]


def parse_date(value: Any) -> Date:
    """Parse an ISO date (``YYYY-MM-DD``) or pass a date through."""
    if isinstance(value, DateTime):
        return value.date()
    if isinstance(value, Date):
        return value
    if isinstance(value, datetime.date):
        return pendulum.date(value.year, value.month, value.day)
    parsed = pendulum.parse(str(value), exact=True)
    if isinstance(parsed, DateTime):
        return parsed.date()
    if isinstance(parsed, Date):
        return parsed
    raise ValueError(f"Could not parse date: {value}")


def parse_time_of_day(value: str) -> int:
    """
    Parse ``HH:MM`` (or ``HH:MM:SS``) into minutes after midnight.

    Seconds are dropped, the API sometimes sends them.
    """
    parts = str(value).strip().split(":")
    if len(parts) < 2:
        raise ValueError(f"Invalid time of day: {value!r}")
    hours, minutes = int(parts[0]), int(parts[1])
    if not (0 <= hours <= 24 and 0 <= minutes < 60) or hours * 60 + minutes > 24 * 60:
        raise ValueError(f"Invalid time of day: {value!r}")
    return hours * 60 + minutes


def format_time_of_day(minutes: int) -> str:
    """Format minutes after midnight as ``HH:MM``."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def at_minutes(day: Date, minutes: int, timezone: str) -> DateTime:
    """
    Build the wall-clock DateTime ``minutes`` after midnight on ``day``.

    Hours and minutes are set directly, so daylight saving transitions do not
    shift opening hours. ``24:00`` and later roll over to the next day.
    """
    days, minutes = divmod(minutes, 24 * 60)
    target = pendulum.date(day.year, day.month, day.day).add(days=days)
    return pendulum.datetime(
        target.year,
        target.month,
        target.day,
        minutes // 60,
        minutes % 60,
        tz=timezone,
    )


def minutes_of_day(moment: DateTime) -> int:
    """Wall-clock minutes after midnight of ``moment``."""
    return moment.hour * 60 + moment.minute


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable time range with start and end datetime.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another."""
        return self.start < other.end and self.end > other.start

    def contains(self, start: DateTime, end: DateTime) -> bool:
        """Check if ``[start, end)`` lies entirely inside this range."""
        return self.start <= start and end <= self.end

    def intersect(self, other: "TimeRange") -> "TimeRange | None":
        """
        Calculate the intersection of two time ranges.
        Returns None if there is no overlap.
        """
        if not self.overlaps(other):
            return None

        start = max(self.start, other.start)
        end = min(self.end, other.end)

        return TimeRange(start=start, end=end)

    def __str__(self) -> str:
        return f"{self.start.format('DD.MM.YYYY HH:mm')} - {self.end.format('HH:mm')}"


@dataclass(frozen=True)
class DayHours:
    """Opening hours for one weekday."""
    open: int  # minutes after midnight
    close: int
    is_open: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DayHours":
        is_open = bool(data.get("is_open", False))
        opens = data.get("open") or "00:00"
        closes = data.get("close") or "00:00"
        return cls(
            open=parse_time_of_day(opens),
            close=parse_time_of_day(closes),
            is_open=is_open,
        )

    def as_range(self, day: Date, timezone: str) -> TimeRange | None:
        """Return the open period on ``day``, or None when closed."""
        if not self.is_open or self.close <= self.open:
            return None
        return TimeRange(
            start=at_minutes(day, self.open, timezone),
            end=at_minutes(day, self.close, timezone),
        )


@dataclass(frozen=True)
class WorkingHours:
    """
    Weekly working hours keyed by weekday name (``monday``..``sunday``).

    Used both at salon level and at staff level. Missing weekdays are closed.
    """
    days: Dict[str, DayHours] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "WorkingHours":
        days: Dict[str, DayHours] = {}
        for name, hours in (data or {}).items():
            key = str(name).lower()
            if key in WEEKDAY_NAMES and isinstance(hours, dict):
                days[key] = DayHours.from_dict(hours)
        return cls(days=days)

    def for_date(self, day: Date) -> DayHours | None:
        """Get the hours configured for the weekday of ``day``."""
        return self.days.get(weekday_name(day))

    def is_open_on(self, day: Date) -> bool:
        """Check the weekday's ``is_open`` flag."""
        hours = self.for_date(day)
        return bool(hours and hours.is_open)


class BreakType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    SPECIFIC_DATE = "specific_date"
    DATE_RANGE = "date_range"


@dataclass(frozen=True)
class Break:
    """
    A recurring or one-off unavailability window within a day.
    """
    type: BreakType
    start_time: int
    end_time: int
    days: Sequence[str] = ()
    date: Optional[Date] = None
    start_date: Optional[Date] = None
    end_date: Optional[Date] = None
    is_active: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Break":
        return cls(
            type=BreakType(data["type"]),
            start_time=parse_time_of_day(data["start_time"]),
            end_time=parse_time_of_day(data["end_time"]),
            days=tuple(str(d).lower() for d in data.get("days") or ()),
            date=parse_date(data["date"]) if data.get("date") else None,
            start_date=parse_date(data["start_date"]) if data.get("start_date") else None,
            end_date=parse_date(data["end_date"]) if data.get("end_date") else None,
            is_active=bool(data.get("is_active", True)),
        )

    def applies_to(self, day: Date) -> bool:
        """Check whether this break is in force on ``day``."""
        if not self.is_active:
            return False
        if self.type is BreakType.DAILY:
            return True
        if self.type is BreakType.WEEKLY:
            return weekday_name(day) in self.days
        if self.type is BreakType.SPECIFIC_DATE:
            return self.date == day
        if self.start_date is None or self.end_date is None:
            return False
        return self.start_date <= day <= self.end_date

    def as_range(self, day: Date, timezone: str) -> TimeRange | None:
        if self.end_time <= self.start_time:
            return None
        return TimeRange(
            start=at_minutes(day, self.start_time, timezone),
            end=at_minutes(day, self.end_time, timezone),
        )


@dataclass(frozen=True)
class Vacation:
    """A whole-day unavailability over an inclusive date range."""
    start_date: Date
    end_date: Date
    type: str = "vacation"
    is_active: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Vacation":
        return cls(
            start_date=parse_date(data["start_date"]),
            end_date=parse_date(data["end_date"]),
            type=str(data.get("type") or "vacation"),
            is_active=bool(data.get("is_active", True)),
        )

    def covers(self, day: Date) -> bool:
        return self.is_active and self.start_date <= day <= self.end_date


@dataclass(frozen=True)
class Service:
    """
    A bookable salon service.

    ``duration`` is in minutes and may be 0 for add-ons that take no time.
    """
    id: int
    name: str
    duration: int
    price: float = 0.0
    discount_price: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Service":
        try:
            duration = int(float(data.get("duration") or 0))
        except (TypeError, ValueError):
            duration = 0
        discount = data.get("discount_price")
        return cls(
            id=int(data["id"]),
            name=str(data.get("name", "")),
            duration=max(duration, 0),
            price=float(data.get("price") or 0),
            discount_price=float(discount) if discount not in (None, "") else None,
        )

    @property
    def effective_price(self) -> float:
        return self.discount_price if self.discount_price else self.price


def effective_duration(services: Iterable[Service]) -> int:
    """Sum of durations of the selection; 0-duration add-ons add nothing."""
    return sum(service.duration for service in services if service.duration > 0)


def selection_payload(services: Iterable[Service]) -> List[Dict[str, Any]]:
    """Wire shape of a service selection for availability queries."""
    return [
        {"serviceId": str(service.id), "duration": service.duration}
        for service in services
    ]


@dataclass(frozen=True)
class Appointment:
    """An existing booking occupying part of a staff member's day."""
    staff_id: int
    date: Date
    start: int
    end: int
    status: str = "confirmed"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Appointment":
        start = parse_time_of_day(data["time"])
        if data.get("end_time"):
            end = parse_time_of_day(data["end_time"])
        else:
            end = start + int(data.get("duration") or 0)
        return cls(
            staff_id=int(data["staff_id"]),
            date=parse_date(data["date"]),
            start=start,
            end=end,
            status=str(data.get("status") or "confirmed").lower(),
        )

    @property
    def is_blocking(self) -> bool:
        return self.status in BLOCKING_STATUSES and self.end > self.start

    def as_range(self, timezone: str) -> TimeRange:
        return TimeRange(
            start=at_minutes(self.date, self.start, timezone),
            end=at_minutes(self.date, self.end, timezone),
        )


@dataclass(frozen=True)
class SalonSchedule:
    """Salon-wide working hours, breaks and vacations."""
    working_hours: WorkingHours
    breaks: Sequence[Break] = ()
    vacations: Sequence[Vacation] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SalonSchedule":
        return cls(
            working_hours=WorkingHours.from_dict(data.get("working_hours")),
            breaks=tuple(Break.from_dict(b) for b in data.get("salon_breaks") or ()),
            vacations=tuple(Vacation.from_dict(v) for v in data.get("salon_vacations") or ()),
        )


@dataclass(frozen=True)
class StaffSchedule:
    """A staff member's own working hours, breaks and vacations."""
    staff_id: int
    name: str
    working_hours: WorkingHours
    breaks: Sequence[Break] = ()
    vacations: Sequence[Vacation] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StaffSchedule":
        return cls(
            staff_id=int(data["id"]),
            name=str(data.get("name", "")),
            working_hours=WorkingHours.from_dict(data.get("working_hours")),
            breaks=tuple(Break.from_dict(b) for b in data.get("breaks") or ()),
            vacations=tuple(Vacation.from_dict(v) for v in data.get("vacations") or ()),
        )
