"""
Booking flow state machine.

Every step is its own immutable state type and only exposes the transitions
that are legal from it; the flow can only move forward one step or back one
step, and ``Confirmed`` has no transitions at all.

    SelectingServices -> SelectingStaff -> SelectingDateTime -> EnteringDetails
        -> Reviewing -> Submitting -> Confirmed
                                   -> SelectingDateTime (slot taken, with banner)
                                   -> Reviewing (other failure, with error)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

from pendulum import Date

from .exceptions import InvalidTransitionError
from .models import Service, effective_duration
from .validation import GuestDetails


@dataclass(frozen=True)
class SelectingServices:
    services: Tuple[Service, ...] = ()

    def choose_services(self, services: Tuple[Service, ...]) -> "SelectingStaff":
        if not services:
            raise InvalidTransitionError("Select at least one service")
        if all(service.duration == 0 for service in services):
            raise InvalidTransitionError("Select at least one service that takes time")
        return SelectingStaff(services=tuple(services))


@dataclass(frozen=True)
class SelectingStaff:
    services: Tuple[Service, ...]

    def choose_staff(self, staff_id: int) -> "SelectingDateTime":
        return SelectingDateTime(services=self.services, staff_id=staff_id)

    def back(self) -> SelectingServices:
        return SelectingServices(services=self.services)


@dataclass(frozen=True)
class SelectingDateTime:
    services: Tuple[Service, ...]
    staff_id: int
    date: Optional[Date] = None
    time: Optional[str] = None
    error: Optional[str] = None

    @property
    def duration(self) -> int:
        return effective_duration(self.services)

    def with_date(self, date: Date) -> "SelectingDateTime":
        """A new date drops the previously chosen time and any error banner."""
        return SelectingDateTime(self.services, self.staff_id, date=date)

    def with_time(self, time: str) -> "SelectingDateTime":
        if self.date is None:
            raise InvalidTransitionError("Select a date before selecting a time")
        return SelectingDateTime(self.services, self.staff_id, self.date, time)

    def without_selection(self) -> "SelectingDateTime":
        return SelectingDateTime(self.services, self.staff_id, error=self.error)

    def confirm(self) -> "EnteringDetails":
        if self.date is None or self.time is None:
            raise InvalidTransitionError("Select a date and a time first")
        return EnteringDetails(self.services, self.staff_id, self.date, self.time)

    def back(self) -> SelectingStaff:
        return SelectingStaff(services=self.services)


@dataclass(frozen=True)
class EnteringDetails:
    services: Tuple[Service, ...]
    staff_id: int
    date: Date
    time: str
    guest: Optional[GuestDetails] = None

    def submit_details(self, guest: GuestDetails) -> "Reviewing":
        return Reviewing(self.services, self.staff_id, self.date, self.time, guest)

    def back(self) -> SelectingDateTime:
        return SelectingDateTime(self.services, self.staff_id, self.date, self.time)


@dataclass(frozen=True)
class Reviewing:
    services: Tuple[Service, ...]
    staff_id: int
    date: Date
    time: str
    guest: GuestDetails
    error: Optional[str] = None

    @property
    def total_price(self) -> float:
        return sum(service.effective_price for service in self.services)

    @property
    def duration(self) -> int:
        return effective_duration(self.services)

    def submit(self) -> "Submitting":
        return Submitting(self.services, self.staff_id, self.date, self.time, self.guest)

    def back(self) -> EnteringDetails:
        return EnteringDetails(self.services, self.staff_id, self.date, self.time, self.guest)


@dataclass(frozen=True)
class Submitting:
    services: Tuple[Service, ...]
    staff_id: int
    date: Date
    time: str
    guest: GuestDetails

    def booking_payload(self, salon_id: int) -> Dict[str, Any]:
        """Request body for the booking endpoint."""
        return {
            "salon_id": salon_id,
            "staff_id": self.staff_id,
            "services": [{"id": str(service.id)} for service in self.services],
            "date": self.date.to_date_string(),
            "time": self.time,
            "guest_name": self.guest.name,
            "guest_phone": self.guest.phone,
            "guest_email": self.guest.email,
            "guest_address": self.guest.address,
            "notes": self.guest.notes,
        }

    def confirmed(self, confirmation: Dict[str, Any]) -> "Confirmed":
        return Confirmed(self.services, self.staff_id, self.date, self.time, confirmation)

    def slot_taken(self, message: str) -> SelectingDateTime:
        """Back to date/time selection on the same date, time discarded."""
        return SelectingDateTime(self.services, self.staff_id, date=self.date, error=message)

    def failed(self, message: str) -> Reviewing:
        return Reviewing(self.services, self.staff_id, self.date, self.time, self.guest, error=message)


@dataclass(frozen=True)
class Confirmed:
    services: Tuple[Service, ...]
    staff_id: int
    date: Date
    time: str
    confirmation: Dict[str, Any]


BookingState = Union[
    SelectingServices,
    SelectingStaff,
    SelectingDateTime,
    EnteringDetails,
    Reviewing,
    Submitting,
    Confirmed,
]
