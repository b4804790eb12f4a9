"""
Booking session: the engine behind one customer's booking attempt.

The session owns the flow state, the visible calendar month and the loaded
slot list. All mutation happens here, on one event loop; network calls are
the only suspension points. A response that arrives after the user has moved
on (another date, another month) is discarded instead of applied.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

import pendulum
from pendulum import Date, DateTime

from ..domain.booking_flow import (
    BookingState,
    EnteringDetails,
    Reviewing,
    SelectingDateTime,
    SelectingServices,
    SelectingStaff,
    Submitting,
)
from ..domain.calendar import (
    MonthCursor,
    MonthView,
    authoritative_month,
    classify_month,
    failed_month,
    heuristic_month,
)
from ..domain.exceptions import ApiError, InvalidTransitionError, TimeSlotTakenError
from ..domain.models import Service, WorkingHours, parse_time_of_day, selection_payload
from ..domain.validation import validate_guest_details

logger = logging.getLogger(__name__)


SLOT_TAKEN_MESSAGE = (
    "Sorry, someone booked that time in the meantime. Please choose another time."
)
BOOKING_FAILED_MESSAGE = "Booking failed. Please try again."
SLOTS_FAILED_MESSAGE = "Available times could not be loaded. Please try again."


class BookingClientProtocol(Protocol):
    """Protocol describing the API behaviour needed by the session."""

    async def get_available_dates(self, staff_id: int, month: str, services: list) -> Dict[str, Any]:
        """Return per-date availability for a month."""

    async def get_available_slots(self, staff_id: int, date: str, services: list) -> Dict[str, Any]:
        """Return ``{"slots": [HH:MM, ...]}`` for one date."""

    async def book(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Create the booking."""


class SlotListState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    EMPTY = "empty"
    POPULATED = "populated"
    FAILED = "failed"


@dataclass(frozen=True)
class SlotList:
    """Slots loaded for one date, with loading/empty/failed kept apart."""
    state: SlotListState = SlotListState.IDLE
    date: Optional[Date] = None
    slots: Tuple[str, ...] = ()
    error: Optional[str] = None

    @classmethod
    def loading(cls, date: Date) -> "SlotList":
        return cls(state=SlotListState.LOADING, date=date)

    @classmethod
    def loaded(cls, date: Date, slots: Sequence[str]) -> "SlotList":
        unique = tuple(sorted(set(slots), key=parse_time_of_day))
        state = SlotListState.POPULATED if unique else SlotListState.EMPTY
        return cls(state=state, date=date, slots=unique)

    @classmethod
    def failed(cls, date: Date, message: str) -> "SlotList":
        return cls(state=SlotListState.FAILED, date=date, error=message)


@dataclass(frozen=True)
class BookingOutcome:
    """Result of one submission: a confirmation or an error."""
    confirmation: Optional[Dict[str, Any]] = None
    error: Optional[ApiError] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.confirmation is not None

    @property
    def slot_taken(self) -> bool:
        return isinstance(self.error, TimeSlotTakenError)


class BookingSession:
    """
    Drives one booking attempt from service selection to confirmation.
    """

    def __init__(
        self,
        client: BookingClientProtocol,
        *,
        salon_id: int,
        salon_hours: WorkingHours,
        timezone: str = "Europe/Sarajevo",
        min_lead_minutes: int = 30,
        clock: Optional[Callable[[], DateTime]] = None,
    ) -> None:
        self._client = client
        self.salon_id = salon_id
        self.salon_hours = salon_hours
        self.timezone = timezone
        self.min_lead_minutes = min_lead_minutes
        self._clock = clock or (lambda: pendulum.now(timezone))

        self.state: BookingState = SelectingServices()
        self.cursor: MonthCursor = MonthCursor.of(self.today)
        self.month_view: Optional[MonthView] = None
        self.slots = SlotList()
        self._submitting = False

    @property
    def today(self) -> Date:
        return self._clock().date()

    @property
    def is_submitting(self) -> bool:
        return self._submitting

    def _expect(self, *state_types):
        if not isinstance(self.state, state_types):
            expected = ", ".join(t.__name__ for t in state_types)
            raise InvalidTransitionError(
                f"Action not allowed in {type(self.state).__name__} (expected {expected})"
            )
        return self.state

    # -- services and staff ---------------------------------------------------

    def select_services(self, services: Sequence[Service]) -> None:
        state = self._expect(SelectingServices)
        self.state = state.choose_services(tuple(services))

    async def select_staff(self, staff_id: int) -> None:
        state = self._expect(SelectingStaff)
        self.state = state.choose_staff(staff_id)
        self.cursor = MonthCursor.of(self.today)
        self.slots = SlotList()
        await self.load_month()

    # -- calendar -------------------------------------------------------------

    async def load_month(self) -> None:
        """
        Render the heuristic grid, then replace it with the server's answer.
        """
        state = self._expect(SelectingDateTime)
        cursor = self.cursor
        heuristic = heuristic_month(cursor, self.salon_hours, self.today)
        self.month_view = heuristic

        try:
            availability = await classify_month(
                self._client,
                cursor.year,
                cursor.month,
                state.staff_id,
                state.services,
            )
        except ApiError as e:
            logger.warning("Month availability for %s failed: %s", cursor, e)
            if self._month_is_current(cursor, state.staff_id):
                self.month_view = failed_month(heuristic)
            return

        if not self._month_is_current(cursor, state.staff_id):
            logger.debug("Discarding stale month availability for %s", cursor)
            return

        self.month_view = authoritative_month(cursor, availability, self.today)

    def _month_is_current(self, cursor: MonthCursor, staff_id: int) -> bool:
        return (
            isinstance(self.state, SelectingDateTime)
            and self.state.staff_id == staff_id
            and self.cursor == cursor
        )

    async def next_month(self) -> None:
        await self._change_month(self.cursor.next())

    async def previous_month(self) -> None:
        await self._change_month(self.cursor.previous())

    async def _change_month(self, cursor: MonthCursor) -> None:
        state = self._expect(SelectingDateTime)
        self.state = state.without_selection()
        self.slots = SlotList()
        self.cursor = cursor
        await self.load_month()

    # -- date and time --------------------------------------------------------

    async def select_date(self, day: Date) -> None:
        """
        Select a date and load its slots; the old time and slots are dropped
        before the request is made.
        """
        state = self._expect(SelectingDateTime)
        cell = self.month_view.cell(day) if self.month_view else None

        if cell is None or not cell.selectable:
            raise InvalidTransitionError(f"Date {day} cannot be selected")

        self.state = state.with_date(day)
        await self._load_slots(day)

    async def _load_slots(self, day: Date) -> None:
        state = self._expect(SelectingDateTime)
        request = (state.staff_id, state.services, day)
        self.slots = SlotList.loading(day)

        try:
            data = await self._client.get_available_slots(
                staff_id=state.staff_id,
                date=day.to_date_string(),
                services=selection_payload(state.services),
            )
        except ApiError as e:
            logger.warning("Loading slots for %s failed: %s", day, e)
            if self._slots_request_is_current(request):
                self.slots = SlotList.failed(day, SLOTS_FAILED_MESSAGE)
            return

        if not self._slots_request_is_current(request):
            logger.debug("Discarding stale slots for %s", day)
            return

        try:
            self.slots = SlotList.loaded(day, self._drop_past_slots(day, (data or {}).get("slots") or []))
        except (AttributeError, TypeError, ValueError) as e:
            logger.warning("Malformed slots for %s: %s", day, e)
            self.slots = SlotList.failed(day, SLOTS_FAILED_MESSAGE)

    def _slots_request_is_current(self, request: Tuple[int, Tuple[Service, ...], Date]) -> bool:
        """A slot response only applies to the staff, services and date it was asked for."""
        state = self.state
        return (
            isinstance(state, SelectingDateTime)
            and (state.staff_id, state.services, state.date) == request
        )

    def _drop_past_slots(self, day: Date, slots: List[str]) -> List[str]:
        """Today's slots must start later than now plus the lead time."""
        if day != self.today:
            return list(slots)
        now = self._clock()
        earliest = now.hour * 60 + now.minute + self.min_lead_minutes
        return [slot for slot in slots if parse_time_of_day(slot) > earliest]

    def select_time(self, time: str) -> None:
        state = self._expect(SelectingDateTime)
        if self.slots.date != state.date or time not in self.slots.slots:
            raise InvalidTransitionError(f"Time {time} is not available")
        self.state = state.with_time(time)

    def confirm_date_time(self) -> None:
        state = self._expect(SelectingDateTime)
        self.state = state.confirm()

    # -- details and review ---------------------------------------------------

    def enter_details(
        self,
        name: Optional[str],
        phone: Optional[str],
        email: Optional[str] = None,
        address: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> None:
        """
        Validate guest details and move to review.

        Raises:
            BookingValidationError: on invalid input; nothing is sent
        """
        state = self._expect(EnteringDetails)
        guest = validate_guest_details(name, phone, email, address, notes)
        self.state = state.submit_details(guest)

    async def back(self) -> None:
        """Step back to the previous state."""
        state = self._expect(SelectingStaff, SelectingDateTime, EnteringDetails, Reviewing)

        if isinstance(state, SelectingDateTime):
            self.month_view = None
            self.slots = SlotList()
            self.state = state.back()
            return

        if isinstance(state, EnteringDetails):
            await self._return_to_date_time(state)
            return

        self.state = state.back()

    async def _return_to_date_time(self, state: EnteringDetails) -> None:
        """Cached availability may be stale once the step was left."""
        previous_time = state.time
        self.state = state.back()
        self.cursor = MonthCursor.of(state.date)
        await self.load_month()

        cell = self.month_view.cell(state.date) if self.month_view else None
        if cell is None or not cell.selectable:
            self.state = self._expect(SelectingDateTime).without_selection()
            self.slots = SlotList()
            return

        await self._load_slots(state.date)

        current = self.state
        if (
            isinstance(current, SelectingDateTime)
            and current.date == state.date
            and previous_time not in self.slots.slots
        ):
            self.state = current.with_date(state.date)

    # -- submission -----------------------------------------------------------

    async def submit_booking(self) -> Optional[BookingOutcome]:
        """
        Submit the reviewed booking once.

        Returns None when a submission is already in flight.
        """
        if self._submitting:
            logger.debug("Booking already in flight, ignoring submit")
            return None

        state = self._expect(Reviewing)
        submitting: Submitting = state.submit()
        self.state = submitting
        self._submitting = True

        try:
            confirmation = await self._client.book(submitting.booking_payload(self.salon_id))
        except TimeSlotTakenError as e:
            logger.info("Slot %s %s was taken, returning to time selection", submitting.date, submitting.time)
            self.state = submitting.slot_taken(SLOT_TAKEN_MESSAGE)
            self._submitting = False
            await self._load_slots(submitting.date)
            return BookingOutcome(error=e, message=SLOT_TAKEN_MESSAGE)
        except ApiError as e:
            logger.warning("Booking failed: %s", e)
            self.state = submitting.failed(BOOKING_FAILED_MESSAGE)
            return BookingOutcome(error=e, message=BOOKING_FAILED_MESSAGE)
        except BaseException:
            # Interrupted (e.g. cancelled): the booking can be submitted again
            self.state = submitting.failed(BOOKING_FAILED_MESSAGE)
            raise
        finally:
            self._submitting = False

        self.state = submitting.confirmed(confirmation or {})
        self.slots = SlotList()
        logger.info("Booking confirmed for %s %s", submitting.date, submitting.time)
        return BookingOutcome(confirmation=confirmation or {})
