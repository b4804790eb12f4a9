"""
Tests for the booking session engine.

The stub client answers from dictionaries; a request can be held back with a
gate so that responses arrive out of order.
"""

import asyncio
from typing import Any, Dict, List, Tuple

import pendulum
import pytest

from salonbook.domain.booking_flow import (
    Confirmed,
    EnteringDetails,
    Reviewing,
    SelectingDateTime,
)
from salonbook.domain.calendar import DayState, MonthCursor
from salonbook.domain.exceptions import (
    TIME_SLOT_TAKEN,
    ApiError,
    BookingValidationError,
    InvalidTransitionError,
    TimeSlotTakenError,
    TransientApiError,
)
from salonbook.domain.models import Service, WorkingHours
from salonbook.services.booking_session import (
    BOOKING_FAILED_MESSAGE,
    SLOT_TAKEN_MESSAGE,
    SLOTS_FAILED_MESSAGE,
    BookingSession,
    SlotListState,
)

TZ = "Europe/Sarajevo"
NOW = pendulum.datetime(2025, 6, 15, 10, 0, tz=TZ)  # Sunday
MONDAY = pendulum.date(2025, 6, 16)
TUESDAY = pendulum.date(2025, 6, 17)
FRIDAY = pendulum.date(2025, 6, 20)

HAIRCUT = Service(id=1, name="Haircut", duration=30, price=20)
MASK = Service(id=2, name="Hair mask", duration=0, price=5)

SALON_HOURS = WorkingHours.from_dict({
    day: {"open": "09:00", "close": "17:00", "is_open": True}
    for day in ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday")
} | {"sunday": {"is_open": False}})


class StubBookingClient:
    """Answers availability and booking requests from prepared data."""

    def __init__(self):
        self.dates: Dict[str, Any] = {
            "2025-06": {
                "available_dates": ["2025-06-15", "2025-06-16", "2025-06-17"],
                "unavailable_dates": ["2025-06-20"],
            },
        }
        self.staff_slots: Dict[Tuple[int, str], Any] = {}
        self.slots: Dict[str, Any] = {
            "2025-06-16": {"slots": ["09:00", "09:30", "10:00"]},
            "2025-06-17": {"slots": ["13:00"]},
        }
        self.book_result: Any = {"message": "Booking created", "appointment": {"id": 99}}
        self.gates: Dict[Tuple[str, str], asyncio.Event] = {}
        self.calls: List[Tuple[str, str]] = []
        self.payloads: List[Dict[str, Any]] = []

    def hold(self, kind: str, key: str) -> asyncio.Event:
        gate = asyncio.Event()
        self.gates[(kind, key)] = gate
        return gate

    async def _answer(self, kind: str, key: str, result: Any) -> Any:
        self.calls.append((kind, key))
        gate = self.gates.pop((kind, key), None)
        if gate is not None:
            await gate.wait()
        if isinstance(result, Exception):
            raise result
        return result

    async def get_available_dates(self, staff_id, month, services):
        return await self._answer("dates", month, self.dates.get(month, {"available_dates": []}))

    async def get_available_slots(self, staff_id, date, services):
        result = self.staff_slots.get((staff_id, date), self.slots.get(date, {"slots": []}))
        return await self._answer("slots", date, result)

    async def book(self, payload):
        self.payloads.append(payload)
        return await self._answer("book", payload["time"], self.book_result)

    def count(self, kind: str, key: str) -> int:
        return self.calls.count((kind, key))


def _session(client: StubBookingClient, **kwargs) -> BookingSession:
    return BookingSession(
        client,
        salon_id=1,
        salon_hours=SALON_HOURS,
        timezone=TZ,
        clock=lambda: NOW,
        **kwargs,
    )


async def _at_date_time(client: StubBookingClient, services=(HAIRCUT,)) -> BookingSession:
    session = _session(client)
    session.select_services(list(services))
    await session.select_staff(7)
    return session


async def _at_review(client: StubBookingClient, day=MONDAY, time="09:00", services=(HAIRCUT,)) -> BookingSession:
    session = await _at_date_time(client, services)
    await session.select_date(day)
    session.select_time(time)
    session.confirm_date_time()
    session.enter_details("Amra Hadžić", "061 234 567", "amra@example.com")
    return session


class TestMonthLoading:

    def test_selecting_staff_loads_current_month(self):
        client = StubBookingClient()

        session = asyncio.run(_at_date_time(client))

        assert session.cursor == MonthCursor(2025, 6)
        assert session.month_view.authoritative
        assert session.month_view.cell(MONDAY).state is DayState.AVAILABLE
        assert session.month_view.cell(FRIDAY).state is DayState.UNAVAILABLE
        assert client.calls == [("dates", "2025-06")]

    def test_failed_month_keeps_working_day_grid(self):
        client = StubBookingClient()
        client.dates["2025-06"] = TransientApiError("Request failed")

        session = asyncio.run(_at_date_time(client))

        assert session.month_view.load_failed
        assert session.month_view.cell(FRIDAY).state is DayState.OPEN

    def test_month_navigation_resets_selection(self):
        client = StubBookingClient()

        async def scenario():
            session = await _at_date_time(client)
            await session.select_date(MONDAY)
            session.select_time("09:00")
            await session.next_month()
            return session

        session = asyncio.run(scenario())

        assert session.cursor == MonthCursor(2025, 7)
        assert session.state.date is None
        assert session.state.time is None
        assert session.slots.state is SlotListState.IDLE
        assert ("dates", "2025-07") in client.calls

    def test_stale_month_response_is_discarded(self):
        """July answers after the user already went back to June."""
        client = StubBookingClient()
        client.dates["2025-07"] = {"available_dates": ["2025-07-01"]}

        async def scenario():
            session = await _at_date_time(client)
            gate = client.hold("dates", "2025-07")
            july = asyncio.create_task(session.next_month())
            await asyncio.sleep(0)
            await session.previous_month()
            gate.set()
            await july
            return session

        session = asyncio.run(scenario())

        assert session.cursor == MonthCursor(2025, 6)
        assert session.month_view.cursor == MonthCursor(2025, 6)
        assert session.month_view.authoritative


class TestDateAndTime:

    def test_unavailable_date_cannot_be_selected(self):
        client = StubBookingClient()

        async def scenario():
            session = await _at_date_time(client)
            with pytest.raises(InvalidTransitionError):
                await session.select_date(FRIDAY)

        asyncio.run(scenario())

        assert not any(kind == "slots" for kind, _ in client.calls)

    def test_slots_are_loaded_for_selected_date(self):
        client = StubBookingClient()

        async def scenario():
            session = await _at_date_time(client)
            await session.select_date(MONDAY)
            return session

        session = asyncio.run(scenario())

        assert session.state.date == MONDAY
        assert session.slots.state is SlotListState.POPULATED
        assert session.slots.slots == ("09:00", "09:30", "10:00")

    def test_stale_slots_response_is_discarded(self):
        """Monday's slots arrive after Tuesday was selected and loaded."""
        client = StubBookingClient()

        async def scenario():
            session = await _at_date_time(client)
            gate = client.hold("slots", "2025-06-16")
            monday = asyncio.create_task(session.select_date(MONDAY))
            await asyncio.sleep(0)
            await session.select_date(TUESDAY)
            gate.set()
            await monday
            return session

        session = asyncio.run(scenario())

        assert session.state.date == TUESDAY
        assert session.slots.date == TUESDAY
        assert session.slots.slots == ("13:00",)

    def test_failed_and_empty_slot_lists_differ(self):
        client = StubBookingClient()
        client.slots["2025-06-16"] = ApiError("Server error", status=500)
        client.slots["2025-06-17"] = {"slots": []}

        async def scenario():
            session = await _at_date_time(client)
            await session.select_date(MONDAY)
            failed = session.slots
            await session.select_date(TUESDAY)
            return failed, session.slots

        failed, empty = asyncio.run(scenario())

        assert failed.state is SlotListState.FAILED
        assert failed.error == SLOTS_FAILED_MESSAGE
        assert empty.state is SlotListState.EMPTY

    def test_todays_slots_respect_lead_time(self):
        """At 10:00 with a 30 minute lead time, only starts after 10:30 remain."""
        client = StubBookingClient()
        client.slots["2025-06-15"] = {"slots": ["11:00", "09:00", "10:30", "10:45", "11:00"]}

        async def scenario():
            session = await _at_date_time(client)
            await session.select_date(NOW.date())
            return session

        session = asyncio.run(scenario())

        assert session.slots.slots == ("10:45", "11:00")

    def test_time_must_come_from_loaded_slots(self):
        client = StubBookingClient()

        async def scenario():
            session = await _at_date_time(client)
            await session.select_date(MONDAY)
            with pytest.raises(InvalidTransitionError):
                session.select_time("16:00")

        asyncio.run(scenario())

    def test_new_date_drops_chosen_time(self):
        client = StubBookingClient()

        async def scenario():
            session = await _at_date_time(client)
            await session.select_date(MONDAY)
            session.select_time("09:30")
            await session.select_date(TUESDAY)
            return session

        session = asyncio.run(scenario())

        assert session.state.time is None

    def test_slots_for_previous_staff_member_are_discarded(self):
        """Staff 1's slots arrive after staff 2 was chosen for the same date."""
        client = StubBookingClient()
        client.staff_slots[(1, "2025-06-16")] = {"slots": ["09:00"]}
        client.staff_slots[(2, "2025-06-16")] = {"slots": ["15:00"]}

        async def scenario():
            session = _session(client)
            session.select_services([HAIRCUT])
            await session.select_staff(1)
            gate = client.hold("slots", "2025-06-16")
            first = asyncio.create_task(session.select_date(MONDAY))
            await asyncio.sleep(0)
            await session.back()
            await session.select_staff(2)
            await session.select_date(MONDAY)
            gate.set()
            await first
            return session

        session = asyncio.run(scenario())

        assert session.state.staff_id == 2
        assert session.slots.slots == ("15:00",)
        with pytest.raises(InvalidTransitionError):
            session.select_time("09:00")

    def test_malformed_slots_mark_the_list_failed(self):
        client = StubBookingClient()
        client.slots["2025-06-16"] = {"slots": ["09:00", "nine o'clock"]}

        async def scenario():
            session = await _at_date_time(client)
            await session.select_date(MONDAY)
            return session

        session = asyncio.run(scenario())

        assert session.slots.state is SlotListState.FAILED
        assert session.slots.error == SLOTS_FAILED_MESSAGE


class TestDetails:

    def test_invalid_details_never_reach_the_network(self):
        client = StubBookingClient()

        async def scenario():
            session = await _at_date_time(client)
            await session.select_date(MONDAY)
            session.select_time("09:00")
            session.confirm_date_time()
            with pytest.raises(BookingValidationError) as exc_info:
                session.enter_details("Al", "061 234 567")
            return session, exc_info.value

        session, error = asyncio.run(scenario())

        assert error.field == "name"
        assert isinstance(session.state, EnteringDetails)
        assert client.payloads == []

    def test_back_from_details_refetches_availability(self):
        client = StubBookingClient()

        async def scenario():
            session = await _at_date_time(client)
            await session.select_date(MONDAY)
            session.select_time("09:00")
            session.confirm_date_time()
            client.slots["2025-06-16"] = {"slots": ["09:30"]}
            await session.back()
            return session

        session = asyncio.run(scenario())

        assert isinstance(session.state, SelectingDateTime)
        assert session.state.date == MONDAY
        assert session.state.time is None
        assert session.slots.slots == ("09:30",)
        assert client.count("dates", "2025-06") == 2
        assert client.count("slots", "2025-06-16") == 2

    def test_back_from_details_keeps_time_still_offered(self):
        client = StubBookingClient()

        async def scenario():
            session = await _at_date_time(client)
            await session.select_date(MONDAY)
            session.select_time("09:30")
            session.confirm_date_time()
            await session.back()
            return session

        session = asyncio.run(scenario())

        assert session.state.time == "09:30"


class TestSubmission:

    def test_successful_booking(self):
        client = StubBookingClient()

        async def scenario():
            session = await _at_review(client)
            outcome = await session.submit_booking()
            return session, outcome

        session, outcome = asyncio.run(scenario())

        assert outcome.ok
        assert isinstance(session.state, Confirmed)
        assert client.payloads[0]["date"] == "2025-06-16"
        assert client.payloads[0]["time"] == "09:00"
        assert client.payloads[0]["services"] == [{"id": "1"}]
        assert client.payloads[0]["guest_name"] == "Amra Hadžić"

    def test_double_submit_sends_one_request(self):
        client = StubBookingClient()

        async def scenario():
            session = await _at_review(client)
            gate = client.hold("book", "09:00")
            first = asyncio.create_task(session.submit_booking())
            await asyncio.sleep(0)
            second = await session.submit_booking()
            gate.set()
            return session, await first, second

        session, first, second = asyncio.run(scenario())

        assert second is None
        assert first.ok
        assert len(client.payloads) == 1
        assert not session.is_submitting

    def test_taken_slot_returns_to_time_selection(self):
        client = StubBookingClient()
        client.book_result = TimeSlotTakenError("Taken", status=409, code=TIME_SLOT_TAKEN)

        async def scenario():
            session = await _at_review(client)
            client.slots["2025-06-16"] = {"slots": ["09:30", "10:00"]}
            outcome = await session.submit_booking()
            return session, outcome

        session, outcome = asyncio.run(scenario())

        assert outcome.slot_taken
        assert outcome.message == SLOT_TAKEN_MESSAGE
        assert isinstance(session.state, SelectingDateTime)
        assert session.state.date == MONDAY
        assert session.state.time is None
        assert session.state.error == SLOT_TAKEN_MESSAGE
        assert session.slots.slots == ("09:30", "10:00")
        assert client.count("slots", "2025-06-16") == 2

    def test_other_failure_stays_on_review(self):
        client = StubBookingClient()
        client.book_result = ApiError("Server error", status=500)

        async def scenario():
            session = await _at_review(client)
            failed = await session.submit_booking()
            state_after_failure = session.state
            client.book_result = {"message": "Booking created"}
            retried = await session.submit_booking()
            return state_after_failure, failed, retried

        state, failed, retried = asyncio.run(scenario())

        assert isinstance(state, Reviewing)
        assert state.error == BOOKING_FAILED_MESSAGE
        assert failed.message == BOOKING_FAILED_MESSAGE
        assert retried.ok

    def test_submit_outside_review_is_rejected(self):
        client = StubBookingClient()

        async def scenario():
            session = await _at_date_time(client)
            with pytest.raises(InvalidTransitionError):
                await session.submit_booking()

        asyncio.run(scenario())

    def test_cancelled_submit_can_be_retried(self):
        client = StubBookingClient()

        async def scenario():
            session = await _at_review(client)
            client.hold("book", "09:00")
            pending = asyncio.create_task(session.submit_booking())
            await asyncio.sleep(0)
            pending.cancel()
            with pytest.raises(asyncio.CancelledError):
                await pending
            state_after_cancel = session.state
            submitting_after_cancel = session.is_submitting
            retried = await session.submit_booking()
            return state_after_cancel, submitting_after_cancel, retried

        state, submitting, retried = asyncio.run(scenario())

        assert isinstance(state, Reviewing)
        assert not submitting
        assert retried.ok
        assert len(client.payloads) == 2

    def test_new_date_clears_slot_taken_banner(self):
        client = StubBookingClient()
        client.book_result = TimeSlotTakenError("Taken", status=409, code=TIME_SLOT_TAKEN)

        async def scenario():
            session = await _at_review(client)
            await session.submit_booking()
            banner = session.state.error
            await session.select_date(TUESDAY)
            return banner, session.state

        banner, state = asyncio.run(scenario())

        assert banner == SLOT_TAKEN_MESSAGE
        assert state.error is None

    def test_review_totals_discounted_prices(self):
        client = StubBookingClient()
        coloring = Service(id=3, name="Coloring", duration=90, price=60, discount_price=50)

        session = asyncio.run(_at_review(client, services=(coloring, MASK)))

        assert isinstance(session.state, Reviewing)
        assert session.state.total_price == 55


class TestServiceSelection:

    def test_addon_only_selection_is_rejected(self):
        session = _session(StubBookingClient())

        with pytest.raises(InvalidTransitionError):
            session.select_services([MASK])

    def test_addon_with_service_is_accepted(self):
        client = StubBookingClient()

        session = asyncio.run(_at_date_time(client, services=(HAIRCUT, MASK)))

        assert session.state.duration == 30
