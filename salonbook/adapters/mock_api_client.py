"""
Mock booking API for running the engine offline.

Serves widget data from ``mock_salon_data.json`` and computes date and slot
availability locally with the domain ``SlotCalculator``.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pendulum
from pendulum import Date

from ..domain.calendar import MonthCursor
from ..domain.exceptions import TIME_SLOT_TAKEN, ApiError, TimeSlotTakenError
from ..domain.models import (
    Appointment,
    SalonSchedule,
    Service,
    StaffSchedule,
    effective_duration,
    format_time_of_day,
    parse_date,
    parse_time_of_day,
)
from ..domain.slot_calculator import SlotCalculator

logger = logging.getLogger(__name__)

DEFAULT_DATA_FILE = Path(__file__).parent / "mock_salon_data.json"


class MockApiClient:
    """
    Offline stand-in for ``BookingApiClient``.

    Same method signatures, so it can be wrapped by ``AsyncBookingClient``.
    """

    def __init__(
        self,
        data_file: Optional[Path] = None,
        *,
        data: Optional[Dict[str, Any]] = None,
        granularity_minutes: int = 30,
        timezone: str = "Europe/Sarajevo",
        today: Optional[Date] = None,
    ):
        """
        Initialize the mock client.

        Args:
            data_file: JSON fixture to load (defaults to the bundled one)
            data: Fixture content given directly (takes precedence)
            granularity_minutes: Slot grid step
            timezone: IANA timezone of the salon
            today: Fixed "today" for reproducible answers
        """
        self.timezone = timezone
        self.today = today
        self.calculator = SlotCalculator(granularity_minutes=granularity_minutes, timezone=timezone)
        self._data = data if data is not None else self._load(data_file or DEFAULT_DATA_FILE)

        self.salon = SalonSchedule.from_dict(self._data.get("salon", {}))
        self.staff: Dict[int, StaffSchedule] = {
            int(member["id"]): StaffSchedule.from_dict(member)
            for member in self._data.get("staff", [])
        }
        self.services: Dict[int, Service] = {
            int(service["id"]): Service.from_dict(service)
            for service in self._data.get("services", [])
        }
        self.appointments: List[Appointment] = [
            Appointment.from_dict(a) for a in self._data.get("appointments", [])
        ]

    @staticmethod
    def _load(data_file: Path) -> Dict[str, Any]:
        if not data_file.exists():
            return {}
        with open(data_file, "r", encoding="utf-8") as f:
            return json.load(f)

    def _today(self) -> Date:
        return self.today or pendulum.today(self.timezone).date()

    def _staff(self, staff_id: int) -> StaffSchedule:
        staff = self.staff.get(int(staff_id))
        if staff is None:
            raise ApiError("Staff member not found", status=404)
        return staff

    def _duration(self, services: Sequence[Dict[str, Any]]) -> int:
        return sum(max(int(s.get("duration") or 0), 0) for s in services)

    def get_widget(self, salon_slug: str) -> Dict[str, Any]:
        salon = self._data.get("salon", {})
        if salon.get("slug") != salon_slug:
            raise ApiError("Salon not found", status=404)
        return {
            "salon": salon,
            "services": self._data.get("services", []),
            "staff": self._data.get("staff", []),
            "settings": self._data.get("settings", {}),
        }

    def get_available_dates(
        self,
        staff_id: int,
        month: str,
        services: Sequence[Dict[str, Any]],
    ) -> Dict[str, Any]:
        staff = self._staff(staff_id)
        year, month_number = (int(part) for part in month.split("-"))
        duration = self._duration(services)
        today = self._today()

        available: List[str] = []
        unavailable: List[str] = []

        for day in MonthCursor(year, month_number).days():
            slots = [] if day < today else self.calculator.find_available_slots(
                day, staff, self.salon, self.appointments, duration
            )
            (available if slots else unavailable).append(day.to_date_string())

        return {"available_dates": available, "unavailable_dates": unavailable}

    def get_available_slots(
        self,
        staff_id: int,
        date: str,
        services: Sequence[Dict[str, Any]],
    ) -> Dict[str, Any]:
        staff = self._staff(staff_id)
        day = parse_date(date)
        slots = self.calculator.find_available_slots(
            day, staff, self.salon, self.appointments, self._duration(services)
        )
        return {"slots": slots}

    def book(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        staff = self._staff(payload["staff_id"])
        day = parse_date(payload["date"])
        try:
            chosen = [self.services[int(s["id"])] for s in payload.get("services", [])]
        except (KeyError, ValueError) as e:
            raise ApiError(f"Unknown service: {e}", status=422) from e
        duration = effective_duration(chosen)

        free = self.calculator.find_available_slots(
            day, staff, self.salon, self.appointments, duration
        )
        if payload["time"] not in free:
            raise TimeSlotTakenError(
                "The selected time is no longer available",
                status=409,
                code=TIME_SLOT_TAKEN,
                redirect_to_time=True,
            )

        start = parse_time_of_day(payload["time"])
        appointment = Appointment(
            staff_id=staff.staff_id,
            date=day,
            start=start,
            end=start + duration,
            status="pending",
        )
        self.appointments.append(appointment)
        logger.info("Mock booking created for staff %s on %s at %s", staff.staff_id, day, payload["time"])

        return {
            "message": "Booking created",
            "appointment": {
                "id": len(self.appointments),
                "staff_id": staff.staff_id,
                "date": day.to_date_string(),
                "time": payload["time"],
                "end_time": format_time_of_day(start + duration),
                "status": "pending",
            },
        }

    def reorder_service_images(self, service_id: int, image_ids: Sequence[int]) -> Dict[str, Any]:
        return {"images": [{"id": i, "order": n} for n, i in enumerate(image_ids, start=1)]}

    def delete_service_image(self, service_id: int, image_id: int) -> Dict[str, Any]:
        return {"message": "Image deleted"}
