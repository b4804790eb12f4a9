"""
Embeddable widget bootstrap.

The widget initializes at most once per process: the first successful
``load_widget`` call stores its context and every later call returns it.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol

from pendulum import DateTime

from ..domain.exceptions import ApiError, WidgetLoadError
from ..domain.models import SalonSchedule, Service, StaffSchedule
from .booking_session import BookingClientProtocol, BookingSession

logger = logging.getLogger(__name__)


_STATUS_MESSAGES = {
    401: "Invalid widget key",
    403: "This domain is not allowed to embed the widget",
    404: "Salon not found",
}
GENERIC_LOAD_MESSAGE = "The booking widget is currently unavailable. Please reload the page."

_widget_context: Optional["WidgetContext"] = None
_widget_lock = asyncio.Lock()


class WidgetClientProtocol(BookingClientProtocol, Protocol):
    async def get_widget(self, salon_slug: str) -> Dict[str, Any]:
        """Return salon, services, staff and settings."""


@dataclass
class WidgetContext:
    """Everything the widget needs after bootstrap."""
    salon_id: int
    salon_name: str
    salon_slug: str
    schedule: SalonSchedule
    services: List[Service]
    staff: List[StaffSchedule]
    settings: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> "WidgetContext":
        salon = data.get("salon") or {}
        return cls(
            salon_id=int(salon["id"]),
            salon_name=str(salon.get("name", "")),
            salon_slug=str(salon.get("slug", "")),
            schedule=SalonSchedule.from_dict(salon),
            services=[Service.from_dict(s) for s in data.get("services") or []],
            staff=[StaffSchedule.from_dict(s) for s in data.get("staff") or []],
            settings=dict(data.get("settings") or data.get("theme") or {}),
        )

    def find_service(self, service_id: int) -> Service | None:
        for service in self.services:
            if service.id == service_id:
                return service
        return None

    def find_staff(self, staff_id: int) -> StaffSchedule | None:
        for member in self.staff:
            if member.staff_id == staff_id:
                return member
        return None

    def new_session(
        self,
        client: BookingClientProtocol,
        *,
        timezone: str = "Europe/Sarajevo",
        min_lead_minutes: int = 30,
        clock: Optional[Callable[[], DateTime]] = None,
    ) -> BookingSession:
        return BookingSession(
            client,
            salon_id=self.salon_id,
            salon_hours=self.schedule.working_hours,
            timezone=timezone,
            min_lead_minutes=min_lead_minutes,
            clock=clock,
        )


def load_error_message(status: Optional[int]) -> str:
    return _STATUS_MESSAGES.get(status, GENERIC_LOAD_MESSAGE)


async def load_widget(client: WidgetClientProtocol, salon_slug: str) -> WidgetContext:
    """
    Bootstrap the widget for ``salon_slug`` unless it already is.

    Raises:
        WidgetLoadError: if the salon data cannot be loaded
    """
    global _widget_context

    async with _widget_lock:
        if _widget_context is not None:
            logger.debug("Widget already initialized for %s", _widget_context.salon_slug)
            return _widget_context

        try:
            data = await client.get_widget(salon_slug)
        except ApiError as e:
            logger.warning("Widget load failed after retries: %s", e)
            raise WidgetLoadError(load_error_message(e.status), status=e.status) from e

        try:
            context = WidgetContext.from_response(data or {})
        except (KeyError, TypeError, ValueError) as e:
            raise WidgetLoadError(GENERIC_LOAD_MESSAGE) from e

        _widget_context = context
        logger.info("Widget initialized for %s", context.salon_slug)
        return context


def reset_widget_guard() -> None:
    """Forget the initialized widget (used when the embedding page tears down)."""
    global _widget_context, _widget_lock
    _widget_context = None
    _widget_lock = asyncio.Lock()
