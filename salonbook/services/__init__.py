"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .booking_session import BookingOutcome, BookingSession, SlotList, SlotListState
from .image_manager import ServiceImage, ServiceImageManager
from .widget import WidgetContext, load_widget, reset_widget_guard

__all__ = [
    "BookingOutcome",
    "BookingSession",
    "ServiceImage",
    "ServiceImageManager",
    "SlotList",
    "SlotListState",
    "WidgetContext",
    "load_widget",
    "reset_widget_guard",
]
