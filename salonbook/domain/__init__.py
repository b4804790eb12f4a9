"""
Domain layer - Pure business logic without external dependencies.
"""

from .calendar import DayState, MonthAvailability, MonthCursor, MonthView
from .models import Service, TimeRange, WorkingHours, effective_duration
from .slot_calculator import SlotCalculator

__all__ = [
    "DayState",
    "MonthAvailability",
    "MonthCursor",
    "MonthView",
    "Service",
    "SlotCalculator",
    "TimeRange",
    "WorkingHours",
    "effective_duration",
]
