"""
Domain-specific exception hierarchy for the salonbook application.
"""

from __future__ import annotations

from typing import Optional


TIME_SLOT_TAKEN = "TIME_SLOT_TAKEN"


class SalonBookError(Exception):
    """Base class for all application-level errors."""


class ConfigError(SalonBookError):
    """Raised when the configuration file cannot be loaded."""


class ApiError(SalonBookError):
    """
    Raised when the booking API answers with an error or cannot be reached.

    ``status`` is ``None`` when no HTTP response was received at all.
    """

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        code: Optional[str] = None,
        redirect_to_time: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code
        self.redirect_to_time = redirect_to_time

    @property
    def is_transient(self) -> bool:
        """Network failures and 401s are retried by the client."""
        return self.status is None or self.status == 401


class TransientApiError(ApiError):
    """Raised once the retry budget for a transient failure is exhausted."""


class TimeSlotTakenError(ApiError):
    """Raised when the server reports that the chosen slot is no longer free."""


class WidgetLoadError(SalonBookError):
    """Raised when the embeddable widget cannot bootstrap its salon data."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


class BookingValidationError(SalonBookError):
    """Raised when guest details fail client-side validation."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class InvalidTransitionError(SalonBookError):
    """Raised when a booking flow action is not legal in the current step."""
