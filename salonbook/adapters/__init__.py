"""
Adapters layer - External integrations (booking REST API).
"""

from .api_client import AsyncBookingClient, BookingApiClient, Endpoints, RetryPolicy
from .mock_api_client import MockApiClient

__all__ = ["AsyncBookingClient", "BookingApiClient", "Endpoints", "MockApiClient", "RetryPolicy"]
