"""
HTTP client for the salon booking REST API.

Two flavours share one client: the embeddable widget authenticates with a
per-salon widget key, the web app with a bearer token. Both talk to the same
versioned base URL (``.../api/v1``).
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

import requests

from ..domain.exceptions import (
    TIME_SLOT_TAKEN,
    ApiError,
    TimeSlotTakenError,
    TransientApiError,
)

logger = logging.getLogger(__name__)


DEFAULT_API_URL = "https://api.example.com/api/v1"


@dataclass(frozen=True)
class Endpoints:
    """Paths of the logical operations for one client flavour."""
    bootstrap: str
    dates: str
    slots: str
    book: str

    @classmethod
    def widget(cls) -> "Endpoints":
        return cls(
            bootstrap="/widget/{slug}",
            dates="/widget/dates/available",
            slots="/widget/slots/available",
            book="/widget/book",
        )

    @classmethod
    def public(cls) -> "Endpoints":
        return cls(
            bootstrap="/public/salons/{slug}",
            dates="/public/available-dates",
            slots="/public/available-slots-multi",
            book="/public/book",
        )


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry transient failures with sequential exponential backoff.

    Transient means no HTTP status at all, or HTTP 401 (newly issued widget
    keys are briefly rejected). Delays: 0.5s, 1s, 2s.
    """
    max_retries: int = 3
    base_delay: float = 0.5

    def delay(self, retry_number: int) -> float:
        """Delay before retry ``retry_number`` (0-based)."""
        return self.base_delay * (2 ** retry_number)

    def should_retry(self, error: ApiError, retries_done: int) -> bool:
        if retries_done >= self.max_retries:
            return False
        if isinstance(error, TimeSlotTakenError):
            return False
        return error.is_transient


class BookingApiClient:
    """
    Blocking client for availability queries and bookings.

    Every call has its own retry budget. Bookings are never retried.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_API_URL,
        *,
        api_key: Optional[str] = None,
        token: Optional[str] = None,
        endpoints: Optional[Endpoints] = None,
        retry_policy: Optional[RetryPolicy] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the API client.

        Args:
            base_url: Versioned API base URL
            api_key: Widget key (widget flavour)
            token: Bearer token (authenticated flavour)
            endpoints: Path set; defaults to the widget paths when an api_key
                is given, otherwise the public paths
            retry_policy: Policy for transient failures
            session: Optional requests session (injected in tests)
            timeout: Per-request timeout in seconds
            sleep: Backoff sleep function
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.token = token
        self.endpoints = endpoints or (Endpoints.widget() if api_key else Endpoints.public())
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout = timeout
        self._session = session or requests.Session()
        self._sleep = sleep

        self.headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if api_key:
            self.headers["X-Widget-Key"] = api_key
        if token:
            self.headers["Authorization"] = f"Bearer {token}"

    # -- logical operations -------------------------------------------------

    def get_widget(self, salon_slug: str) -> Dict[str, Any]:
        """Bootstrap data: salon, services, staff and settings."""
        params = {"key": self.api_key} if self.api_key else None
        return self._request(
            "GET",
            self.endpoints.bootstrap.format(slug=salon_slug),
            params=params,
        )

    def get_available_dates(
        self,
        staff_id: int,
        month: str,
        services: Sequence[Dict[str, Any]],
    ) -> Dict[str, Any]:
        """Per-date availability for ``month`` (``YYYY-MM``)."""
        body = self._with_key({"staff_id": staff_id, "month": month, "services": list(services)})
        return self._request("POST", self.endpoints.dates, json=body)

    def get_available_slots(
        self,
        staff_id: int,
        date: str,
        services: Sequence[Dict[str, Any]],
    ) -> Dict[str, Any]:
        """Bookable ``HH:MM`` start times for one date."""
        body = self._with_key({"staff_id": staff_id, "date": date, "services": list(services)})
        return self._request("POST", self.endpoints.slots, json=body)

    def book(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Create a booking. Never auto-retried."""
        body = dict(payload)
        if self.api_key:
            body["api_key"] = self.api_key
        return self._request("POST", self.endpoints.book, json=body, retry=False)

    def reorder_service_images(self, service_id: int, image_ids: Sequence[int]) -> Dict[str, Any]:
        body = {
            "images": [
                {"id": image_id, "order": position}
                for position, image_id in enumerate(image_ids, start=1)
            ]
        }
        return self._request("PUT", f"/services/{service_id}/images/reorder", json=body)

    def delete_service_image(self, service_id: int, image_id: int) -> Dict[str, Any]:
        return self._request("DELETE", f"/services/{service_id}/images/{image_id}")

    # -- transport ------------------------------------------------------------

    def _with_key(self, body: Dict[str, Any]) -> Dict[str, Any]:
        if self.api_key:
            return {"key": self.api_key, **body}
        return body

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        retry: bool = True,
    ) -> Dict[str, Any]:
        """
        Send a request, retrying transient failures when ``retry`` is set.

        Raises:
            TimeSlotTakenError: the server rejected the slot
            TransientApiError: transient failure after the retry budget
            ApiError: any other failure
        """
        retries_done = 0

        while True:
            try:
                return self._send(method, path, params=params, json=json)
            except ApiError as error:
                if not retry or not self.retry_policy.should_retry(error, retries_done):
                    if error.is_transient and retries_done:
                        raise TransientApiError(
                            error.message,
                            status=error.status,
                            code=error.code,
                        ) from error
                    raise

                delay = self.retry_policy.delay(retries_done)
                retries_done += 1
                logger.warning(
                    "%s %s failed (%s), retry %d/%d in %.1fs",
                    method,
                    path,
                    error.status or "no response",
                    retries_done,
                    self.retry_policy.max_retries,
                    delay,
                )
                self._sleep(delay)

    def _send(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"

        try:
            response = self._session.request(
                method,
                url,
                headers=self.headers,
                params=params,
                json=json,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise ApiError(f"Request to {path} failed: {e}") from e

        if not response.ok:
            raise self._error_from_response(response)

        if not response.content:
            return {}

        try:
            return response.json()
        except ValueError as e:
            raise ApiError(
                f"Invalid JSON from {path}: {e}",
                status=response.status_code,
            ) from e

    @staticmethod
    def _error_from_response(response: requests.Response) -> ApiError:
        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        message = data.get("error") or data.get("message") or f"API Error: {response.status_code}"
        code = data.get("code")
        redirect_to_time = bool(data.get("redirect_to_time"))

        error_class = ApiError
        if code == TIME_SLOT_TAKEN or redirect_to_time:
            error_class = TimeSlotTakenError

        return error_class(
            message,
            status=response.status_code,
            code=code,
            redirect_to_time=redirect_to_time,
        )


class AsyncBookingClient:
    """
    Awaitable facade over a blocking client for the single-threaded engine.

    Each call runs in a worker thread; backoff sleeps happen there too, so
    the event loop stays responsive while a request is retried.
    """

    def __init__(self, client: BookingApiClient):
        self._client = client

    async def get_widget(self, salon_slug: str) -> Dict[str, Any]:
        return await asyncio.to_thread(self._client.get_widget, salon_slug)

    async def get_available_dates(self, staff_id: int, month: str, services: List[Dict[str, Any]]) -> Dict[str, Any]:
        return await asyncio.to_thread(self._client.get_available_dates, staff_id, month, services)

    async def get_available_slots(self, staff_id: int, date: str, services: List[Dict[str, Any]]) -> Dict[str, Any]:
        return await asyncio.to_thread(self._client.get_available_slots, staff_id, date, services)

    async def book(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await asyncio.to_thread(self._client.book, payload)

    async def reorder_service_images(self, service_id: int, image_ids: Sequence[int]) -> Dict[str, Any]:
        return await asyncio.to_thread(self._client.reorder_service_images, service_id, image_ids)

    async def delete_service_image(self, service_id: int, image_id: int) -> Dict[str, Any]:
        return await asyncio.to_thread(self._client.delete_service_image, service_id, image_id)
