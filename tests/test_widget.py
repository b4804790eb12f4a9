"""
Tests for widget bootstrap.
"""

import asyncio

import pendulum
import pytest

from salonbook.adapters.api_client import AsyncBookingClient
from salonbook.adapters.mock_api_client import MockApiClient
from salonbook.domain.exceptions import ApiError, WidgetLoadError
from salonbook.services.widget import GENERIC_LOAD_MESSAGE, load_widget, reset_widget_guard


@pytest.fixture(autouse=True)
def fresh_widget():
    reset_widget_guard()
    yield
    reset_widget_guard()


class CountingClient:
    """Wraps the mock API and counts bootstrap requests."""

    def __init__(self, error: ApiError = None):
        self._mock = MockApiClient(today=pendulum.date(2026, 10, 19))
        self._error = error
        self.widget_calls = 0

    async def get_widget(self, salon_slug):
        self.widget_calls += 1
        await asyncio.sleep(0)
        if self._error is not None:
            raise self._error
        return self._mock.get_widget(salon_slug)


class TestLoadWidget:

    def test_context_from_bootstrap(self):
        client = AsyncBookingClient(MockApiClient(today=pendulum.date(2026, 10, 19)))

        context = asyncio.run(load_widget(client, "studio-lana"))

        assert context.salon_id == 1
        assert context.salon_name == "Studio Lana"
        assert context.find_service(11).effective_price == 50
        assert context.find_staff(101).name == "Kenan"
        assert context.find_staff(999) is None
        assert context.settings["button_text"] == "Book now"

    def test_initializes_only_once(self):
        client = CountingClient()

        async def scenario():
            first, second = await asyncio.gather(
                load_widget(client, "studio-lana"),
                load_widget(client, "studio-lana"),
            )
            third = await load_widget(client, "studio-lana")
            return first, second, third

        first, second, third = asyncio.run(scenario())

        assert client.widget_calls == 1
        assert first is second is third

    def test_invalid_key_message(self):
        client = CountingClient(error=ApiError("Unauthorized", status=401))

        with pytest.raises(WidgetLoadError) as exc_info:
            asyncio.run(load_widget(client, "studio-lana"))

        assert exc_info.value.status == 401
        assert exc_info.value.message == "Invalid widget key"

    def test_network_failure_uses_generic_message(self):
        client = CountingClient(error=ApiError("Connection refused"))

        with pytest.raises(WidgetLoadError) as exc_info:
            asyncio.run(load_widget(client, "studio-lana"))

        assert exc_info.value.message == GENERIC_LOAD_MESSAGE

    def test_failed_load_can_be_retried(self):
        failing = CountingClient(error=ApiError("Not found", status=404))
        working = CountingClient()

        with pytest.raises(WidgetLoadError):
            asyncio.run(load_widget(failing, "studio-lana"))
        context = asyncio.run(load_widget(working, "studio-lana"))

        assert context.salon_slug == "studio-lana"

    def test_new_session_uses_salon_hours(self):
        client = AsyncBookingClient(MockApiClient(today=pendulum.date(2026, 10, 19)))
        context = asyncio.run(load_widget(client, "studio-lana"))

        session = context.new_session(
            client,
            clock=lambda: pendulum.datetime(2026, 10, 19, 9, 0, tz="Europe/Sarajevo"),
        )

        assert session.salon_id == 1
        assert not session.salon_hours.is_open_on(pendulum.date(2026, 10, 25))  # Sunday
