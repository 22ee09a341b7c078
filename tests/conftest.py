"""
Pytest configuration and fixtures.
"""
import asyncio
from typing import Any, Dict, List, Optional, Union

import httpx
import pytest

from scribe.core.chat_persistence import ChatPersistence
from scribe.core.location_cache import LocationCache
from scribe.core.storage import MemoryStorage
from scribe.tools.geolocation import GeoLocator, backend_provider


BACKEND_URL = "http://backend.test/api/location/currency"

NIGERIA_RESPONSE = {
    "country": "Nigeria",
    "countryCode": "NG",
    "city": "Abuja",
    "currency": "ngn",
    "symbol": "₦",
    "exchangeRate": 1500,
    "timezone": "Africa/Lagos",
}

US_RESPONSE = {
    "country": "United States",
    "countryCode": "US",
    "city": "Austin",
    "currency": "usd",
    "symbol": "$",
    "exchangeRate": 1,
    "timezone": "America/Chicago",
}

Route = Union[str, tuple]


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class GeoTransport(httpx.MockTransport):
    """Routes requests by host to a canned ``(status, json)`` answer.

    A route of ``"connect-error"`` raises ``httpx.ConnectError`` instead.
    """

    def __init__(self, routes: Dict[str, Route], delay: float = 0.0):
        self.routes = routes
        self.delay = delay
        self.calls: List[str] = []
        super().__init__(self._handle)

    async def _handle(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(str(request.url))
        if self.delay:
            await asyncio.sleep(self.delay)
        route = self.routes.get(request.url.host)
        if route is None or route == "connect-error":
            raise httpx.ConnectError("connection refused", request=request)
        status, payload = route
        if isinstance(payload, str):
            return httpx.Response(status, text=payload)
        return httpx.Response(status, json=payload)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def chat(storage, clock) -> ChatPersistence:
    return ChatPersistence(storage, clock=clock)


@pytest.fixture
def make_cache(storage, clock):
    """Build a LocationCache backed by a single fake backend endpoint."""

    def factory(
        response: Any = (200, NIGERIA_RESPONSE),
        delay: float = 0.0,
        cache_storage: Optional[MemoryStorage] = None,
        **kwargs: Any,
    ):
        transport = GeoTransport({"backend.test": response}, delay=delay)
        locator = GeoLocator([backend_provider(BACKEND_URL)], transport=transport)
        cache = LocationCache(
            cache_storage if cache_storage is not None else storage,
            locator,
            clock=clock,
            **kwargs,
        )
        return cache, transport

    return factory
