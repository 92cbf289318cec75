"""Shared fixtures: settings, in-memory database, fake provider and clock."""

from __future__ import annotations

import copy
from typing import Any, Callable

import httpx
import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import create_engine

from weather_collector.core.config import Settings
from weather_collector.db.session import init_db
from weather_collector.services.collector import WeatherCollectionService
from weather_collector.services.provider import VisualCrossingClient
from weather_collector.services.retry import RetryController

API_KEY = "test-key-8f3a91"
LAT = 36.42723577
LNG = -79.51088069

_HOURLY_TEMPS = [
    70.0, 69.5, 69.0, 68.8, 68.5, 68.2, 68.0, 69.0, 71.0, 73.5, 76.0, 79.0,
    82.0, 85.0, 88.0, 90.0, 89.0, 87.5, 85.0, 83.0, 82.0, 81.0, 79.0, 77.0,
]

SCENARIO_DAY: dict[str, Any] = {
    "datetime": "2025-07-15",
    "tempmax": 90.0,
    "tempmin": 68.0,
    "temp": 79.0,
    "humidity": 71.2,
    "dew": 66.0,
    "pressure": 1015.3,
    "windspeed": 8.1,
    "windgust": 15.0,
    "winddir": 210.0,
    "precip": 0.12,
    "precipprob": 40.0,
    "precipcover": 8.33,
    "preciptype": ["rain"],
    "cloudcover": 45.2,
    "visibility": 9.9,
    "conditions": "Partially cloudy",
    "description": "Partly cloudy throughout the day.",
    "icon": "partly-cloudy-day",
    "sunrise": "06:12:00",
    "sunset": "20:41:00",
    "moonphase": 0.66,
    "uvindex": 9.0,
    "solarradiation": 280.1,
    "hours": [
        {"datetime": f"{hour:02d}:00:00", "temp": temp} for hour, temp in enumerate(_HOURLY_TEMPS)
    ],
}


def make_payload(**day_overrides: Any) -> dict[str, Any]:
    day = copy.deepcopy(SCENARIO_DAY)
    day.update(day_overrides)
    return {
        "queryCost": 1,
        "latitude": LAT,
        "longitude": LNG,
        "resolvedAddress": f"{LAT},{LNG}",
        "address": f"{LAT},{LNG}",
        "timezone": "America/New_York",
        "tzoffset": -4.0,
        "days": [day],
    }


class FakeClock:
    """Monotonic clock that only advances when ``sleep`` is called."""

    def __init__(self) -> None:
        self.now = 1000.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeProvider:
    """Visual Crossing client backed by ``httpx.MockTransport``.

    Each queued item is a status code, a JSON body (served with 200) or a
    callable taking the request; the last item repeats once the queue is
    drained.
    """

    def __init__(self, *responses: int | dict | Callable[[httpx.Request], httpx.Response]) -> None:
        self.responses = list(responses)
        self.calls: list[httpx.Request] = []
        transport = httpx.MockTransport(self._handle)
        self.client = VisualCrossingClient(
            API_KEY, LAT, LNG, http_client=httpx.Client(transport=transport)
        )

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if callable(item):
            return item(request)
        if isinstance(item, int):
            return httpx.Response(item)
        return httpx.Response(200, json=item)


@pytest.fixture
def payload() -> dict[str, Any]:
    return make_payload()


@pytest.fixture
def settings() -> Settings:
    return Settings(weather_api_key=API_KEY, database_url="sqlite://", _env_file=None)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_service(settings, engine, clock):
    def factory(provider: FakeProvider, **kwargs: Any) -> WeatherCollectionService:
        kwargs.setdefault(
            "retry",
            RetryController(max_attempts=3, backoff_base=2.0, sleep=clock.sleep, clock=clock),
        )
        return WeatherCollectionService(
            settings, engine=engine, client=provider.client, clock=clock, **kwargs
        )

    return factory
