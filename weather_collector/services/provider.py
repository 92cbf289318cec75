"""Visual Crossing Timeline API client."""

from __future__ import annotations

import datetime as dt
import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx

from weather_collector.core.config import Settings
from weather_collector.core.logging_config import REDACTED, redact
from weather_collector.core.timeutil import utc_today
from weather_collector.services.metrics import PROVIDER_REQUEST_SECONDS, RATE_LIMIT_HITS

logger = logging.getLogger(__name__)

ELEMENTS = ",".join(
    [
        "datetime", "tempmax", "tempmin", "temp", "humidity", "dew",
        "pressure", "windspeed", "windgust", "winddir",
        "precip", "precipprob", "precipcover", "preciptype",
        "cloudcover", "visibility", "conditions", "description", "icon",
        "sunrise", "sunset", "moonphase",
        "uvindex", "solarradiation",
    ]
)
INCLUDE = "days,hours"  # daily summary plus hourly readings


class ProviderError(Exception):
    """Base class for classified provider failures."""

    retryable = False


class ProviderAuthError(ProviderError):
    pass


class ProviderRateLimitError(ProviderError):
    retryable = True


class ProviderServerError(ProviderError):
    retryable = True


class ProviderTimeoutError(ProviderError):
    retryable = True


class ProviderConnectionError(ProviderError):
    retryable = True


class ProviderRequestError(ProviderError):
    pass


class ProviderDataError(ProviderError):
    pass


@dataclass
class ConnectivityReport:
    success: bool
    message: str
    response_time_ms: int | None = None


class VisualCrossingClient:
    """Single-day, single-location fetches from Visual Crossing.

    One call is one request for one calendar date. Failures are raised as
    ``ProviderError`` subclasses whose ``retryable`` flag drives the retry
    controller. The API key never appears in logs or error messages.
    """

    BASE_URL = "https://weather.visualcrossing.com/VisualCrossingWebServices/rest/services/timeline"

    def __init__(
        self,
        api_key: str,
        latitude: float,
        longitude: float,
        *,
        base_url: str | None = None,
        unit_group: str = "us",
        timeout: float = 30.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.api_key = api_key
        self.latitude = latitude
        self.longitude = longitude
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.unit_group = unit_group
        self.timeout = timeout
        self._client = http_client or httpx.Client(timeout=timeout)
        self._owns_client = http_client is None

    @classmethod
    def from_settings(
        cls, settings: Settings, http_client: httpx.Client | None = None
    ) -> "VisualCrossingClient":
        return cls(
            settings.api_key,
            settings.property_center_lat,
            settings.property_center_lng,
            base_url=settings.weather_api_base_url,
            unit_group=settings.weather_unit_group,
            timeout=settings.weather_api_timeout,
            http_client=http_client,
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def build_url(self, target: dt.date) -> str:
        day = target.isoformat()
        return f"{self.base_url}/{self.latitude},{self.longitude}/{day}/{day}"

    def fetch_day(self, target: dt.date) -> dict[str, Any]:
        """Fetch the full single-day response for ``target``."""

        url = self.build_url(target)
        params = {
            "unitGroup": self.unit_group,
            "elements": ELEMENTS,
            "include": INCLUDE,
            "key": self.api_key,
            "contentType": "json",
        }
        logger.info("Fetching Visual Crossing weather for %s from %s?key=%s", target, url, REDACTED)

        started = time.perf_counter()
        try:
            response = self._client.get(url, params=params, timeout=self.timeout)
        except httpx.TimeoutException as exc:
            raise ProviderTimeoutError(
                self._redact(f"Visual Crossing API request timed out: {exc}")
            ) from None
        except httpx.TransportError as exc:
            raise ProviderConnectionError(
                self._redact(f"Visual Crossing API connection failed: {exc}")
            ) from None
        finally:
            PROVIDER_REQUEST_SECONDS.observe(time.perf_counter() - started)

        self._raise_for_status(response)
        return self._parse(response)

    def check_connectivity(self, today: dt.date | None = None) -> ConnectivityReport:
        """Fetch yesterday once to confirm the key and endpoint work."""

        target = (today or utc_today()) - dt.timedelta(days=1)
        started = time.perf_counter()
        try:
            self.fetch_day(target)
        except ProviderError as exc:
            return ConnectivityReport(success=False, message=str(exc))
        return ConnectivityReport(
            success=True,
            message="Visual Crossing API is accessible and responding normally",
            response_time_ms=int((time.perf_counter() - started) * 1000),
        )

    def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return
        if status in (401, 403):
            raise ProviderAuthError("Visual Crossing API authentication failed - check API key")
        if status == 429:
            RATE_LIMIT_HITS.inc()
            raise ProviderRateLimitError("Visual Crossing API rate limit exceeded")
        if status >= 500:
            raise ProviderServerError(
                f"Visual Crossing API server error: {status} {response.reason_phrase}"
            )
        body = self._redact(response.text)[:300]
        raise ProviderRequestError(
            f"Visual Crossing API error: {status} {response.reason_phrase} - {body}"
        )

    def _parse(self, response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderDataError(f"Visual Crossing API returned invalid JSON: {exc}") from None
        if not isinstance(data, dict):
            raise ProviderDataError("Visual Crossing API returned an unexpected response format")
        days = data.get("days")
        if not isinstance(days, list) or not days:
            raise ProviderDataError("No weather data returned from Visual Crossing API")
        if len(days) > 1:
            logger.warning("Visual Crossing returned %d day entries; expected exactly one", len(days))
        return data

    def _redact(self, text: str) -> str:
        return redact(text, extra=[self.api_key])


__all__ = [
    "ConnectivityReport",
    "ProviderAuthError",
    "ProviderConnectionError",
    "ProviderDataError",
    "ProviderError",
    "ProviderRateLimitError",
    "ProviderRequestError",
    "ProviderServerError",
    "ProviderTimeoutError",
    "VisualCrossingClient",
]
