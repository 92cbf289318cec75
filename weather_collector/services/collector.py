"""Daily weather collection job: guard, fetch, enrich, persist, score, log."""

from __future__ import annotations

import argparse
import datetime as dt
import json
import logging
import sys
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping

from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from weather_collector.core.config import ConfigurationError, Settings, load_settings
from weather_collector.core.logging_config import (
    redact,
    register_settings_secrets,
    safe_database_url,
    setup_logging,
)
from weather_collector.core.timeutil import utc_now, utc_today
from weather_collector.db.session import build_engine, init_db
from weather_collector.models import (
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_SUCCESS,
    CollectionLogEntry,
    WeatherSnapshot,
)
from weather_collector.services.collection_log import (
    CollectionLogError,
    CollectionLogStore,
    error_details,
)
from weather_collector.services.interpolation import (
    NearestHourInterpolator,
    TemperatureInterpolator,
    coerce_float,
    parse_clock,
    safe_interpolate,
)
from weather_collector.services.metrics import COLLECTIONS_TOTAL, push_metrics
from weather_collector.services.provider import ConnectivityReport, VisualCrossingClient
from weather_collector.services.quality import CompletenessScorer, QualityScorer, safe_score
from weather_collector.services.retry import RetryController
from weather_collector.services.snapshots import SnapshotStore

logger = logging.getLogger(__name__)

COLLECTION_TYPE = "weather"
ALREADY_EXISTS_MESSAGE = "Data already exists for this date"
DISPLAY_FIELDS = (
    "conditions", "description", "icon", "pressure", "visibility",
    "windgust", "dew", "preciptype", "solarradiation",
)
REQUIRED_TABLES = ("daily_weather_snapshots", "daily_collection_log")


class CollectionState(str, Enum):
    IDLE = "idle"
    CHECKING_EXISTING = "checking-existing"
    SHORT_CIRCUIT_SUCCESS = "short-circuit-success"
    COLLECTING = "collecting"
    TRANSFORMING = "transforming"
    PERSISTING_SNAPSHOT = "persisting-snapshot"
    SCORING = "scoring"
    LOGGING_SUCCESS = "logging-success"
    LOGGING_FAILURE = "logging-failure"
    FAILED = "failed"


class TransformError(ValueError):
    """Raised when the provider payload has no usable day entry."""


@dataclass
class CollectionResult:
    success: bool
    date: str
    snapshot: WeatherSnapshot | None = None
    quality_score: int | None = None
    raw_payload: dict[str, Any] | None = None
    errors: list[str] = field(default_factory=list)
    already_exists: bool = False
    message: str | None = None
    api_response_time_ms: int | None = None
    provider_attempts: int = 0

    def summary(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "date": self.date,
            "already_exists": self.already_exists,
            "quality_score": self.quality_score,
            "temp_at_dawn": self.snapshot.temp_at_dawn if self.snapshot else None,
            "temp_at_dusk": self.snapshot.temp_at_dusk if self.snapshot else None,
            "api_response_time_ms": self.api_response_time_ms,
            "provider_attempts": self.provider_attempts,
            "message": self.message,
            "errors": self.errors,
        }


class WeatherCollectionService:
    """Collect one day of weather for the property center.

    Collaborators are injectable so tests can swap in fakes; anything not
    supplied is built from ``settings``. Missing credentials raise
    ``ConfigurationError`` here, before any I/O.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        engine: Engine | None = None,
        client: VisualCrossingClient | None = None,
        retry: RetryController | None = None,
        interpolator: TemperatureInterpolator | None = None,
        scorer: QualityScorer | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        settings.validate_credentials()
        register_settings_secrets(settings)
        self.settings = settings
        self._owns_engine = engine is None
        self.engine = engine or build_engine(settings)
        self.client = client or VisualCrossingClient.from_settings(settings)
        self.retry = retry or RetryController.from_settings(settings)
        self.interpolator = interpolator or NearestHourInterpolator()
        self.scorer = scorer or CompletenessScorer()
        self.snapshots = SnapshotStore(self.engine)
        self.collection_log = CollectionLogStore(self.engine)
        self.state = CollectionState.IDLE
        self._clock = clock

    def close(self) -> None:
        self.client.close()
        if self._owns_engine:
            self.engine.dispose()

    def collect_daily_weather(self, target: dt.date | str) -> CollectionResult:
        """Collect, store, score and log weather for ``target``.

        Never raises: every failure comes back as ``success=False`` with
        plain-string errors.
        """

        self.state = CollectionState.IDLE
        try:
            target_date = _coerce_date(target)
        except ValueError:
            return CollectionResult(
                success=False,
                date=str(target),
                errors=[f"Invalid target date {target!r}; expected YYYY-MM-DD"],
            )

        wall_start = self._clock()
        entry = CollectionLogEntry(
            collection_date=target_date,
            collection_type=COLLECTION_TYPE,
            status=STATUS_PENDING,
            started_at=utc_now(),
        )
        result = CollectionResult(success=False, date=target_date.isoformat())
        logger.info("Starting weather collection for %s", target_date)

        try:
            self._transition(CollectionState.CHECKING_EXISTING)
            if self.snapshots.exists(target_date):
                self._transition(CollectionState.SHORT_CIRCUIT_SUCCESS)
                logger.warning("Weather data for %s already exists, skipping collection", target_date)
                COLLECTIONS_TOTAL.labels(outcome="skipped").inc()
                result.success = True
                result.already_exists = True
                result.message = ALREADY_EXISTS_MESSAGE
                stored = self.snapshots.get(target_date)
                if stored is not None:
                    payload = stored.payload()
                    result.snapshot = stored
                    result.raw_payload = payload
                    result.quality_score = self.score_payload(payload, target_date)
                return result

            self._transition(CollectionState.COLLECTING)
            self._start_log(entry)
            payload = self._fetch(target_date, result)
            result.raw_payload = payload

            self._transition(CollectionState.TRANSFORMING)
            snapshot = self.build_snapshot(payload, target_date)

            self._transition(CollectionState.PERSISTING_SNAPSHOT)
            inserted = self.snapshots.insert(snapshot)
            if not inserted:
                # describe the row that won the race, not the discarded fetch
                stored = self.snapshots.get(target_date)
                if stored is not None:
                    snapshot = stored
                    payload = stored.payload()
                    result.raw_payload = payload

            self._transition(CollectionState.SCORING)
            score = self.score_payload(payload, target_date)
            self._log_missing_fields(_day_payload(payload, target_date))
        except Exception as exc:
            self._transition(CollectionState.LOGGING_FAILURE)
            message = redact(str(exc)) or type(exc).__name__
            logger.exception("Weather collection failed for %s", target_date)
            entry.status = STATUS_FAILED
            entry.errors_encountered = 1
            entry.records_processed = 0
            entry.error_details = error_details(exc)
            entry.processing_summary = _truncate(f"Collection failed: {message}")
            self._finish_log(entry, result, wall_start)
            self._transition(CollectionState.FAILED)
            COLLECTIONS_TOTAL.labels(outcome="failed").inc()
            result.errors = [message]
            return result

        self._transition(CollectionState.LOGGING_SUCCESS)
        result.success = True
        result.quality_score = score
        entry.status = STATUS_SUCCESS
        entry.errors_encountered = 0
        entry.data_completeness_score = score
        result.snapshot = snapshot
        if inserted:
            entry.records_processed = 1
            entry.processing_summary = (
                f"Successfully collected weather data with quality score: {score}"
            )
        else:
            result.already_exists = True
            result.message = ALREADY_EXISTS_MESSAGE
            entry.records_processed = 0
            entry.processing_summary = (
                f"Weather data for {target_date} was stored by a concurrent run; nothing inserted"
            )
        self._finish_log(entry, result, wall_start)
        COLLECTIONS_TOTAL.labels(outcome="success").inc()
        logger.info("Weather collection completed for %s (quality=%s)", target_date, score)
        return result

    def build_snapshot(self, payload: Mapping[str, Any], target: dt.date) -> WeatherSnapshot:
        day = _select_day(payload, target)
        temps = safe_interpolate(self.interpolator, day)
        return WeatherSnapshot(
            date=target,
            latitude=self.settings.property_center_lat,
            longitude=self.settings.property_center_lng,
            collected_at=utc_now(),
            source=self.settings.weather_source,
            raw_payload=json.dumps(payload),
            temp_max=coerce_float(day.get("tempmax")),
            temp_min=coerce_float(day.get("tempmin")),
            temp_mean=coerce_float(day.get("temp")),
            temp_at_dawn=temps.dawn,
            temp_at_dusk=temps.dusk,
            humidity=coerce_float(day.get("humidity")),
            precipitation_amount=coerce_float(day.get("precip")),
            precipitation_probability=coerce_float(day.get("precipprob")),
            wind_speed=coerce_float(day.get("windspeed")),
            wind_direction=coerce_float(day.get("winddir")),
            cloud_cover=coerce_float(day.get("cloudcover")),
            uv_index=coerce_float(day.get("uvindex")),
            sunrise_time=parse_clock(day.get("sunrise")),
            sunset_time=parse_clock(day.get("sunset")),
            moon_phase=coerce_float(day.get("moonphase")),
        )

    def score_payload(self, payload: Mapping[str, Any], target: dt.date) -> int:
        """Score the day entry for ``target``; never raises."""
        return safe_score(
            self.scorer,
            _day_payload(payload, target),
            self.settings.weather_default_quality_score,
        )

    def get_weather_data(self, target: dt.date | str) -> WeatherSnapshot | None:
        return self.snapshots.get(_coerce_date(target))

    @staticmethod
    def extract_display_data(snapshot: WeatherSnapshot) -> dict[str, Any]:
        """Snapshot columns plus display-only fields kept in the raw payload."""
        data = snapshot.model_dump(exclude={"raw_payload"})
        try:
            raw_day = _select_day(snapshot.payload(), snapshot.date)
        except TransformError:
            raw_day = {}
        for name in DISPLAY_FIELDS:
            data[name] = raw_day.get(name)
        data["conditions"] = data["conditions"] or "Unknown"
        data["description"] = data["description"] or ""
        data["icon"] = data["icon"] or ""
        return data

    def check_api_connectivity(self) -> ConnectivityReport:
        logger.info("Testing Visual Crossing API connectivity")
        return self.client.check_connectivity()

    def verify_backend(self) -> list[str]:
        """Return a list of problems with the backend schema; empty means ready."""
        try:
            tables = set(inspect(self.engine).get_table_names())
        except SQLAlchemyError as exc:
            return [redact(f"Database unreachable at {safe_database_url(self.settings.database_url)}: {exc}")]
        return [f"Table '{name}' is missing" for name in REQUIRED_TABLES if name not in tables]

    def _fetch(self, target: dt.date, result: CollectionResult) -> dict[str, Any]:
        api_started = self._clock()
        try:
            return self.retry.call(self.client.fetch_day, target)
        finally:
            result.provider_attempts = self.retry.last_attempts
            result.api_response_time_ms = _elapsed_ms(api_started, self._clock())

    def _start_log(self, entry: CollectionLogEntry) -> None:
        try:
            self.collection_log.start(entry)
        except CollectionLogError:
            logger.exception("Failed to record pending collection log for %s", entry.collection_date)

    def _finish_log(
        self, entry: CollectionLogEntry, result: CollectionResult, wall_start: float
    ) -> None:
        entry.completed_at = utc_now()
        entry.processing_duration_ms = _elapsed_ms(wall_start, self._clock())
        entry.api_response_time_ms = result.api_response_time_ms
        entry.provider_attempts = result.provider_attempts or None
        try:
            self.collection_log.finish(entry)
        except CollectionLogError:
            logger.exception("Failed to log collection attempt for %s", entry.collection_date)

    def _log_missing_fields(self, payload: Mapping[str, Any]) -> None:
        missing_fields = getattr(self.scorer, "missing_fields", None)
        if missing_fields is None:
            return
        try:
            missing = missing_fields(payload)
        except Exception as exc:
            logger.warning("Could not list missing fields: %s", exc)
            return
        if missing:
            logger.info("Weather payload is missing fields: %s", ", ".join(missing))

    def _transition(self, state: CollectionState) -> None:
        logger.debug("Collection state %s -> %s", self.state.value, state.value)
        self.state = state


def yesterday(today: dt.date | None = None) -> dt.date:
    return (today or utc_today()) - dt.timedelta(days=1)


def collect_yesterday_weather(settings: Settings | None = None, **kwargs: Any) -> CollectionResult:
    """Collect weather for yesterday (UTC), the common scheduled case."""

    target = yesterday()
    try:
        service = WeatherCollectionService(settings or load_settings(), **kwargs)
    except ConfigurationError as exc:
        logger.error("Weather collection not started: %s", exc)
        return CollectionResult(success=False, date=target.isoformat(), errors=[str(exc)])
    try:
        return service.collect_daily_weather(target)
    finally:
        service.close()


def _coerce_date(value: dt.date | str) -> dt.date:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    if isinstance(value, str):
        return dt.date.fromisoformat(value.strip())
    raise ValueError(f"Unsupported date value: {value!r}")


def _select_day(payload: Mapping[str, Any], target: dt.date) -> Mapping[str, Any]:
    days = payload.get("days")
    if not isinstance(days, list) or not days:
        raise TransformError("No day data found in Visual Crossing response")
    for day in days:
        if isinstance(day, Mapping) and day.get("datetime") == target.isoformat():
            return day
    if not isinstance(days[0], Mapping):
        raise TransformError("Unexpected day entry in Visual Crossing response")
    return days[0]


def _day_payload(payload: Mapping[str, Any], target: dt.date) -> Mapping[str, Any]:
    """``payload`` narrowed to the day entry selected for ``target``."""
    try:
        day = _select_day(payload, target)
    except TransformError:
        return payload
    return {**payload, "days": [day]}


def _elapsed_ms(start: float, end: float) -> int:
    return max(0, int(round((end - start) * 1000)))


def _truncate(text: str, limit: int = 512) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Collect one day of weather for the property center.")
    parser.add_argument(
        "--date",
        help="Target date (YYYY-MM-DD); defaults to yesterday (UTC).",
    )
    parser.add_argument(
        "--check-api",
        action="store_true",
        help="Only test provider connectivity and exit.",
    )
    parser.add_argument(
        "--init-db",
        action="store_true",
        help="Create the snapshot and log tables before collecting.",
    )
    parser.add_argument(
        "--verify",
        action="store_true",
        help="Only check that the backend tables exist and exit.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging("weather-collector")
    try:
        settings = load_settings()
        service = WeatherCollectionService(settings)
    except ConfigurationError as exc:
        logger.error("Weather collection not started: %s", exc)
        return 1

    try:
        if args.init_db:
            init_db(service.engine)
        if args.verify:
            problems = service.verify_backend()
            for problem in problems:
                logger.error("Backend check failed: %s", problem)
            return 1 if problems else 0
        if args.check_api:
            report = service.check_api_connectivity()
            print(json.dumps({"success": report.success, "message": report.message,
                              "response_time_ms": report.response_time_ms}))
            return 0 if report.success else 1

        result = service.collect_daily_weather(args.date or yesterday())
        print(json.dumps(result.summary(), indent=2))
        return 0 if result.success else 1
    finally:
        push_metrics(settings)
        service.close()


__all__ = [
    "ALREADY_EXISTS_MESSAGE",
    "CollectionResult",
    "CollectionState",
    "WeatherCollectionService",
    "collect_yesterday_weather",
    "main",
    "yesterday",
]


if __name__ == "__main__":
    sys.exit(main())
