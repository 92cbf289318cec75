"""End-to-end collection runs against a fake provider and an in-memory database."""

import datetime as dt
import json

import httpx
import pytest
from sqlmodel import create_engine, func, select

from conftest import API_KEY, FakeProvider, make_payload
from weather_collector.core.config import ConfigurationError, Settings
from weather_collector.db.session import get_session
from weather_collector.models import (
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_SUCCESS,
    CollectionLogEntry,
    WeatherSnapshot,
)
from weather_collector.services import collector
from weather_collector.services.collection_log import CollectionLogError
from weather_collector.services.collector import (
    ALREADY_EXISTS_MESSAGE,
    CollectionState,
    WeatherCollectionService,
    collect_yesterday_weather,
)
from weather_collector.services.metrics import REGISTRY
from weather_collector.services.snapshots import SnapshotStoreError

TARGET = "2025-07-15"
TARGET_DATE = dt.date(2025, 7, 15)


def _log_rows(engine):
    with get_session(engine) as session:
        return list(session.exec(select(CollectionLogEntry).order_by(CollectionLogEntry.id)).all())


def _snapshot_count(engine):
    with get_session(engine) as session:
        return session.exec(select(func.count()).select_from(WeatherSnapshot)).one()


class TestSuccessfulCollection:
    def test_collects_enriches_stores_and_logs(self, make_service, engine):
        provider = FakeProvider(make_payload())
        service = make_service(provider)

        result = service.collect_daily_weather(TARGET)

        assert result.success is True
        assert result.already_exists is False
        assert result.errors == []
        assert isinstance(result.quality_score, int)
        assert 0 <= result.quality_score <= 100
        assert result.provider_attempts == 1
        assert result.raw_payload["days"][0]["datetime"] == TARGET
        assert service.state is CollectionState.LOGGING_SUCCESS

        snapshot = service.get_weather_data(TARGET)
        assert snapshot.temp_max == 90.0
        assert snapshot.temp_min == 68.0
        assert snapshot.temp_mean == 79.0
        assert snapshot.temp_at_dawn == 68.0
        assert snapshot.temp_at_dusk == 81.0
        assert snapshot.sunrise_time == dt.time(6, 12)
        assert snapshot.sunset_time == dt.time(20, 41)
        assert snapshot.moon_phase == 0.66
        assert snapshot.latitude == 36.42723577
        assert snapshot.longitude == -79.51088069
        assert snapshot.source == "visual_crossing"
        assert snapshot.payload() == make_payload()

        (row,) = _log_rows(engine)
        assert row.status == STATUS_SUCCESS
        assert row.collection_date == TARGET_DATE
        assert row.collection_type == "weather"
        assert row.records_processed == 1
        assert row.errors_encountered == 0
        assert row.data_completeness_score == result.quality_score
        assert row.completed_at is not None
        assert row.processing_duration_ms is not None
        assert row.provider_attempts == 1
        assert row.processing_summary == (
            f"Successfully collected weather data with quality score: {result.quality_score}"
        )

    def test_accepts_date_objects(self, make_service):
        service = make_service(FakeProvider(make_payload()))
        assert service.collect_daily_weather(TARGET_DATE).date == TARGET

    def test_counts_outcome_metric(self, make_service):
        before = REGISTRY.get_sample_value("weather_collections_total", {"outcome": "success"}) or 0
        make_service(FakeProvider(make_payload())).collect_daily_weather(TARGET)
        after = REGISTRY.get_sample_value("weather_collections_total", {"outcome": "success"})
        assert after == before + 1


class TestIdempotency:
    def test_second_run_short_circuits(self, make_service, engine):
        provider = FakeProvider(make_payload())
        service = make_service(provider)

        first = service.collect_daily_weather(TARGET)
        second = service.collect_daily_weather(TARGET)

        assert first.success is True
        assert second.success is True
        assert second.already_exists is True
        assert second.message == ALREADY_EXISTS_MESSAGE == "Data already exists for this date"
        assert second.snapshot.temp_max == 90.0
        assert second.snapshot.id == first.snapshot.id
        assert second.raw_payload == make_payload()
        assert second.quality_score == first.quality_score
        assert service.state is CollectionState.SHORT_CIRCUIT_SUCCESS
        assert len(provider.calls) == 1
        assert _snapshot_count(engine) == 1
        # the short-circuit path writes no log row
        assert [row.status for row in _log_rows(engine)] == [STATUS_SUCCESS]

    def test_lost_insert_race_is_success_without_duplicate(self, make_service, engine, monkeypatch):
        make_service(FakeProvider(make_payload())).collect_daily_weather(TARGET)

        provider = FakeProvider(make_payload(tempmax=55.0))
        service = make_service(provider)
        # another run stored the date between this run's check and its insert
        monkeypatch.setattr(service.snapshots, "exists", lambda target: False)

        result = service.collect_daily_weather(TARGET)

        assert result.success is True
        assert result.already_exists is True
        assert len(provider.calls) == 1
        assert _snapshot_count(engine) == 1
        # the result describes the stored row, not the discarded fetch
        assert result.snapshot.temp_max == 90.0
        assert result.raw_payload["days"][0]["tempmax"] == 90.0
        assert isinstance(result.quality_score, int)

        rows = _log_rows(engine)
        assert [row.status for row in rows] == [STATUS_SUCCESS, STATUS_SUCCESS]
        assert rows[1].records_processed == 0
        assert "concurrent run" in rows[1].processing_summary


class TestRetries:
    def test_rate_limits_then_success(self, make_service, engine, clock):
        provider = FakeProvider(429, 429, make_payload())
        service = make_service(provider)

        result = service.collect_daily_weather(TARGET)

        assert result.success is True
        assert len(provider.calls) == 3
        assert clock.sleeps == [2.0, 4.0]
        assert result.provider_attempts == 3
        assert result.api_response_time_ms >= 6000

        (row,) = _log_rows(engine)
        assert row.status == STATUS_SUCCESS
        assert row.provider_attempts == 3
        assert row.processing_duration_ms >= 6000

    def test_retries_exhausted(self, make_service, engine, clock):
        provider = FakeProvider(503)
        service = make_service(provider)

        result = service.collect_daily_weather(TARGET)

        assert result.success is False
        assert len(provider.calls) == 3
        assert clock.sleeps == [2.0, 4.0]
        assert result.errors[0].startswith("Failed to fetch weather data after 3 attempts.")
        assert _snapshot_count(engine) == 0

        (row,) = _log_rows(engine)
        assert row.status == STATUS_FAILED
        assert row.errors_encountered == 1
        assert row.records_processed == 0
        assert row.processing_summary.startswith("Collection failed: Failed to fetch weather data")

    def test_auth_failure_is_not_retried(self, make_service, engine, clock):
        provider = FakeProvider(401)
        service = make_service(provider)

        result = service.collect_daily_weather(TARGET)

        assert result.success is False
        assert "authentication" in result.errors[0]
        assert len(provider.calls) == 1
        assert clock.sleeps == []
        assert service.state is CollectionState.FAILED
        assert _snapshot_count(engine) == 0

        (row,) = _log_rows(engine)
        assert row.status == STATUS_FAILED
        assert row.errors_encountered == 1
        details = json.loads(row.error_details)
        assert "authentication" in details["message"]
        assert details["trace"]


class TestDegradation:
    def test_scoring_failure_uses_default_score(self, make_service, engine):
        class BrokenScorer:
            def score(self, payload):
                raise RuntimeError("scoring routine unavailable")

        service = make_service(FakeProvider(make_payload()), scorer=BrokenScorer())
        result = service.collect_daily_weather(TARGET)

        assert result.success is True
        assert result.quality_score == 85
        assert _log_rows(engine)[0].data_completeness_score == 85

    def test_interpolation_failure_leaves_dawn_dusk_unknown(self, make_service):
        class BrokenInterpolator:
            def interpolate(self, day):
                raise RuntimeError("interpolation routine unavailable")

        service = make_service(FakeProvider(make_payload()), interpolator=BrokenInterpolator())
        result = service.collect_daily_weather(TARGET)

        assert result.success is True
        assert result.snapshot.temp_at_dawn is None
        assert result.snapshot.temp_at_dusk is None
        assert result.snapshot.temp_max == 90.0

    def test_missing_sun_times_store_nulls(self, make_service):
        service = make_service(FakeProvider(make_payload(sunrise=None, sunset=None)))
        result = service.collect_daily_weather(TARGET)

        assert result.success is True
        assert result.snapshot.sunrise_time is None
        assert result.snapshot.temp_at_dawn is None


class TestFailurePaths:
    def test_existence_check_failure_skips_provider(self, make_service, engine, monkeypatch):
        provider = FakeProvider(make_payload())
        service = make_service(provider)

        def broken(target):
            raise SnapshotStoreError("Error checking existing data: backend unavailable")

        monkeypatch.setattr(service.snapshots, "exists", broken)
        result = service.collect_daily_weather(TARGET)

        assert result.success is False
        assert result.errors == ["Error checking existing data: backend unavailable"]
        assert provider.calls == []
        (row,) = _log_rows(engine)
        assert row.status == STATUS_FAILED
        assert row.provider_attempts is None

    def test_snapshot_write_failure_is_logged(self, make_service, engine, monkeypatch):
        service = make_service(FakeProvider(make_payload()))

        def broken(snapshot):
            raise SnapshotStoreError("Failed to store weather snapshot: disk full")

        monkeypatch.setattr(service.snapshots, "insert", broken)
        result = service.collect_daily_weather(TARGET)

        assert result.success is False
        assert "disk full" in result.errors[0]
        assert result.raw_payload is not None
        (row,) = _log_rows(engine)
        assert row.status == STATUS_FAILED
        assert "disk full" in row.processing_summary

    def test_payload_without_days_fails_cleanly(self, make_service, engine):
        provider = FakeProvider({"days": []})
        result = make_service(provider).collect_daily_weather(TARGET)

        assert result.success is False
        assert "No weather data" in result.errors[0]
        assert len(provider.calls) == 1
        assert _log_rows(engine)[0].status == STATUS_FAILED

    def test_log_write_failure_does_not_change_outcome(self, make_service, engine, monkeypatch):
        service = make_service(FakeProvider(make_payload()))

        def broken(entry):
            raise CollectionLogError("Failed to log collection attempt: read-only")

        monkeypatch.setattr(service.collection_log, "start", broken)
        monkeypatch.setattr(service.collection_log, "finish", broken)
        result = service.collect_daily_weather(TARGET)

        assert result.success is True
        assert _snapshot_count(engine) == 1
        assert _log_rows(engine) == []

    def test_invalid_date_is_rejected_without_io(self, make_service, engine):
        provider = FakeProvider(make_payload())
        result = make_service(provider).collect_daily_weather("2025-13-45")

        assert result.success is False
        assert "Invalid target date" in result.errors[0]
        assert provider.calls == []
        assert _log_rows(engine) == []

    def test_credentials_never_reach_errors_or_log(self, make_service, engine):
        """A provider error echoing the request URL is redacted everywhere."""
        provider = FakeProvider(lambda request: httpx.Response(400, text=f"Bad request: {request.url}"))
        result = make_service(provider).collect_daily_weather(TARGET)

        assert result.success is False
        assert API_KEY not in result.errors[0]
        (row,) = _log_rows(engine)
        assert API_KEY not in row.error_details
        assert API_KEY not in row.processing_summary

    def test_no_log_row_left_pending(self, make_service, engine):
        make_service(FakeProvider(make_payload())).collect_daily_weather(TARGET)
        make_service(FakeProvider(401)).collect_daily_weather("2025-07-16")
        make_service(FakeProvider(make_payload())).collect_daily_weather(TARGET)

        statuses = [row.status for row in _log_rows(engine)]
        assert statuses == [STATUS_SUCCESS, STATUS_FAILED]
        assert STATUS_PENDING not in statuses


class TestConfiguration:
    def test_missing_credentials_fail_before_io(self, engine):
        settings = Settings(weather_api_key="", database_url="", _env_file=None)
        provider = FakeProvider(make_payload())

        with pytest.raises(ConfigurationError, match="WEATHER_API_KEY"):
            WeatherCollectionService(settings, engine=engine, client=provider.client)
        assert provider.calls == []

    def test_collect_yesterday_reports_configuration_errors(self):
        result = collect_yesterday_weather(Settings(weather_api_key="", _env_file=None))

        assert result.success is False
        assert result.date == collector.yesterday().isoformat()
        assert "WEATHER_API_KEY" in result.errors[0]

    def test_collect_yesterday_reports_malformed_environment(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("WEATHER_API_KEY", API_KEY)
        monkeypatch.setenv("DATABASE_URL", "sqlite://")
        monkeypatch.setenv("WEATHER_MAX_RETRIES", "three")

        result = collect_yesterday_weather()

        assert result.success is False
        assert "WEATHER_MAX_RETRIES" in result.errors[0]

    def test_collect_yesterday_targets_previous_day(self, settings, engine, clock):
        provider = FakeProvider(make_payload())
        result = collect_yesterday_weather(settings, engine=engine, client=provider.client, clock=clock)

        assert result.success is True
        assert result.date == collector.yesterday().isoformat()
        assert provider.calls[0].url.path.endswith(
            f"/{result.date}/{result.date}"
        )


def test_yesterday():
    assert collector.yesterday(dt.date(2025, 3, 1)) == dt.date(2025, 2, 28)


class TestDaySelection:
    def test_scoring_and_display_use_the_target_day(self, make_service):
        """A payload with a sparse neighbouring day first is scored on the target day."""
        payload = make_payload()
        payload["days"].insert(0, {"datetime": "2025-07-14", "tempmax": 12.0})
        service = make_service(FakeProvider(payload))

        result = service.collect_daily_weather(TARGET)

        assert result.snapshot.temp_max == 90.0
        assert result.quality_score == 100
        data = service.extract_display_data(service.get_weather_data(TARGET))
        assert data["conditions"] == "Partially cloudy"
        assert data["pressure"] == 1015.3


class TestReadHelpers:
    def test_get_weather_data_for_missing_date(self, make_service):
        assert make_service(FakeProvider(make_payload())).get_weather_data(TARGET) is None

    def test_extract_display_data(self, make_service):
        service = make_service(FakeProvider(make_payload(description=None, icon="")))
        service.collect_daily_weather(TARGET)

        data = service.extract_display_data(service.get_weather_data(TARGET))

        assert data["temp_at_dawn"] == 68.0
        assert data["conditions"] == "Partially cloudy"
        assert data["description"] == ""
        assert data["icon"] == ""
        assert data["pressure"] == 1015.3
        assert data["preciptype"] == ["rain"]
        assert "raw_payload" not in data

    def test_extract_display_data_defaults_conditions(self, make_service):
        service = make_service(FakeProvider(make_payload(conditions=None)))
        service.collect_daily_weather(TARGET)

        data = service.extract_display_data(service.get_weather_data(TARGET))
        assert data["conditions"] == "Unknown"

    def test_check_api_connectivity(self, make_service):
        provider = FakeProvider(make_payload())
        report = make_service(provider).check_api_connectivity()

        assert report.success is True
        assert len(provider.calls) == 1


class TestVerifyBackend:
    def test_initialized_backend_is_ready(self, make_service):
        assert make_service(FakeProvider(make_payload())).verify_backend() == []

    def test_missing_tables_are_reported(self, settings):
        bare = create_engine("sqlite://")
        service = WeatherCollectionService(settings, engine=bare, client=FakeProvider(200).client)
        try:
            assert service.verify_backend() == [
                "Table 'daily_weather_snapshots' is missing",
                "Table 'daily_collection_log' is missing",
            ]
        finally:
            bare.dispose()


class TestCommandLine:
    @pytest.fixture
    def env(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(collector, "setup_logging", lambda service_name=None: None)
        monkeypatch.setenv("WEATHER_API_KEY", API_KEY)
        monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'weather.db'}")
        monkeypatch.setenv("METRICS_ENABLED", "false")
        return tmp_path

    def test_verify_fails_on_empty_database(self, env):
        assert collector.main(["--verify"]) == 1

    def test_init_db_then_verify(self, env):
        assert collector.main(["--init-db", "--verify"]) == 0
        assert collector.main(["--verify"]) == 0

    def test_malformed_setting_exits_nonzero(self, env, monkeypatch):
        monkeypatch.setenv("WEATHER_API_TIMEOUT", "soon")
        assert collector.main(["--verify"]) == 1

    def test_missing_key_exits_nonzero(self, env, monkeypatch):
        monkeypatch.delenv("WEATHER_API_KEY")
        assert collector.main(["--verify"]) == 1

    def test_parse_args(self):
        args = collector.parse_args(["--date", TARGET, "--check-api"])
        assert args.date == TARGET
        assert args.check_api is True
        assert args.init_db is False
