"""Application settings loaded from environment variables."""

from __future__ import annotations

from pydantic import SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(RuntimeError):
    """Raised when a required credential or setting is missing."""


class Settings(BaseSettings):
    app_name: str = "weather-collector"
    app_version: str = "0.1.0"
    database_url: str = ""
    # Property center for the single collection point
    property_center_lat: float = 36.42723577
    property_center_lng: float = -79.51088069
    weather_api_key: SecretStr = SecretStr("")
    weather_api_base_url: str = (
        "https://weather.visualcrossing.com/VisualCrossingWebServices/rest/services/timeline"
    )
    weather_unit_group: str = "us"  # Fahrenheit, inches, mph
    weather_source: str = "visual_crossing"
    weather_api_timeout: float = 30.0
    weather_max_retries: int = 3
    weather_backoff_base_seconds: float = 2.0
    weather_max_elapsed_seconds: float = 120.0
    weather_default_quality_score: int = 85
    metrics_enabled: bool = False
    metrics_pushgateway_url: str = ""
    metrics_job_name: str = "weather_collector"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def api_key(self) -> str:
        return self.weather_api_key.get_secret_value()

    def validate_credentials(self) -> None:
        """Fail fast when the provider key or backend connection is missing."""

        missing = []
        if not self.api_key.strip():
            missing.append("WEATHER_API_KEY")
        if not self.database_url.strip():
            missing.append("DATABASE_URL")
        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(missing)}"
            )


def load_settings(**overrides) -> Settings:
    """Read settings from the environment, reporting malformed values as ``ConfigurationError``."""

    try:
        return Settings(**overrides)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']).upper()}: {error['msg']}"
            for error in exc.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {problems}") from None


__all__ = ["ConfigurationError", "Settings", "load_settings"]
