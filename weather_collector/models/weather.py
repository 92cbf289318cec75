"""Daily weather snapshot model."""

from __future__ import annotations

import datetime as dt
import json
from typing import Any, Optional

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from weather_collector.core.timeutil import utc_now


class WeatherSnapshot(SQLModel, table=True):
    """One canonical weather record per calendar date at the property center."""

    __tablename__ = "daily_weather_snapshots"

    id: Optional[int] = Field(default=None, primary_key=True)
    date: dt.date = Field(unique=True, index=True, nullable=False)
    latitude: float
    longitude: float
    collected_at: dt.datetime = Field(
        default_factory=utc_now, sa_type=DateTime(timezone=True), nullable=False
    )
    source: str = Field(max_length=64)
    raw_payload: str = Field(description="Raw JSON payload returned by the provider")

    temp_max: float | None = None
    temp_min: float | None = None
    temp_mean: float | None = None
    # NULL means unknown, never zero
    temp_at_dawn: float | None = None
    temp_at_dusk: float | None = None
    humidity: float | None = None
    precipitation_amount: float | None = None
    precipitation_probability: float | None = None
    wind_speed: float | None = None
    wind_direction: float | None = None
    cloud_cover: float | None = None
    uv_index: float | None = None
    sunrise_time: dt.time | None = None
    sunset_time: dt.time | None = None
    moon_phase: float | None = None

    def payload(self) -> dict[str, Any]:
        return json.loads(self.raw_payload) if self.raw_payload else {}


__all__ = ["WeatherSnapshot"]
