"""Dawn and dusk temperature estimates from a day's summary and hourly data."""

from __future__ import annotations

import datetime as dt
import logging
import math
from dataclasses import dataclass
from typing import Any, Mapping, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DawnDuskTemperatures:
    """Estimated temperatures at sunrise and sunset; ``None`` means unknown."""

    dawn: float | None = None
    dusk: float | None = None


UNKNOWN = DawnDuskTemperatures()


class TemperatureInterpolator(Protocol):
    def interpolate(self, day: Mapping[str, Any]) -> DawnDuskTemperatures:
        ...


class NearestHourInterpolator:
    """Nearest hourly reading to sunrise/sunset, with a statistical fallback.

    When no usable hourly reading exists for a side, the estimate comes from
    the daily statistics instead:

    - dawn = min + dawn_weight * (mean - min)
    - dusk = mean + dusk_weight * (max - mean)

    An hourly reading only counts when it lies within ``max_gap_minutes``
    of the event. The weights are a tunable policy, not a physical model.
    Sunrise and sunset are both required; without them, both outputs are
    unknown.
    """

    def __init__(
        self,
        dawn_weight: float = 0.1,
        dusk_weight: float = 0.25,
        max_gap_minutes: float = 90.0,
    ) -> None:
        self.dawn_weight = dawn_weight
        self.dusk_weight = dusk_weight
        self.max_gap_minutes = max_gap_minutes

    def interpolate(self, day: Mapping[str, Any]) -> DawnDuskTemperatures:
        try:
            return self._interpolate(day)
        except Exception as exc:  # never raises
            logger.warning("Dawn/dusk interpolation failed: %s", exc)
            return UNKNOWN

    def _interpolate(self, day: Mapping[str, Any]) -> DawnDuskTemperatures:
        sunrise = parse_clock(day.get("sunrise"))
        sunset = parse_clock(day.get("sunset"))
        if sunrise is None or sunset is None:
            logger.info("Missing sunrise/sunset, skipping dawn/dusk temperature calculation")
            return UNKNOWN

        readings = _hourly_readings(day.get("hours"))
        temp_min = coerce_float(day.get("tempmin"))
        temp_max = coerce_float(day.get("tempmax"))
        temp_mean = coerce_float(day.get("temp"))

        dawn = _nearest(readings, sunrise, self.max_gap_minutes)
        if dawn is None and temp_min is not None and temp_mean is not None:
            dawn = temp_min + self.dawn_weight * (temp_mean - temp_min)
        dusk = _nearest(readings, sunset, self.max_gap_minutes)
        if dusk is None and temp_max is not None and temp_mean is not None:
            dusk = temp_mean + self.dusk_weight * (temp_max - temp_mean)

        result = DawnDuskTemperatures(dawn=_round(dawn), dusk=_round(dusk))
        logger.info(
            "Calculated dawn temp %s (near %s), dusk temp %s (near %s)",
            result.dawn,
            sunrise.isoformat(),
            result.dusk,
            sunset.isoformat(),
        )
        return result


def safe_interpolate(
    interpolator: TemperatureInterpolator, day: Mapping[str, Any]
) -> DawnDuskTemperatures:
    """Run any interpolator under the never-raises, nullable-output contract."""
    try:
        result = interpolator.interpolate(day)
    except Exception as exc:
        logger.warning("Interpolator %s raised: %s", type(interpolator).__name__, exc)
        return UNKNOWN
    if not isinstance(result, DawnDuskTemperatures):
        logger.warning("Interpolator %s returned %r", type(interpolator).__name__, result)
        return UNKNOWN
    return DawnDuskTemperatures(dawn=coerce_float(result.dawn), dusk=coerce_float(result.dusk))


def parse_clock(value: Any) -> dt.time | None:
    if isinstance(value, dt.time):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return dt.time.fromisoformat(value.strip())
    except ValueError:
        return None


def _minutes(value: dt.time) -> float:
    return value.hour * 60 + value.minute + value.second / 60


def _hourly_readings(hours: Any) -> list[tuple[dt.time, float]]:
    if not isinstance(hours, list):
        return []
    readings = []
    for hour in hours:
        if not isinstance(hour, Mapping):
            continue
        when = parse_clock(hour.get("datetime"))
        temp = coerce_float(hour.get("temp"))
        if when is not None and temp is not None:
            readings.append((when, temp))
    return readings


def _nearest(
    readings: list[tuple[dt.time, float]], target: dt.time, max_gap: float
) -> float | None:
    if not readings:
        return None
    goal = _minutes(target)
    # ties resolve to the earlier reading
    when, temp = min(readings, key=lambda item: (abs(_minutes(item[0]) - goal), _minutes(item[0])))
    if abs(_minutes(when) - goal) > max_gap:
        return None
    return temp


def coerce_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _round(value: float | None) -> float | None:
    return None if value is None else round(value, 1)


__all__ = [
    "DawnDuskTemperatures",
    "NearestHourInterpolator",
    "TemperatureInterpolator",
    "coerce_float",
    "parse_clock",
    "safe_interpolate",
]
