"""Completeness scoring for raw provider payloads."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Protocol

logger = logging.getLogger(__name__)

DEFAULT_QUALITY_SCORE = 85

REQUIRED_FIELDS = (
    "datetime", "tempmax", "tempmin", "temp", "humidity", "pressure",
    "windspeed", "winddir", "precip", "precipprob", "cloudcover",
    "conditions", "sunrise", "sunset", "moonphase",
)
OPTIONAL_FIELDS = (
    "windgust", "precipcover", "preciptype", "visibility", "description",
    "icon", "uvindex", "solarradiation", "dew",
)
EXPECTED_HOURS = 24


class QualityScorer(Protocol):
    def score(self, payload: Mapping[str, Any]) -> int:
        ...


class CompletenessScorer:
    """Score a payload 0-100 by how much of the expected data is present.

    Each required day field weighs ``required_weight``, each optional field
    ``optional_weight``, and hourly coverage (up to 24 readings) contributes
    ``hourly_weight`` in proportion.
    """

    def __init__(
        self,
        required_weight: float = 3.0,
        optional_weight: float = 1.0,
        hourly_weight: float = 10.0,
    ) -> None:
        self.required_weight = required_weight
        self.optional_weight = optional_weight
        self.hourly_weight = hourly_weight

    def score(self, payload: Mapping[str, Any]) -> int:
        day = _first_day(payload)
        required = sum(1 for name in REQUIRED_FIELDS if _present(day.get(name)))
        optional = sum(1 for name in OPTIONAL_FIELDS if _present(day.get(name)))
        hours = day.get("hours")
        hour_count = len(hours) if isinstance(hours, list) else 0

        earned = (
            required * self.required_weight
            + optional * self.optional_weight
            + min(hour_count, EXPECTED_HOURS) / EXPECTED_HOURS * self.hourly_weight
        )
        possible = (
            len(REQUIRED_FIELDS) * self.required_weight
            + len(OPTIONAL_FIELDS) * self.optional_weight
            + self.hourly_weight
        )
        return max(0, min(100, round(100 * earned / possible)))

    def missing_fields(self, payload: Mapping[str, Any]) -> list[str]:
        day = _first_day(payload)
        return [
            name for name in (*REQUIRED_FIELDS, *OPTIONAL_FIELDS) if not _present(day.get(name))
        ]


def safe_score(
    scorer: QualityScorer,
    payload: Mapping[str, Any],
    default: int = DEFAULT_QUALITY_SCORE,
) -> int:
    """Score ``payload``, substituting ``default`` on any failure or bad value."""
    try:
        value = scorer.score(payload)
    except Exception as exc:
        logger.warning("Quality score calculation failed, using default %s: %s", default, exc)
        return default
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 100:
        logger.warning("Quality scorer returned %r, using default %s", value, default)
        return default
    return value


def _first_day(payload: Mapping[str, Any]) -> Mapping[str, Any]:
    days = payload.get("days")
    if not isinstance(days, list) or not days or not isinstance(days[0], Mapping):
        raise ValueError("payload has no day entries")
    return days[0]


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, (str, list)) and not value:
        return False
    return True


__all__ = [
    "CompletenessScorer",
    "DEFAULT_QUALITY_SCORE",
    "QualityScorer",
    "safe_score",
]
