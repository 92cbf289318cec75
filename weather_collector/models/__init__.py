"""Database models."""

from .collection_log import (
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_SUCCESS,
    CollectionLogEntry,
)
from .weather import WeatherSnapshot

__all__ = [
    "CollectionLogEntry",
    "WeatherSnapshot",
    "STATUS_FAILED",
    "STATUS_PENDING",
    "STATUS_SUCCESS",
]
