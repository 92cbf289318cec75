"""Collection audit log model."""

from __future__ import annotations

import datetime as dt
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from weather_collector.core.timeutil import utc_now

STATUS_PENDING = "pending"
STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"


class CollectionLogEntry(SQLModel, table=True):
    """One audit row per collection attempt, whatever the outcome."""

    __tablename__ = "daily_collection_log"

    id: Optional[int] = Field(default=None, primary_key=True)
    collection_date: dt.date = Field(index=True)
    collection_type: str = Field(default="weather", max_length=32)
    status: str = Field(default=STATUS_PENDING, max_length=16, index=True, description="pending|success|failed")
    started_at: dt.datetime = Field(
        default_factory=utc_now, sa_type=DateTime(timezone=True), nullable=False
    )
    completed_at: Optional[dt.datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    processing_duration_ms: Optional[int] = None
    api_response_time_ms: Optional[int] = None
    provider_attempts: Optional[int] = None
    records_processed: int = 0
    errors_encountered: int = 0
    data_completeness_score: Optional[int] = None
    error_details: Optional[str] = Field(default=None, description="JSON object with message and trace")
    processing_summary: Optional[str] = Field(default=None, max_length=512)


__all__ = ["CollectionLogEntry", "STATUS_PENDING", "STATUS_SUCCESS", "STATUS_FAILED"]
