"""create daily weather snapshot and collection log tables"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0001_create_weather_tables"
down_revision: str | None = None
branch_labels: tuple[str, ...] | None = None
depends_on: tuple[str, ...] | None = None


def upgrade() -> None:
    op.create_table(
        "daily_weather_snapshots",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("collected_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("source", sa.String(length=64), nullable=False),
        sa.Column("raw_payload", sa.Text(), nullable=False),
        sa.Column("temp_max", sa.Float(), nullable=True),
        sa.Column("temp_min", sa.Float(), nullable=True),
        sa.Column("temp_mean", sa.Float(), nullable=True),
        sa.Column("temp_at_dawn", sa.Float(), nullable=True),
        sa.Column("temp_at_dusk", sa.Float(), nullable=True),
        sa.Column("humidity", sa.Float(), nullable=True),
        sa.Column("precipitation_amount", sa.Float(), nullable=True),
        sa.Column("precipitation_probability", sa.Float(), nullable=True),
        sa.Column("wind_speed", sa.Float(), nullable=True),
        sa.Column("wind_direction", sa.Float(), nullable=True),
        sa.Column("cloud_cover", sa.Float(), nullable=True),
        sa.Column("uv_index", sa.Float(), nullable=True),
        sa.Column("sunrise_time", sa.Time(), nullable=True),
        sa.Column("sunset_time", sa.Time(), nullable=True),
        sa.Column("moon_phase", sa.Float(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_daily_weather_snapshots_date"),
        "daily_weather_snapshots",
        ["date"],
        unique=True,
    )

    op.create_table(
        "daily_collection_log",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("collection_date", sa.Date(), nullable=False),
        sa.Column("collection_type", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processing_duration_ms", sa.Integer(), nullable=True),
        sa.Column("api_response_time_ms", sa.Integer(), nullable=True),
        sa.Column("provider_attempts", sa.Integer(), nullable=True),
        sa.Column("records_processed", sa.Integer(), nullable=False),
        sa.Column("errors_encountered", sa.Integer(), nullable=False),
        sa.Column("data_completeness_score", sa.Integer(), nullable=True),
        sa.Column("error_details", sa.Text(), nullable=True),
        sa.Column("processing_summary", sa.String(length=512), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_daily_collection_log_collection_date"),
        "daily_collection_log",
        ["collection_date"],
        unique=False,
    )
    op.create_index(
        op.f("ix_daily_collection_log_status"),
        "daily_collection_log",
        ["status"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_daily_collection_log_status"), table_name="daily_collection_log")
    op.drop_index(op.f("ix_daily_collection_log_collection_date"), table_name="daily_collection_log")
    op.drop_table("daily_collection_log")
    op.drop_index(op.f("ix_daily_weather_snapshots_date"), table_name="daily_weather_snapshots")
    op.drop_table("daily_weather_snapshots")
