"""Table definitions shared by the store, the ledger and the tests."""
from __future__ import annotations

import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB

METADATA = MetaData()

JSONType = JSON().with_variant(JSONB(), "postgresql")


def _uuid() -> str:
    return str(uuid.uuid4())


keywords = Table(
    "keywords",
    METADATA,
    Column("id", String(36), primary_key=True, default=_uuid),
    Column("term", Text, nullable=False),
    Column("term_normalized", Text, nullable=False),
    Column("market", String(64), nullable=False),
    Column("source", String(64), nullable=False, default="pipeline"),
    Column("demand_index", Float),
    Column("competition_score", Float),
    Column("engagement_score", Float),
    Column("ai_opportunity_score", Float),
    Column("trend_momentum", Float),
    Column("freshness_ts", DateTime(timezone=True)),
    Column("extras", JSONType, nullable=False, default=dict),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now()),
    UniqueConstraint("term_normalized", "market", name="keywords_term_market_unique"),
)

keyword_stats = Table(
    "keyword_stats",
    METADATA,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("keyword_id", String(36), nullable=False),
    Column("source", String(64), nullable=False),
    Column("recorded_on", Date, nullable=False),
    Column("search_volume", Integer),
    Column("impressions", Integer),
    Column("clicks", Integer),
    Column("ctr", Float),
    Column("conversion_rate", Float),
    Column("cost_cents", Integer),
    Column("rank", Integer),
    Column("metadata", JSONType, nullable=False, default=dict),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    UniqueConstraint("keyword_id", "source", "recorded_on", name="keyword_stats_unique_idx"),
)

trend_series = Table(
    "trend_series",
    METADATA,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("term", Text, nullable=False),
    Column("source", String(64), nullable=False),
    Column("recorded_on", Date, nullable=False),
    Column("trend_score", Float),
    Column("velocity", Float),
    Column("expected_growth_30d", Float),
    Column("extras", JSONType, nullable=False, default=dict),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    UniqueConstraint("term", "source", "recorded_on", name="trend_series_term_source_date_idx"),
)

keyword_metrics_daily = Table(
    "keyword_metrics_daily",
    METADATA,
    Column("id", String(36), primary_key=True, default=_uuid),
    Column("keyword_id", String(36), nullable=False),
    Column("collected_on", Date, nullable=False),
    Column("source", String(64), nullable=False),
    Column("social_mentions", Integer, default=0),
    Column("social_sentiment", Float),
    Column("social_platforms", JSONType, nullable=False, default=dict),
    Column("extras", JSONType, nullable=False, default=dict),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    UniqueConstraint("keyword_id", "collected_on", "source", name="keyword_metrics_daily_unique"),
)

job_runs = Table(
    "job_runs",
    METADATA,
    Column("id", String(36), primary_key=True, default=_uuid),
    Column("job_name", String(128), nullable=False),
    Column("status", String(32), nullable=False),
    Column("started_at", DateTime(timezone=True), nullable=False),
    Column("finished_at", DateTime(timezone=True)),
    Column("records_processed", Integer),
    Column("error_message", Text),
    Column("metadata", JSONType, nullable=False, default=dict),
)

feature_flags = Table(
    "feature_flags",
    METADATA,
    Column("key", String(128), primary_key=True),
    Column("description", Text),
    Column("is_enabled", Boolean, nullable=False, default=False),
    Column("rollout", JSONType, nullable=False, default=dict),
)

seasonal_periods = Table(
    "seasonal_periods",
    METADATA,
    Column("id", String(36), primary_key=True, default=_uuid),
    Column("name", Text, nullable=False),
    Column("country_code", String(16)),
    Column("start_date", Date, nullable=False),
    Column("end_date", Date, nullable=False),
    Column("weight", Float, nullable=False, default=1.0),
    Column("tags", JSONType, nullable=False, default=list),
)

social_platform_trends = Table(
    "social_platform_trends",
    METADATA,
    Column("id", String(36), primary_key=True, default=_uuid),
    Column("keyword_id", String(36)),
    Column("platform", String(32), nullable=False),
    Column("collected_at", DateTime(timezone=True), nullable=False),
    Column("mention_count", Integer, default=0),
    Column("engagement_score", Float),
    Column("sentiment", Float),
    Column("velocity", Float),
    Column("metadata", JSONType, nullable=False, default=dict),
)

keyword_events = Table(
    "keyword_events",
    METADATA,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("keyword_id", String(36), nullable=False),
    Column("event_type", String(32), nullable=False),
    Column("occurred_at", DateTime(timezone=True), nullable=False),
    Column("payload", JSONType, nullable=False, default=dict),
)


__all__ = [
    "METADATA",
    "feature_flags",
    "job_runs",
    "keyword_events",
    "keyword_metrics_daily",
    "keyword_stats",
    "keywords",
    "seasonal_periods",
    "social_platform_trends",
    "trend_series",
]
