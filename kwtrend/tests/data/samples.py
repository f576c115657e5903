"""Fixture rows shared by the store-backed tests."""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy.engine import Engine

from kwtrend.db import schema

NOW = datetime(2024, 1, 2, 12, 0, tzinfo=timezone.utc)


def insert_keyword(
    engine: Engine,
    keyword_id: str,
    term: str,
    *,
    market: str = "us",
    extras: dict[str, Any] | None = None,
    trend_momentum: float | None = None,
) -> None:
    with engine.begin() as conn:
        conn.execute(
            schema.keywords.insert().values(
                id=keyword_id,
                term=term,
                term_normalized=" ".join(term.lower().split()),
                market=market,
                source="seed",
                extras=extras or {},
                trend_momentum=trend_momentum,
            )
        )


def set_flag(engine: Engine, key: str, enabled: bool) -> None:
    with engine.begin() as conn:
        conn.execute(schema.feature_flags.insert().values(key=key, is_enabled=enabled, rollout={}))


def insert_events(engine: Engine, rows: list[dict[str, Any]]) -> None:
    with engine.begin() as conn:
        conn.execute(schema.keyword_events.insert(), rows)


def telemetry_events(keyword_id: str = "kw-1") -> list[dict[str, Any]]:
    return [
        {
            "keyword_id": keyword_id,
            "event_type": "search",
            "occurred_at": datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc),
            "payload": {"query": "handmade jewelry", "resultCount": 40},
        },
        {
            "keyword_id": keyword_id,
            "event_type": "search",
            "occurred_at": datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc),
            "payload": {"query": "handmade jewelry", "resultCount": 60},
        },
        {
            "keyword_id": keyword_id,
            "event_type": "view_listing",
            "occurred_at": datetime(2024, 1, 1, 10, 5, tzinfo=timezone.utc),
            "payload": {"position": 4},
        },
        {
            "keyword_id": keyword_id,
            "event_type": "view_listing",
            "occurred_at": datetime(2024, 1, 1, 10, 6, tzinfo=timezone.utc),
            "payload": {"position": 2},
        },
        {
            "keyword_id": keyword_id,
            "event_type": "view_shop",
            "occurred_at": datetime(2024, 1, 2, 8, 0, tzinfo=timezone.utc),
            "payload": {"shopSlug": "silver-things"},
        },
    ]


def insert_platform_trends(engine: Engine, rows: list[dict[str, Any]]) -> None:
    with engine.begin() as conn:
        conn.execute(schema.social_platform_trends.insert(), rows)


def platform_snapshot(
    keyword_id: str,
    platform: str,
    *,
    mentions: int,
    engagement: float,
    sentiment: float,
    collected_at: datetime = datetime(2024, 1, 2, 6, 0, tzinfo=timezone.utc),
) -> dict[str, Any]:
    return {
        "keyword_id": keyword_id,
        "platform": platform,
        "collected_at": collected_at,
        "mention_count": mentions,
        "engagement_score": engagement,
        "sentiment": sentiment,
        "velocity": 0.1,
        "metadata": {},
    }


def insert_period(
    engine: Engine,
    name: str,
    start: date,
    end: date,
    *,
    tags: list[str],
    weight: float = 1.0,
    country_code: str | None = "global",
) -> None:
    with engine.begin() as conn:
        conn.execute(
            schema.seasonal_periods.insert().values(
                name=name,
                start_date=start,
                end_date=end,
                weight=weight,
                tags=tags,
                country_code=country_code,
            )
        )
