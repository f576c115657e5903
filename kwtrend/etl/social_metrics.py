"""Aggregate per-platform social snapshots into keyword-level signals."""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from kwtrend.features.extras import SocialSection
from kwtrend.features.momentum import SocialAggregate, aggregate_social
from kwtrend.jobs.ledger import JobContext, JobResult
from kwtrend.sources.base import SourceWindow, TrendSource, collect_sources
from kwtrend.sources.social import SocialPlatformSource

LOGGER = logging.getLogger(__name__)

SOCIAL_AGGREGATE_SOURCE = "social_aggregate"
TOP_KEYWORDS_LOGGED = 10


def to_daily_row(aggregate: SocialAggregate, collected_on) -> dict[str, Any]:
    return {
        "keyword_id": aggregate.keyword_id,
        "collected_on": collected_on,
        "source": SOCIAL_AGGREGATE_SOURCE,
        "social_mentions": aggregate.total_mentions,
        "social_sentiment": aggregate.avg_sentiment,
        "social_platforms": {
            platform: int(data["mentions"]) for platform, data in aggregate.platform_breakdown.items()
        },
        "extras": {
            "weighted_engagement": aggregate.weighted_engagement,
            "platform_count": aggregate.platform_count,
            "dominant_platform": aggregate.dominant_platform,
        },
    }


class SocialMetricsJob:
    name = "social-metrics"
    feature_flag: str | None = None

    def __init__(self, source: TrendSource | None = None) -> None:
        self._source = source

    def execute(self, context: JobContext) -> JobResult:
        settings = context.section("social_metrics")
        lookback = timedelta(hours=float(settings.get("lookback_hours", 24)))
        window = SourceWindow(start=context.now - lookback, end=context.now)
        source = self._source or SocialPlatformSource(context.store)
        aggregated = collect_sources([source], window)
        for failure in aggregated.failures:
            context.record_failure(failure.source, failure.error)

        aggregates = aggregate_social(aggregated.rows, settings.get("platform_weights"))
        if not aggregates:
            LOGGER.info("social_metrics.no_snapshots since=%s", window.start.isoformat())
            return JobResult(processed=0, metadata={"keywordsUpdated": 0, "since": window.start.isoformat()})

        keywords = context.store.select_keywords_by_ids(list(aggregates))
        updated = 0
        daily_rows: list[dict[str, Any]] = []
        for keyword_id, aggregate in aggregates.items():
            keyword = keywords.get(keyword_id)
            if keyword is None:
                context.record_failure("keywords", f"keyword {keyword_id} not found")
                continue
            section = SocialSection(
                total_mentions=aggregate.total_mentions,
                weighted_engagement=aggregate.weighted_engagement,
                avg_sentiment=aggregate.avg_sentiment,
                platform_count=aggregate.platform_count,
                dominant_platform=aggregate.dominant_platform,
                platforms=list(aggregate.platforms),
                updated_at=context.now.isoformat(),
            )
            if not context.coordinator.apply_section(keyword, section):
                context.record_failure("keywords", f"keyword {keyword_id}: social update failed")
                continue
            daily_rows.append(to_daily_row(aggregate, window.recorded_on))
            updated += 1

        daily = context.coordinator.write_social_daily(daily_rows)
        for error in daily.errors:
            context.record_failure("keyword_metrics_daily", error)

        top = sorted(aggregates.values(), key=lambda item: item.weighted_engagement, reverse=True)
        for item in top[:TOP_KEYWORDS_LOGGED]:
            LOGGER.debug(
                "social_metrics.top keyword_id=%s engagement=%s mentions=%s platforms=%s",
                item.keyword_id,
                item.weighted_engagement,
                item.total_mentions,
                item.platform_count,
            )
        LOGGER.info(
            "social_metrics.complete keywords=%s updated=%s",
            len(aggregates),
            updated,
            extra={"keywords": len(aggregates), "updated": updated},
        )
        return JobResult(
            processed=len(aggregates),
            metadata={"keywordsUpdated": updated, "dailyRows": daily.written, "since": window.start.isoformat()},
        )


__all__ = ["SOCIAL_AGGREGATE_SOURCE", "SocialMetricsJob", "to_daily_row"]
