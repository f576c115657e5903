"""Collect external trend feeds, persist ``trend_series`` and blend keyword momentum."""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Sequence

from kwtrend.etl.upsert import WriteSummary
from kwtrend.features.momentum import TrendBlender, build_trend_records
from kwtrend.jobs.ledger import JobContext, JobResult
from kwtrend.settings import get_source_settings
from kwtrend.sources.base import SourceWindow, TrendSource, collect_sources
from kwtrend.sources.rate_limit import RateLimiter
from kwtrend.sources.trends import default_trend_sources

LOGGER = logging.getLogger(__name__)


class TrendAggregationJob:
    name = "trend-aggregation"
    feature_flag: str | None = None

    def __init__(
        self,
        sources: Sequence[TrendSource] | None = None,
        *,
        limiter: RateLimiter | None = None,
    ) -> None:
        self._sources = list(sources) if sources is not None else None
        self._limiter = limiter

    def _resolve_sources(self, context: JobContext) -> list[TrendSource]:
        if self._sources is not None:
            return self._sources
        settings = context.section("trend_aggregation")
        limiter = self._limiter
        if limiter is None:
            limits = settings.get("rate_limit") or {}
            limiter = RateLimiter(
                limit=int(limits.get("limit", 30)),
                window_seconds=float(limits.get("window_seconds", 60)),
            )
        return default_trend_sources(get_source_settings(), limiter=limiter, enabled=settings.get("sources"))

    def execute(self, context: JobContext) -> JobResult:
        sources = self._resolve_sources(context)
        window = SourceWindow(start=context.now - timedelta(days=1), end=context.now)
        workers = int(context.section("trend_aggregation").get("max_workers", 1))
        aggregated = collect_sources(sources, window, max_workers=workers)
        for failure in aggregated.failures:
            context.record_failure(failure.source, failure.error)

        records = build_trend_records(aggregated.rows, window.recorded_on)
        metadata = {
            "sources": aggregated.succeeded_sources,
            "keywordsUpdated": 0,
        }
        if not records:
            LOGGER.info("trend_aggregation.no_signals sources=%s", len(sources))
            metadata["message"] = "No trend signals available."
            return JobResult(processed=0, metadata=metadata)

        series = context.coordinator.write_trend_series(records)
        for error in series.errors:
            context.record_failure("trend_series", error)

        # blend from this run's observations only so reruns converge
        blended = TrendBlender().fold(records)
        keywords = WriteSummary()
        for term, trend in blended.items():
            keywords.merge(context.coordinator.apply_trend(term, trend, now=context.now))
        for error in keywords.errors:
            context.record_failure("keywords", error)
        keywords_updated = keywords.written

        metadata["keywordsUpdated"] = keywords_updated
        metadata["keywordsUnchanged"] = keywords.skipped
        metadata["terms"] = len(blended)
        LOGGER.info(
            "trend_aggregation.complete records=%s terms=%s keywords=%s",
            series.written,
            len(blended),
            keywords_updated,
            extra={"records": series.written, "terms": len(blended), "keywords": keywords_updated},
        )
        return JobResult(processed=series.written, metadata=metadata)


__all__ = ["TrendAggregationJob"]
