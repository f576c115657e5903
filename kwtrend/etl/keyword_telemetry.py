"""Roll user telemetry events into ``keyword_stats`` for the trailing window."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping

from kwtrend.etl.window import (
    KEYWORD_TELEMETRY_LOOKBACK_DAYS,
    STAT_METRIC_FIELDS,
    StatKey,
    filter_existing,
    get_window_start,
    window_start_date,
)
from kwtrend.features.normalize import normalize_number
from kwtrend.jobs.ledger import JobContext, JobResult
from kwtrend.sources.base import SourceRow, SourceWindow, TrendSource, collect_sources
from kwtrend.sources.telemetry import TelemetryRollupSource

LOGGER = logging.getLogger(__name__)


def _stat_candidate(row: SourceRow) -> dict[str, Any]:
    candidate: dict[str, Any] = {
        "keyword_id": row.keyword_id,
        "source": row.source,
        "recorded_on": row.recorded_on,
        "metadata": dict(row.metadata),
    }
    for name in STAT_METRIC_FIELDS:
        candidate[name] = row.values.get(name)
    return candidate


def to_stat_payload(candidate: Mapping[str, Any]) -> dict[str, Any]:
    """Coerce a candidate into the ``keyword_stats`` column set."""

    payload: dict[str, Any] = {
        "keyword_id": str(candidate["keyword_id"]),
        "source": str(candidate["source"]).lower(),
        "recorded_on": StatKey.from_row(candidate).recorded_on,
        "metadata": dict(candidate.get("metadata") or {}),
    }
    for name in STAT_METRIC_FIELDS:
        value = normalize_number(candidate.get(name))
        if value is not None and name not in ("ctr", "conversion_rate"):
            value = int(round(value))
        payload[name] = value
    return payload


class KeywordTelemetryJob:
    name = "keyword-telemetry"

    def __init__(self, source: TrendSource | None = None, *, feature_flag: str | None = "allow_user_telemetry") -> None:
        self._source = source
        self.feature_flag = feature_flag

    def execute(self, context: JobContext) -> JobResult:
        settings = context.section("keyword_telemetry")
        lookback = settings.get("lookback_days") or KEYWORD_TELEMETRY_LOOKBACK_DAYS
        window_start = get_window_start(context.now, lookback)
        window = SourceWindow(start=datetime.fromisoformat(window_start), end=context.now)
        existing = context.store.select_existing_keys("keyword_stats", window_start_date(window_start))
        LOGGER.info(
            "keyword_telemetry.window start=%s end=%s existing=%s",
            window_start,
            context.now.isoformat(),
            len(existing),
            extra={"window_start": window_start, "existing": len(existing)},
        )

        source = self._source or TelemetryRollupSource(context.store)
        aggregated = collect_sources([source], window)
        for failure in aggregated.failures:
            context.record_failure(failure.source, failure.error)

        candidates = [_stat_candidate(row) for row in aggregated.rows if row.keyword_id]
        fresh = filter_existing(candidates, existing)
        metadata = {"windowStart": window_start, "windowEnd": context.now.isoformat()}
        if not fresh:
            LOGGER.info("keyword_telemetry.no_rows candidates=%s", len(candidates))
            return JobResult(processed=0, metadata={**metadata, "skippedExisting": len(candidates)})

        summary = context.coordinator.write_stats([to_stat_payload(row) for row in fresh])
        for error in summary.errors:
            context.record_failure("keyword_stats", error)
        metadata["skippedExisting"] = len(candidates) - len(fresh) + summary.skipped
        return JobResult(processed=summary.written, metadata=metadata)


__all__ = ["KeywordTelemetryJob", "to_stat_payload"]
