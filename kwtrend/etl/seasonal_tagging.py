"""Label keywords with the active seasonal period whose tags they mention."""
from __future__ import annotations

import logging
from typing import Sequence

from kwtrend.db.store import KeywordRecord, SeasonalPeriod, normalize_term
from kwtrend.features.extras import SeasonalSection
from kwtrend.jobs.ledger import JobContext, JobResult

LOGGER = logging.getLogger(__name__)


def match_period(keyword: KeywordRecord, periods: Sequence[SeasonalPeriod]) -> SeasonalPeriod | None:
    """Return the first period (periods arrive heaviest first) with a tag inside the term."""

    term = keyword.term_normalized or normalize_term(keyword.term)
    for period in periods:
        for tag in period.tags:
            needle = normalize_term(tag)
            if needle and needle in term:
                return period
    return None


class SeasonalTaggingJob:
    name = "seasonal-tagging"
    feature_flag: str | None = None

    def execute(self, context: JobContext) -> JobResult:
        settings = context.section("seasonal_tagging")
        as_of = context.now.date()
        periods = context.store.fetch_seasonal_periods(as_of, str(settings.get("country_code", "global")))
        if not periods:
            LOGGER.info("seasonal_tagging.no_active_periods as_of=%s", as_of.isoformat())
            return JobResult(processed=0, metadata={"periods": []})

        keywords = context.store.select_recent_keywords(int(settings.get("keyword_limit", 500)))
        tagged = 0
        for keyword in keywords:
            period = match_period(keyword, periods)
            if period is None:
                continue
            section = SeasonalSection(
                label=period.name,
                weight=period.weight,
                period_start=period.start_date.isoformat(),
                period_end=period.end_date.isoformat(),
                tags=list(period.tags),
                updated_at=context.now.isoformat(),
            )
            if context.coordinator.apply_section(keyword, section):
                tagged += 1
            else:
                context.record_failure("keywords", f"keyword {keyword.id}: seasonal update failed")

        LOGGER.info(
            "seasonal_tagging.complete periods=%s keywords=%s tagged=%s",
            len(periods),
            len(keywords),
            tagged,
        )
        return JobResult(processed=tagged, metadata={"periods": [period.name for period in periods]})


__all__ = ["SeasonalTaggingJob", "match_period"]
