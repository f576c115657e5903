"""Conflict-safe writes of aggregated rows and keyword denormalisations."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Sequence

from sqlalchemy.exc import SQLAlchemyError

from kwtrend.db.io import WriteError, utcnow
from kwtrend.db.store import KeywordRecord, KeywordStore
from kwtrend.features.extras import ExtrasSection, TrendSection, merge_extras, section_to_dict
from kwtrend.features.momentum import BlendedTrend

LOGGER = logging.getLogger(__name__)

STAT_KEY = ("keyword_id", "source", "recorded_on")
TREND_SERIES_KEY = ("term", "source", "recorded_on")
SOCIAL_DAILY_KEY = ("keyword_id", "collected_on", "source")
DEFAULT_MARKET = "us"
# ignored when deciding whether a keyword already holds a section
_TIMESTAMP_KEYS = frozenset({"updated_at", "freshness_ts"})


@dataclass(slots=True)
class WriteSummary:
    written: int = 0
    skipped: int = 0
    failures: int = 0
    errors: list[str] = field(default_factory=list)

    def merge(self, other: "WriteSummary") -> "WriteSummary":
        self.written += other.written
        self.skipped += other.skipped
        self.failures += other.failures
        self.errors.extend(other.errors)
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "written": self.written,
            "skipped": self.skipped,
            "failures": self.failures,
            "errors": list(self.errors),
        }


class UpsertCoordinator:
    """Write batches so that overlapping runs converge on the same rows.

    Batches go out in chunks; a chunk that the store rejects is retried row
    by row so one bad record is counted as a failure without taking its
    neighbours down with it.
    """

    def __init__(self, store: KeywordStore, *, chunk_size: int = 500, default_market: str = DEFAULT_MARKET) -> None:
        self._store = store
        self._chunk_size = chunk_size
        self._default_market = default_market.lower()

    # -- batch writes ---------------------------------------------------------

    def _write(
        self,
        table: str,
        rows: Sequence[Mapping[str, Any]],
        conflict_keys: Sequence[str],
        update_columns: Sequence[str] | None,
    ) -> WriteSummary:
        summary = WriteSummary()
        if not rows:
            return summary
        for start in range(0, len(rows), self._chunk_size):
            chunk = list(rows[start : start + self._chunk_size])
            try:
                counts = self._store.upsert(
                    table, chunk, conflict_keys, update_columns=update_columns, chunk_size=self._chunk_size
                )
                summary.written += counts.written
                summary.skipped += counts.skipped
                continue
            except (SQLAlchemyError, WriteError) as exc:
                LOGGER.warning(
                    "upsert.chunk_failed table=%s rows=%s error=%s",
                    table,
                    len(chunk),
                    exc,
                    extra={"table": table, "rows": len(chunk)},
                )
            for row in chunk:
                try:
                    counts = self._store.upsert(table, [row], conflict_keys, update_columns=update_columns)
                    summary.written += counts.written
                    summary.skipped += counts.skipped
                except (SQLAlchemyError, WriteError) as exc:
                    key = tuple(row.get(name) for name in conflict_keys)
                    LOGGER.warning("upsert.row_failed table=%s key=%s error=%s", table, key, exc)
                    summary.failures += 1
                    summary.errors.append(f"{table} {key}: {exc.__class__.__name__}")
        return summary

    def write_stats(self, rows: Sequence[Mapping[str, Any]]) -> WriteSummary:
        """Insert stat rows; keys that already exist are left untouched."""

        return self._write("keyword_stats", rows, STAT_KEY, ())

    def write_trend_series(self, records: Sequence[Mapping[str, Any]]) -> WriteSummary:
        return self._write("trend_series", records, TREND_SERIES_KEY, None)

    def write_social_daily(self, rows: Sequence[Mapping[str, Any]]) -> WriteSummary:
        return self._write("keyword_metrics_daily", rows, SOCIAL_DAILY_KEY, None)

    # -- keyword denormalisation --------------------------------------------------

    @staticmethod
    def is_current(
        keyword: KeywordRecord,
        section: ExtrasSection,
        scalars: Mapping[str, Any] | None = None,
    ) -> bool:
        """True when ``keyword`` already holds ``section`` apart from its timestamps."""

        stored = (keyword.extras or {}).get(section.SECTION)
        if not isinstance(stored, Mapping):
            return False
        incoming = section_to_dict(section)
        for key in set(stored) | set(incoming):
            if key in _TIMESTAMP_KEYS:
                continue
            if stored.get(key) != incoming.get(key):
                return False
        for name, value in (scalars or {}).items():
            if name in _TIMESTAMP_KEYS:
                continue
            if not hasattr(keyword, name) or getattr(keyword, name) != value:
                return False
        return True

    def apply_section(
        self,
        keyword: KeywordRecord,
        section: ExtrasSection,
        scalars: Mapping[str, Any] | None = None,
    ) -> bool:
        """Read-merge-write one ``extras`` sub-section for ``keyword``.

        Nothing is written when the keyword already holds the same section.
        Returns ``False`` (after logging) when the write fails.
        """

        if self.is_current(keyword, section, scalars):
            LOGGER.debug("upsert.keyword_unchanged keyword_id=%s section=%s", keyword.id, section.SECTION)
            return True
        merged = merge_extras(keyword.extras, section)
        try:
            updated = self._store.update_keyword_extras(keyword.id, merged, scalars)
        except SQLAlchemyError as exc:
            LOGGER.warning(
                "upsert.keyword_failed keyword_id=%s section=%s error=%s",
                keyword.id,
                section.SECTION,
                exc,
                extra={"keyword_id": keyword.id, "section": section.SECTION},
            )
            return False
        if updated:
            keyword.extras = merged
            if scalars and "trend_momentum" in scalars:
                keyword.trend_momentum = scalars["trend_momentum"]
        else:
            LOGGER.warning("upsert.keyword_missing keyword_id=%s section=%s", keyword.id, section.SECTION)
        return updated

    def apply_trend(
        self,
        term: str,
        blended: BlendedTrend,
        *,
        market: str | None = None,
        now: datetime | None = None,
    ) -> WriteSummary:
        """Push a blended trend onto every keyword sharing ``term``.

        When no keyword carries the term yet it is created in ``market`` (or
        the default market) first.
        """

        summary = WriteSummary()
        timestamp = now or utcnow()
        try:
            if market:
                keywords = [self._store.ensure_keyword(term, market)]
            else:
                keywords = self._store.select_keywords_by_term(term) or [
                    self._store.ensure_keyword(term, self._default_market)
                ]
        except SQLAlchemyError as exc:
            LOGGER.warning("upsert.keyword_lookup_failed term=%s error=%s", term, exc)
            summary.failures += 1
            summary.errors.append(f"keywords {term!r}: {exc.__class__.__name__}")
            return summary

        section = TrendSection(
            momentum=blended.momentum,
            expected_growth_30d=blended.expected_growth,
            direction=blended.direction,
            contributors=list(blended.contributors),
            latest=blended.latest.isoformat() if blended.latest else None,
            updated_at=timestamp.isoformat(),
        )
        scalars = {"trend_momentum": blended.momentum, "freshness_ts": timestamp}
        for keyword in keywords:
            if self.is_current(keyword, section, scalars):
                summary.skipped += 1
            elif self.apply_section(keyword, section, scalars):
                summary.written += 1
            else:
                summary.failures += 1
                summary.errors.append(f"keywords {keyword.id}: trend update failed")
        return summary


__all__ = [
    "DEFAULT_MARKET",
    "SOCIAL_DAILY_KEY",
    "STAT_KEY",
    "TREND_SERIES_KEY",
    "UpsertCoordinator",
    "WriteSummary",
]
