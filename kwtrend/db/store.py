"""Keyword store: the data-store contract shared by every aggregation job.

All reads and writes the pipeline performs go through :class:`KeywordStore`,
which wraps a SQLAlchemy engine and issues parameterised Core statements
against the tables declared in :mod:`kwtrend.db.schema`.  Callers never see
SQL; they receive plain mappings, dataclasses or data frames.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Mapping, Sequence

import pandas as pd
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.engine import Engine

from kwtrend.db import schema
from kwtrend.db.io import UpsertCounts, upsert_rows, utcnow

LOGGER = logging.getLogger(__name__)

_KEY_COLUMNS = {
    "keyword_stats": ("keyword_id", "source", "recorded_on"),
    "trend_series": ("term", "source", "recorded_on"),
    "keyword_metrics_daily": ("keyword_id", "source", "collected_on"),
}


def normalize_term(term: str) -> str:
    """Lowercase ``term`` and collapse internal whitespace."""

    return " ".join(str(term).lower().split())


@dataclass(slots=True)
class KeywordRecord:
    """Subset of the golden-source keyword row used by the jobs."""

    id: str
    term: str
    term_normalized: str
    market: str
    extras: dict[str, Any] = field(default_factory=dict)
    trend_momentum: float | None = None


@dataclass(slots=True)
class SeasonalPeriod:
    """Named recurring calendar window used as contextual input."""

    name: str
    start_date: date
    end_date: date
    weight: float
    country_code: str | None
    tags: tuple[str, ...] = ()


def _to_keyword(row: Mapping[str, Any]) -> KeywordRecord:
    extras = row.get("extras")
    return KeywordRecord(
        id=str(row["id"]),
        term=row["term"],
        term_normalized=row["term_normalized"],
        market=row["market"],
        extras=dict(extras) if isinstance(extras, Mapping) else {},
        trend_momentum=row.get("trend_momentum"),
    )


_KEYWORD_COLUMNS = (
    schema.keywords.c.id,
    schema.keywords.c.term,
    schema.keywords.c.term_normalized,
    schema.keywords.c.market,
    schema.keywords.c.extras,
    schema.keywords.c.trend_momentum,
)


class KeywordStore:
    """Storage operations consumed by the aggregation core."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    @property
    def engine(self) -> Engine:
        return self._engine

    # -- stat / series records -------------------------------------------------

    def select_existing_keys(self, table: str, window_start: date) -> set[tuple[str, str, date]]:
        """Return ``(entity, source, day)`` keys already persisted since ``window_start``."""

        try:
            entity_name, source_name, day_name = _KEY_COLUMNS[table]
        except KeyError as exc:
            raise ValueError(f"Table {table!r} has no natural stat key") from exc
        table_obj = schema.METADATA.tables[table]
        stmt = select(
            table_obj.c[entity_name],
            table_obj.c[source_name],
            table_obj.c[day_name],
        ).where(table_obj.c[day_name] >= window_start)
        with self._engine.connect() as conn:
            rows = conn.execute(stmt).all()
        return {(str(row[0]), str(row[1]), row[2]) for row in rows}

    def upsert(
        self,
        table: str,
        rows: Sequence[Mapping[str, object]],
        conflict_keys: Sequence[str],
        *,
        update_columns: Sequence[str] | None = None,
        chunk_size: int = 500,
    ) -> UpsertCounts:
        """Insert ``rows`` or resolve conflicts on ``conflict_keys``."""

        return upsert_rows(
            self._engine,
            schema.METADATA.tables[table],
            rows,
            conflict_keys,
            update_columns=update_columns,
            chunk_size=chunk_size,
        )

    # -- keywords -------------------------------------------------------------

    def select_keyword(self, term: str, market: str) -> KeywordRecord | None:
        stmt = select(*_KEYWORD_COLUMNS).where(
            schema.keywords.c.term_normalized == normalize_term(term),
            schema.keywords.c.market == market.lower(),
        )
        with self._engine.connect() as conn:
            row = conn.execute(stmt).mappings().first()
        return _to_keyword(row) if row else None

    def select_keywords_by_term(self, term: str) -> list[KeywordRecord]:
        """Return every market's keyword row sharing ``term``."""

        stmt = (
            select(*_KEYWORD_COLUMNS)
            .where(schema.keywords.c.term_normalized == normalize_term(term))
            .order_by(schema.keywords.c.market)
        )
        with self._engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [_to_keyword(row) for row in rows]

    def select_keywords_by_ids(self, keyword_ids: Sequence[str]) -> dict[str, KeywordRecord]:
        if not keyword_ids:
            return {}
        stmt = select(*_KEYWORD_COLUMNS).where(schema.keywords.c.id.in_(list(keyword_ids)))
        with self._engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
        return {str(row["id"]): _to_keyword(row) for row in rows}

    def select_recent_keywords(self, limit: int) -> list[KeywordRecord]:
        stmt = (
            select(*_KEYWORD_COLUMNS)
            .order_by(schema.keywords.c.updated_at.desc(), schema.keywords.c.term_normalized)
            .limit(limit)
        )
        with self._engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [_to_keyword(row) for row in rows]

    def select_unclassified_keywords(self, limit: int) -> list[KeywordRecord]:
        """Return up to ``limit`` keywords whose ``extras.classification`` is absent or null."""

        classification = schema.keywords.c.extras["classification"].as_string()
        stmt = (
            select(*_KEYWORD_COLUMNS)
            .where(classification.is_(None))
            .order_by(schema.keywords.c.updated_at.desc(), schema.keywords.c.term_normalized)
            .limit(limit)
        )
        with self._engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [_to_keyword(row) for row in rows]

    def ensure_keyword(self, term: str, market: str, *, source: str = "pipeline") -> KeywordRecord:
        """Return the keyword for ``(term, market)``, creating it on first observation."""

        market = market.lower()
        payload = {
            "id": str(uuid.uuid4()),
            "term": " ".join(str(term).split()),
            "term_normalized": normalize_term(term),
            "market": market,
            "source": source,
            "extras": {},
        }
        upsert_rows(
            self._engine,
            schema.keywords,
            [payload],
            ("term_normalized", "market"),
            update_columns=(),
        )
        record = self.select_keyword(term, market)
        if record is None:  # pragma: no cover - insert-or-skip guarantees a row
            raise LookupError(f"Keyword {term!r}/{market!r} missing after insert")
        return record

    def update_keyword_extras(
        self,
        keyword_id: str,
        merged_extras: Mapping[str, Any],
        derived_fields: Mapping[str, Any] | None = None,
    ) -> bool:
        """Write back merged ``extras`` plus any derived scalar columns."""

        values: dict[str, Any] = {"extras": dict(merged_extras), "updated_at": utcnow()}
        if derived_fields:
            values.update(derived_fields)
        stmt = update(schema.keywords).where(schema.keywords.c.id == keyword_id).values(**values)
        with self._engine.begin() as conn:
            result = conn.execute(stmt)
        return bool(result.rowcount)

    # -- job runs ---------------------------------------------------------------

    def insert_job_run(self, job_name: str, *, started_at: datetime | None = None) -> str:
        run_id = str(uuid.uuid4())
        stmt = schema.job_runs.insert().values(
            id=run_id,
            job_name=job_name,
            status="running",
            started_at=started_at or utcnow(),
            metadata={},
        )
        with self._engine.begin() as conn:
            conn.execute(stmt)
        return run_id

    def finalize_job_run(
        self,
        run_id: str,
        status: str,
        metadata: Mapping[str, Any],
        *,
        records_processed: int | None = None,
        error_message: str | None = None,
        finished_at: datetime | None = None,
    ) -> bool:
        """Move a ``running`` job run to ``status``; returns ``False`` if it was already terminal."""

        stmt = (
            update(schema.job_runs)
            .where(schema.job_runs.c.id == run_id, schema.job_runs.c.status == "running")
            .values(
                status=status,
                finished_at=finished_at or utcnow(),
                records_processed=records_processed,
                error_message=error_message,
                metadata=dict(metadata),
            )
        )
        with self._engine.begin() as conn:
            result = conn.execute(stmt)
        return bool(result.rowcount)

    def select_job_run(self, run_id: str) -> dict[str, Any] | None:
        stmt = select(schema.job_runs).where(schema.job_runs.c.id == run_id)
        with self._engine.connect() as conn:
            row = conn.execute(stmt).mappings().first()
        return dict(row) if row else None

    def select_stale_runs(self, started_before: datetime) -> list[dict[str, Any]]:
        stmt = (
            select(schema.job_runs.c.id, schema.job_runs.c.job_name, schema.job_runs.c.started_at)
            .where(schema.job_runs.c.status == "running", schema.job_runs.c.started_at < started_before)
            .order_by(schema.job_runs.c.started_at)
        )
        with self._engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [dict(row) for row in rows]

    # -- gates and inputs -------------------------------------------------------

    def read_feature_flag(self, key: str) -> bool:
        """Return ``True`` only when the flag row exists and is enabled."""

        stmt = select(schema.feature_flags.c.is_enabled).where(schema.feature_flags.c.key == key)
        with self._engine.connect() as conn:
            value = conn.execute(stmt).scalar()
        return bool(value)

    def fetch_keyword_events(self, window_start: datetime, window_end: datetime) -> pd.DataFrame:
        """Return raw telemetry events inside ``[window_start, window_end)``."""

        table = schema.keyword_events
        stmt = select(table.c.keyword_id, table.c.event_type, table.c.occurred_at, table.c.payload).where(
            table.c.occurred_at >= window_start,
            table.c.occurred_at < window_end,
        )
        with self._engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
        columns = ["keyword_id", "event_type", "occurred_at", "payload"]
        if not rows:
            return pd.DataFrame(columns=columns)
        return pd.DataFrame([dict(row) for row in rows], columns=columns)

    def fetch_platform_trends(self, since: datetime) -> list[dict[str, Any]]:
        table = schema.social_platform_trends
        stmt = (
            select(
                table.c.keyword_id,
                table.c.platform,
                table.c.collected_at,
                table.c.mention_count,
                table.c.engagement_score,
                table.c.sentiment,
                table.c.velocity,
                table.c["metadata"],
            )
            .where(table.c.collected_at >= since, table.c.keyword_id.is_not(None))
            .order_by(table.c.collected_at)
        )
        with self._engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [dict(row) for row in rows]

    def fetch_seasonal_periods(self, as_of: date, country_code: str = "global") -> list[SeasonalPeriod]:
        """Return periods active on ``as_of`` for ``country_code`` (global rows included)."""

        table = schema.seasonal_periods
        stmt = (
            select(table)
            .where(
                and_(table.c.start_date <= as_of, table.c.end_date >= as_of),
                or_(
                    table.c.country_code == country_code,
                    table.c.country_code.is_(None),
                    table.c.country_code == "global",
                ),
            )
            .order_by(table.c.weight.desc(), table.c.name)
        )
        with self._engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [
            SeasonalPeriod(
                name=row["name"],
                start_date=row["start_date"],
                end_date=row["end_date"],
                weight=float(row["weight"]),
                country_code=row["country_code"],
                tags=tuple(str(tag) for tag in (row["tags"] or [])),
            )
            for row in rows
        ]

    def count_rows(self, table: str) -> int:
        table_obj = schema.METADATA.tables[table]
        with self._engine.connect() as conn:
            return int(conn.execute(select(func.count()).select_from(table_obj)).scalar() or 0)


__all__ = ["KeywordRecord", "KeywordStore", "SeasonalPeriod", "normalize_term"]
