"""Read/write helpers for PostgreSQL (and SQLite in tests) using SQLAlchemy."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from itertools import islice
from typing import Iterable, Mapping, Sequence

import pandas as pd
from sqlalchemy import Table
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine


logger = logging.getLogger(__name__)

_INSERT_CONSTRUCTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class WriteError(RuntimeError):
    """Raised when a store write cannot be expressed or executed."""


def _normalise_value(value: object) -> object:
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, float) and math.isnan(value):
        return None
    if value is pd.NaT:
        return None
    return value


def _normalise_records(records: Iterable[Mapping[str, object]]) -> list[dict[str, object]]:
    """Convert pandas friendly structures (``Timestamp``, ``NaN``) to Python types."""

    return [{key: _normalise_value(value) for key, value in row.items()} for row in records]


def _chunks(seq: Sequence[Mapping[str, object]], size: int) -> Iterable[list[Mapping[str, object]]]:
    """Yield ``size`` sized chunks from ``seq``."""

    it = iter(seq)
    while True:
        batch = list(islice(it, size))
        if not batch:
            break
        yield batch


def build_upsert(
    engine: Engine,
    table: Table,
    conflict_keys: Sequence[str],
    *,
    update_columns: Sequence[str] | None = None,
):
    """Return an ``INSERT .. ON CONFLICT`` statement for ``table``.

    ``update_columns=None`` updates every non-key column on conflict; an empty
    sequence turns the statement into insert-or-skip.
    """

    dialect = engine.dialect.name
    insert_factory = _INSERT_CONSTRUCTS.get(dialect)
    if insert_factory is None:
        raise WriteError(f"Upserts are not supported for dialect {dialect!r}")

    stmt = insert_factory(table)
    if update_columns is None:
        excluded_names = set(conflict_keys)
        update_columns = [
            column.name
            for column in table.columns
            if not column.primary_key and column.name not in excluded_names and column.name != "created_at"
        ]
    if not update_columns:
        return stmt.on_conflict_do_nothing(index_elements=list(conflict_keys))
    return stmt.on_conflict_do_update(
        index_elements=list(conflict_keys),
        set_={name: stmt.excluded[name] for name in update_columns},
    )


@dataclass(slots=True)
class UpsertCounts:
    """Rows the store reported as written versus rows it left untouched."""

    written: int = 0
    skipped: int = 0


def upsert_rows(
    engine: Engine,
    table: Table,
    rows: Sequence[Mapping[str, object]],
    conflict_keys: Sequence[str],
    *,
    update_columns: Sequence[str] | None = None,
    chunk_size: int = 500,
) -> UpsertCounts:
    """Write ``rows`` into ``table`` converging on ``conflict_keys``.

    Each chunk is executed in its own transaction; the first failing chunk
    raises and earlier chunks stay committed.  Written rows are counted from
    ``RETURNING`` so keys dropped by ``ON CONFLICT DO NOTHING`` come back as
    skipped.
    """

    counts = UpsertCounts()
    if not rows:
        return counts

    records = _normalise_records(rows)
    stmt = build_upsert(engine, table, conflict_keys, update_columns=update_columns).returning(
        *(table.c[name] for name in conflict_keys)
    )
    mode = "skip" if update_columns is not None and not update_columns else "update"
    for chunk in _chunks(records, chunk_size):
        with engine.begin() as conn:
            written = len(conn.execute(stmt, chunk).all())
        counts.written += written
        counts.skipped += len(chunk) - written
    logger.info(
        "upsert_rows table=%s written=%s skipped=%s mode=%s",
        table.name,
        counts.written,
        counts.skipped,
        mode,
        extra={
            "table": table.name,
            "written": counts.written,
            "skipped": counts.skipped,
            "mode": mode,
            "dialect": engine.dialect.name,
        },
    )
    return counts


def utcnow() -> datetime:
    """Timezone aware ``now`` used for audit columns."""

    return datetime.now(timezone.utc)


__all__ = ["UpsertCounts", "WriteError", "build_upsert", "upsert_rows", "utcnow"]
