"""Shared shapes and the per-source collection loop."""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Protocol, Sequence

LOGGER = logging.getLogger(__name__)


class SourceFetchError(RuntimeError):
    """Raised when a single source cannot produce rows for the window."""


@dataclass(frozen=True)
class SourceWindow:
    """Bounds of the aggregation window handed to every source."""

    start: datetime
    end: datetime

    @property
    def recorded_on(self) -> date:
        return self.end.date()


@dataclass(slots=True)
class SourceRow:
    """One normalised observation emitted by a source."""

    term: str
    source: str
    recorded_on: date
    values: dict[str, float | None] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)
    keyword_id: str | None = None

    def value(self, name: str, default: float = 0.0) -> float:
        raw = self.values.get(name)
        return default if raw is None else float(raw)


class TrendSource(Protocol):
    name: str

    def fetch(self, window: SourceWindow) -> list[SourceRow]:
        ...


@dataclass(slots=True)
class SourceFailure:
    source: str
    error: str

    def to_dict(self) -> dict[str, str]:
        return {"source": self.source, "error": self.error}


@dataclass(slots=True)
class AggregationResult:
    """Rows per source plus the sources that failed."""

    rows_by_source: dict[str, list[SourceRow]] = field(default_factory=dict)
    failures: list[SourceFailure] = field(default_factory=list)

    @property
    def rows(self) -> list[SourceRow]:
        combined: list[SourceRow] = []
        for rows in self.rows_by_source.values():
            combined.extend(rows)
        return combined

    @property
    def succeeded_sources(self) -> list[str]:
        return list(self.rows_by_source)


def _fetch_one(source: TrendSource, window: SourceWindow) -> list[SourceRow] | SourceFailure:
    try:
        rows = source.fetch(window)
    except Exception as exc:
        LOGGER.warning(
            "source_aggregator.source_failed source=%s error=%s",
            source.name,
            exc,
            extra={"source": source.name, "error": str(exc)},
        )
        return SourceFailure(source=source.name, error=str(exc) or exc.__class__.__name__)
    LOGGER.info(
        "source_aggregator.source_complete source=%s rows=%s",
        source.name,
        len(rows),
        extra={"source": source.name, "rows": len(rows)},
    )
    return list(rows)


def collect_sources(
    sources: Sequence[TrendSource],
    window: SourceWindow,
    *,
    max_workers: int = 1,
) -> AggregationResult:
    """Fetch every source independently; a failing source is recorded, not raised.

    With ``max_workers > 1`` sources run on a thread pool.  Results are
    assembled in declaration order either way.
    """

    result = AggregationResult()
    if not sources:
        return result

    fetch: Callable[[TrendSource], list[SourceRow] | SourceFailure] = lambda item: _fetch_one(item, window)
    if max_workers > 1 and len(sources) > 1:
        with ThreadPoolExecutor(max_workers=min(max_workers, len(sources))) as pool:
            outcomes = list(pool.map(fetch, sources))
    else:
        outcomes = [fetch(source) for source in sources]

    for source, outcome in zip(sources, outcomes):
        if isinstance(outcome, SourceFailure):
            result.failures.append(outcome)
        else:
            result.rows_by_source[source.name] = outcome
    return result


__all__ = [
    "AggregationResult",
    "SourceFailure",
    "SourceFetchError",
    "SourceRow",
    "SourceWindow",
    "TrendSource",
    "collect_sources",
]
