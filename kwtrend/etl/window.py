"""Telemetry window bounds and existing-record filtering."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Iterable, Mapping, Sequence

KEYWORD_TELEMETRY_LOOKBACK_DAYS: tuple[int, ...] = (1, 7, 30)

STAT_METRIC_FIELDS = (
    "search_volume",
    "impressions",
    "clicks",
    "ctr",
    "conversion_rate",
    "cost_cents",
    "rank",
)


def _as_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


@dataclass(frozen=True)
class StatKey:
    """Identity of a persisted stat record: ``(entity, source, day)``."""

    entity_id: str
    source: str
    recorded_on: date

    @classmethod
    def of(cls, entity_id: Any, source: Any, recorded_on: Any) -> "StatKey":
        return cls(str(entity_id), str(source).lower(), _as_date(recorded_on))

    @classmethod
    def from_row(cls, row: Mapping[str, Any], entity_field: str = "keyword_id") -> "StatKey":
        return cls.of(row[entity_field], row["source"], row["recorded_on"])


def get_window_start(
    now: datetime | None = None,
    lookback_days: int | Sequence[int] = KEYWORD_TELEMETRY_LOOKBACK_DAYS,
) -> str:
    """Return the ISO timestamp of UTC midnight ``max(lookback_days)`` days before ``now``."""

    if isinstance(lookback_days, int):
        windows = [lookback_days]
    else:
        windows = list(lookback_days)
    if not windows:
        raise ValueError("lookback_days must include at least one window length")
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    current = current.astimezone(timezone.utc)
    start = datetime.combine(current.date(), time.min, tzinfo=timezone.utc) - timedelta(days=max(windows))
    return start.isoformat()


def window_start_date(window_start: str) -> date:
    return _as_date(window_start)


def _defined_metric_count(row: Mapping[str, Any]) -> int:
    return sum(1 for name in STAT_METRIC_FIELDS if row.get(name) is not None)


def _event_count(row: Mapping[str, Any]) -> float:
    metadata = row.get("metadata")
    if not isinstance(metadata, Mapping):
        return 0
    value = metadata.get("eventCount")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return value if value == value else 0


def filter_existing(
    candidates: Iterable[Mapping[str, Any]],
    existing_keys: Iterable[StatKey | tuple[Any, Any, Any]],
    *,
    entity_field: str = "keyword_id",
) -> list[Mapping[str, Any]]:
    """Return candidates whose key is not yet persisted.

    Candidates that share a key inside the batch collapse to a single row:
    the one with more defined metrics wins, ties go to the larger
    ``metadata.eventCount`` and then to the later candidate.
    """

    rows = list(candidates)
    if not rows:
        return []
    persisted = {key if isinstance(key, StatKey) else StatKey.of(*key) for key in existing_keys}
    kept: dict[StatKey, Mapping[str, Any]] = {}
    for row in rows:
        key = StatKey.from_row(row, entity_field)
        if key in persisted:
            continue
        previous = kept.get(key)
        if previous is None:
            kept[key] = row
            continue
        previous_score = _defined_metric_count(previous)
        candidate_score = _defined_metric_count(row)
        if candidate_score > previous_score:
            kept[key] = row
        elif candidate_score == previous_score and _event_count(row) >= _event_count(previous):
            kept[key] = row
    return list(kept.values())


__all__ = [
    "KEYWORD_TELEMETRY_LOOKBACK_DAYS",
    "STAT_METRIC_FIELDS",
    "StatKey",
    "filter_existing",
    "get_window_start",
    "window_start_date",
]
