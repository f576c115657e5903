"""Momentum blending and social rollups over normalised source rows."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable, Mapping, Sequence

from kwtrend.db.store import normalize_term
from kwtrend.features.normalize import normalize_metric, normalize_number
from kwtrend.sources.base import SourceRow

LOGGER = logging.getLogger(__name__)

UP_THRESHOLD = 0.6
DOWN_THRESHOLD = 0.4
MAX_SERIES_POINTS = 30

PLATFORM_WEIGHTS: dict[str, float] = {
    "reddit": 0.35,
    "twitter": 0.20,
    "pinterest": 0.40,
    "tiktok": 0.05,
}
UNKNOWN_PLATFORM_WEIGHT = 0.1


def blend(current: float, observed: float) -> float:
    """Running average of the blended value and a new observation."""

    return round((current + observed) / 2, 4)


def trend_indicator(momentum: float | None) -> str:
    if momentum is None:
        return "unknown"
    value = normalize_number(momentum)
    if value is None:
        return "unknown"
    if value > UP_THRESHOLD:
        return "up"
    if value < DOWN_THRESHOLD:
        return "down"
    return "flat"


@dataclass(slots=True)
class TrendObservation:
    term: str
    source: str
    recorded_on: date
    velocity: float
    expected_growth: float

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "TrendObservation":
        return cls(
            term=str(record["term"]),
            source=str(record["source"]),
            recorded_on=record["recorded_on"],
            velocity=normalize_number(record.get("velocity")) or 0.0,
            expected_growth=normalize_number(record.get("expected_growth_30d")) or 0.0,
        )


@dataclass(slots=True)
class BlendedTrend:
    """Per-term blend state after folding every observation."""

    term: str
    momentum: float
    expected_growth: float
    contributors: list[str] = field(default_factory=list)
    latest: date | None = None
    series: list[dict[str, Any]] = field(default_factory=list)

    @property
    def direction(self) -> str:
        return trend_indicator(self.momentum)

    def apply(self, observation: TrendObservation) -> None:
        self.momentum = blend(self.momentum, observation.velocity)
        self.expected_growth = blend(self.expected_growth, observation.expected_growth)
        self._track(observation)

    def _track(self, observation: TrendObservation) -> None:
        if observation.source not in self.contributors:
            self.contributors.append(observation.source)
        if self.latest is None or observation.recorded_on > self.latest:
            self.latest = observation.recorded_on
        self.series.append(
            {
                "source": observation.source,
                "recorded_on": observation.recorded_on.isoformat(),
                "velocity": observation.velocity,
            }
        )
        if len(self.series) > MAX_SERIES_POINTS:
            del self.series[0]


class TrendBlender:
    """Fold trend observations into one blended figure per term.

    Observations for a term are applied in ``(recorded_on, source)`` order so
    the running average is reproducible whatever order the sources returned
    them in.  ``seed`` maps a normalised term to an existing momentum that
    acts as the starting value instead of the first observation.
    """

    def __init__(self, seed: Mapping[str, float] | None = None) -> None:
        self._seed = {normalize_term(term): float(value) for term, value in (seed or {}).items()}

    def fold(self, observations: Iterable[TrendObservation | Mapping[str, Any]]) -> dict[str, BlendedTrend]:
        grouped: dict[str, list[TrendObservation]] = {}
        for item in observations:
            observation = item if isinstance(item, TrendObservation) else TrendObservation.from_record(item)
            grouped.setdefault(normalize_term(observation.term), []).append(observation)

        blended: dict[str, BlendedTrend] = {}
        for term, items in grouped.items():
            items.sort(key=lambda obs: (obs.recorded_on, obs.source))
            state: BlendedTrend | None = None
            if term in self._seed:
                state = BlendedTrend(term=term, momentum=self._seed[term], expected_growth=0.0)
            for observation in items:
                if state is None:
                    state = BlendedTrend(
                        term=term,
                        momentum=round(observation.velocity, 4),
                        expected_growth=round(observation.expected_growth, 4),
                    )
                    state._track(observation)
                else:
                    state.apply(observation)
            if state is not None:
                blended[term] = state
        LOGGER.debug("trend_blender.fold terms=%s", len(blended))
        return blended


def build_trend_records(rows: Sequence[SourceRow], recorded_on: date | None = None) -> list[dict[str, Any]]:
    """Turn trend-feed rows into ``trend_series`` records."""

    records: list[dict[str, Any]] = []
    for row in rows:
        score = normalize_number(row.values.get("normalized_score"))
        change = normalize_number(row.values.get("change")) or 0.0
        records.append(
            {
                "term": normalize_term(row.term),
                "source": row.source,
                "recorded_on": recorded_on or row.recorded_on,
                "trend_score": normalize_metric(score, 0),
                "velocity": round(change, 4),
                "expected_growth_30d": round(change * (score or 0.0), 4),
                "extras": dict(row.metadata),
            }
        )
    return records


@dataclass(slots=True)
class SocialAggregate:
    keyword_id: str
    total_mentions: int
    weighted_engagement: float
    avg_sentiment: float
    platforms: list[str]
    dominant_platform: str
    platform_breakdown: dict[str, dict[str, float]] = field(default_factory=dict)

    @property
    def platform_count(self) -> int:
        return len(self.platforms)


def aggregate_social(
    rows: Iterable[SourceRow],
    weights: Mapping[str, float] | None = None,
) -> dict[str, SocialAggregate]:
    """Roll per-platform snapshots up to one aggregate per keyword.

    The latest snapshot per platform wins.  Engagement is weighted by
    platform, sentiment is averaged over platforms with a non-zero reading
    and the dominant platform is the one with the highest raw engagement
    (empty when every platform reports zero).
    """

    weights = PLATFORM_WEIGHTS if weights is None else weights
    by_keyword: dict[str, dict[str, dict[str, float]]] = {}
    for row in sorted(rows, key=lambda item: item.recorded_on):
        if not row.keyword_id:
            continue
        platforms = by_keyword.setdefault(row.keyword_id, {})
        platforms[row.source.lower()] = {
            "mentions": row.value("mentions"),
            "engagement": row.value("engagement"),
            "sentiment": row.value("sentiment"),
        }

    aggregates: dict[str, SocialAggregate] = {}
    for keyword_id, breakdown in by_keyword.items():
        total_mentions = int(sum(data["mentions"] for data in breakdown.values()))
        weighted = sum(
            data["engagement"] * weights.get(platform, UNKNOWN_PLATFORM_WEIGHT)
            for platform, data in breakdown.items()
        )
        sentiments = [data["sentiment"] for data in breakdown.values() if data["sentiment"] != 0]
        avg_sentiment = sum(sentiments) / len(sentiments) if sentiments else 0.0
        dominant = ""
        max_engagement = 0.0
        for platform, data in breakdown.items():
            if data["engagement"] > max_engagement:
                max_engagement = data["engagement"]
                dominant = platform
        aggregates[keyword_id] = SocialAggregate(
            keyword_id=keyword_id,
            total_mentions=total_mentions,
            weighted_engagement=round(weighted, 2) if math.isfinite(weighted) else 0.0,
            avg_sentiment=round(avg_sentiment, 2),
            platforms=list(breakdown),
            dominant_platform=dominant,
            platform_breakdown=breakdown,
        )
    return aggregates


__all__ = [
    "BlendedTrend",
    "DOWN_THRESHOLD",
    "PLATFORM_WEIGHTS",
    "SocialAggregate",
    "TrendBlender",
    "TrendObservation",
    "UP_THRESHOLD",
    "aggregate_social",
    "blend",
    "build_trend_records",
    "trend_indicator",
]
