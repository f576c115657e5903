from __future__ import annotations

from datetime import date

import pytest

from kwtrend.features.momentum import (
    TrendBlender,
    TrendObservation,
    aggregate_social,
    blend,
    build_trend_records,
    trend_indicator,
)
from kwtrend.sources.base import SourceRow


def _obs(source: str, day: int, velocity: float, growth: float = 0.0, term: str = "eco candles") -> TrendObservation:
    return TrendObservation(term=term, source=source, recorded_on=date(2024, 1, day), velocity=velocity, expected_growth=growth)


@pytest.mark.parametrize(
    ("momentum", "expected"),
    ((0.7, "up"), (0.3, "down"), (0.5, "flat"), (0.6, "flat"), (0.4, "flat"), (None, "unknown"), (float("nan"), "unknown")),
)
def test_trend_indicator_thresholds(momentum, expected) -> None:
    assert trend_indicator(momentum) == expected


def test_blend_running_average() -> None:
    first = blend(0.4, 0.8)
    assert first == pytest.approx(0.6)
    assert blend(first, 0.2) == pytest.approx(0.4)
    assert blend(0.1, 0.1234) == 0.1117


def test_fold_from_seed_matches_running_average() -> None:
    blended = TrendBlender(seed={"Eco  Candles": 0.4}).fold([_obs("reddit", 2, 0.2), _obs("google_trends", 1, 0.8)])

    trend = blended["eco candles"]
    assert trend.momentum == pytest.approx(0.4)
    assert trend.contributors == ["google_trends", "reddit"]
    assert trend.latest == date(2024, 1, 2)


def test_fold_is_independent_of_input_order() -> None:
    observations = [
        _obs("reddit", 1, 0.25, 0.1),
        _obs("google_trends", 1, 0.18, 0.2),
        _obs("pinterest", 2, 0.22, 0.3),
    ]

    forward = TrendBlender().fold(observations)["eco candles"]
    backward = TrendBlender().fold(list(reversed(observations)))["eco candles"]

    assert forward.momentum == backward.momentum
    assert forward.expected_growth == backward.expected_growth
    # google_trends seeds, then reddit, then pinterest
    assert forward.momentum == blend(blend(0.18, 0.25), 0.22)
    assert forward.contributors == ["google_trends", "reddit", "pinterest"]


def test_fold_keeps_bounded_series() -> None:
    observations = [_obs("reddit", 1 + index % 28, 0.1) for index in range(40)]

    trend = TrendBlender().fold(observations)["eco candles"]

    assert len(trend.series) == 30
    assert trend.contributors == ["reddit"]


def test_build_trend_records_maps_signal_fields() -> None:
    row = SourceRow(
        term="Handmade  Jewelry",
        source="google_trends",
        recorded_on=date(2024, 1, 2),
        values={"score": 82, "normalized_score": 0.82, "change": 0.18},
        metadata={"region": "US"},
    )

    (record,) = build_trend_records([row])

    assert record == {
        "term": "handmade jewelry",
        "source": "google_trends",
        "recorded_on": date(2024, 1, 2),
        "trend_score": 82,
        "velocity": 0.18,
        "expected_growth_30d": round(0.18 * 0.82, 4),
        "extras": {"region": "US"},
    }


def test_aggregate_social_weights_platforms() -> None:
    day = date(2024, 1, 2)
    rows = [
        SourceRow("eco candles", "reddit", day, {"mentions": 10, "engagement": 100, "sentiment": 0.5}, keyword_id="k1"),
        SourceRow("eco candles", "pinterest", day, {"mentions": 5, "engagement": 50, "sentiment": 0}, keyword_id="k1"),
        SourceRow("eco candles", "mastodon", day, {"mentions": 1, "engagement": 10, "sentiment": -0.1}, keyword_id="k1"),
        SourceRow("orphan", "reddit", day, {"mentions": 1}, keyword_id=None),
    ]

    aggregates = aggregate_social(rows)

    assert list(aggregates) == ["k1"]
    result = aggregates["k1"]
    assert result.total_mentions == 16
    assert result.weighted_engagement == pytest.approx(100 * 0.35 + 50 * 0.40 + 10 * 0.1)
    assert result.avg_sentiment == pytest.approx(0.2)
    assert result.platform_count == 3
    assert result.dominant_platform == "reddit"
