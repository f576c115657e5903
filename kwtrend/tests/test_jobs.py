from __future__ import annotations

from datetime import date, timedelta

import pytest
from sqlalchemy import select

from kwtrend.db import schema
from kwtrend.etl.intent_classification import IntentClassificationJob
from kwtrend.etl.seasonal_tagging import SeasonalTaggingJob
from kwtrend.etl.social_metrics import SOCIAL_AGGREGATE_SOURCE, SocialMetricsJob
from kwtrend.etl.trend_aggregation import TrendAggregationJob
from kwtrend.jobs.ledger import JobRunner, JobStatus
from kwtrend.llm.deepseek_client import DeepSeekError
from kwtrend.llm.intent_classifier import IntentClassifier, infer_from_term
from kwtrend.sources.base import SourceFetchError, SourceRow
from kwtrend.tests.data import (
    NOW,
    insert_keyword,
    insert_period,
    insert_platform_trends,
    platform_snapshot,
)


class _FeedSource:
    def __init__(self, name: str, signals: list[tuple[str, float, float]] | None = None, *, fail: bool = False) -> None:
        self.name = name
        self._signals = signals or []
        self._fail = fail

    def fetch(self, window):
        if self._fail:
            raise SourceFetchError(f"{self.name} unavailable")
        return [
            SourceRow(
                term=term,
                source=self.name,
                recorded_on=window.recorded_on,
                values={"score": score * 100, "normalized_score": score, "change": change},
            )
            for term, score, change in self._signals
        ]


def test_trend_aggregation_tolerates_one_failing_source(store, engine) -> None:
    insert_keyword(engine, "k1", "eco candles", extras={"classification": {"intent": "purchase"}})
    sources = [
        _FeedSource("google_trends", [("eco candles", 0.64, 0.8)]),
        _FeedSource("pinterest", fail=True),
        _FeedSource("reddit", [("eco candles", 0.7, 0.4), ("cottagecore dress", 0.9, 0.25)]),
    ]

    outcome = JobRunner(store).run(TrendAggregationJob(sources), now=NOW)
    summary = outcome.to_summary()

    assert outcome.status is JobStatus.SUCCEEDED
    assert summary["status"] == "partial"
    assert summary["failures"] == [{"source": "pinterest", "error": "pinterest unavailable"}]
    assert summary["processed"] == 3
    assert summary["sources"] == ["google_trends", "reddit"]
    assert store.count_rows("trend_series") == 3

    keyword = store.select_keyword("eco candles", "us")
    assert keyword.extras["classification"] == {"intent": "purchase"}
    assert keyword.extras["trend"]["momentum"] == pytest.approx(0.6)
    assert keyword.extras["trend"]["contributors"] == ["google_trends", "reddit"]
    assert keyword.trend_momentum == pytest.approx(0.6)
    assert store.select_keyword("cottagecore dress", "us") is not None


def test_trend_aggregation_rerun_converges(store) -> None:
    sources = [_FeedSource("reddit", [("eco candles", 0.7, 0.4)])]
    runner = JobRunner(store)

    runner.run(TrendAggregationJob(sources), now=NOW)
    runner.run(TrendAggregationJob(sources), now=NOW)

    assert store.count_rows("trend_series") == 1
    assert store.count_rows("keywords") == 1
    assert store.select_keyword("eco candles", "us").trend_momentum == pytest.approx(0.4)


def test_trend_aggregation_without_signals(store) -> None:
    outcome = JobRunner(store).run(TrendAggregationJob([_FeedSource("reddit")]), now=NOW)

    assert outcome.to_summary()["status"] == "succeeded"
    assert outcome.processed == 0
    assert outcome.metadata["message"] == "No trend signals available."


def test_social_metrics_updates_extras_and_daily_rows(store, engine) -> None:
    insert_keyword(engine, "k1", "eco candles", extras={"trend": {"momentum": 0.5}})
    insert_platform_trends(
        engine,
        [
            platform_snapshot("k1", "reddit", mentions=10, engagement=100, sentiment=0.5),
            platform_snapshot("k1", "pinterest", mentions=4, engagement=200, sentiment=0.0),
            platform_snapshot(
                "k1",
                "tiktok",
                mentions=99,
                engagement=999,
                sentiment=0.9,
                collected_at=NOW - timedelta(hours=48),
            ),
        ],
    )
    runner = JobRunner(store)

    outcome = runner.run(SocialMetricsJob(), now=NOW)
    runner.run(SocialMetricsJob(), now=NOW)

    assert outcome.processed == 1
    assert outcome.metadata["keywordsUpdated"] == 1
    keyword = store.select_keyword("eco candles", "us")
    social = keyword.extras["social"]
    assert keyword.extras["trend"] == {"momentum": 0.5}
    assert social["total_mentions"] == 14
    assert social["weighted_engagement"] == pytest.approx(100 * 0.35 + 200 * 0.40)
    assert social["dominant_platform"] == "pinterest"
    assert social["avg_sentiment"] == pytest.approx(0.5)

    assert store.count_rows("keyword_metrics_daily") == 1
    with engine.connect() as conn:
        daily = conn.execute(select(schema.keyword_metrics_daily)).mappings().one()
    assert daily["source"] == SOCIAL_AGGREGATE_SOURCE
    assert daily["collected_on"] == date(2024, 1, 2)
    assert daily["social_platforms"] == {"reddit": 10, "pinterest": 4}


class _FlakyClassifier:
    model = "stub-model"

    def classify(self, term: str, *, market=None):
        if "broken" in term:
            raise DeepSeekError("DeepSeek error: 500")
        return infer_from_term(term)


def test_intent_classification_fills_missing_sections(store, engine) -> None:
    insert_keyword(engine, "k1", "buy silver ring")
    insert_keyword(engine, "k2", "broken lamp")
    insert_keyword(engine, "k3", "classified already", extras={"classification": {"intent": "research"}})

    outcome = JobRunner(store).run(IntentClassificationJob(_FlakyClassifier()), now=NOW)
    summary = outcome.to_summary()

    assert summary["status"] == "partial"
    assert summary["processed"] == 1
    assert summary["failures"][0]["source"] == "classifier"
    assert summary["intents"] == {"purchase": 1}
    classification = store.select_keyword("buy silver ring", "us").extras["classification"]
    assert classification["intent"] == "purchase"
    assert classification["purchase_stage"] == "purchase"
    assert classification["updated_at"] == NOW.isoformat()
    assert store.select_keyword("classified already", "us").extras["classification"] == {"intent": "research"}


def test_intent_classification_drains_backlog_across_runs(store, engine) -> None:
    insert_keyword(engine, "k1", "wedding invitation ideas")
    insert_keyword(engine, "k2", "buy silver ring", extras={"trend": {"momentum": 0.2}})
    insert_keyword(engine, "k3", "linen apron", extras={"classification": None})
    insert_keyword(engine, "k4", "classified already", extras={"classification": {"intent": "research"}})
    runner = JobRunner(store, {"intent_classification": {"batch_size": 2}})

    first = runner.run(IntentClassificationJob(IntentClassifier()), now=NOW)
    second = runner.run(IntentClassificationJob(IntentClassifier()), now=NOW)
    third = runner.run(IntentClassificationJob(IntentClassifier()), now=NOW)

    assert [first.processed, second.processed, third.processed] == [2, 1, 0]
    for term in ("wedding invitation ideas", "buy silver ring", "linen apron"):
        assert store.select_keyword(term, "us").extras["classification"]["model"] == "deterministic-fallback"
    assert store.select_keyword("buy silver ring", "us").extras["trend"] == {"momentum": 0.2}
    assert store.select_keyword("classified already", "us").extras["classification"] == {"intent": "research"}


def test_intent_classification_heuristic_fallback(store, engine) -> None:
    insert_keyword(engine, "k1", "wedding invitation ideas")

    outcome = JobRunner(store).run(IntentClassificationJob(IntentClassifier()), now=NOW)

    assert outcome.to_summary()["status"] == "succeeded"
    assert outcome.metadata["model"] == "deterministic-fallback"
    assert store.select_keyword("wedding invitation ideas", "us").extras["classification"]["intent"] == "discovery"


def test_seasonal_tagging_labels_matching_keywords(store, engine) -> None:
    insert_keyword(engine, "k1", "Holiday Gift Box", extras={"classification": {"intent": "purchase"}})
    insert_keyword(engine, "k2", "eco candles")
    insert_period(engine, "Black Friday", date(2023, 12, 20), date(2024, 1, 5), tags=["gift"], weight=2.0)
    insert_period(engine, "Oktoberfest", date(2023, 12, 20), date(2024, 1, 5), tags=["candles"], country_code="de")
    insert_period(engine, "Summer", date(2024, 6, 1), date(2024, 8, 31), tags=["candles"])

    outcome = JobRunner(store).run(SeasonalTaggingJob(), now=NOW)

    assert outcome.processed == 1
    assert outcome.metadata["periods"] == ["Black Friday"]
    tagged = store.select_keyword("holiday gift box", "us")
    assert tagged.extras["seasonal"]["label"] == "Black Friday"
    assert tagged.extras["seasonal"]["weight"] == 2.0
    assert tagged.extras["classification"] == {"intent": "purchase"}
    assert "seasonal" not in store.select_keyword("eco candles", "us").extras
