from __future__ import annotations

from datetime import date, datetime, timezone

import pandas as pd
import pytest

from kwtrend.etl.keyword_telemetry import KeywordTelemetryJob, to_stat_payload
from kwtrend.jobs.ledger import JobRunner
from kwtrend.sources.base import SourceWindow
from kwtrend.sources.telemetry import TelemetryRollupSource, rollup_events
from kwtrend.tests.data import NOW, insert_events, set_flag, telemetry_events


def test_rollup_events_builds_daily_metrics() -> None:
    events = pd.DataFrame(telemetry_events())

    rolled = rollup_events(events).set_index("recorded_on")

    first = rolled.loc[date(2024, 1, 1)]
    assert first["search_volume"] == 2
    assert first["impressions"] == 100
    assert first["clicks"] == 2
    assert first["ctr"] == pytest.approx(0.02)
    assert first["rank"] == 2
    assert first["event_count"] == 4
    assert first["term"] == "handmade jewelry"

    second = rolled.loc[date(2024, 1, 2)]
    assert second["event_count"] == 1
    assert second["shop_views"] == 1
    assert pd.isna(second["impressions"])
    assert pd.isna(second["ctr"])


def test_rollup_events_handles_empty_frame() -> None:
    empty = pd.DataFrame(columns=["keyword_id", "event_type", "occurred_at", "payload"])

    assert rollup_events(empty).empty


def test_rollup_source_reads_window_from_store(store, engine) -> None:
    insert_events(engine, telemetry_events())
    window = SourceWindow(start=datetime(2024, 1, 2, tzinfo=timezone.utc), end=NOW)

    rows = TelemetryRollupSource(store).fetch(window)

    assert len(rows) == 1
    assert rows[0].source == "user_telemetry"
    assert rows[0].keyword_id == "kw-1"
    assert rows[0].values["impressions"] is None
    assert rows[0].metadata == {"eventCount": 1, "shopViews": 1}


def test_to_stat_payload_coerces_numbers() -> None:
    payload = to_stat_payload(
        {
            "keyword_id": "kw-1",
            "source": "User_Telemetry",
            "recorded_on": "2024-01-01",
            "search_volume": "12",
            "ctr": "0.25",
            "rank": 3.0,
            "clicks": float("nan"),
        }
    )

    assert payload["source"] == "user_telemetry"
    assert payload["recorded_on"] == date(2024, 1, 1)
    assert payload["search_volume"] == 12
    assert payload["ctr"] == 0.25
    assert payload["rank"] == 3
    assert payload["clicks"] is None
    assert payload["metadata"] == {}


def test_keyword_telemetry_job_is_idempotent(store, engine) -> None:
    set_flag(engine, "allow_user_telemetry", True)
    insert_events(engine, telemetry_events())
    runner = JobRunner(store)

    first = runner.run(KeywordTelemetryJob(), now=NOW)
    second = runner.run(KeywordTelemetryJob(), now=NOW)

    assert first.to_summary()["status"] == "succeeded"
    assert first.processed == 2
    assert first.metadata["windowStart"] == "2023-12-03T00:00:00+00:00"
    assert second.processed == 0
    assert second.metadata["skippedExisting"] == 2
    assert store.count_rows("keyword_stats") == 2


def test_keyword_telemetry_job_skips_when_flag_disabled(store, engine) -> None:
    insert_events(engine, telemetry_events())

    outcome = JobRunner(store).run(KeywordTelemetryJob(), now=NOW)

    assert outcome.to_summary()["status"] == "skipped"
    assert store.count_rows("keyword_stats") == 0
