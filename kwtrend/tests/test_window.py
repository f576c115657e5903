from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from kwtrend.etl.window import StatKey, filter_existing, get_window_start, window_start_date


def test_window_start_uses_longest_lookback_at_utc_midnight() -> None:
    now = datetime(2024, 3, 31, 17, 45, tzinfo=timezone.utc)

    assert get_window_start(now) == "2024-03-01T00:00:00+00:00"
    assert get_window_start(now, 1) == "2024-03-30T00:00:00+00:00"


def test_window_start_converts_offsets_to_utc() -> None:
    now = datetime(2024, 1, 2, 1, 30, tzinfo=timezone(timedelta(hours=5)))

    # 2024-01-01T20:30Z
    assert get_window_start(now, [7]) == "2023-12-25T00:00:00+00:00"


def test_window_start_rejects_empty_lookback() -> None:
    with pytest.raises(ValueError):
        get_window_start(datetime(2024, 1, 1, tzinfo=timezone.utc), [])


def test_window_start_date_parses_iso_prefix() -> None:
    assert window_start_date("2024-03-01T00:00:00+00:00") == date(2024, 3, 1)


def test_filter_existing_drops_persisted_keys() -> None:
    existing = {("K1", "socialA", "2024-01-01")}
    candidates = [
        {"keyword_id": "K1", "source": "socialA", "recorded_on": "2024-01-01"},
        {"keyword_id": "K1", "source": "socialA", "recorded_on": "2024-01-02"},
    ]

    result = filter_existing(candidates, existing)

    assert result == [candidates[1]]


def test_filter_existing_matches_source_case_and_date_types() -> None:
    existing = [StatKey.of("K1", "SocialA", date(2024, 1, 1))]
    candidates = [{"keyword_id": "K1", "source": "sociala", "recorded_on": datetime(2024, 1, 1, 8)}]

    assert filter_existing(candidates, existing) == []


def test_filter_existing_empty_candidates_short_circuits() -> None:
    class _Exploding:
        def __iter__(self):
            raise AssertionError("existing keys must not be read")

    assert filter_existing([], _Exploding()) == []


def test_filter_existing_collapses_batch_duplicates() -> None:
    sparse = {"keyword_id": "K1", "source": "s", "recorded_on": "2024-01-02", "clicks": 3, "metadata": {"eventCount": 9}}
    rich = {
        "keyword_id": "K1",
        "source": "s",
        "recorded_on": "2024-01-02",
        "clicks": 1,
        "impressions": 10,
        "metadata": {"eventCount": 2},
    }
    busier = {**rich, "metadata": {"eventCount": 5}}

    assert filter_existing([sparse, rich], set()) == [rich]
    assert filter_existing([rich, busier], set()) == [busier]
    assert filter_existing([busier, rich], set()) == [busier]
