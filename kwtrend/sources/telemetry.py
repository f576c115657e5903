"""Daily rollup of raw user telemetry events into keyword stat rows."""
from __future__ import annotations

import logging
from typing import Any, Mapping

import numpy as np
import pandas as pd

from kwtrend.db.store import KeywordStore
from kwtrend.features.normalize import normalize_int, normalize_number
from kwtrend.sources.base import SourceRow, SourceWindow

LOGGER = logging.getLogger(__name__)

TELEMETRY_SOURCE = "user_telemetry"
SEARCH_EVENT = "search"
LISTING_VIEW_EVENT = "view_listing"
SHOP_VIEW_EVENT = "view_shop"


def _payload(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def rollup_events(events: pd.DataFrame) -> pd.DataFrame:
    """Aggregate ``keyword_events`` rows per ``(keyword_id, day)``.

    Search events count towards ``search_volume`` and their ``resultCount``
    towards ``impressions``; listing views are clicks and the best listing
    ``position`` becomes ``rank``.
    """

    columns = [
        "keyword_id",
        "recorded_on",
        "term",
        "search_volume",
        "impressions",
        "clicks",
        "ctr",
        "rank",
        "event_count",
        "shop_views",
    ]
    if events.empty:
        return pd.DataFrame(columns=columns)

    df = events.copy()
    payloads = df["payload"].map(_payload)
    df["recorded_on"] = pd.to_datetime(df["occurred_at"], utc=True).dt.date
    df["is_search"] = df["event_type"].eq(SEARCH_EVENT)
    df["is_view"] = df["event_type"].eq(LISTING_VIEW_EVENT)
    df["is_shop"] = df["event_type"].eq(SHOP_VIEW_EVENT)
    df["result_count"] = pd.to_numeric(payloads.map(lambda p: p.get("resultCount")), errors="coerce").where(
        df["is_search"]
    )
    df["position"] = pd.to_numeric(payloads.map(lambda p: p.get("position")), errors="coerce").where(df["is_view"])
    df["term"] = payloads.map(lambda p: p.get("keywordTerm") or p.get("query") or None)

    grouped = (
        df.groupby(["keyword_id", "recorded_on"], sort=True)
        .agg(
            term=("term", "first"),
            search_volume=("is_search", "sum"),
            impressions=("result_count", "sum"),
            impression_samples=("result_count", "count"),
            clicks=("is_view", "sum"),
            rank=("position", "min"),
            event_count=("event_type", "size"),
            shop_views=("is_shop", "sum"),
        )
        .reset_index()
    )
    grouped["impressions"] = grouped["impressions"].where(grouped["impression_samples"] > 0)
    grouped["ctr"] = grouped["clicks"] / grouped["impressions"].replace(0, np.nan)
    return grouped[columns]


class TelemetryRollupSource:
    """Reads the window's events from the store and emits one row per keyword and day."""

    name = TELEMETRY_SOURCE

    def __init__(self, store: KeywordStore) -> None:
        self._store = store

    def fetch(self, window: SourceWindow) -> list[SourceRow]:
        events = self._store.fetch_keyword_events(window.start, window.end)
        rolled = rollup_events(events)
        LOGGER.info(
            "telemetry_rollup.complete events=%s rows=%s",
            len(events),
            len(rolled),
            extra={"events": len(events), "rows": len(rolled)},
        )
        rows: list[SourceRow] = []
        for record in rolled.to_dict("records"):
            term = record.get("term")
            rows.append(
                SourceRow(
                    term=term if isinstance(term, str) else "",
                    source=self.name,
                    recorded_on=record["recorded_on"],
                    keyword_id=str(record["keyword_id"]),
                    values={
                        "search_volume": normalize_int(record["search_volume"]),
                        "impressions": normalize_int(record["impressions"]),
                        "clicks": normalize_int(record["clicks"]),
                        "ctr": normalize_number(record["ctr"]),
                        "rank": normalize_int(record["rank"]),
                    },
                    metadata={
                        "eventCount": int(record["event_count"]),
                        "shopViews": int(record["shop_views"]),
                    },
                )
            )
        return rows


__all__ = ["TELEMETRY_SOURCE", "TelemetryRollupSource", "rollup_events"]
