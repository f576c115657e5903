"""External trend feeds: Google Trends, Pinterest and Reddit.

Each feed maps its provider payload onto :class:`SourceRow` with the values
``score``, ``normalized_score`` (0-1) and ``change``.  Feeds without
credentials, or whose provider returns nothing, fall back to a small fixed
sample flagged with ``metadata["sample"]`` so the downstream pipeline can
still be exercised.
"""
from __future__ import annotations

import base64
import logging
from typing import Any, Iterable

from kwtrend.features.normalize import normalize_number, normalize_ratio
from kwtrend.settings import SourceSettings
from kwtrend.sources.base import SourceRow, SourceWindow
from kwtrend.sources.http import fetch_json
from kwtrend.sources.rate_limit import RateLimiter

LOGGER = logging.getLogger(__name__)

GOOGLE_TRENDS_URL = "https://trends.google.com/api/explore"
PINTEREST_TRENDS_URL = "https://api.pinterest.com/v5/analytics/trends"
REDDIT_TOKEN_URL = "https://www.reddit.com/api/v1/access_token"
REDDIT_HOT_URL = "https://oauth.reddit.com/r/EtsySellers/hot"
REDDIT_USER_AGENT = "kwtrend-trend-intelligence/1.0"
REDDIT_MAX_POSTS = 10

_SAMPLES: dict[str, list[tuple[str, float, float, float, dict[str, Any]]]] = {
    # term, score, scale max, change, metadata
    "google_trends": [
        ("handmade jewelry", 82, 100, 0.18, {"region": "US"}),
        ("eco candles", 64, 100, 0.12, {"region": "US"}),
    ],
    "pinterest": [
        ("minimalist wall art", 5400, 6000, 0.22, {}),
        ("handmade jewelry", 4300, 6000, 0.17, {}),
    ],
    "reddit": [
        ("cottagecore dress", 2800, 3000, 0.25, {"subreddit": "r/EtsySellers"}),
        ("eco candles", 2100, 3000, 0.19, {"subreddit": "r/DIYcandles"}),
    ],
}


def _signal(
    term: str,
    source: str,
    window: SourceWindow,
    *,
    score: float,
    maximum: float,
    change: float,
    metadata: dict[str, Any],
) -> SourceRow:
    return SourceRow(
        term=term,
        source=source,
        recorded_on=window.recorded_on,
        values={
            "score": score,
            "normalized_score": normalize_ratio(score, maximum),
            "change": change,
        },
        metadata=metadata,
    )


def sample_signals(source: str, window: SourceWindow) -> list[SourceRow]:
    """Deterministic stand-in rows for ``source``."""

    return [
        _signal(
            term,
            source,
            window,
            score=score,
            maximum=maximum,
            change=change,
            metadata={**metadata, "sample": True},
        )
        for term, score, maximum, change, metadata in _SAMPLES[source]
    ]


class _HttpTrendSource:
    name = ""

    def __init__(self, settings: SourceSettings, *, limiter: RateLimiter | None = None) -> None:
        self._settings = settings
        self._limiter = limiter

    def _get(self, url: str, headers: dict[str, str], **kwargs: Any) -> Any:
        return fetch_json(
            url,
            headers=headers,
            timeout=self._settings.timeout,
            limiter=self._limiter,
            limiter_key=self.name,
            **kwargs,
        )

    def _fallback(self, window: SourceWindow, reason: str) -> list[SourceRow]:
        LOGGER.info("trend_source.sample source=%s reason=%s", self.name, reason)
        return sample_signals(self.name, window)


class GoogleTrendsSource(_HttpTrendSource):
    name = "google_trends"

    def fetch(self, window: SourceWindow) -> list[SourceRow]:
        api_key = self._settings.google_trends_api_key
        if not api_key:
            return self._fallback(window, "missing_credentials")
        payload = self._get(GOOGLE_TRENDS_URL, {"Content-Type": "application/json", "x-api-key": api_key})
        terms = (payload or {}).get("terms") or []
        if not terms:
            return self._fallback(window, "empty_response")
        return [
            _signal(
                entry["term"],
                self.name,
                window,
                score=normalize_number(entry.get("score")) or 0.0,
                maximum=100,
                change=normalize_number(entry.get("delta")) or 0.0,
                metadata={"region": entry.get("region") or "global"},
            )
            for entry in terms
            if entry.get("term")
        ]


class PinterestTrendSource(_HttpTrendSource):
    name = "pinterest"

    def fetch(self, window: SourceWindow) -> list[SourceRow]:
        token = self._settings.pinterest_access_token
        if not token:
            return self._fallback(window, "missing_credentials")
        payload = self._get(PINTEREST_TRENDS_URL, {"Authorization": f"Bearer {token}"})
        trends = (payload or {}).get("trends") or []
        if not trends:
            return self._fallback(window, "empty_response")
        maximum = max((normalize_number(item.get("score")) or 0.0 for item in trends), default=0.0) or 1.0
        return [
            _signal(
                item["term"],
                self.name,
                window,
                score=normalize_number(item.get("score")) or 0.0,
                maximum=maximum,
                change=normalize_number(item.get("velocity")) or 0.0,
                metadata={"source": "pinterest"},
            )
            for item in trends
            if item.get("term")
        ]


class RedditTrendSource(_HttpTrendSource):
    name = "reddit"

    def _access_token(self) -> str | None:
        client_id = self._settings.reddit_client_id
        client_secret = self._settings.reddit_client_secret
        auth = base64.b64encode(f"{client_id}:{client_secret}".encode("utf-8")).decode("ascii")
        payload = self._get(
            REDDIT_TOKEN_URL,
            {
                "Authorization": f"Basic {auth}",
                "Content-Type": "application/x-www-form-urlencoded",
            },
            data=b"grant_type=client_credentials",
            method="POST",
        )
        return (payload or {}).get("access_token")

    def fetch(self, window: SourceWindow) -> list[SourceRow]:
        if not (self._settings.reddit_client_id and self._settings.reddit_client_secret):
            return self._fallback(window, "missing_credentials")
        token = self._access_token()
        if not token:
            return self._fallback(window, "missing_token")
        payload = self._get(
            REDDIT_HOT_URL,
            {"Authorization": f"Bearer {token}", "User-Agent": REDDIT_USER_AGENT},
        )
        posts = [child.get("data") or {} for child in ((payload or {}).get("data") or {}).get("children") or []]
        if not posts:
            return self._fallback(window, "empty_response")
        maximum = max([1.0, *(normalize_number(post.get("score")) or 0.0 for post in posts)])
        rows = []
        for post in posts[:REDDIT_MAX_POSTS]:
            ratio = normalize_number(post.get("upvote_ratio"))
            rows.append(
                _signal(
                    str(post.get("title") or "untitled").lower(),
                    self.name,
                    window,
                    score=normalize_number(post.get("score")) or 0.0,
                    maximum=maximum,
                    change=max(0.0, (0.5 if ratio is None else ratio) - 0.5),
                    metadata={"subreddit": "r/EtsySellers"},
                )
            )
        return rows


def default_trend_sources(
    settings: SourceSettings,
    *,
    limiter: RateLimiter | None = None,
    enabled: Iterable[str] | None = None,
) -> list[_HttpTrendSource]:
    """Instantiate the configured feeds in their canonical order."""

    available = (GoogleTrendsSource, PinterestTrendSource, RedditTrendSource)
    wanted = None if enabled is None else {name.lower() for name in enabled}
    return [
        source_cls(settings, limiter=limiter)
        for source_cls in available
        if wanted is None or source_cls.name in wanted
    ]


__all__ = [
    "GoogleTrendsSource",
    "PinterestTrendSource",
    "RedditTrendSource",
    "default_trend_sources",
    "sample_signals",
]
