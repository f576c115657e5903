"""Minimal JSON-over-HTTP helper for the external trend feeds."""
from __future__ import annotations

import json
import logging
from typing import Any, Mapping
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from kwtrend.sources.base import SourceFetchError
from kwtrend.sources.rate_limit import RateLimiter

LOGGER = logging.getLogger(__name__)


def fetch_json(
    url: str,
    *,
    headers: Mapping[str, str] | None = None,
    data: bytes | None = None,
    method: str = "GET",
    timeout: float = 30.0,
    limiter: RateLimiter | None = None,
    limiter_key: str = "default",
) -> Any:
    """Request ``url`` and decode the JSON body.

    Throttled, failed or undecodable requests raise :class:`SourceFetchError`.
    """

    if limiter is not None and not limiter.allow(limiter_key):
        raise SourceFetchError(f"Rate limit exceeded for {limiter_key}")

    request = Request(url, data=data, headers=dict(headers or {}), method=method)
    try:
        with urlopen(request, timeout=timeout) as response:
            raw = response.read().decode("utf-8")
    except HTTPError as exc:
        raise SourceFetchError(f"Request to {url} failed ({exc.code})") from exc
    except URLError as exc:
        raise SourceFetchError(f"Network error for {url}: {exc.reason}") from exc

    try:
        return json.loads(raw) if raw else None
    except json.JSONDecodeError as exc:
        raise SourceFetchError(f"Malformed JSON from {url}") from exc


__all__ = ["fetch_json"]
