"""Source adapters feeding the aggregation jobs."""
from .base import (
    AggregationResult,
    SourceFailure,
    SourceFetchError,
    SourceRow,
    SourceWindow,
    TrendSource,
    collect_sources,
)
from .rate_limit import RateLimiter

__all__ = [
    "AggregationResult",
    "RateLimiter",
    "SourceFailure",
    "SourceFetchError",
    "SourceRow",
    "SourceWindow",
    "TrendSource",
    "collect_sources",
]
