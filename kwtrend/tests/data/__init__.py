"""Sample rows for the store-backed tests."""
from .samples import (
    NOW,
    insert_events,
    insert_keyword,
    insert_period,
    insert_platform_trends,
    platform_snapshot,
    set_flag,
    telemetry_events,
)

__all__ = [
    "NOW",
    "insert_events",
    "insert_keyword",
    "insert_period",
    "insert_platform_trends",
    "platform_snapshot",
    "set_flag",
    "telemetry_events",
]
