"""Per-platform social snapshots read from ``social_platform_trends``."""
from __future__ import annotations

import logging

from kwtrend.db.store import KeywordStore
from kwtrend.features.normalize import normalize_number
from kwtrend.sources.base import SourceRow, SourceWindow

LOGGER = logging.getLogger(__name__)

# platform column -> canonical value name
FIELD_MAP = {
    "mention_count": "mentions",
    "engagement_score": "engagement",
    "sentiment": "sentiment",
    "velocity": "velocity",
}


class SocialPlatformSource:
    """Emit one row per platform snapshot collected inside the window.

    The row's ``source`` is the platform name; the keyword term is resolved
    from the keyword table so the rows share the aggregator's shape.
    """

    name = "social_platforms"

    def __init__(self, store: KeywordStore) -> None:
        self._store = store

    def fetch(self, window: SourceWindow) -> list[SourceRow]:
        snapshots = self._store.fetch_platform_trends(window.start)
        if not snapshots:
            return []
        keywords = self._store.select_keywords_by_ids(sorted({str(item["keyword_id"]) for item in snapshots}))
        rows: list[SourceRow] = []
        for snapshot in snapshots:
            keyword_id = str(snapshot["keyword_id"])
            keyword = keywords.get(keyword_id)
            collected_at = snapshot["collected_at"]
            rows.append(
                SourceRow(
                    term=keyword.term if keyword else "",
                    source=str(snapshot["platform"]).lower(),
                    recorded_on=collected_at.date() if collected_at else window.recorded_on,
                    keyword_id=keyword_id,
                    values={target: normalize_number(snapshot.get(column)) for column, target in FIELD_MAP.items()},
                    metadata=dict(snapshot.get("metadata") or {}),
                )
            )
        LOGGER.info("social_source.fetched snapshots=%s keywords=%s", len(rows), len(keywords))
        return rows


__all__ = ["FIELD_MAP", "SocialPlatformSource"]
