"""SQLAlchemy engine helpers for the keyword store."""
from __future__ import annotations

from functools import lru_cache
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from kwtrend.settings import get_store_settings


DEFAULT_POOL_KWARGS: dict[str, Any] = {
    "pool_pre_ping": True,
    "pool_recycle": 1800,
}


@lru_cache(maxsize=1)
def create_store_engine(**overrides: Any) -> Engine:
    """Create (or reuse) a SQLAlchemy engine for the configured store.

    Raises :class:`kwtrend.settings.ConfigurationError` when neither ``DB_URI``
    nor the split ``PG*`` variables are present.
    """

    settings = get_store_settings()
    kwargs = {**DEFAULT_POOL_KWARGS, **overrides}
    return create_engine(settings.uri, **kwargs)


__all__ = ["create_store_engine"]
