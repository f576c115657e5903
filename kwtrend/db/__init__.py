"""Database utilities for the keyword trend pipeline."""
from .engine import create_store_engine
from .store import KeywordRecord, KeywordStore, SeasonalPeriod, normalize_term

__all__ = ["KeywordRecord", "KeywordStore", "SeasonalPeriod", "create_store_engine", "normalize_term"]
