"""Numeric normalisation onto the canonical 0-100 display scale."""
from __future__ import annotations

import math
from typing import Any

import numpy as np

DEFAULT_FALLBACK = 50


def _to_float(value: Any) -> float | None:
    if value is None or isinstance(value, (bool, np.bool_)):
        return None
    if isinstance(value, np.generic):
        value = value.item()
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(numeric):
        return None
    return numeric


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def normalize_metric(value: Any, fallback: int = DEFAULT_FALLBACK) -> int:
    """Map ``value`` onto ``[0, 100]``.

    Ratios in ``[0, 1]`` are scaled by 100, percentages in ``[0, 100]`` are
    rounded as-is and everything else is rounded then clamped.  ``None``,
    NaN and unparsable input return ``fallback``.
    """

    numeric = _to_float(value)
    if numeric is None:
        return fallback
    if math.isinf(numeric):
        return 100 if numeric > 0 else 0
    if 0 <= numeric <= 1:
        return _round_half_up(numeric * 100)
    if 0 <= numeric <= 100:
        return _round_half_up(numeric)
    return max(0, min(100, _round_half_up(numeric)))


def normalize_number(value: Any) -> float | None:
    """Coerce ``value`` into a finite float or ``None``."""

    numeric = _to_float(value)
    if numeric is None or math.isinf(numeric):
        return None
    return numeric


def normalize_int(value: Any) -> int | None:
    numeric = normalize_number(value)
    return None if numeric is None else int(round(numeric))


def normalize_ratio(score: Any, maximum: float = 100) -> float:
    """Clamp ``score / maximum`` into ``[0, 1]``; invalid input maps to 0."""

    numeric = normalize_number(score)
    if numeric is None or maximum <= 0:
        return 0.0
    return max(0.0, min(1.0, numeric / maximum))


__all__ = ["DEFAULT_FALLBACK", "normalize_int", "normalize_metric", "normalize_number", "normalize_ratio"]
