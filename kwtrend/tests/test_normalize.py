from __future__ import annotations

import math

import pytest

from kwtrend.features.normalize import normalize_int, normalize_metric, normalize_number, normalize_ratio


@pytest.mark.parametrize(
    ("value", "expected"),
    (
        (0.5, 50),
        (75, 75),
        (None, 50),
        (150, 100),
        (-5, 0),
        (0, 0),
        (1, 100),
        (0.005, 1),
        (99.5, 100),
        ("0.25", 25),
        (math.nan, 50),
        (math.inf, 100),
        (-math.inf, 0),
        ("not-a-number", 50),
    ),
)
def test_normalize_metric_boundaries(value, expected) -> None:
    assert normalize_metric(value) == expected


def test_normalize_metric_custom_fallback() -> None:
    assert normalize_metric(None, fallback=0) == 0
    assert normalize_metric(True, fallback=7) == 7


def test_normalize_number_and_int() -> None:
    assert normalize_number("12.5") == 12.5
    assert normalize_number(math.inf) is None
    assert normalize_number(None) is None
    assert normalize_int(3.6) == 4
    assert normalize_int("x") is None


def test_normalize_ratio_clamps_into_unit_interval() -> None:
    assert normalize_ratio(82) == pytest.approx(0.82)
    assert normalize_ratio(5400, 6000) == pytest.approx(0.9)
    assert normalize_ratio(7000, 6000) == 1.0
    assert normalize_ratio(-1) == 0.0
    assert normalize_ratio(10, 0) == 0.0
