from __future__ import annotations

from kwtrend.features.extras import (
    ClassificationSection,
    KeywordExtras,
    SeasonalSection,
    TrendSection,
    merge_extras,
)


def test_merge_replaces_only_the_named_section() -> None:
    existing = {
        "classification": {"intent": "purchase", "confidence": 0.9},
        "legacy": {"keep": True},
    }
    section = TrendSection(momentum=0.6, expected_growth_30d=0.1, direction="flat", contributors=["reddit"])

    merged = merge_extras(existing, section)

    assert merged["classification"] == {"intent": "purchase", "confidence": 0.9}
    assert merged["legacy"] == {"keep": True}
    assert merged["trend"]["momentum"] == 0.6
    assert merged["trend"]["contributors"] == ["reddit"]
    assert "trend" not in existing


def test_merge_tolerates_missing_extras() -> None:
    section = SeasonalSection(label="Black Friday", weight=2.0, period_start="2024-11-20", period_end="2024-11-30")

    assert merge_extras(None, section)["seasonal"]["label"] == "Black Friday"


def test_from_mapping_types_known_sections_and_keeps_the_rest() -> None:
    raw = {
        "classification": {"intent": "research", "persona": "analyst", "unexpected": 1},
        "trend": {"momentum": 0.5},
        "notes": "free text",
    }

    extras = KeywordExtras.from_mapping(raw)

    assert extras.classification == ClassificationSection(intent="research", persona="analyst")
    # incomplete trend payload stays raw
    assert extras.trend is None
    assert extras.other == {"trend": {"momentum": 0.5}, "notes": "free text"}
    assert extras.has("trend")
    assert extras.has("classification")
    assert not extras.has("seasonal")
