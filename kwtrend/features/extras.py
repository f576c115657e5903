"""Typed view over the keyword ``extras`` JSON column.

Each aggregation job owns exactly one named sub-section of ``extras``.  Jobs
build a section dataclass and hand it to :func:`merge_extras`, which replaces
that sub-section only; sibling sections and any keys this module does not
know about are carried over untouched.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any, ClassVar, Mapping, Union


def _known_fields(cls: type, payload: Mapping[str, Any]) -> dict[str, Any]:
    names = {item.name for item in fields(cls)}
    return {key: value for key, value in payload.items() if key in names}


@dataclass(slots=True)
class TrendSection:
    SECTION: ClassVar[str] = "trend"

    momentum: float
    expected_growth_30d: float
    direction: str
    contributors: list[str] = field(default_factory=list)
    latest: str | None = None
    updated_at: str | None = None


@dataclass(slots=True)
class ClassificationSection:
    SECTION: ClassVar[str] = "classification"

    intent: str = "unknown"
    purchase_stage: str = "unknown"
    persona: str = "unknown"
    summary: str = ""
    confidence: float = 0.0
    model: str | None = None
    updated_at: str | None = None


@dataclass(slots=True)
class SocialSection:
    SECTION: ClassVar[str] = "social"

    total_mentions: int
    weighted_engagement: float
    avg_sentiment: float
    platform_count: int
    dominant_platform: str
    platforms: list[str] = field(default_factory=list)
    updated_at: str | None = None


@dataclass(slots=True)
class SeasonalSection:
    SECTION: ClassVar[str] = "seasonal"

    label: str
    weight: float
    period_start: str
    period_end: str
    tags: list[str] = field(default_factory=list)
    updated_at: str | None = None


ExtrasSection = Union[TrendSection, ClassificationSection, SocialSection, SeasonalSection]

SECTION_TYPES: dict[str, type] = {
    section.SECTION: section
    for section in (TrendSection, ClassificationSection, SocialSection, SeasonalSection)
}


@dataclass(slots=True)
class KeywordExtras:
    """Parsed ``extras`` with the known sections typed and the rest kept raw."""

    trend: TrendSection | None = None
    classification: ClassificationSection | None = None
    social: SocialSection | None = None
    seasonal: SeasonalSection | None = None
    other: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> "KeywordExtras":
        parsed = cls()
        for key, value in (raw or {}).items():
            section_type = SECTION_TYPES.get(key)
            if section_type is None or not isinstance(value, Mapping):
                parsed.other[key] = value
                continue
            try:
                setattr(parsed, key, section_type(**_known_fields(section_type, value)))
            except TypeError:
                # required fields missing; keep the stored payload as-is
                parsed.other[key] = value
        return parsed

    def has(self, name: str) -> bool:
        return getattr(self, name, None) is not None or name in self.other


def section_to_dict(section: ExtrasSection) -> dict[str, Any]:
    return asdict(section)


def merge_extras(existing: Mapping[str, Any] | None, section: ExtrasSection) -> dict[str, Any]:
    """Return a copy of ``existing`` with ``section`` replacing its own sub-key only."""

    merged = dict(existing) if isinstance(existing, Mapping) else {}
    merged[section.SECTION] = section_to_dict(section)
    return merged


__all__ = [
    "ClassificationSection",
    "ExtrasSection",
    "KeywordExtras",
    "SECTION_TYPES",
    "SeasonalSection",
    "SocialSection",
    "TrendSection",
    "merge_extras",
    "section_to_dict",
]
