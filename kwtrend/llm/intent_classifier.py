"""Keyword intent classification backed by DeepSeek with a rule-based fallback."""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Mapping

from kwtrend.features.extras import ClassificationSection
from kwtrend.llm.deepseek_client import DeepSeekClient, DeepSeekError, create_client_from_env
from kwtrend.settings import MissingSettingError

LOGGER = logging.getLogger(__name__)

FALLBACK_MODEL = "deterministic-fallback"

INTENT_PROMPT = (
    "You classify e-commerce search keywords. Reply with a JSON object holding "
    "intent, purchase_stage, persona, summary and confidence (0-1)."
)

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)

# (markers, intent, purchase stage, persona, summary, confidence)
_RULES: tuple[tuple[tuple[str, ...], str, str, str, str, float], ...] = (
    (
        ("ideas", "inspiration"),
        "discovery",
        "awareness",
        "trend researcher",
        "User is exploring inspiration and gathering ideas before shortlisting products.",
        0.45,
    ),
    (
        ("buy", "for sale", "price"),
        "purchase",
        "purchase",
        "ready-to-buy shopper",
        "Clear purchase language indicates transactional intent.",
        0.55,
    ),
    (
        ("how to", "tutorial"),
        "education",
        "consideration",
        "do-it-yourself maker",
        "The user is looking to learn how to create or evaluate a product.",
        0.48,
    ),
    (
        ("wholesale", "bulk"),
        "wholesale",
        "consideration",
        "reseller",
        "Wholesale intent suggests a B2B persona evaluating supply.",
        0.5,
    ),
)


@dataclass(slots=True)
class IntentClassification:
    intent: str
    purchase_stage: str
    persona: str
    summary: str
    confidence: float
    model: str

    def to_section(self, updated_at: str | None = None) -> ClassificationSection:
        return ClassificationSection(
            intent=self.intent,
            purchase_stage=self.purchase_stage,
            persona=self.persona,
            summary=self.summary,
            confidence=self.confidence,
            model=self.model,
            updated_at=updated_at,
        )


def infer_from_term(term: str) -> IntentClassification:
    """Keyword-marker heuristics used when no model is configured."""

    normalized = term.lower()
    for markers, intent, stage, persona, summary, confidence in _RULES:
        if any(marker in normalized for marker in markers):
            return IntentClassification(intent, stage, persona, summary, confidence, FALLBACK_MODEL)
    return IntentClassification(
        "research",
        "consideration",
        "market analyst",
        "Default classification when intent is ambiguous; assume comparative research.",
        0.35,
        FALLBACK_MODEL,
    )


def _extract_json(content: str) -> Mapping[str, Any]:
    match = _JSON_OBJECT.search(content)
    if not match:
        raise DeepSeekError("Intent classifier response carried no JSON object")
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise DeepSeekError("Intent classifier returned invalid JSON") from exc
    if not isinstance(parsed, Mapping):
        raise DeepSeekError("Intent classifier JSON must be an object")
    return parsed


class IntentClassifier:
    """``classify(term)`` over an optional DeepSeek client.

    Without a client every term goes through :func:`infer_from_term`.  With a
    client, API and parsing errors raise :class:`DeepSeekError` so the job can
    count them per keyword.
    """

    def __init__(self, client: DeepSeekClient | None = None) -> None:
        self._client = client

    @property
    def model(self) -> str:
        return self._client.model if self._client is not None else FALLBACK_MODEL

    def classify(self, term: str, *, market: str | None = None) -> IntentClassification:
        if self._client is None:
            return infer_from_term(term)
        response = self._client.generate(INTENT_PROMPT, {"term": term, "market": market})
        parsed = _extract_json(response.content)
        fallback = infer_from_term(term)
        confidence = parsed.get("confidence")
        return IntentClassification(
            intent=str(parsed.get("intent") or fallback.intent),
            purchase_stage=str(parsed.get("purchase_stage") or "consideration"),
            persona=str(parsed.get("persona") or "general shopper"),
            summary=str(parsed.get("summary") or "Model did not provide a summary."),
            confidence=float(confidence) if isinstance(confidence, (int, float)) else 0.65,
            model=response.model,
        )


def create_intent_classifier() -> IntentClassifier:
    """Build a classifier from the environment, falling back to heuristics.

    Only absent credentials trigger the fallback; malformed DeepSeek settings
    raise :class:`~kwtrend.settings.ConfigurationError`.
    """

    try:
        client = create_client_from_env()
    except MissingSettingError as exc:
        LOGGER.warning("intent_classifier.fallback reason=%s", exc)
        return IntentClassifier()
    return IntentClassifier(client)


__all__ = [
    "FALLBACK_MODEL",
    "IntentClassification",
    "IntentClassifier",
    "create_intent_classifier",
    "infer_from_term",
]
