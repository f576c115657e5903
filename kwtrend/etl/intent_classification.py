"""Attach an intent classification to keywords that do not carry one yet."""
from __future__ import annotations

import logging

from kwtrend.jobs.ledger import JobContext, JobResult
from kwtrend.llm.deepseek_client import DeepSeekError
from kwtrend.llm.intent_classifier import IntentClassifier, create_intent_classifier

LOGGER = logging.getLogger(__name__)


class IntentClassificationJob:
    name = "intent-classification"
    feature_flag: str | None = None

    def __init__(self, classifier: IntentClassifier | None = None) -> None:
        self._classifier = classifier

    def execute(self, context: JobContext) -> JobResult:
        batch_size = int(context.section("intent_classification").get("batch_size", 25))
        classifier = self._classifier or create_intent_classifier()
        targets = context.store.select_unclassified_keywords(batch_size)
        LOGGER.info(
            "intent_classification.targets pending=%s batch_size=%s model=%s",
            len(targets),
            batch_size,
            classifier.model,
        )

        intents: dict[str, int] = {}
        processed = 0
        for keyword in targets:
            try:
                result = classifier.classify(keyword.term, market=keyword.market)
            except DeepSeekError as exc:
                LOGGER.warning("intent_classification.classify_failed keyword_id=%s error=%s", keyword.id, exc)
                context.record_failure("classifier", f"{keyword.id}: {exc}")
                continue
            if not context.coordinator.apply_section(keyword, result.to_section(context.now.isoformat())):
                context.record_failure("keywords", f"keyword {keyword.id}: classification update failed")
                continue
            intents[result.intent] = intents.get(result.intent, 0) + 1
            processed += 1

        return JobResult(processed=processed, metadata={"intents": intents, "model": classifier.model})

__all__ = ["IntentClassificationJob"]
