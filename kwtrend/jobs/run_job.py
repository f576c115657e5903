"""CLI entry point running one aggregation job and printing its JSON summary."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Mapping, Sequence

from sqlalchemy.exc import SQLAlchemyError

from kwtrend.db.engine import create_store_engine
from kwtrend.db.store import KeywordStore
from kwtrend.etl.config import CONFIG_PATH, load_pipeline_config
from kwtrend.etl.intent_classification import IntentClassificationJob
from kwtrend.etl.keyword_telemetry import KeywordTelemetryJob
from kwtrend.etl.seasonal_tagging import SeasonalTaggingJob
from kwtrend.etl.social_metrics import SocialMetricsJob
from kwtrend.etl.trend_aggregation import TrendAggregationJob
from kwtrend.jobs.ledger import Job, JobRunner, LedgerError, ReapStaleRunsJob
from kwtrend.settings import ConfigurationError

LOGGER = logging.getLogger(__name__)


def build_jobs(config: Mapping[str, Any]) -> dict[str, Callable[[], Job]]:
    telemetry_flag = (config.get("keyword_telemetry") or {}).get("feature_flag", "allow_user_telemetry")
    return {
        KeywordTelemetryJob.name: lambda: KeywordTelemetryJob(feature_flag=telemetry_flag),
        TrendAggregationJob.name: TrendAggregationJob,
        SocialMetricsJob.name: SocialMetricsJob,
        IntentClassificationJob.name: IntentClassificationJob,
        SeasonalTaggingJob.name: SeasonalTaggingJob,
        ReapStaleRunsJob.name: ReapStaleRunsJob,
    }


JOB_NAMES = tuple(build_jobs({}))


def _configure_logging(level: str, log_file: Path | None = None) -> None:
    root = logging.getLogger()
    desired_level = getattr(logging, level.upper(), logging.INFO)
    root.setLevel(desired_level)

    for handler in list(root.handlers):
        root.removeHandler(handler)

    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")

    # stdout carries the JSON summary
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(desired_level)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(desired_level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)


def _parse_now(value: str | None) -> datetime | None:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a keyword trend aggregation job")
    parser.add_argument("--job", required=True, choices=JOB_NAMES, help="Job to run")
    parser.add_argument("--now", help="ISO-8601 timestamp used as the run clock (defaults to now, UTC)")
    parser.add_argument(
        "--config",
        default=str(CONFIG_PATH),
        help="Path to the YAML file holding pipeline tunables",
    )
    return parser.parse_args(argv)


def _emit(summary: Mapping[str, Any]) -> None:
    sys.stdout.write(json.dumps(summary, default=str, sort_keys=True) + "\n")
    sys.stdout.flush()


def main(argv: Sequence[str] | None = None, *, store: KeywordStore | None = None) -> int:
    args = _parse_args(argv)
    log_dir = os.getenv("KWTREND_LOG_DIR")
    log_file = None
    if log_dir:
        timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
        log_file = Path(log_dir) / f"{args.job}_{timestamp}.log"
    _configure_logging(os.getenv("LOG_LEVEL", "INFO"), log_file=log_file)

    try:
        now = _parse_now(args.now)
    except ValueError:
        LOGGER.error("Invalid --now timestamp", extra={"now": args.now})
        _emit({"job": args.job, "status": "failed", "error": f"Invalid --now value: {args.now}"})
        return 1

    config = load_pipeline_config(args.config)
    try:
        if store is None:
            store = KeywordStore(create_store_engine())
        runner = JobRunner(store, config)
        outcome = runner.run(build_jobs(config)[args.job](), now=now)
    except (ConfigurationError, LedgerError, SQLAlchemyError) as exc:
        LOGGER.error("Job could not start", extra={"job": args.job, "error": str(exc)})
        _emit({"job": args.job, "status": "failed", "error": str(exc) or exc.__class__.__name__})
        return 1

    _emit(outcome.to_summary())
    return 0 if outcome.ok else 1


if __name__ == "__main__":  # pragma: no cover - CLI guard
    raise SystemExit(main())
