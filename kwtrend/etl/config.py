"""Pipeline tunables loaded from YAML and merged over built-in defaults."""
from __future__ import annotations

import logging
from copy import deepcopy
from pathlib import Path
from typing import Any, Mapping

import yaml

LOGGER = logging.getLogger(__name__)

CONFIG_PATH = Path(__file__).resolve().parents[1] / "configs" / "pipeline.yml"

DEFAULT_CONFIG: dict[str, Any] = {
    "store": {
        "chunk_size": 500,
        "default_market": "us",
    },
    "ledger": {
        "stale_after_hours": 6,
    },
    "keyword_telemetry": {
        "feature_flag": "allow_user_telemetry",
        "lookback_days": [1, 7, 30],
    },
    "trend_aggregation": {
        "sources": ["google_trends", "pinterest", "reddit"],
        "max_workers": 3,
        "rate_limit": {"limit": 30, "window_seconds": 60},
    },
    "social_metrics": {
        "lookback_hours": 24,
        "platform_weights": {
            "reddit": 0.35,
            "twitter": 0.20,
            "pinterest": 0.40,
            "tiktok": 0.05,
        },
    },
    "intent_classification": {
        "batch_size": 25,
    },
    "seasonal_tagging": {
        "country_code": "global",
        "keyword_limit": 500,
    },
}


def _deep_update(target: dict[str, Any], source: Mapping[str, Any]) -> dict[str, Any]:
    for key, value in source.items():
        if isinstance(value, Mapping) and isinstance(target.get(key), dict):
            _deep_update(target[key], value)
        else:
            target[key] = value
    return target


def _detect_missing_fields(source: Mapping[str, Any], template: Mapping[str, Any], prefix: str = "") -> list[str]:
    missing: list[str] = []
    for key, expected in template.items():
        dotted = f"{prefix}{key}" if prefix else key
        if key not in source:
            missing.append(dotted)
            continue
        candidate = source[key]
        if isinstance(expected, Mapping):
            if not isinstance(candidate, Mapping):
                missing.append(dotted)
            else:
                missing.extend(_detect_missing_fields(candidate, expected, prefix=f"{dotted}."))
    return missing


def load_pipeline_config(config_path: str | Path | None = CONFIG_PATH) -> dict[str, Any]:
    """Return the job tunables, falling back to :data:`DEFAULT_CONFIG`."""

    merged = deepcopy(DEFAULT_CONFIG)
    if config_path is None:
        return merged
    path = Path(config_path)
    if not path.exists():
        LOGGER.error("Pipeline config file missing", extra={"path": str(path)})
        LOGGER.warning("Falling back to built-in defaults for pipeline config")
        return merged

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError:
        LOGGER.error("Failed to parse pipeline config", extra={"path": str(path)}, exc_info=True)
        return merged
    except OSError:
        LOGGER.error("Unable to read pipeline config", extra={"path": str(path)}, exc_info=True)
        return merged

    if not isinstance(data, Mapping):
        LOGGER.error("Pipeline config must be a mapping", extra={"path": str(path)})
        return merged

    _deep_update(merged, data)
    missing_fields = _detect_missing_fields(data, DEFAULT_CONFIG)
    if missing_fields:
        LOGGER.warning(
            "Pipeline config missing fields",
            extra={"path": str(path), "missing": ", ".join(missing_fields)},
        )
    return merged


__all__ = ["CONFIG_PATH", "DEFAULT_CONFIG", "load_pipeline_config"]
