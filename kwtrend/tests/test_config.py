from __future__ import annotations

import logging
from pathlib import Path

from kwtrend.etl.config import CONFIG_PATH, DEFAULT_CONFIG, load_pipeline_config


def test_packaged_config_matches_defaults() -> None:
    assert CONFIG_PATH.exists()

    assert load_pipeline_config() == DEFAULT_CONFIG


def test_missing_file_falls_back_to_defaults(tmp_path: Path, caplog) -> None:
    with caplog.at_level(logging.WARNING):
        config = load_pipeline_config(tmp_path / "absent.yml")

    assert config == DEFAULT_CONFIG
    assert "Falling back to built-in defaults" in caplog.text


def test_partial_file_is_deep_merged(tmp_path: Path, caplog) -> None:
    path = tmp_path / "pipeline.yml"
    path.write_text(
        "trend_aggregation:\n"
        "  sources: [reddit]\n"
        "  rate_limit:\n"
        "    limit: 5\n",
        encoding="utf-8",
    )

    with caplog.at_level(logging.WARNING):
        config = load_pipeline_config(path)

    assert config["trend_aggregation"]["sources"] == ["reddit"]
    assert config["trend_aggregation"]["rate_limit"] == {"limit": 5, "window_seconds": 60}
    assert config["trend_aggregation"]["max_workers"] == 3
    assert config["ledger"] == {"stale_after_hours": 6}
    assert "Pipeline config missing fields" in caplog.text
    record = next(item for item in caplog.records if item.getMessage() == "Pipeline config missing fields")
    assert "ledger" in record.missing


def test_loader_never_mutates_defaults(tmp_path: Path) -> None:
    path = tmp_path / "pipeline.yml"
    path.write_text("social_metrics:\n  platform_weights:\n    reddit: 1.0\n", encoding="utf-8")

    config = load_pipeline_config(path)

    assert config["social_metrics"]["platform_weights"]["reddit"] == 1.0
    assert DEFAULT_CONFIG["social_metrics"]["platform_weights"]["reddit"] == 0.35


def test_invalid_yaml_falls_back(tmp_path: Path) -> None:
    path = tmp_path / "pipeline.yml"
    path.write_text("store: [unclosed\n", encoding="utf-8")

    assert load_pipeline_config(path) == DEFAULT_CONFIG


def test_none_path_returns_defaults() -> None:
    assert load_pipeline_config(None) == DEFAULT_CONFIG
