"""Runtime configuration helpers for environment-driven settings."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable


class ConfigurationError(RuntimeError):
    """Raised when required runtime configuration is missing or invalid."""


class MissingSettingError(ConfigurationError):
    """Raised when a required environment variable is not set at all."""


def load_dotenv(path: str | os.PathLike[str] = ".env", *, override: bool = False) -> None:
    """Load key-value pairs from a ``.env`` file into ``os.environ``.

    Parameters
    ----------
    path:
        Location of the ``.env`` file.  Defaults to the working directory.
    override:
        When ``True`` existing environment variables will be overwritten;
        otherwise only missing keys are populated.
    """

    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if override or key not in os.environ:
            os.environ[key] = value.strip().strip('"').strip("'")


def _load_env_files(env_paths: Iterable[str | os.PathLike[str]]) -> None:
    for candidate in env_paths:
        load_dotenv(candidate)


def _parse_float(name: str, raw: str) -> float:
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a numeric value") from exc


@dataclass(slots=True)
class StoreSettings:
    """Connection settings for the keyword store."""

    uri: str


def get_store_settings(*, env_paths: Iterable[str | os.PathLike[str]] = (".env",)) -> StoreSettings:
    """Return the store URI from ``DB_URI`` or the split ``PG*`` variables."""

    _load_env_files(env_paths)
    db_uri = os.getenv("DB_URI", "").strip()
    if db_uri:
        return StoreSettings(uri=db_uri)

    host = os.getenv("PGHOST", "").strip()
    user = os.getenv("PGUSER", "").strip()
    database = os.getenv("PGDATABASE", "").strip()
    missing = [
        name
        for name, value in (("PGHOST", host), ("PGUSER", user), ("PGDATABASE", database))
        if not value
    ]
    if missing:
        raise MissingSettingError(
            "Environment variable DB_URI must be configured or provide "
            "PGHOST/PGUSER/PGDATABASE (missing: " + ", ".join(missing) + ")"
        )
    driver = os.getenv("PG_DRIVER", "postgresql+psycopg2")
    port = os.getenv("PGPORT", "5432").strip()
    password = os.getenv("PGPASSWORD", "").strip()
    credentials = user if not password else f"{user}:{password}"
    host_segment = host if not port else f"{host}:{port}"
    return StoreSettings(uri=f"{driver}://{credentials}@{host_segment}/{database}")


@dataclass(slots=True)
class SourceSettings:
    """Credentials for the external trend feeds.

    Every credential is optional; a feed without credentials serves sample
    signals instead of calling its API.
    """

    google_trends_api_key: str | None
    pinterest_access_token: str | None
    reddit_client_id: str | None
    reddit_client_secret: str | None
    timeout: float


def get_source_settings(*, env_paths: Iterable[str | os.PathLike[str]] = (".env",)) -> SourceSettings:
    """Return trend feed credentials sourced from environment variables."""

    _load_env_files(env_paths)
    return SourceSettings(
        google_trends_api_key=os.getenv("GOOGLE_TRENDS_API_KEY") or None,
        pinterest_access_token=os.getenv("PINTEREST_ACCESS_TOKEN") or None,
        reddit_client_id=os.getenv("REDDIT_CLIENT_ID") or None,
        reddit_client_secret=os.getenv("REDDIT_CLIENT_SECRET") or None,
        timeout=_parse_float("SOURCE_TIMEOUT", os.getenv("SOURCE_TIMEOUT", "10")),
    )


@dataclass(slots=True)
class DeepSeekSettings:
    """Settings required to interact with the DeepSeek API."""

    base_url: str
    model: str
    api_key: str
    timeout: float


def get_deepseek_settings(*, env_paths: Iterable[str | os.PathLike[str]] = (".env",)) -> DeepSeekSettings:
    """Return DeepSeek credentials sourced from environment variables."""

    _load_env_files(env_paths)
    base_url = os.getenv("DEEPSEEK_BASE_URL", "https://api.deepseek.com")
    model = os.getenv("DEEPSEEK_MODEL")
    api_key = os.getenv("DEEPSEEK_API_KEY")
    if not model:
        raise MissingSettingError("Environment variable DEEPSEEK_MODEL must be configured")
    if not api_key:
        raise MissingSettingError("Environment variable DEEPSEEK_API_KEY must be configured")
    timeout = _parse_float("DEEPSEEK_TIMEOUT", os.getenv("DEEPSEEK_TIMEOUT", "30"))
    return DeepSeekSettings(base_url=base_url, model=model, api_key=api_key, timeout=timeout)


__all__ = [
    "ConfigurationError",
    "DeepSeekSettings",
    "MissingSettingError",
    "SourceSettings",
    "StoreSettings",
    "get_deepseek_settings",
    "get_source_settings",
    "get_store_settings",
    "load_dotenv",
]
