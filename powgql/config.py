"""Environment-driven configuration.

Values come from the process environment (``.env`` files are loaded by the
CLI through python-dotenv before this runs).  Unparseable integers fall back
to their defaults.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import os

from powgql.errors import ConfigurationError

DEFAULT_BASE_URL = "http://localhost:7777"


@dataclass(frozen=True)
class Config:
    base_url: str = DEFAULT_BASE_URL
    http_timeout_ms: int = 10000
    fetch_workers: int = 16
    entry_cache_max_items: int = 512
    max_search_results: int = 500
    log_level: str = "info"
    log_file: str = ""
    log_max_backups: int = 5

    @property
    def http_timeout_s(self) -> float:
        return self.http_timeout_ms / 1000


def _get_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def load_config(environ: Mapping[str, str] | None = None) -> Config:
    """Build a ``Config`` from *environ* (defaults to ``os.environ``)."""
    env = os.environ if environ is None else environ

    config = Config(
        base_url=(env.get("POWHTTP_BASE_URL") or DEFAULT_BASE_URL).rstrip("/"),
        http_timeout_ms=_get_int(env, "HTTP_CLIENT_TIMEOUT_MS", 10000),
        fetch_workers=_get_int(env, "FETCH_WORKERS", 16),
        entry_cache_max_items=_get_int(env, "ENTRY_CACHE_MAX_ITEMS", 512),
        max_search_results=_get_int(env, "MAX_SEARCH_RESULTS", 500),
        log_level=(env.get("LOG_LEVEL") or "info").lower(),
        log_file=env.get("LOG_FILE", ""),
        log_max_backups=_get_int(env, "LOG_MAX_BACKUPS", 5),
    )

    if config.fetch_workers <= 0:
        raise ConfigurationError(f"FETCH_WORKERS must be positive, got {config.fetch_workers}")
    if config.entry_cache_max_items <= 0:
        raise ConfigurationError(
            f"ENTRY_CACHE_MAX_ITEMS must be positive, got {config.entry_cache_max_items}"
        )
    if config.max_search_results <= 0:
        raise ConfigurationError(
            f"MAX_SEARCH_RESULTS must be positive, got {config.max_search_results}"
        )
    if config.http_timeout_ms <= 0:
        raise ConfigurationError(
            f"HTTP_CLIENT_TIMEOUT_MS must be positive, got {config.http_timeout_ms}"
        )
    return config
