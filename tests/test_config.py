"""Tests for environment configuration."""

from __future__ import annotations

import pytest

from powgql.config import DEFAULT_BASE_URL, Config, load_config
from powgql.errors import ConfigurationError


class TestLoadConfig:
    def test_defaults(self):
        config = load_config({})
        assert config == Config()
        assert config.base_url == DEFAULT_BASE_URL
        assert config.http_timeout_s == 10.0

    def test_overrides(self):
        config = load_config(
            {
                "POWHTTP_BASE_URL": "http://127.0.0.1:9000/",
                "HTTP_CLIENT_TIMEOUT_MS": "2500",
                "FETCH_WORKERS": "4",
                "ENTRY_CACHE_MAX_ITEMS": "64",
                "MAX_SEARCH_RESULTS": "50",
                "LOG_LEVEL": "DEBUG",
                "LOG_FILE": "/tmp/powgql.log",
                "LOG_MAX_BACKUPS": "2",
            }
        )
        assert config.base_url == "http://127.0.0.1:9000"
        assert config.http_timeout_s == 2.5
        assert config.fetch_workers == 4
        assert config.entry_cache_max_items == 64
        assert config.max_search_results == 50
        assert config.log_level == "debug"
        assert config.log_file == "/tmp/powgql.log"
        assert config.log_max_backups == 2

    def test_unparseable_int_uses_default(self):
        assert load_config({"FETCH_WORKERS": "many"}).fetch_workers == 16

    @pytest.mark.parametrize(
        "key",
        ["FETCH_WORKERS", "ENTRY_CACHE_MAX_ITEMS", "MAX_SEARCH_RESULTS", "HTTP_CLIENT_TIMEOUT_MS"],
    )
    def test_non_positive_rejected(self, key):
        with pytest.raises(ConfigurationError, match=key):
            load_config({key: "0"})
