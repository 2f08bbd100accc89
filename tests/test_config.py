"""Tests for configuration loading and precedence."""

import json
import logging
import os

import pytest

from tribunal.core.config import (
    LoggingConfig,
    TribunalConfig,
    config_to_dict,
    configure_logging,
    dict_to_config,
    get_config,
    load_config,
    load_env_config,
    merge_configs,
    reset_config,
    set_config,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("TRIBUNAL_"):
            monkeypatch.delenv(name)
    reset_config()
    yield
    reset_config()


class TestDefaults:
    def test_rate_limit_defaults(self):
        config = TribunalConfig()
        assert config.inventory.page_size == 75
        assert config.inventory.max_pages == 100
        assert config.inventory.inter_page_delay_ms == 200
        assert config.inventory.bad_request_retry_delay_ms == 2000
        assert config.pricing.inter_price_request_delay_ms == 3000
        assert config.pricing.steam_fallback_max_requests == 15
        assert config.pricing.top_items == 3

    def test_cache_defaults(self):
        config = TribunalConfig()
        assert config.cache.price_ttl_hours == 24
        assert config.cache.bulk_snapshot_ttl_minutes == 30
        assert config.cache.valuation_ttl_hours == 24

    def test_resolved_paths(self, tmp_path):
        config = TribunalConfig()
        assert config.resolved_database_url().startswith("sqlite:///")
        config.cache.database_url = "postgresql://db/tribunal"
        config.cache.results_dir = str(tmp_path)
        assert config.resolved_database_url() == "postgresql://db/tribunal"
        assert config.resolved_results_dir() == tmp_path


class TestLoading:
    def test_json_file(self, tmp_path):
        path = tmp_path / "tribunal.json"
        path.write_text(json.dumps({"pricing": {"steam_fallback_max_requests": 5}}))
        config = load_config(path, include_env=False)
        assert config.pricing.steam_fallback_max_requests == 5
        assert config.inventory.page_size == 75

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "tribunal.yaml"
        path.write_text("inventory:\n  inter_page_delay_ms: 0\nlogging:\n  level: DEBUG\n")
        config = load_config(path, include_env=False)
        assert config.inventory.inter_page_delay_ms == 0
        assert config.logging.level == "DEBUG"

    def test_toml_file(self, tmp_path):
        path = tmp_path / "tribunal.toml"
        path.write_text("[worker]\nport = 8080\n")
        assert load_config(path, include_env=False).worker.port == 8080

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "tribunal.json"
        path.write_text(json.dumps({"inventory": {"max_pages": 10}}))
        monkeypatch.setenv("TRIBUNAL_INVENTORY_MAX_PAGES", "3")
        monkeypatch.setenv("TRIBUNAL_INTER_PRICE_REQUEST_DELAY_MS", "0.5")
        monkeypatch.setenv("TRIBUNAL_WORKER_SECRET", "s3cret")
        config = load_config(path)
        assert config.inventory.max_pages == 3
        assert config.pricing.inter_price_request_delay_ms == 0.5
        assert config.worker.secret == "s3cret"

    def test_env_types(self, monkeypatch):
        monkeypatch.setenv("TRIBUNAL_LOG_LEVEL", "warning")
        monkeypatch.setenv("TRIBUNAL_WORKER_PORT", "4000")
        env = load_env_config()
        assert env == {"logging": {"level": "warning"}, "worker": {"port": 4000}}

    def test_unknown_keys_ignored(self):
        config = dict_to_config({"pricing": {"nonsense": 1}, "unknown_section": {"a": 1}})
        assert not hasattr(config.pricing, "nonsense")

    def test_merge_is_recursive(self):
        merged = merge_configs({"a": {"x": 1, "y": 2}}, {"a": {"y": 3}, "b": 4})
        assert merged == {"a": {"x": 1, "y": 3}, "b": 4}

    def test_config_to_dict(self):
        data = config_to_dict(TribunalConfig())
        assert data["pricing"]["currency"] == "USD"
        assert set(data) >= {"parser", "inventory", "pricing", "cache", "worker", "logging"}


class TestGlobalConfig:
    def test_set_and_reset(self):
        custom = TribunalConfig()
        custom.pricing.top_items = 5
        set_config(custom)
        assert get_config() is custom
        reset_config()
        assert get_config() is not custom


class TestConfigureLogging:
    def test_file_handler(self, tmp_path):
        log_file = tmp_path / "logs" / "tribunal.log"
        root = logging.getLogger()
        before = list(root.handlers)
        level = root.level
        try:
            configure_logging(LoggingConfig(level="DEBUG", file=str(log_file)))
            logging.getLogger("tribunal.test").debug("hello")
            assert log_file.exists()
            assert root.level == logging.DEBUG
        finally:
            for handler in root.handlers[:]:
                if handler not in before:
                    root.removeHandler(handler)
                    handler.close()
            root.setLevel(level)
