"""
Configuration Management for Tribunal

Provides configuration loading from multiple sources:
- Default values
- Configuration files (YAML, TOML, JSON)
- Environment variables

Configuration precedence (highest to lowest):
1. Environment variables (TRIBUNAL_*)
2. Configuration file
3. Default values
"""

import json
import logging
import logging.handlers
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from tribunal.core.constants import (
    BULK_SNAPSHOT_TTL_MINUTES,
    DEFAULT_CURRENCY,
    INVENTORY_MAX_PAGES,
    INVENTORY_PAGE_SIZE,
    PRICE_CACHE_TTL_HOURS,
    VALUATION_TTL_HOURS,
)

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path.home() / ".tribunal"


# ============================================================================
# Configuration Dataclasses
# ============================================================================


@dataclass
class ParserConfig:
    """Configuration for demo extraction."""

    # The calling harness kills parses that run longer than this
    parse_timeout_s: float = 60.0
    cache_statistics: bool = True


@dataclass
class InventoryConfig:
    """Configuration for the paginated inventory fetch."""

    page_size: int = INVENTORY_PAGE_SIZE
    max_pages: int = INVENTORY_MAX_PAGES
    inter_page_delay_ms: float = 200.0
    bad_request_retry_delay_ms: float = 2000.0
    request_timeout_s: float = 20.0


@dataclass
class PricingConfig:
    """Configuration for layered item pricing."""

    # Steam's priceoverview endpoint tolerates roughly one call every few seconds
    inter_price_request_delay_ms: float = 3000.0
    steam_fallback_max_requests: int = 15
    currency: str = DEFAULT_CURRENCY
    steam_currency_code: int = 1
    top_items: int = 3
    bulk_feed_url: str = "https://api.skinport.com/v1/items?app_id=730&currency=USD"
    request_timeout_s: float = 15.0
    valuation_timeout_s: float = 120.0


@dataclass
class CacheConfig:
    """Configuration for the durable stores and in-memory snapshot."""

    price_ttl_hours: float = PRICE_CACHE_TTL_HOURS
    bulk_snapshot_ttl_minutes: float = BULK_SNAPSHOT_TTL_MINUTES
    valuation_ttl_hours: float = VALUATION_TTL_HOURS
    upsert_chunk_size: int = 500
    database_url: str | None = None
    results_dir: str | None = None


@dataclass
class WorkerConfig:
    """Configuration for the HTTP worker service."""

    secret: str | None = None
    max_upload_mb: int = 500
    host: str = "0.0.0.0"
    port: int = 3001


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: str | None = None
    file_max_bytes: int = 10 * 1024 * 1024  # 10MB
    file_backup_count: int = 5


@dataclass
class TribunalConfig:
    """Main configuration container."""

    parser: ParserConfig = field(default_factory=ParserConfig)
    inventory: InventoryConfig = field(default_factory=InventoryConfig)
    pricing: PricingConfig = field(default_factory=PricingConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    worker: WorkerConfig = field(default_factory=WorkerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    config_version: str = "1.0"

    def resolved_database_url(self) -> str:
        """Database URL, defaulting to a SQLite file in the data directory."""
        if self.cache.database_url:
            return self.cache.database_url
        return f"sqlite:///{DEFAULT_DATA_DIR / 'tribunal.db'}"

    def resolved_results_dir(self) -> Path:
        if self.cache.results_dir:
            return Path(self.cache.results_dir)
        return DEFAULT_DATA_DIR / "results"


_SECTIONS = ("parser", "inventory", "pricing", "cache", "worker", "logging")


# ============================================================================
# Configuration Loading
# ============================================================================


def get_default_config_paths() -> list[Path]:
    """Get the default paths to search for configuration files."""
    home = Path.home()
    xdg_config = os.environ.get("XDG_CONFIG_HOME", str(home / ".config"))
    return [
        Path.cwd() / "tribunal.yaml",
        Path.cwd() / "tribunal.toml",
        Path.cwd() / "tribunal.json",
        home / ".config" / "tribunal" / "config.yaml",
        Path(xdg_config) / "tribunal" / "config.yaml",
    ]


def load_yaml_config(path: Path) -> dict[str, Any]:
    """Load configuration from a YAML file."""
    import yaml

    with open(path) as f:
        return yaml.safe_load(f) or {}


def load_toml_config(path: Path) -> dict[str, Any]:
    """Load configuration from a TOML file."""
    import tomllib

    with open(path, "rb") as f:
        return tomllib.load(f)


def load_json_config(path: Path) -> dict[str, Any]:
    """Load configuration from a JSON file."""
    with open(path) as f:
        return json.load(f)


def load_config_file(path: Path) -> dict[str, Any]:
    """Load configuration from a file, detecting format from extension."""
    if not path.exists():
        return {}

    suffix = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        return load_yaml_config(path)
    elif suffix == ".toml":
        return load_toml_config(path)
    elif suffix == ".json":
        return load_json_config(path)
    else:
        logger.warning(f"Unknown config file format: {suffix}")
        return {}


ENV_MAPPINGS = {
    "TRIBUNAL_LOG_LEVEL": ("logging", "level"),
    "TRIBUNAL_LOG_FILE": ("logging", "file"),
    "TRIBUNAL_PARSE_TIMEOUT_S": ("parser", "parse_timeout_s"),
    "TRIBUNAL_INTER_PAGE_DELAY_MS": ("inventory", "inter_page_delay_ms"),
    "TRIBUNAL_INVENTORY_MAX_PAGES": ("inventory", "max_pages"),
    "TRIBUNAL_INTER_PRICE_REQUEST_DELAY_MS": ("pricing", "inter_price_request_delay_ms"),
    "TRIBUNAL_STEAM_FALLBACK_MAX_REQUESTS": ("pricing", "steam_fallback_max_requests"),
    "TRIBUNAL_BULK_FEED_URL": ("pricing", "bulk_feed_url"),
    "TRIBUNAL_VALUATION_TIMEOUT_S": ("pricing", "valuation_timeout_s"),
    "TRIBUNAL_DATABASE_URL": ("cache", "database_url"),
    "TRIBUNAL_RESULTS_DIR": ("cache", "results_dir"),
    "TRIBUNAL_WORKER_SECRET": ("worker", "secret"),
    "TRIBUNAL_WORKER_PORT": ("worker", "port"),
}


def load_env_config() -> dict[str, Any]:
    """Load configuration from environment variables."""
    config: dict[str, Any] = {}

    for env_var, (section, key) in ENV_MAPPINGS.items():
        value = os.environ.get(env_var)
        if value is None:
            continue
        section_data = config.setdefault(section, {})

        # Type conversion
        if value.lower() in ("true", "false"):
            section_data[key] = value.lower() == "true"
        elif value.isdigit():
            section_data[key] = int(value)
        else:
            try:
                section_data[key] = float(value)
            except ValueError:
                section_data[key] = value

    return config


def merge_configs(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge two configuration dictionaries."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = value

    return result


def dict_to_config(data: dict[str, Any]) -> TribunalConfig:
    """Convert a dictionary to TribunalConfig, ignoring unknown keys."""
    config = TribunalConfig()

    for section in _SECTIONS:
        target = getattr(config, section)
        for key, value in (data.get(section) or {}).items():
            if hasattr(target, key):
                setattr(target, key, value)
            else:
                logger.debug(f"Ignoring unknown config key {section}.{key}")

    return config


def config_to_dict(config: TribunalConfig) -> dict[str, Any]:
    """Convert TribunalConfig to a dictionary."""
    return asdict(config)


def load_config(config_file: Path | None = None, include_env: bool = True) -> TribunalConfig:
    """
    Load configuration from all sources.

    Args:
        config_file: Explicit path to a config file (optional)
        include_env: Whether to include environment variables

    Returns:
        Merged TribunalConfig
    """
    config_data: dict[str, Any] = {}

    if config_file:
        config_data = load_config_file(config_file)
        logger.info(f"Loaded config from: {config_file}")
    else:
        for path in get_default_config_paths():
            if path.exists():
                config_data = load_config_file(path)
                logger.info(f"Loaded config from: {path}")
                break

    if include_env:
        config_data = merge_configs(config_data, load_env_config())

    return dict_to_config(config_data)


def configure_logging(config: LoggingConfig) -> None:
    """Apply logging configuration to the root logger."""
    root = logging.getLogger()
    root.setLevel(config.level.upper())

    formatter = logging.Formatter(config.format)
    if not root.handlers:
        stream = logging.StreamHandler()
        stream.setFormatter(formatter)
        root.addHandler(stream)

    if config.file:
        Path(config.file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            config.file,
            maxBytes=config.file_max_bytes,
            backupCount=config.file_backup_count,
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)


# ============================================================================
# Global Configuration
# ============================================================================

_global_config: TribunalConfig | None = None


def get_config() -> TribunalConfig:
    """Get the global configuration, loading it if necessary."""
    global _global_config

    if _global_config is None:
        _global_config = load_config()

    return _global_config


def set_config(config: TribunalConfig) -> None:
    """Set the global configuration."""
    global _global_config
    _global_config = config


def reset_config() -> None:
    """Reset the global configuration to defaults."""
    global _global_config
    _global_config = None
