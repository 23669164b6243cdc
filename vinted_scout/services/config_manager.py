"""
Configuration management for the Vinted scout.
"""

import json
import logging
import os
import re
import time
from typing import Any, Callable, Dict, Optional

import yaml

from ..interfaces import IAlertStore
from ..models.config import (
    MAX_DELAY_OVERRIDE_MS,
    MIN_DELAY_OVERRIDE_MS,
    AlertConfig,
    Configuration,
    DelayConfig,
    FetchConfig,
    LoggingConfig,
    MarketplaceConfig,
    ScoringConfig,
    StorageConfig,
)

logger = logging.getLogger(__name__)

DELAY_ENV_VAR = "REQUEST_DELAY_MS"
DELAY_SETTING_KEY = "request_delay_ms"

_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


class ConfigurationManager:
    """Manages loading, validation, and reloading of system configuration."""

    SEARCH_PATHS = (
        "config/config.yaml",
        "config/config.yml",
        "config/config.json",
        "config.yaml",
        "config.yml",
        "config.json",
    )

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize the configuration manager.

        Args:
            config_path: Path to the configuration file. If None, uses default paths.
        """
        self.config_path = config_path or self._find_config_file()
        self._config: Optional[Configuration] = None
        self._last_modified: Optional[float] = None

    def _find_config_file(self) -> str:
        for path in self.SEARCH_PATHS:
            if os.path.exists(path):
                return path

        if os.path.exists("config/config.example.yaml"):
            raise ValueError(
                "No configuration file found. Please copy 'config/config.example.yaml' "
                "to 'config/config.yaml' and customize it for your needs."
            )

        raise ValueError(
            "No configuration file found. Please create a configuration file "
            "at one of these locations: " + ", ".join(self.SEARCH_PATHS)
        )

    def _read_raw(self, config_path: str) -> Dict[str, Any]:
        with open(config_path, "r", encoding="utf-8") as f:
            if config_path.endswith(".json"):
                raw_config = json.load(f)
            else:
                raw_config = yaml.safe_load(f)
        if raw_config is None:
            return {}
        if not isinstance(raw_config, dict):
            raise ValueError("Configuration root must be a mapping")
        return raw_config

    def load_config(self) -> Configuration:
        """
        Load configuration from file.

        Returns:
            Configuration object with validated settings.

        Raises:
            ValueError: If configuration is invalid or file cannot be read.
            FileNotFoundError: If configuration file doesn't exist.
        """
        if not os.path.exists(self.config_path):
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        try:
            raw_config = self._expand_env_vars(self._read_raw(self.config_path))
            config = self._parse_config(raw_config)
            config.validate()
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}")
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in configuration file: {e}")
        except (TypeError, ValueError) as e:
            raise ValueError(f"Error loading configuration: {e}")

        self._config = config
        self._last_modified = os.path.getmtime(self.config_path)
        logger.info(f"Loaded configuration from {self.config_path}")
        return config

    def _expand_env_vars(self, obj: Any) -> Any:
        """Recursively expand ``${VAR_NAME}`` references in strings."""
        if isinstance(obj, dict):
            return {key: self._expand_env_vars(value) for key, value in obj.items()}
        if isinstance(obj, list):
            return [self._expand_env_vars(item) for item in obj]
        if isinstance(obj, str):
            def replace(match: "re.Match[str]") -> str:
                value = os.getenv(match.group(1))
                if value is None:
                    raise ValueError(f"Environment variable '{match.group(1)}' not found")
                return value

            return _ENV_PATTERN.sub(replace, obj)
        return obj

    @staticmethod
    def _section(raw_config: Dict[str, Any], name: str) -> Dict[str, Any]:
        section = raw_config.get(name) or {}
        if not isinstance(section, dict):
            raise ValueError(f"Configuration section '{name}' must be a mapping")
        return section

    def _parse_config(self, raw_config: Dict[str, Any]) -> Configuration:
        """Parse raw configuration dictionary into Configuration object."""
        return Configuration(
            marketplace=MarketplaceConfig(**self._section(raw_config, "marketplace")),
            fetch=FetchConfig(**self._section(raw_config, "fetch")),
            delay=DelayConfig(**self._section(raw_config, "delay")),
            scoring=ScoringConfig(**self._section(raw_config, "scoring")),
            alerts=AlertConfig(**self._section(raw_config, "alerts")),
            storage=StorageConfig(**self._section(raw_config, "storage")),
            logging=LoggingConfig(**self._section(raw_config, "logging")),
        )

    def get_config(self) -> Configuration:
        """Get current configuration, loading if necessary."""
        if self._config is None:
            return self.load_config()
        return self._config

    def reload_if_changed(self) -> bool:
        """
        Reload configuration if file has been modified.

        Returns:
            True if configuration was reloaded, False otherwise.
        """
        if not os.path.exists(self.config_path):
            return False

        current_modified = os.path.getmtime(self.config_path)
        if self._last_modified is not None and current_modified <= self._last_modified:
            return False

        try:
            self.load_config()
        except ValueError as e:
            logger.warning(f"Keeping previous configuration, reload failed: {e}")
            return False
        return True

    def validate_config_file(self, config_path: str) -> bool:
        """
        Validate a configuration file without loading it.

        Raises:
            ValueError: If configuration is invalid with detailed error message.
        """
        if not os.path.exists(config_path):
            raise ValueError(f"Configuration file not found: {config_path}")

        try:
            raw_config = self._read_raw(config_path)
            try:
                raw_config = self._expand_env_vars(raw_config)
            except ValueError:
                # Missing env vars do not make the file itself invalid
                pass
            self._parse_config(raw_config).validate()
        except (yaml.YAMLError, TypeError, ValueError) as e:
            raise ValueError(f"Configuration validation failed: {e}")
        return True

    def get_config_template(self) -> Dict[str, Any]:
        """Get a template configuration dictionary."""
        return {
            "marketplace": {
                "base_url": "https://www.vinted.fr",
                "accept_language": "fr-FR,fr;q=0.9,en-US;q=0.8,en;q=0.7",
            },
            "fetch": {
                "max_pages": 3,
                "per_page": 20,
                "small_result_threshold": 20,
                "max_item_age_days": 7,
                "request_timeout": 15.0,
                "max_attempts": 4,
                "backoff_base": 1.0,
                "backoff_jitter": 1.0,
                "max_backoff": 10.0,
            },
            "delay": {
                "base_delay_ms": 15000,
                "min_delay_ms": 12000,
                "max_delay_ms": 25000,
                "ttl_seconds": 60,
            },
            "scoring": {
                "min_score": 50,
                "relaxed_floor": 10,
                "relaxed_max_results": 30,
                "fallback_max_results": 20,
            },
            "alerts": {
                "per_page": 20,
                "status_ids": "2,1,6",
                "max_concurrent": 1,
            },
            "storage": {"database_path": "${VINTED_SCOUT_DB}"},
            "logging": {"log_dir": "logs", "level": "INFO"},
        }


def _parse_delay_ms(value: Any, source: str) -> Optional[int]:
    """Accept an override only when it is an integer within the allowed bounds."""
    if value is None or value == "":
        return None
    try:
        delay_ms = int(str(value).strip())
    except ValueError:
        logger.warning(f"Ignoring non-integer request delay from {source}: {value!r}")
        return None
    if not (MIN_DELAY_OVERRIDE_MS <= delay_ms <= MAX_DELAY_OVERRIDE_MS):
        logger.warning(
            f"Ignoring request delay {delay_ms} ms from {source}: "
            f"outside [{MIN_DELAY_OVERRIDE_MS}, {MAX_DELAY_OVERRIDE_MS}]"
        )
        return None
    return delay_ms


class DelayConfigLoader:
    """
    Cached source of the inter-page delay.

    The base delay comes from the ``REQUEST_DELAY_MS`` environment variable,
    then the store's ``request_delay_ms`` setting, then the configured
    default. The resolved value is cached for ``ttl_seconds``.
    """

    def __init__(
        self,
        default: Optional[DelayConfig] = None,
        store: Optional[IAlertStore] = None,
        environ: Optional[Dict[str, str]] = None,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.default = default or DelayConfig()
        self.store = store
        self.environ = os.environ if environ is None else environ
        self.monotonic = monotonic
        self._cached: Optional[DelayConfig] = None
        self._cached_at: Optional[float] = None

    def _resolve(self) -> DelayConfig:
        delay_ms = _parse_delay_ms(self.environ.get(DELAY_ENV_VAR), DELAY_ENV_VAR)
        if delay_ms is not None:
            logger.debug(f"Request delay {delay_ms} ms from environment")
            return self.default.with_base(delay_ms)

        if self.store is not None:
            delay_ms = _parse_delay_ms(self.store.get_setting(DELAY_SETTING_KEY), "app settings")
            if delay_ms is not None:
                logger.debug(f"Request delay {delay_ms} ms from app settings")
                return self.default.with_base(delay_ms)

        return self.default

    def current(self) -> DelayConfig:
        now = self.monotonic()
        if (
            self._cached is None
            or self._cached_at is None
            or now - self._cached_at >= self.default.ttl_seconds
        ):
            self._cached = self._resolve()
            self._cached_at = now
        return self._cached

    def invalidate(self):
        self._cached = None
        self._cached_at = None
