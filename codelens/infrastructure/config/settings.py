"""Provides functions for loading and accessing configuration settings.

Supports loading from .env files, environment variables, and a dedicated
configuration file (~/.codelens/config.yaml). `OrchestratorSettings` turns
the raw key/value configuration into the validated option set consumed by
the analysis orchestrator.
"""

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from dotenv import load_dotenv

from codelens.domain.errors import ConfigurationError

logger = logging.getLogger(__name__)

# --- Configuration Constants ---
DEFAULT_CONFIG_DIR = Path.home() / ".codelens"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
ENV_FILE_NAME = ".env"
SETTINGS_PREFIX = "codelens"

# --- Global Configuration Store ---
_config: Dict[str, Any] = {}
_test_config: Dict[str, Any] = {}
_loaded = False


def _flatten(data: Mapping[str, Any], prefix: str = "") -> Dict[str, Any]:
    """Flattens nested YAML mappings into dotted keys ('codelens.max_retries')."""
    flat: Dict[str, Any] = {}
    for key, value in data.items():
        dotted = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            flat.update(_flatten(value, dotted))
        else:
            flat[dotted] = value
    return flat


def load_configuration(config_file: Path = DEFAULT_CONFIG_FILE, env_file: Optional[Path] = None) -> None:
    """Loads configuration from environment, .env file, and YAML file.

    Priority order (highest to lowest):
    1. Environment Variables
    2. .env file
    3. YAML configuration file
    4. Default values
    """
    global _config, _loaded
    if _loaded:
        logger.debug("Configuration already loaded.")
        return

    _config = {}

    if config_file.exists():
        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                yaml_config = yaml.safe_load(f)
            if isinstance(yaml_config, dict):
                _config.update(_flatten(yaml_config))
                logger.info(f"Loaded configuration from YAML: {config_file}")
            elif yaml_config is not None:
                logger.warning(f"YAML config file {config_file} did not contain a dictionary.")
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load or parse YAML config {config_file}: {e}")
    else:
        logger.debug(f"YAML config file not found: {config_file}")

    dotenv_path = env_file or find_dotenv_path()
    if dotenv_path:
        # override=False: real environment variables take precedence
        if load_dotenv(dotenv_path=dotenv_path, override=False):
            logger.info(f"Loaded environment variables from: {dotenv_path}")
    else:
        logger.debug("No .env file found at or above the current directory.")

    _loaded = True
    logger.debug("Configuration loading process completed.")


def _coerce(value: str) -> Any:
    lowered = value.lower()
    if lowered == 'true':
        return True
    if lowered == 'false':
        return False
    try:
        if '.' in value:
            return float(value)
        return int(value)
    except ValueError:
        return value


def get_config(key: str, default: Any = None) -> Any:
    """
    Get a configuration value by key.

    Priority:
    1. Test configuration (if in testing mode)
    2. Environment variable (key upper-cased, dots replaced by underscores)
    3. YAML config
    4. Default value
    """
    if key in _test_config:
        return _test_config[key]

    env_key = key.upper().replace('.', '_')
    if env_key in os.environ:
        return _coerce(os.environ[env_key])

    if key in _config:
        return _config[key]

    return default


def set_config(key: str, value: Any) -> None:
    """Sets a configuration value for the current process."""
    logger.debug(f"Setting config: {key} = {value!r}")
    _config[key] = value


def find_dotenv_path() -> Optional[Path]:
    """Searches for the .env file upwards from the current directory."""
    cwd = Path.cwd()
    for path in [cwd] + list(cwd.parents):
        env_path = path / ENV_FILE_NAME
        if env_path.is_file():
            return env_path
    return None


# --- Convenience Functions ---

def get_openai_api_key() -> Optional[str]:
    """Checks ENV OPENAI_API_KEY first, then yaml openai.api_key."""
    key = get_config('OPENAI_API_KEY') or get_config('openai.api_key')
    return str(key) if key else None


def set_config_for_testing(config_dict: Dict[str, Any]) -> None:
    """Overrides configuration values for tests."""
    _test_config.update(config_dict)
    logger.debug(f"Set testing configuration: {config_dict}")


def clear_test_config() -> None:
    """Clear all testing configuration values."""
    _test_config.clear()


# --- Orchestrator settings ---

@dataclass(frozen=True)
class OrchestratorSettings:
    """Validated option set recognized by the analysis orchestrator.

    Durations are in seconds.
    """

    model: str = "gpt-4o-mini"
    temperature: float = 0.3
    max_tokens: int = 4096
    enable_cache: bool = True
    cache_ttl: float = 3600.0
    cache_cleanup_interval: float = 300.0
    max_concurrency: int = 5
    rate_limit_capacity: int = 50
    rate_limit_refill_rate: float = 5.0
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    api_key: Optional[str] = None

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Raises ConfigurationError when a value is out of range."""
        if not self.model:
            raise ConfigurationError("A model identifier is required.")
        if not 0.0 <= self.temperature <= 1.0:
            raise ConfigurationError(f"temperature must be within [0, 1], got {self.temperature}")
        for name in ("max_tokens", "max_concurrency", "rate_limit_capacity"):
            if getattr(self, name) < 1:
                raise ConfigurationError(f"{name} must be at least 1, got {getattr(self, name)}")
        for name in ("cache_ttl", "cache_cleanup_interval", "rate_limit_refill_rate", "max_delay"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive, got {getattr(self, name)}")
        if self.max_retries < 0:
            raise ConfigurationError(f"max_retries cannot be negative, got {self.max_retries}")
        if self.base_delay < 0:
            raise ConfigurationError(f"base_delay cannot be negative, got {self.base_delay}")
        if self.backoff_multiplier < 1:
            raise ConfigurationError(f"backoff_multiplier must be >= 1, got {self.backoff_multiplier}")

    def with_overrides(self, **overrides: Any) -> "OrchestratorSettings":
        return replace(self, **overrides)

    @classmethod
    def from_config(cls, **overrides: Any) -> "OrchestratorSettings":
        """Builds settings from `codelens.*` configuration keys.

        Explicit keyword overrides win over configured values.
        """
        load_configuration()
        values: Dict[str, Any] = {}
        for f in fields(cls):
            if f.name == "api_key":
                continue
            configured = get_config(f"{SETTINGS_PREFIX}.{f.name}")
            if configured is not None:
                values[f.name] = _convert(f.name, configured, f.default)
        values["api_key"] = get_openai_api_key()
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


def _convert(name: str, value: Any, default: Any) -> Any:
    try:
        if isinstance(default, bool):
            if isinstance(value, str):
                return value.strip().lower() in ("1", "true", "yes", "on")
            return bool(value)
        if isinstance(default, int):
            return int(value)
        if isinstance(default, float):
            return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid value for {name}: {value!r}") from e
    return value
