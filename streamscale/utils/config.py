"""
Configuration management for streamscale.

Handles loading and merging configuration from:
- The packaged default configuration file
- An optional user configuration file
- Environment variables
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config" / "default.yaml"

# Used when the default file is not shipped alongside the package
BUILTIN_DEFAULTS: Dict[str, Any] = {
    "stream": {"name": None},
    "aws": {"region": None, "endpoint_url": None},
    "scaling": {
        "describe_retries": 10,
        "modify_retries": 10,
        "retry_backoff_ms": 100,
        "busy_wait_ms": 1000,
        "pct_comparison_scale": 10,
        "initial_status_wait_ms": 20000,
        "status_poll_interval_ms": 1000,
        "stabilize_timeout_ms": None,
    },
    "logging": {"level": "INFO", "format": "json", "output": "stdout"},
}

_INT_ENV_OVERRIDES = {
    "SCALING_DESCRIBE_RETRIES": "scaling.describe_retries",
    "SCALING_MODIFY_RETRIES": "scaling.modify_retries",
    "SCALING_RETRY_BACKOFF_MS": "scaling.retry_backoff_ms",
}


class Config:
    """Configuration manager for streamscale."""

    def __init__(self, config_file: Optional[str] = None):
        """
        Initialize configuration.

        Args:
            config_file: Path to a YAML file merged over the defaults
        """
        self._config: Dict[str, Any] = self._deep_merge({}, BUILTIN_DEFAULTS)
        self._load_default_config()

        if config_file:
            self._load_config_file(config_file)

        self._apply_env_overrides()

    def _load_default_config(self) -> None:
        """Load default configuration."""
        if DEFAULT_CONFIG_PATH.exists():
            self._load_config_file(str(DEFAULT_CONFIG_PATH))

    def _load_config_file(self, config_file: str) -> None:
        """
        Load configuration from YAML file.

        Args:
            config_file: Path to YAML configuration file
        """
        with open(config_file, "r") as f:
            file_config = yaml.safe_load(f) or {}
            self._merge_config(file_config)

    def _merge_config(self, new_config: Dict[str, Any]) -> None:
        self._config = self._deep_merge(self._config, new_config)

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """
        Deep merge two dictionaries.

        Args:
            base: Base dictionary
            override: Override dictionary

        Returns:
            Merged dictionary
        """
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            elif isinstance(value, dict):
                result[key] = self._deep_merge({}, value)
            else:
                result[key] = value
        return result

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides."""
        if stream_name := os.getenv("STREAM_NAME"):
            self.set("stream.name", stream_name)

        if region := os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION"):
            self.set("aws.region", region)

        if endpoint_url := os.getenv("KINESIS_ENDPOINT_URL"):
            self.set("aws.endpoint_url", endpoint_url)

        if log_level := os.getenv("LOG_LEVEL"):
            self.set("logging.level", log_level)

        for env_name, key in _INT_ENV_OVERRIDES.items():
            if value := os.getenv(env_name):
                self.set(key, int(value))

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key: Configuration key in dot notation (e.g., "scaling.modify_retries")
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key.split(".")
        value = self._config
        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set(self, key: str, value: Any) -> None:
        """
        Set configuration value using dot notation.

        Args:
            key: Configuration key in dot notation
            value: Value to set
        """
        keys = key.split(".")
        config = self._config
        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]
        config[keys[-1]] = value

    def to_dict(self) -> Dict[str, Any]:
        """Get entire configuration as dictionary."""
        return self._config.copy()


# Global configuration instance
_config: Optional[Config] = None


def get_config(config_file: Optional[str] = None) -> Config:
    """
    Get global configuration instance.

    Args:
        config_file: Optional configuration file path

    Returns:
        Configuration instance
    """
    global _config
    if _config is None:
        _config = Config(config_file)
    return _config


def reset_config() -> None:
    """Reset global configuration (mainly for testing)."""
    global _config
    _config = None
