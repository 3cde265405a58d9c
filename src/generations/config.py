"""
Configuration management for generations.

Handles loading and managing configuration from files and environment
variables.
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .core.document_merge import DEFAULT_MAX_DEPTH

logger = logging.getLogger(__name__)


@dataclass
class GenerationsConfig:
    """Main configuration for generations."""

    # Database connection
    mongo_url: str = "mongodb://localhost:27017"
    database: str = "generations"

    # Name prefix of the states and diffs datasets
    bucket: str = "generations"

    # Replay tuning
    batch_size: int = 100
    max_merge_depth: int = DEFAULT_MAX_DEPTH

    # Write behaviour
    use_transactions: bool = False
    ensure_indexes: bool = True

    log_level: str = "WARNING"


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).lower() in ('true', '1', 'yes', 'on')


# Field -> parser, applied to config file values and environment variables alike
_PARSERS = {
    'mongo_url': str,
    'database': str,
    'bucket': str,
    'batch_size': int,
    'max_merge_depth': int,
    'use_transactions': _parse_bool,
    'ensure_indexes': _parse_bool,
    'log_level': lambda v: str(v).upper(),
}

# Environment variable -> field
_ENV_VARS = {f"GENERATIONS_{name.upper()}": name for name in _PARSERS}


class ConfigManager:
    """Manages generations configuration from multiple sources."""

    def __init__(self, config_dir: Optional[Path] = None):
        self.config_dir = config_dir or Path.home() / '.generations'
        self.config_file = self.config_dir / 'config.yaml'
        self._config: Optional[GenerationsConfig] = None

    def load_config(self) -> GenerationsConfig:
        """Load configuration from all sources."""
        if self._config:
            return self._config

        # Start with defaults
        config = GenerationsConfig()

        # Load from file if it exists
        if self.config_file.exists():
            file_config = self._load_from_file()
            config = self._merge_configs(config, file_config)

        # Override with environment variables
        env_config = self._load_from_env()
        config = self._merge_configs(config, env_config)

        self._config = config
        return config

    def _load_from_file(self) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        try:
            with open(self.config_file, 'r') as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Could not load config file {self.config_file}: {e}")
            return {}

        if not isinstance(data, dict):
            logger.warning(f"Ignoring config file {self.config_file}: expected a mapping")
            return {}

        file_config = {}
        for key, value in data.items():
            if key not in _PARSERS:
                # Reported by _merge_configs
                file_config[key] = value
                continue
            try:
                file_config[key] = _PARSERS[key](value)
            except (TypeError, ValueError):
                logger.warning(f"Ignoring invalid value for {key} in {self.config_file}: {value!r}")

        return file_config

    def _load_from_env(self) -> Dict[str, Any]:
        """Load configuration from environment variables."""
        env_config = {}

        for env_var, name in _ENV_VARS.items():
            value = os.getenv(env_var)
            if not value:
                continue
            try:
                env_config[name] = _PARSERS[name](value)
            except ValueError:
                logger.warning(f"Ignoring invalid value for {env_var}: {value!r}")

        return env_config

    def _merge_configs(self, base: GenerationsConfig, override: Dict[str, Any]) -> GenerationsConfig:
        """Apply known keys from ``override`` onto ``base``."""
        known = {f.name for f in fields(GenerationsConfig)}

        for key, value in override.items():
            if key not in known:
                logger.warning(f"Unknown configuration key: {key}")
                continue
            setattr(base, key, value)

        return base

    def save_config(self, config: GenerationsConfig) -> None:
        """Save configuration to file."""
        self.config_dir.mkdir(parents=True, exist_ok=True)

        with open(self.config_file, 'w') as f:
            yaml.dump(asdict(config), f, default_flow_style=False, indent=2)

        self._config = config

    def create_default_config(self) -> Path:
        """Create a default configuration file."""
        self.save_config(GenerationsConfig())
        return self.config_file

    def get_config_info(self) -> Dict[str, Any]:
        """Get information about current configuration."""
        config = self.load_config()

        return {
            'config_file': str(self.config_file),
            'config_exists': self.config_file.exists(),
            'database': config.database,
            'bucket': config.bucket,
            'use_transactions': config.use_transactions,
        }


# Global config manager instance
_config_manager: Optional[ConfigManager] = None

def get_config_manager() -> ConfigManager:
    """Get the global config manager instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager

def load_config() -> GenerationsConfig:
    """Load the current configuration."""
    return get_config_manager().load_config()
