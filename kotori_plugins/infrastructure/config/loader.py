"""
Configuration loading and saving utilities.

This module reads the host configuration from a YAML or JSON file and
applies ``KOTORI_*`` environment variable overrides on top.
"""

import json
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import yaml

from .models import HostConfig

YAML_SUFFIXES = ('.yaml', '.yml')


def _parse_bool(value: str) -> bool:
    return value.lower() in ('true', '1', 'yes', 'on', 'enabled')


def _parse_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(',') if item.strip()]


# Environment suffix -> (section, key, converter); a None section is top level
ENVIRONMENT_OVERRIDES: Dict[str, Tuple[Optional[str], str, Callable[[str], Any]]] = {
    "DATA_PATH": (None, "data_path", str),
    "COMMAND_PREFIX": (None, "command_prefix", str),
    "PLUGIN_PATH": ("plugins", "user_plugin_directory", str),
    "SCAN_SOURCES": ("plugins", "scan_sources", _parse_bool),
    "NETWORK_ALLOW_LIST": ("network", "enforce_allow_list", _parse_bool),
    "ALLOWED_DOMAINS": ("network", "allowed_domains", _parse_list),
    "LOG_LEVEL": ("logging", "level", str),
    "LOG_DIR": ("logging", "log_directory", str),
}


class ConfigLoader:
    """Host configuration loader."""

    def __init__(self, env_prefix: str = "KOTORI_") -> None:
        self._env_prefix = env_prefix

    def load_config(self, config_file: Optional[str] = None) -> HostConfig:
        """
        Load configuration from file and environment variables.

        Args:
            config_file: Path to configuration file (optional)

        Returns:
            Loaded and validated configuration

        Raises:
            FileNotFoundError: If config_file does not exist
            ValueError: If the file cannot be parsed or a value is invalid
        """
        config_data = self._read_file(Path(config_file)) if config_file else {}
        self._apply_environment(config_data)

        config = HostConfig.from_dict(config_data)
        config.config_file_path = config_file
        return config

    def save_config(self, config: HostConfig, file_path: str) -> None:
        """Write configuration to a YAML file."""
        path = Path(file_path)
        if path.suffix.lower() not in YAML_SUFFIXES:
            raise ValueError(f"Configuration can only be saved as YAML, got {path.suffix or path.name}")

        config_data = config.to_dict()
        config_data.pop('config_file_path', None)
        try:
            with path.open('w', encoding='utf-8') as f:
                yaml.safe_dump(config_data, f, default_flow_style=False, allow_unicode=True)
        except OSError as e:
            raise ValueError(f"Error writing {file_path}: {e}") from e

    def _read_file(self, path: Path) -> Dict[str, Any]:
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        suffix = path.suffix.lower()
        if suffix not in YAML_SUFFIXES and suffix != '.json':
            raise ValueError(f"Unsupported configuration file format: {path.suffix}")

        try:
            with path.open('r', encoding='utf-8') as f:
                data = json.load(f) if suffix == '.json' else yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {path}: {e}") from e
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {path}: {e}") from e
        except OSError as e:
            raise ValueError(f"Error reading {path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"Configuration in {path} must be a mapping")
        return data

    def _apply_environment(self, config_data: Dict[str, Any]) -> None:
        """Overlay ``KOTORI_*`` variables onto the parsed file data."""
        for suffix, (section, key, converter) in ENVIRONMENT_OVERRIDES.items():
            env_var = self._env_prefix + suffix
            value = os.getenv(env_var)
            if value is None:
                continue

            try:
                converted = converter(value)
            except (ValueError, TypeError) as e:
                raise ValueError(f"Invalid value for {env_var}: {value} ({e})") from e

            target = config_data if section is None else config_data.setdefault(section, {})
            target[key] = converted
