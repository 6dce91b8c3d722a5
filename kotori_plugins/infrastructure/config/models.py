"""
Configuration models and data structures.

This module defines the host configuration consumed by the plugin
subsystem, providing type safety and validation for configuration values.
"""

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

DEFAULT_DATA_PATH = str(Path.home() / ".kotori-journal-data")


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    log_directory: str = "logs"
    max_file_size: str = "10 MB"
    backup_count: int = 5
    console_enabled: bool = True
    file_enabled: bool = False


@dataclass
class PluginsConfig:
    """Plugin source and security configuration."""
    project_plugin_directory: str = "plugins"
    user_plugin_directory: str = "~/kotori-plugins"
    scan_sources: bool = True
    pip_command: List[str] = field(default_factory=list)
    git_command: str = "git"


@dataclass
class StorageConfig:
    """Restricted plugin storage limits."""
    max_value_bytes: int = 1024 * 1024
    max_key_length: int = 128


@dataclass
class NetworkConfig:
    """Restricted plugin network configuration."""
    enforce_allow_list: bool = True
    allowed_domains: List[str] = field(default_factory=lambda: [
        "api.openweathermap.org",
        "httpbin.org",
        "api.github.com",
    ])
    user_agent: str = "kotori-journal-plugin/1.0.0"
    timeout: float = 30.0


@dataclass
class HostConfig:
    """Main host configuration."""

    data_path: str = DEFAULT_DATA_PATH
    command_prefix: str = "/"

    plugins: PluginsConfig = field(default_factory=PluginsConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    config_file_path: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if not self.command_prefix or self.command_prefix.strip() != self.command_prefix:
            raise ValueError(
                f"Command prefix must be non-empty without surrounding whitespace, got {self.command_prefix!r}")

        if not self.data_path:
            raise ValueError("Data path cannot be empty")

        limits = [
            ("Storage value ceiling", self.storage.max_value_bytes),
            ("Storage key length", self.storage.max_key_length),
            ("Network timeout", self.network.timeout),
        ]
        for name, value in limits:
            if value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")

        self.logging.level = self.logging.level.upper()

    @property
    def data_dir(self) -> Path:
        return Path(self.data_path).expanduser()

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'HostConfig':
        """Create configuration from dictionary."""
        defaults = cls()
        return cls(
            data_path=data.get('data_path', defaults.data_path),
            command_prefix=data.get('command_prefix', defaults.command_prefix),
            plugins=PluginsConfig(**data.get('plugins', {})),
            storage=StorageConfig(**data.get('storage', {})),
            network=NetworkConfig(**data.get('network', {})),
            logging=LoggingConfig(**data.get('logging', {})),
            config_file_path=data.get('config_file_path'),
        )
