"""
Configuration management infrastructure.

Provides configuration models and file/environment loading.
"""

from .loader import ConfigLoader
from .models import HostConfig, LoggingConfig, NetworkConfig, PluginsConfig, StorageConfig

__all__ = [
    "ConfigLoader",
    "HostConfig",
    "LoggingConfig",
    "NetworkConfig",
    "PluginsConfig",
    "StorageConfig",
]
