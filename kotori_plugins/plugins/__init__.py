"""
Plugin system.

This module provides plugin installation, loading and lifecycle management
together with the security checks and restricted capabilities plugins run
under.
"""

from .base import BasePlugin, PluginContext, PluginLogger
from .capabilities import AllowListedNetwork, NetworkResponse, RestrictedNetwork, RestrictedStorage
from .manager import PluginManager
from .security import PluginSecurityManager
from .sources import PluginSourceManager

__all__ = [
    "BasePlugin",
    "PluginContext",
    "PluginLogger",
    "AllowListedNetwork",
    "NetworkResponse",
    "RestrictedNetwork",
    "RestrictedStorage",
    "PluginManager",
    "PluginSecurityManager",
    "PluginSourceManager",
]
