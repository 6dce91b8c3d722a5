"""
Core interfaces defining the contracts between the host and plugins.
"""

from .commands import ICommand, ICommandRegistry
from .plugins import IPlugin, IPluginContext, IPluginLogger, IRestrictedNetwork, IRestrictedStorage

__all__ = [
    "ICommand",
    "ICommandRegistry",
    "IPlugin",
    "IPluginContext",
    "IPluginLogger",
    "IRestrictedNetwork",
    "IRestrictedStorage",
]
