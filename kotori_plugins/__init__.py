"""
Kotori Plugins - plugin host for the Kotori journal.

This package provides slash-command dispatch, plugin installation from
PyPI, local directories and git repositories, and the restricted
capabilities plugins run with.
"""

__version__ = "0.1.0"

# Public API exports
from .core.domain.commands import CommandContext, CommandResult, ResultType
from .core.domain.plugins import PluginSource, SourceType
from .core.interfaces.commands import ICommand
from .core.services.command_registry import CommandRegistry
from .plugins.base import BasePlugin, PluginContext
from .plugins.helpers import create_command, create_plugin, create_simple_plugin, create_text_command
from .plugins.manager import PluginManager

__all__ = [
    "CommandContext",
    "CommandResult",
    "ResultType",
    "PluginSource",
    "SourceType",
    "ICommand",
    "CommandRegistry",
    "BasePlugin",
    "PluginContext",
    "PluginManager",
    "create_command",
    "create_plugin",
    "create_simple_plugin",
    "create_text_command",
]
