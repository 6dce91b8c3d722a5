"""
Core module containing domain models, interfaces and the command registry.

This module is independent of configuration, logging setup and the way
plugins are fetched.
"""

from .domain.commands import CommandContext, CommandResult, ResultType
from .domain.plugins import PluginRecord, PluginSource, SourceType
from .interfaces.commands import ICommand, ICommandRegistry
from .services.command_registry import CommandRegistry

__all__ = [
    "CommandContext",
    "CommandResult",
    "ResultType",
    "PluginRecord",
    "PluginSource",
    "SourceType",
    "ICommand",
    "ICommandRegistry",
    "CommandRegistry",
]
