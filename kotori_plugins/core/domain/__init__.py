"""
Domain models for commands and plugins.
"""

from .commands import (
    CommandContext, CommandResult, CommandServices, LiteralTrigger, PatternTrigger,
    ResultType, UIContext, as_trigger,
)
from .plugins import PluginManifest, PluginRecord, PluginSettings, PluginSource, PluginsDocument, SourceType

__all__ = [
    "CommandContext",
    "CommandResult",
    "CommandServices",
    "LiteralTrigger",
    "PatternTrigger",
    "ResultType",
    "UIContext",
    "as_trigger",
    "PluginManifest",
    "PluginRecord",
    "PluginSettings",
    "PluginSource",
    "PluginsDocument",
    "SourceType",
]
