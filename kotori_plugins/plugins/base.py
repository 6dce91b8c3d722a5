"""
Base plugin classes and the plugin execution context.

Plugin authors may subclass ``BasePlugin`` or ship any object with the same
attributes. ``PluginContext`` is the capability bundle the manager builds
for each enabled plugin.
"""

import logging
import types
from dataclasses import dataclass, field
from typing import Any, Callable, List, Mapping, Optional

from ..core.interfaces.plugins import IPlugin, IPluginContext, IPluginLogger, IRestrictedNetwork, IRestrictedStorage

logger = logging.getLogger(__name__)


class PluginLogger(IPluginLogger):
    """Logger namespaced to one plugin; messages are prefixed with its name."""

    def __init__(self, plugin_name: str) -> None:
        self._plugin_name = plugin_name
        self._logger = logging.getLogger(f"plugin.{plugin_name}")

    @property
    def name(self) -> str:
        return self._logger.name

    def _format(self, message: str) -> str:
        return f"[{self._plugin_name}] {message}"

    def info(self, message: str, *args: Any) -> None:
        self._logger.info(self._format(message), *args)

    def warn(self, message: str, *args: Any) -> None:
        self._logger.warning(self._format(message), *args)

    warning = warn

    def error(self, message: str, *args: Any) -> None:
        self._logger.error(self._format(message), *args)

    def debug(self, message: str, *args: Any) -> None:
        self._logger.debug(self._format(message), *args)


@dataclass
class PluginContext(IPluginContext):
    """
    Capability bundle passed to ``initialize``.

    ``config`` is a read-only view of the host configuration. Plugins get
    no raw filesystem or network handles, only the restricted objects.
    """

    config: Mapping[str, Any]
    data_path: str
    storage: IRestrictedStorage
    network: IRestrictedNetwork
    logger: IPluginLogger
    import_module: Callable[[str], types.ModuleType]


class BasePlugin(IPlugin):
    """
    Base plugin class providing common functionality.

    Subclasses set the metadata class attributes and override the
    ``on_initialize`` / ``on_dispose`` hooks as needed.
    """

    name: str = ""
    version: str = "1.0.0"
    description: str = ""
    author: str = ""

    def __init__(self) -> None:
        self.commands: List[Any] = list(type(self).commands)
        self._context: Optional[PluginContext] = None

    @property
    def context(self) -> Optional[PluginContext]:
        """Get plugin context."""
        return self._context

    @property
    def logger(self) -> Any:
        """Get plugin logger."""
        if self._context is not None:
            return self._context.logger
        return logger

    @property
    def metadata(self) -> Mapping[str, Any]:
        """Get plugin metadata."""
        return {
            'name': self.name,
            'version': self.version,
            'description': self.description,
            'author': self.author,
            'commands': [getattr(c, 'name', '') for c in self.commands],
        }

    async def initialize(self, context: PluginContext) -> None:  # type: ignore[override]
        """Initialize the plugin with context."""
        self._context = context
        self.logger.info(f"Initializing plugin: {self.name}")
        await self.on_initialize()

    async def dispose(self) -> None:  # type: ignore[override]
        """Dispose the plugin."""
        try:
            await self.on_dispose()
        finally:
            self._context = None

    async def on_initialize(self) -> None:
        """Called when plugin is initialized with context."""
        pass

    async def on_dispose(self) -> None:
        """Called before the plugin is disabled."""
        pass
