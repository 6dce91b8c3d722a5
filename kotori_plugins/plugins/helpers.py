"""
Convenience constructors for plugin authors.

These build command and plugin objects from plain functions, so a small
plugin can be written without subclassing anything.
"""

import logging
from typing import Any, Awaitable, Callable, Optional, Sequence, Union

from ..core.domain.commands import CommandContext, CommandResult
from ..core.interfaces.commands import ICommand
from ..core.utils import maybe_await
from .base import BasePlugin

logger = logging.getLogger(__name__)

CommandHandler = Callable[[CommandContext], Union[Any, Awaitable[Any]]]
TextHandler = Callable[[CommandContext], Union[str, Awaitable[str]]]


class FunctionCommand(ICommand):
    """Command backed by plain callables."""

    def __init__(self, name: str, triggers: Sequence[Any], description: str,
                 execute: CommandHandler,
                 can_execute: Optional[Callable[[CommandContext], bool]] = None) -> None:
        self.name = name
        self.triggers = list(triggers)
        self.description = description
        self._execute = execute
        self._can_execute = can_execute

    async def execute(self, context: CommandContext) -> CommandResult:  # type: ignore[override]
        return CommandResult.coerce(await maybe_await(self._execute(context)))

    def can_execute(self, context: CommandContext) -> bool:
        if self._can_execute is None:
            return True
        return bool(self._can_execute(context))

    def __repr__(self) -> str:
        return f"FunctionCommand(name={self.name!r})"


def create_command(name: str, triggers: Sequence[Any], description: str,
                   execute: CommandHandler,
                   can_execute: Optional[Callable[[CommandContext], bool]] = None) -> FunctionCommand:
    """Create a command from an execute function returning a result."""
    return FunctionCommand(name, triggers, description, execute, can_execute)


def create_text_command(name: str, triggers: Sequence[Any], description: str,
                        handler: TextHandler) -> FunctionCommand:
    """
    Create a command whose handler returns display text.

    An exception raised by the handler becomes an error result carrying its
    message.
    """
    async def execute(context: CommandContext) -> CommandResult:
        try:
            return CommandResult.display(await maybe_await(handler(context)))
        except Exception as e:
            logger.debug(f"Text command {name} failed: {e}")
            return CommandResult.error(str(e) or "Unknown error")

    return FunctionCommand(name, triggers, description, execute)


class SimplePlugin(BasePlugin):
    """Plugin assembled from metadata and a list of commands."""

    def __init__(self, name: str, version: str, description: str, author: str,
                 commands: Sequence[Any] = (),
                 on_initialize: Optional[Callable[[Any], Any]] = None,
                 on_dispose: Optional[Callable[[], Any]] = None) -> None:
        super().__init__()
        self.name = name
        self.version = version
        self.description = description
        self.author = author
        self.commands = list(commands)
        self._on_initialize = on_initialize
        self._on_dispose = on_dispose

    async def on_initialize(self) -> None:
        if self._on_initialize is not None:
            await maybe_await(self._on_initialize(self.context))
        self.logger.info(f"Plugin {self.name} initialized")

    async def on_dispose(self) -> None:
        if self._on_dispose is not None:
            await maybe_await(self._on_dispose())


def create_plugin(name: str, version: str, description: str, author: str,
                  commands: Sequence[Any] = (),
                  initialize: Optional[Callable[[Any], Any]] = None,
                  dispose: Optional[Callable[[], Any]] = None) -> SimplePlugin:
    """
    Create a plugin from metadata and optional lifecycle functions.

    ``initialize`` receives the plugin context; either function may be a
    coroutine function.
    """
    return SimplePlugin(name, version, description, author, commands,
                        on_initialize=initialize, on_dispose=dispose)


def create_simple_plugin(name: str, version: str, description: str, author: str,
                         commands: Sequence[Any]) -> SimplePlugin:
    """Create a plugin that only contributes commands."""
    return SimplePlugin(name, version, description, author, commands)
