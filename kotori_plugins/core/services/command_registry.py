"""
Command registry implementation for slash-command dispatch.

This module indexes host and plugin commands by name, resolves raw user
input to a command, and executes commands with error containment so that
a failing plugin command never crashes the host.
"""

import logging
from typing import Any, Dict, List, Optional

from ..domain.commands import CommandContext, CommandResult, Trigger, as_trigger
from ..interfaces.commands import ICommandRegistry
from ..utils import maybe_await

logger = logging.getLogger(__name__)

CANNOT_EXECUTE_MESSAGE = "This command cannot be executed right now."


class CommandRegistry(ICommandRegistry):
    """
    In-memory index of active commands and their contributing plugin.

    Commands are kept in registration order; trigger matching walks them in
    that order, so an earlier registration wins when several triggers match.
    """

    def __init__(self, prefix: str = "/") -> None:
        if not prefix:
            raise ValueError("Command prefix cannot be empty")
        self._prefix = prefix
        self._commands: Dict[str, Any] = {}
        self._triggers: Dict[str, List[Trigger]] = {}
        self._plugins: Dict[str, Any] = {}
        self._plugin_commands: Dict[str, List[Any]] = {}

    @property
    def prefix(self) -> str:
        """Get the command escape prefix."""
        return self._prefix

    def register(self, command: Any) -> None:
        """
        Register a single command under its name.

        A command registered under an existing name replaces it.

        Raises:
            ValueError: If the command has no name
            TypeError: If a trigger is neither a string nor a pattern
        """
        name = getattr(command, 'name', None)
        if not name or not isinstance(name, str):
            raise ValueError("Command must have a non-empty string name")

        triggers = [as_trigger(t) for t in (getattr(command, 'triggers', None) or [])]

        self._commands[name] = command
        self._triggers[name] = triggers
        logger.debug(f"Registered command: {name}")

    def unregister(self, name: str) -> None:
        """Remove a command by name; unknown names are ignored."""
        if self._commands.pop(name, None) is not None:
            logger.debug(f"Unregistered command: {name}")
        self._triggers.pop(name, None)

    def register_plugin(self, plugin: Any) -> None:
        """
        Register every command a plugin contributes.

        All commands are checked before anything is registered, so a plugin
        with a malformed command, or a command whose name is already taken,
        registers none of its commands.

        Raises:
            ValueError: If a command has no name or its name is taken
            TypeError: If a trigger is neither a string nor a pattern
        """
        plugin_name = plugin.name
        commands = list(getattr(plugin, 'commands', None) or [])

        seen: List[str] = []
        for command in commands:
            name = getattr(command, 'name', None)
            if not name or not isinstance(name, str):
                raise ValueError(f"Plugin {plugin_name} has a command without a name")
            if name in self._commands or name in seen:
                raise ValueError(f"Plugin {plugin_name} command '{name}' is already registered")
            seen.append(name)
            for trigger in getattr(command, 'triggers', None) or []:
                as_trigger(trigger)

        self._plugins[plugin_name] = plugin
        for command in commands:
            self.register(command)
        self._plugin_commands[plugin_name] = commands

        logger.info(f"Registered plugin {plugin_name} with {len(commands)} command(s)")

    def unregister_plugin(self, plugin_name: str) -> None:
        """Remove exactly the commands a plugin contributed."""
        for command in self._plugin_commands.pop(plugin_name, []):
            if self._commands.get(command.name) is command:
                self.unregister(command.name)

        if self._plugins.pop(plugin_name, None) is not None:
            logger.info(f"Unregistered plugin: {plugin_name}")

    def find_command(self, raw_input: str) -> Optional[Any]:
        """
        Find the command addressed by raw user input.

        Input that does not start with the prefix is not a command. Otherwise
        the first token is tried as an exact command name, then every
        command's triggers are tried against the text after the prefix.

        Args:
            raw_input: Text typed by the user

        Returns:
            Matching command or None
        """
        if not raw_input.startswith(self._prefix):
            return None

        command_text = raw_input[len(self._prefix):].strip()
        command_name = command_text.split(' ')[0]

        direct_match = self._commands.get(command_name)
        if direct_match is not None:
            return direct_match

        for name, command in self._commands.items():
            if any(trigger.matches(command_text) for trigger in self._triggers[name]):
                return command

        return None

    async def execute_command(self, command: Any, context: CommandContext) -> CommandResult:
        """
        Execute a command with error containment.

        Args:
            command: Command returned by ``find_command`` or registered directly
            context: Execution context

        Returns:
            The command's result, or an error result if the command refused
            to run or raised
        """
        name = getattr(command, 'name', repr(command))

        try:
            can_execute = getattr(command, 'can_execute', None)
            if can_execute is not None and not await maybe_await(can_execute(context)):
                logger.debug(f"Command {name} refused to execute")
                return CommandResult.error(CANNOT_EXECUTE_MESSAGE)

            result = await maybe_await(command.execute(context))
            return CommandResult.coerce(result)

        except (Exception, SystemExit) as e:
            logger.error(f"Command {name} failed: {e}", exc_info=True)
            return CommandResult.error(f"Command execution failed: {e}")

    def get_registered_commands(self) -> List[Any]:
        """Get all registered commands in registration order."""
        return list(self._commands.values())

    def get_registered_plugins(self) -> List[Any]:
        """Get all plugins whose commands are registered."""
        return list(self._plugins.values())

    def get_plugin_commands(self, plugin_name: str) -> List[Any]:
        """Get the commands a plugin contributed."""
        return list(self._plugin_commands.get(plugin_name, []))

    def get_command_help(self) -> str:
        """Render a help listing of all registered commands."""
        if not self._commands:
            return "No commands are available."

        help_lines = []
        for name, command in self._commands.items():
            triggers = ", ".join(str(t) for t in self._triggers[name])
            description = getattr(command, 'description', '')
            help_lines.append(f"{self._prefix}{name} ({triggers}) - {description}")

        return "Available commands:\n" + "\n".join(help_lines)
