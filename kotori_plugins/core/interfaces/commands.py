"""
Command interfaces for host- and plugin-supplied commands.

Plugin commands are duck-typed: anything exposing the attributes of
``ICommand`` is accepted. Subclassing ``ICommand`` is the documented way
to write one.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, List, Sequence, Union

from ..domain.commands import CommandContext, CommandResult


class ICommand(ABC):
    """Interface for commands reachable through the command prefix."""

    name: str = ""
    description: str = ""
    triggers: Sequence[Any] = ()

    @abstractmethod
    def execute(self, context: CommandContext) -> Union[CommandResult, Awaitable[CommandResult]]:
        """
        Execute the command.

        Args:
            context: Execution context with the raw input, entries,
                host services and UI callbacks

        Returns:
            Command result, or an awaitable resolving to one
        """
        pass

    def can_execute(self, context: CommandContext) -> bool:
        """
        Check whether the command may run in the given context.

        Args:
            context: Execution context

        Returns:
            True if ``execute`` may be called
        """
        return True


class ICommandRegistry(ABC):
    """Interface for the command index consulted by the host UI."""

    @abstractmethod
    def register(self, command: Any) -> None:
        pass

    @abstractmethod
    def unregister(self, name: str) -> None:
        pass

    @abstractmethod
    def find_command(self, raw_input: str) -> Any:
        """
        Find the command addressed by raw user input.

        Args:
            raw_input: Text typed by the user

        Returns:
            Matching command or None
        """
        pass

    @abstractmethod
    async def execute_command(self, command: Any, context: CommandContext) -> CommandResult:
        """
        Execute a command with error containment.

        Returns:
            Command result; never raises for failures inside the command
        """
        pass

    @abstractmethod
    def get_registered_commands(self) -> List[Any]:
        pass
