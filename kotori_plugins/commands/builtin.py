"""
Commands the host registers itself, independent of any plugin.
"""

from ..core.domain.commands import CommandContext, CommandResult
from ..core.interfaces.commands import ICommand
from ..core.services.command_registry import CommandRegistry


class HelpCommand(ICommand):
    """Lists every registered command with its triggers."""

    name = "help"
    description = "Show available commands"
    triggers = ("help", "?")

    def __init__(self, registry: CommandRegistry) -> None:
        self._registry = registry

    async def execute(self, context: CommandContext) -> CommandResult:  # type: ignore[override]
        return CommandResult.display(self._registry.get_command_help())


def register_builtin_commands(registry: CommandRegistry) -> None:
    registry.register(HelpCommand(registry))
