"""
Main entry point for the Kotori plugin host.

This module provides the command-line interface for installing and
managing plugins and for dispatching a single command line through the
command registry.
"""

import asyncio
import json
import logging
import sys
from typing import Any, Awaitable, Callable, Optional

import typer

from .commands.builtin import register_builtin_commands
from .core.domain.commands import CommandContext
from .core.domain.plugins import PluginSource, SourceType
from .core.exceptions import KotoriPluginError
from .core.services.command_registry import CommandRegistry
from .infrastructure.config.loader import ConfigLoader
from .infrastructure.config.models import HostConfig
from .infrastructure.logging.setup import setup_logging
from .plugins.manager import PluginManager

# Create CLI application
cli = typer.Typer(
    name="kotori-plugins",
    help="Install, manage and run Kotori journal plugins"
)

logger = logging.getLogger(__name__)


def _config_option() -> Any:
    return typer.Option(None, "--config", "-c", help="Configuration file path")


def _load_config(config_file: Optional[str]) -> HostConfig:
    try:
        config = ConfigLoader().load_config(config_file)
    except (FileNotFoundError, ValueError, TypeError) as e:
        typer.echo(f"Error loading configuration: {e}", err=True)
        sys.exit(1)
    setup_logging(config.logging)
    return config


def _run_with_manager(config: HostConfig,
                      action: Callable[[PluginManager], Awaitable[Any]],
                      enable_plugins: bool = False) -> Any:
    async def runner() -> Any:
        registry = CommandRegistry(config.command_prefix)
        register_builtin_commands(registry)
        manager = PluginManager(config, registry)
        await manager.initialize(enable_plugins=enable_plugins)
        try:
            return await action(manager)
        finally:
            await manager.shutdown()

    try:
        return asyncio.run(runner())
    except KotoriPluginError as e:
        logger.debug(f"Plugin operation failed: {e}", exc_info=True)
        typer.echo(f"Error: {e.message}", err=True)
        sys.exit(1)


@cli.command()
def install(
    source: str = typer.Argument(
        ..., help="Package name, local plugin path or git repository URL"
    ),
    source_type: SourceType = typer.Option(
        SourceType.PYPI, "--type", "-t", help="Plugin source type"
    ),
    version: Optional[str] = typer.Option(
        None, "--version", "-v", help="Package version (pypi)"
    ),
    branch: Optional[str] = typer.Option(
        None, "--branch", "-b", help="Branch to check out (git)"
    ),
    disabled: bool = typer.Option(
        False, "--disabled", help="Install without enabling"
    ),
    config_file: Optional[str] = _config_option(),
) -> None:
    """Install a plugin from PyPI, a local directory or a git repository."""

    config = _load_config(config_file)
    plugin_source = PluginSource(
        type=source_type,
        identifier=source,
        version=version,
        path=source if source_type is SourceType.LOCAL else None,
        repository=source if source_type is SourceType.GIT else None,
        branch=branch,
    )

    plugin_name = _run_with_manager(
        config, lambda manager: manager.install_plugin(plugin_source, enabled=not disabled))
    state = "disabled" if disabled else "enabled"
    typer.echo(f"Installed plugin {plugin_name} ({state})")


@cli.command()
def enable(
    name: str = typer.Argument(..., help="Plugin name"),
    config_file: Optional[str] = _config_option(),
) -> None:
    """Enable an installed plugin."""

    config = _load_config(config_file)
    _run_with_manager(config, lambda manager: manager.enable_plugin(name))
    typer.echo(f"Enabled plugin {name}")


@cli.command()
def disable(
    name: str = typer.Argument(..., help="Plugin name"),
    config_file: Optional[str] = _config_option(),
) -> None:
    """Disable a plugin without uninstalling it."""

    config = _load_config(config_file)

    async def action(manager: PluginManager) -> bool:
        if manager.get_plugin_config(name) is None:
            return False
        await manager.disable_plugin(name)
        return True

    if not _run_with_manager(config, action):
        typer.echo(f"Error: Plugin configuration not found: {name}", err=True)
        sys.exit(1)
    typer.echo(f"Disabled plugin {name}")


@cli.command()
def uninstall(
    name: str = typer.Argument(..., help="Plugin name"),
    config_file: Optional[str] = _config_option(),
) -> None:
    """Uninstall a plugin and remove its installed files."""

    config = _load_config(config_file)
    _run_with_manager(config, lambda manager: manager.uninstall_plugin(name))
    typer.echo(f"Uninstalled plugin {name}")


@cli.command(name="list")
def list_plugins(
    as_json: bool = typer.Option(False, "--json", help="Print as JSON"),
    config_file: Optional[str] = _config_option(),
) -> None:
    """List installed plugins."""

    config = _load_config(config_file)

    async def action(manager: PluginManager) -> Any:
        return manager.get_installed_plugins()

    plugins = _run_with_manager(config, action)

    if as_json:
        typer.echo(json.dumps(
            {name: record.model_dump(by_alias=True, mode='json', exclude_none=True)
             for name, record in plugins.items()},
            indent=2))
        return

    if not plugins:
        typer.echo("No plugins installed")
        return

    for name, record in plugins.items():
        state = "enabled" if record.enabled else "disabled"
        origin = record.repository or record.source_path or record.package or ""
        typer.echo(f"{name}\t{record.type.value}\t{state}\t{origin}")


@cli.command()
def run(
    command_line: str = typer.Argument(..., help="Command line, e.g. \"/help\""),
    config_file: Optional[str] = _config_option(),
) -> None:
    """Enable installed plugins and dispatch one command line."""

    config = _load_config(config_file)

    async def action(manager: PluginManager) -> Any:
        registry = manager.command_registry
        command = registry.find_command(command_line)
        if command is None:
            return None
        return await registry.execute_command(command, CommandContext(input=command_line))

    result = _run_with_manager(config, action, enable_plugins=True)

    if result is None:
        typer.echo(f"Unknown command: {command_line}", err=True)
        sys.exit(1)

    typer.echo(result.content)
    if result.is_error:
        sys.exit(1)


@cli.command()
def init_config(
    output: str = typer.Option(
        "config.yaml", "--output", "-o", help="Output YAML configuration file"
    )
) -> None:
    """Generate a default configuration file."""

    try:
        ConfigLoader().save_config(HostConfig(), output)
        typer.echo(f"Default configuration saved to {output}")
    except ValueError as e:
        typer.echo(f"Error saving configuration: {e}", err=True)
        sys.exit(1)


@cli.command()
def validate_config(
    config_file: str = typer.Argument(...,
                                      help="Configuration file to validate")
) -> None:
    """Validate a configuration file."""

    config_loader = ConfigLoader()

    try:
        config = config_loader.load_config(config_file)
        typer.echo(f"Configuration file {config_file} is valid")
        typer.echo(f"Data path: {config.data_dir}")
        typer.echo(f"Command prefix: {config.command_prefix}")
    except (FileNotFoundError, ValueError, TypeError) as e:
        typer.echo(f"Configuration validation failed: {e}", err=True)
        sys.exit(1)


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
