"""
Plugin manager implementation for installing and managing plugins.

This module owns the persisted plugin configuration document and drives
the plugin lifecycle: install, enable, disable and uninstall. Enabled
plugins get a freshly built capability context and have their commands
registered with the command registry.
"""

import asyncio
import json
import logging
import shutil
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError

from ..core.domain.plugins import PluginRecord, PluginSettings, PluginSource, PluginsDocument, SourceType
from ..core.exceptions import (
    PluginEnableError, PluginInstallError, PluginLoadError, PluginNotFoundError, PluginSecurityError,
)
from ..core.services.command_registry import CommandRegistry
from ..core.utils import maybe_await
from ..infrastructure.config.models import HostConfig
from .base import PluginContext, PluginLogger
from .capabilities import AllowListedNetwork, RestrictedNetwork, RestrictedStorage
from .security import PluginSecurityManager
from .sources import PluginSourceManager

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "plugins.json"


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value


class PluginManager:
    """
    Plugin manager with persisted configuration and per-plugin capabilities.

    The persisted document lives at ``<data_path>/plugins.json`` and is fully
    rewritten after every mutation. Lifecycle calls on the same plugin name
    are serialised by a per-name lock.
    """

    def __init__(self, config: Union[HostConfig, str, Path],
                 command_registry: Optional[CommandRegistry] = None,
                 source_manager: Optional[PluginSourceManager] = None) -> None:
        if not isinstance(config, HostConfig):
            config = HostConfig(data_path=str(config))

        self._config = config
        self._registry = command_registry or CommandRegistry(config.command_prefix)
        self._data_path = config.data_dir
        self._config_path = self._data_path / CONFIG_FILE_NAME

        if source_manager is None:
            security_manager = PluginSecurityManager(
                config.plugins.project_plugin_directory,
                config.plugins.user_plugin_directory,
            )
            source_manager = PluginSourceManager(
                self._data_path,
                security_manager,
                scan_sources=config.plugins.scan_sources,
                pip_command=config.plugins.pip_command,
                git_command=config.plugins.git_command,
            )
        self._source_manager = source_manager

        self._document = PluginsDocument()
        self._plugins: Dict[str, Any] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    @property
    def command_registry(self) -> CommandRegistry:
        return self._registry

    @property
    def source_manager(self) -> PluginSourceManager:
        return self._source_manager

    @property
    def config_path(self) -> Path:
        return self._config_path

    @property
    def settings(self) -> PluginSettings:
        return self._document.settings

    def _lock(self, plugin_name: str) -> asyncio.Lock:
        return self._locks.setdefault(plugin_name, asyncio.Lock())

    async def initialize(self, enable_plugins: bool = True) -> None:
        """
        Load the persisted configuration and enable plugins marked enabled.

        A plugin that fails to enable is logged and skipped.

        Args:
            enable_plugins: Start the enabled plugins; pass False to only
                load the configuration
        """
        self._document = self._load_document()
        logger.info(f"Loaded configuration for {len(self._document.plugins)} plugin(s)")

        if not enable_plugins:
            return

        for plugin_name, record in list(self._document.plugins.items()):
            if not record.enabled:
                continue
            try:
                await self.enable_plugin(plugin_name)
            except Exception as e:
                logger.error(f"Failed to enable plugin {plugin_name} on startup: {e}")

    async def install_plugin(self, source: PluginSource, enabled: bool = True) -> str:
        """
        Install a plugin and optionally enable it.

        Args:
            source: Where to fetch the plugin from
            enabled: Enable the plugin after installing

        Returns:
            The plugin's declared name

        Raises:
            PluginSecurityError: If a security check fails
            PluginInstallError: If the plugin cannot be loaded or installed
            PluginEnableError: If enabling the freshly installed plugin fails
        """
        logger.info(f"Installing {source.type.value} plugin: {source.identifier}")

        try:
            plugin = await self._source_manager.load_plugin(source)
        except PluginSecurityError:
            raise
        except PluginLoadError as e:
            raise PluginInstallError(f"Failed to install plugin {source.identifier}: {e.message}") from e

        plugin_name = plugin.name

        async with self._lock(plugin_name):
            if plugin_name in self._document.plugins:
                logger.info(f"Reinstalling plugin: {plugin_name}")
                await self._disable(plugin_name)
            elif len(self._document.plugins) >= self._document.settings.max_plugins:
                raise PluginInstallError(
                    f"Cannot install {plugin_name}: maximum of "
                    f"{self._document.settings.max_plugins} plugins reached")

            install_path = self._source_manager.get_install_path(source, plugin_name)
            source_path = None
            if source.type is SourceType.LOCAL and source.path:
                source_path = str(Path(source.path).expanduser().resolve())

            self._document.plugins[plugin_name] = PluginRecord(
                type=source.type,
                package=source.identifier,
                version=source.version,
                enabled=False,
                install_path=str(install_path),
                source_path=source_path,
                repository=source.repository,
                branch=source.branch,
            )
            self._save()
            logger.info(f"Plugin installed: {plugin_name}")

            if enabled:
                await self._enable(plugin_name, plugin)

        return plugin_name

    async def enable_plugin(self, plugin_name: str) -> None:
        """
        Enable an installed plugin.

        Does nothing if the plugin is already enabled.

        Raises:
            PluginNotFoundError: If the plugin is not installed
            PluginSecurityError: If a security check fails on reload
            PluginEnableError: If loading or initializing the plugin fails
        """
        async with self._lock(plugin_name):
            await self._enable(plugin_name)

    async def _enable(self, plugin_name: str, plugin: Any = None) -> None:
        record = self._document.plugins.get(plugin_name)
        if record is None:
            raise PluginNotFoundError(plugin_name)

        if plugin_name in self._plugins:
            logger.debug(f"Plugin already enabled: {plugin_name}")
            return

        initialized = False
        try:
            if plugin is None:
                plugin = await self._source_manager.load_plugin(
                    PluginSource.from_record(plugin_name, record))
            if plugin.name != plugin_name:
                raise PluginLoadError(
                    f"Plugin now declares name {plugin.name!r}, expected {plugin_name!r}")

            context = self._create_plugin_context(plugin_name)
            await maybe_await(plugin.initialize(context))
            initialized = True

            self._registry.register_plugin(plugin)

        except Exception as e:
            logger.error(f"Failed to enable plugin {plugin_name}: {e}", exc_info=True)
            if initialized:
                await self._dispose(plugin_name, plugin)
            if record.enabled:
                record.enabled = False
                self._save()

            if isinstance(e, PluginSecurityError):
                raise
            message = e.message if isinstance(e, PluginLoadError) else str(e)
            raise PluginEnableError(plugin_name, message) from e

        self._plugins[plugin_name] = plugin
        if not record.enabled:
            record.enabled = True
            self._save()
        logger.info(f"Plugin enabled: {plugin_name}")

    async def disable_plugin(self, plugin_name: str) -> None:
        """
        Disable a plugin, removing its commands.

        Does nothing for a plugin that is not enabled.
        """
        async with self._lock(plugin_name):
            await self._disable(plugin_name)

    async def _disable(self, plugin_name: str) -> None:
        was_enabled = await self._deactivate(plugin_name)

        record = self._document.plugins.get(plugin_name)
        if record is not None and record.enabled:
            record.enabled = False
            self._save()

        if was_enabled:
            logger.info(f"Plugin disabled: {plugin_name}")

    async def _deactivate(self, plugin_name: str) -> bool:
        plugin = self._plugins.pop(plugin_name, None)
        if plugin is None:
            return False

        await self._dispose(plugin_name, plugin)
        self._registry.unregister_plugin(plugin_name)
        return True

    async def _dispose(self, plugin_name: str, plugin: Any) -> None:
        dispose = getattr(plugin, 'dispose', None)
        if not callable(dispose):
            return
        try:
            await maybe_await(dispose())
        except Exception as e:
            logger.warning(f"Plugin {plugin_name} failed to dispose cleanly: {e}", exc_info=True)

    async def uninstall_plugin(self, plugin_name: str) -> None:
        """
        Disable a plugin, remove its installed files and forget it.

        Raises:
            PluginNotFoundError: If the plugin is not installed
        """
        async with self._lock(plugin_name):
            record = self._document.plugins.get(plugin_name)
            if record is None:
                raise PluginNotFoundError(plugin_name)

            await self._disable(plugin_name)
            self._remove_install_path(Path(record.install_path))

            del self._document.plugins[plugin_name]
            self._save()
            logger.info(f"Plugin uninstalled: {plugin_name}")

    def _remove_install_path(self, install_path: Path) -> None:
        plugins_root = self._source_manager.get_plugins_root().resolve()
        resolved = install_path.expanduser().resolve()

        if not resolved.is_relative_to(plugins_root) or resolved == plugins_root:
            logger.warning(f"Not removing install path outside plugin directory: {resolved}")
            return

        if resolved.is_dir():
            shutil.rmtree(resolved)
        elif resolved.exists():
            resolved.unlink()

    async def shutdown(self) -> None:
        """Disable every running plugin without changing persisted state."""
        for plugin_name in list(self._plugins):
            async with self._lock(plugin_name):
                await self._deactivate(plugin_name)
        logger.info("Plugin manager shut down")

    def get_installed_plugins(self) -> Dict[str, PluginRecord]:
        """Get copies of all persisted plugin records."""
        return {name: record.model_copy() for name, record in self._document.plugins.items()}

    def get_plugin_config(self, plugin_name: str) -> Optional[PluginRecord]:
        record = self._document.plugins.get(plugin_name)
        return record.model_copy() if record is not None else None

    def get_enabled_plugins(self) -> List[Any]:
        return list(self._plugins.values())

    def get_plugin(self, plugin_name: str) -> Optional[Any]:
        return self._plugins.get(plugin_name)

    def is_plugin_enabled(self, plugin_name: str) -> bool:
        return plugin_name in self._plugins

    def _create_plugin_context(self, plugin_name: str) -> PluginContext:
        data_dir = self._source_manager.get_plugin_data_dir(plugin_name)
        data_dir.mkdir(parents=True, exist_ok=True)

        storage = RestrictedStorage(
            plugin_name,
            data_dir / 'storage',
            max_value_bytes=self._config.storage.max_value_bytes,
            max_key_length=self._config.storage.max_key_length,
        )

        network_config = self._config.network
        if network_config.enforce_allow_list:
            network: RestrictedNetwork = AllowListedNetwork(
                network_config.allowed_domains,
                user_agent=network_config.user_agent,
                timeout=network_config.timeout,
            )
        else:
            network = RestrictedNetwork(timeout=network_config.timeout)

        return PluginContext(
            config=_freeze(self._config.to_dict()),
            data_path=str(data_dir),
            storage=storage,
            network=network,
            logger=PluginLogger(plugin_name),
            import_module=self._source_manager.security_manager.create_sandboxed_import(),
        )

    def _load_document(self) -> PluginsDocument:
        if not self._config_path.exists():
            logger.info(f"No plugin configuration at {self._config_path}, starting empty")
            return PluginsDocument()

        try:
            data = json.loads(self._config_path.read_text(encoding='utf-8'))
            return PluginsDocument.model_validate(data)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Failed to load plugin configuration {self._config_path}: {e}")
            return PluginsDocument()

    def _save(self) -> None:
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        self._config_path.write_text(
            json.dumps(self._document.to_json_dict(), indent=2), encoding='utf-8')
