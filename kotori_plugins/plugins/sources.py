"""
Plugin source resolution and loading.

This module turns a ``PluginSource`` into a loaded, structurally validated
plugin object. PyPI packages are installed into a private target directory,
local directories are allow-listed, scanned and built, and git repositories
are cloned or pulled, built and scanned. External tools run as subprocesses
with argument lists, never through a shell.
"""

import asyncio
import compileall
import hashlib
import importlib
import importlib.util
import inspect
import json
import logging
import py_compile
import re
import shlex
import sys
import types
from pathlib import Path
from typing import Any, List, Mapping, Optional, Pattern, Sequence, Union

from pydantic import ValidationError

from ..core.domain.plugins import PluginManifest, PluginSource, SourceType
from ..core.exceptions import PluginBuildError, PluginLoadError, PluginSecurityError
from .base import BasePlugin
from .security import SKIPPED_DIRECTORIES, PluginSecurityManager

logger = logging.getLogger(__name__)

MANIFEST_FILE = "plugin.json"
REQUIREMENTS_FILE = "requirements.txt"
DEFAULT_BRANCH = "main"

PACKAGE_NAME_PATTERN = re.compile(r'[A-Za-z0-9](?:[A-Za-z0-9._-]*[A-Za-z0-9])?')
VERSION_PATTERN = re.compile(r'(?:==|>=|<=|~=|!=|>|<)?\s*[A-Za-z0-9.*+!_-]+')
BRANCH_PATTERN = re.compile(r'[A-Za-z0-9._/-]+')
PLUGIN_NAME_PATTERN = re.compile(r'[A-Za-z0-9][A-Za-z0-9._-]*')
REPO_NAME_PATTERN = re.compile(r'[/:]([^/:]+?)(?:\.git)?/?$')

LOCAL_ENTRY_FALLBACKS = ("__init__.py", "plugin.py")
GIT_ENTRY_CANDIDATES = ("build/plugin.py", "plugin.py", "__init__.py")


class PluginSourceManager:
    """
    Resolves plugin sources into loaded plugin objects.

    Layout under ``<data_path>/plugins``:
        pypi/requirements.txt, pypi/site-packages/  PyPI plugins
        git/<repository-name>/                       cloned repositories
        local/<plugin-name>/                         local install marker path
    """

    def __init__(self, data_path: Union[str, Path],
                 security_manager: Optional[PluginSecurityManager] = None,
                 scan_sources: bool = True,
                 pip_command: Optional[Sequence[str]] = None,
                 git_command: str = "git") -> None:
        self._data_path = Path(data_path).expanduser()
        self._security = security_manager or PluginSecurityManager()
        self._scan_sources = scan_sources
        self._pip_command = list(pip_command) if pip_command else [sys.executable, '-m', 'pip']
        self._git_command = git_command

    @property
    def security_manager(self) -> PluginSecurityManager:
        return self._security

    async def load_plugin(self, source: PluginSource) -> Any:
        """
        Resolve, load and validate a plugin.

        Args:
            source: Where to fetch the plugin from

        Returns:
            Validated plugin object

        Raises:
            PluginSecurityError: If a security check fails
            PluginBuildError: If an install, clone or build step fails
            PluginLoadError: If the plugin cannot be imported or is invalid
        """
        logger.info(f"Loading {source.type.value} plugin: {source.identifier}")

        if source.type is SourceType.PYPI:
            return await self._load_pypi_plugin(source)
        elif source.type is SourceType.LOCAL:
            return await self._load_local_plugin(source)
        elif source.type is SourceType.GIT:
            return await self._load_git_plugin(source)

        raise PluginLoadError(f"Unsupported plugin source type: {source.type}")

    # PyPI

    async def _load_pypi_plugin(self, source: PluginSource) -> Any:
        await self._ensure_pypi_package(source.identifier, source.version)

        module = self._import_installed_module(
            self.module_name_for(source.identifier), self.get_pypi_site_dir())
        return self.validate_and_wrap_plugin(self._find_plugin_export(module))

    async def _ensure_pypi_package(self, package_name: str, version: Optional[str] = None) -> None:
        pypi_dir = self.get_pypi_plugin_dir()
        pypi_dir.mkdir(parents=True, exist_ok=True)

        requirements_path = pypi_dir / REQUIREMENTS_FILE
        if not requirements_path.exists():
            self._create_requirements_manifest(requirements_path)

        package_spec = self._package_spec(package_name, version)
        await self._run(
            [*self._pip_command, 'install', '--no-input', '--upgrade',
             '--target', str(self.get_pypi_site_dir()), package_spec],
            cwd=pypi_dir,
            error_message=f"Failed to install package {package_spec}",
        )
        self._record_requirement(requirements_path, package_name, package_spec)

    def _package_spec(self, package_name: str, version: Optional[str]) -> str:
        if not PACKAGE_NAME_PATTERN.fullmatch(package_name):
            raise PluginLoadError(f"Invalid package name: {package_name!r}")
        if not version:
            return package_name

        version = version.strip()
        if not VERSION_PATTERN.fullmatch(version):
            raise PluginLoadError(f"Invalid package version: {version!r}")
        if version[0] in '=<>~!':
            return f"{package_name}{version.replace(' ', '')}"
        return f"{package_name}=={version}"

    def _create_requirements_manifest(self, requirements_path: Path) -> None:
        requirements_path.write_text(
            "# Plugins installed from PyPI by kotori-plugins\n", encoding='utf-8')

    def _record_requirement(self, requirements_path: Path, package_name: str, package_spec: str) -> None:
        canonical = self._canonical_name(package_name)
        lines = [
            line for line in requirements_path.read_text(encoding='utf-8').splitlines()
            if line.startswith('#') or self._canonical_name(re.split(r'[=<>~!\s]', line, 1)[0]) != canonical
        ]
        lines.append(package_spec)
        requirements_path.write_text("\n".join(lines) + "\n", encoding='utf-8')

    @staticmethod
    def _canonical_name(name: str) -> str:
        return re.sub(r'[-_.]+', '-', name).lower()

    @staticmethod
    def module_name_for(package_name: str) -> str:
        """Import name of a PyPI plugin package."""
        return re.sub(r'[-.]', '_', package_name)

    def _import_installed_module(self, module_name: str, site_dir: Path) -> types.ModuleType:
        self._add_search_path(site_dir)
        importlib.invalidate_caches()
        self._purge_modules(module_name)

        try:
            return importlib.import_module(module_name)
        except Exception as e:
            raise PluginLoadError(f"Failed to import plugin module {module_name}: {e}") from e

    # Local

    async def _load_local_plugin(self, source: PluginSource) -> Any:
        if not source.path:
            raise PluginLoadError("Local plugin source must specify path")

        plugin_path = self._security.validate_local_path(source.path)
        if self._scan_sources:
            self._security.scan_for_malicious_code(plugin_path)

        entry = await self._prepare_local_module(plugin_path)
        module = self._import_module_from_file(entry)
        return self.validate_and_wrap_plugin(self._find_plugin_export(module))

    async def _prepare_local_module(self, plugin_path: Path) -> Path:
        """Build a local plugin if needed and return its entry file."""
        if plugin_path.is_file():
            self._compile_sources(plugin_path)
            return plugin_path

        manifest = self._read_manifest(plugin_path)

        if manifest.build_script:
            await self._run_build_script(plugin_path, manifest.build_script)
            if self._scan_sources:
                self._security.scan_for_malicious_code(plugin_path)
        self._compile_sources(plugin_path)

        candidates = [manifest.main] if manifest.main else list(LOCAL_ENTRY_FALLBACKS)
        entry = self._first_existing(plugin_path, candidates)
        if entry is None:
            raise PluginLoadError(f"Plugin entry point not found in {plugin_path}")
        return entry

    def _compile_sources(self, path: Path) -> None:
        """
        Rewrite the bytecode cache of every plugin source file.

        Caches are hash-checked against their source on import, so an edited
        or tampered cache is never run in place of the scanned source.

        Raises:
            PluginBuildError: If a source file does not compile
        """
        invalidation_mode = py_compile.PycInvalidationMode.CHECKED_HASH
        if path.is_file():
            ok = compileall.compile_file(
                str(path), quiet=1, force=True, invalidation_mode=invalidation_mode)
        else:
            ok = compileall.compile_dir(
                str(path), quiet=1, force=True, rx=self._compile_skip_pattern(path),
                invalidation_mode=invalidation_mode)
        if not ok:
            raise PluginBuildError(f"Failed to compile plugin sources in {path}")

    @staticmethod
    def _compile_skip_pattern(root: Path) -> Pattern[str]:
        names = "|".join(re.escape(d) for d in sorted(SKIPPED_DIRECTORIES))
        return re.compile(re.escape(str(root)) + r"[/\\](?:[^/\\]+[/\\])*?(?:" + names + r")[/\\]")

    # Git

    async def _load_git_plugin(self, source: PluginSource) -> Any:
        if not source.repository:
            raise PluginLoadError("Git plugin source must specify repository")

        repo_path = await self._clone_repository(source.repository, source.branch or DEFAULT_BRANCH)
        await self._install_dependencies(repo_path)

        manifest = self._read_manifest(repo_path)
        if manifest.build_script:
            await self._run_build_script(repo_path, manifest.build_script)

        if self._scan_sources:
            self._security.scan_for_malicious_code(repo_path)
        self._compile_sources(repo_path)

        candidates = ([manifest.main] if manifest.main else []) + list(GIT_ENTRY_CANDIDATES)
        entry = self._first_existing(repo_path, candidates)
        if entry is None:
            raise PluginLoadError("Plugin entry point not found after build")

        module = self._import_module_from_file(entry, search_paths=[repo_path / 'site-packages'])
        return self.validate_and_wrap_plugin(self._find_plugin_export(module))

    async def _clone_repository(self, repository: str, branch: str) -> Path:
        if repository.startswith('-'):
            raise PluginSecurityError(f"Invalid repository: {repository!r}")
        if branch.startswith('-') or not BRANCH_PATTERN.fullmatch(branch):
            raise PluginSecurityError(f"Invalid branch name: {branch!r}")

        git_dir = self.get_git_plugin_dir()
        git_dir.mkdir(parents=True, exist_ok=True)
        target_path = git_dir / self.extract_repo_name(repository)

        if target_path.exists():
            await self._run(
                [self._git_command, 'pull', 'origin', branch],
                cwd=target_path,
                error_message=f"Failed to update repository {repository}",
            )
        else:
            await self._run(
                [self._git_command, 'clone', '-b', branch, '--', repository, str(target_path)],
                cwd=git_dir,
                error_message=f"Failed to clone repository {repository}",
            )

        return target_path

    async def _install_dependencies(self, plugin_path: Path) -> None:
        requirements_path = plugin_path / REQUIREMENTS_FILE
        if not requirements_path.exists():
            return

        await self._run(
            [*self._pip_command, 'install', '--no-input', '--upgrade',
             '--target', str(plugin_path / 'site-packages'), '-r', str(requirements_path)],
            cwd=plugin_path,
            error_message="Failed to install dependencies",
        )

    @staticmethod
    def extract_repo_name(repository: str) -> str:
        """Directory name for a cloned repository."""
        match = REPO_NAME_PATTERN.search(repository)
        return match.group(1) if match else 'unknown-plugin'

    # Shared steps

    def _read_manifest(self, plugin_path: Path) -> PluginManifest:
        manifest_path = plugin_path / MANIFEST_FILE
        if not manifest_path.exists():
            return PluginManifest()

        try:
            data = json.loads(manifest_path.read_text(encoding='utf-8'))
        except (OSError, json.JSONDecodeError) as e:
            raise PluginLoadError(f"Invalid plugin manifest {manifest_path}: {e}") from e

        if not isinstance(data, dict):
            raise PluginLoadError(f"Invalid plugin manifest {manifest_path}: expected an object")

        if 'name' in data or 'permissions' in data:
            self._security.validate_plugin_config(data)

        try:
            return PluginManifest.model_validate(data)
        except ValidationError as e:
            raise PluginLoadError(f"Invalid plugin manifest {manifest_path}: {e}") from e

    async def _run_build_script(self, plugin_path: Path, script: str) -> None:
        command = shlex.split(script)
        if not command:
            raise PluginBuildError("Plugin build script is empty")
        if command[0] in ('python', 'python3'):
            command[0] = sys.executable

        await self._run(command, cwd=plugin_path, error_message="Failed to build plugin")

    def _first_existing(self, root: Path, candidates: Sequence[str]) -> Optional[Path]:
        resolved_root = root.resolve()
        for candidate in candidates:
            path = (root / candidate).resolve()
            if not path.is_relative_to(resolved_root):
                raise PluginSecurityError(f"Plugin entry point escapes plugin directory: {candidate}")
            if path.is_file():
                return path
        return None

    async def _run(self, command: Sequence[str], cwd: Optional[Path], error_message: str) -> str:
        """
        Run an external tool and return its combined output.

        Raises:
            PluginBuildError: If the tool cannot be started or exits non-zero
        """
        logger.info(f"Running: {' '.join(command)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(cwd) if cwd else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise PluginBuildError(f"{error_message}: {e}") from e

        stdout, _ = await process.communicate()
        output = stdout.decode('utf-8', errors='replace') if stdout else ''

        if process.returncode != 0:
            logger.error(f"{error_message} (exit code {process.returncode})")
            raise PluginBuildError(
                f"{error_message}: exit code {process.returncode}\n{output.strip()}", output)

        return output

    # Import and validation

    def _import_module_from_file(self, entry: Path,
                                 search_paths: Sequence[Path] = ()) -> types.ModuleType:
        for path in search_paths:
            if path.is_dir():
                self._add_search_path(path)

        module_name = self._module_name_for_entry(entry)
        is_package = entry.name == '__init__.py'
        if not is_package:
            self._add_search_path(entry.parent)

        spec = importlib.util.spec_from_file_location(
            module_name, entry,
            submodule_search_locations=[str(entry.parent)] if is_package else None)
        if not spec or not spec.loader:
            raise PluginLoadError(f"Cannot load plugin from {entry}")

        self._purge_modules(module_name)
        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module

        try:
            spec.loader.exec_module(module)
        except Exception as e:
            sys.modules.pop(module_name, None)
            raise PluginLoadError(f"Failed to import plugin module {entry}: {e}") from e

        return module

    @staticmethod
    def _module_name_for_entry(entry: Path) -> str:
        stem = entry.parent.name if entry.name == '__init__.py' else entry.stem
        digest = hashlib.sha1(str(entry.resolve()).encode('utf-8')).hexdigest()[:8]
        return f"kotori_plugin_{re.sub(r'[^0-9A-Za-z_]', '_', stem)}_{digest}"

    @staticmethod
    def _add_search_path(path: Path) -> None:
        entry = str(path)
        if entry not in sys.path:
            sys.path.append(entry)

    @staticmethod
    def _purge_modules(module_name: str) -> None:
        for name in [n for n in sys.modules if n == module_name or n.startswith(module_name + '.')]:
            del sys.modules[name]

    @staticmethod
    def _find_plugin_export(module: types.ModuleType) -> Any:
        """Pick the plugin object a module exports."""
        for attribute in ('plugin', 'Plugin'):
            if hasattr(module, attribute):
                return getattr(module, attribute)

        for value in vars(module).values():
            if (inspect.isclass(value) and issubclass(value, BasePlugin)
                    and value is not BasePlugin and value.__module__ == module.__name__):
                return value

        return module

    def validate_and_wrap_plugin(self, loaded: Any) -> Any:
        """
        Validate a loaded plugin export.

        Accepts an object, a mapping, or a class taking no arguments, which
        is instantiated.

        Args:
            loaded: Object exported by the plugin module

        Returns:
            Plugin object

        Raises:
            PluginLoadError: Naming the first missing or invalid field
        """
        if loaded is None:
            raise PluginLoadError("Plugin must export an object or class")

        plugin = loaded
        if isinstance(loaded, Mapping):
            plugin = types.SimpleNamespace(**loaded)
        elif inspect.isclass(loaded):
            try:
                plugin = loaded()
            except Exception as e:
                raise PluginLoadError(f"Failed to instantiate plugin class: {e}") from e

        for field_name in ('name', 'version'):
            self._require_string(plugin, field_name)

        if not callable(getattr(plugin, 'initialize', None)):
            raise PluginLoadError("Plugin must have an initialize method")

        for field_name in ('description', 'author'):
            self._require_string(plugin, field_name)

        if not PLUGIN_NAME_PATTERN.fullmatch(plugin.name):
            raise PluginLoadError(
                f"Plugin name {plugin.name!r} may only contain letters, digits, '.', '_' and '-'")

        commands = getattr(plugin, 'commands', None)
        if commands is not None and not isinstance(commands, (list, tuple)):
            raise PluginLoadError("Plugin commands must be a list")

        return plugin

    @staticmethod
    def _require_string(plugin: Any, field_name: str) -> None:
        value = getattr(plugin, field_name, None)
        if not value or not isinstance(value, str):
            raise PluginLoadError(f"Plugin must have a {field_name} property")

    # Paths

    def get_install_path(self, source: PluginSource, plugin_name: str) -> Path:
        """
        On-disk install location of a plugin.

        Raises:
            PluginLoadError: For an unknown source type
        """
        if source.type is SourceType.PYPI:
            return self.get_pypi_site_dir() / self.module_name_for(source.identifier)
        elif source.type is SourceType.LOCAL:
            return self.get_local_plugin_dir() / plugin_name
        elif source.type is SourceType.GIT:
            return self.get_git_plugin_dir() / self.extract_repo_name(source.repository or '')

        raise PluginLoadError(f"Unknown plugin source type: {source.type}")

    def get_plugins_root(self) -> Path:
        return self._data_path / 'plugins'

    def get_pypi_plugin_dir(self) -> Path:
        return self.get_plugins_root() / 'pypi'

    def get_pypi_site_dir(self) -> Path:
        return self.get_pypi_plugin_dir() / 'site-packages'

    def get_local_plugin_dir(self) -> Path:
        return self.get_plugins_root() / 'local'

    def get_git_plugin_dir(self) -> Path:
        return self.get_plugins_root() / 'git'

    def get_plugin_data_dir(self, plugin_name: str) -> Path:
        return self.get_plugins_root() / 'data' / plugin_name
