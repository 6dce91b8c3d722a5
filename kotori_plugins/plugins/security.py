"""
Plugin security checks.

This module validates where local plugins may be loaded from, scans plugin
source for disallowed patterns, validates manifest structure and provides an
allow-listed module importer. These are textual and capability restrictions,
not process isolation.
"""

import importlib
import logging
import os
import re
import types
from pathlib import Path
from typing import Any, Callable, FrozenSet, Iterator, List, Mapping, Optional, Pattern, Tuple, Union

from ..core.exceptions import PluginSecurityError

logger = logging.getLogger(__name__)

DEFAULT_USER_PLUGIN_DIRECTORY = "~/kotori-plugins"

SOURCE_FILE_PATTERN = re.compile(r'\.pyw?$')
COMPILED_FILE_PATTERN = re.compile(r'\.py[co]$')

SKIPPED_DIRECTORIES: FrozenSet[str] = frozenset({
    'site-packages', '__pycache__', '.venv', 'venv', 'node_modules',
    '.git', '.svn', '.hg', '.tox', '.mypy_cache', '.pytest_cache',
})

DISALLOWED_PATTERNS: List[Tuple[Pattern[str], str]] = [
    (re.compile(r'^\s*(?:import|from)\s+subprocess\b', re.MULTILINE),
     'subprocess module import'),
    (re.compile(r'^\s*(?:import|from)\s+pty\b', re.MULTILINE),
     'pty module import'),
    (re.compile(r'\bos\s*\.\s*(?:system|popen|spawn\w*|exec\w*|fork\w*)\s*\('),
     'process spawning through the os module'),
    (re.compile(r'(?<![\w.])eval\s*\('),
     'eval() function usage'),
    (re.compile(r'(?<![\w.])exec\s*\('),
     'exec() function usage'),
    (re.compile(r'(?<![\w.])compile\s*\('),
     'compile() function usage'),
    (re.compile(r'__import__\s*\('),
     '__import__() usage'),
    (re.compile(r'\bsys\s*\.\s*exit\s*\('),
     'sys.exit() usage'),
    (re.compile(r'\bos\s*\.\s*_exit\s*\('),
     'os._exit() usage'),
    (re.compile(r'^\s*(?:import|from)\s+shutil\b', re.MULTILINE),
     'direct shutil module usage (use restricted storage instead)'),
    (re.compile(r'^\s*(?:import|from)\s+socket\b', re.MULTILINE),
     'direct socket module usage (use restricted network instead)'),
    (re.compile(r'^\s*(?:import|from)\s+urllib\b', re.MULTILINE),
     'direct urllib module usage (use restricted network instead)'),
    (re.compile(r'^\s*(?:import|from)\s+http\.client\b|^\s*from\s+http\s+import\s+client\b',
                re.MULTILINE),
     'direct http.client module usage (use restricted network instead)'),
    (re.compile(r'^\s*(?:import|from)\s+ctypes\b', re.MULTILINE),
     'ctypes module usage'),
]

DISALLOWED_PERMISSIONS: FrozenSet[str] = frozenset({
    'file_system_full',
    'network_unrestricted',
    'process_control',
})

SANDBOX_ALLOWED_MODULES: FrozenSet[str] = frozenset({
    'json', 'math', 're', 'datetime', 'hashlib', 'collections', 'itertools',
    'functools', 'string', 'textwrap', 'uuid', 'random', 'statistics',
    'decimal', 'typing', 'dataclasses', 'enum',
})


class PluginSecurityManager:
    """
    Security gate for plugin sources.

    Local plugins must live under the project ``plugins`` directory or the
    user plugin directory (``KOTORI_PLUGIN_PATH``, default
    ``~/kotori-plugins``).
    """

    def __init__(self, project_plugin_directory: Union[str, Path] = "plugins",
                 user_plugin_directory: Optional[Union[str, Path]] = None) -> None:
        self._project_plugin_directory = Path(project_plugin_directory)
        self._user_plugin_directory = user_plugin_directory

    def allowed_roots(self) -> List[Path]:
        """Get the resolved directories local plugins may be loaded from."""
        user_directory = self._user_plugin_directory or os.environ.get(
            'KOTORI_PLUGIN_PATH', DEFAULT_USER_PLUGIN_DIRECTORY)

        return [
            self._project_plugin_directory.expanduser().resolve(),
            Path(user_directory).expanduser().resolve(),
        ]

    def validate_local_path(self, plugin_path: Union[str, Path]) -> Path:
        """
        Validate a local plugin path against the allow-list.

        Args:
            plugin_path: Path to the plugin directory or file

        Returns:
            The resolved absolute path

        Raises:
            PluginSecurityError: If the path is outside every allowed root
                or does not exist
        """
        resolved = Path(plugin_path).expanduser().resolve()

        if not any(resolved.is_relative_to(root) for root in self.allowed_roots()):
            logger.warning(f"Rejected plugin path outside allowed roots: {resolved}")
            raise PluginSecurityError("Plugin path not allowed for security reasons")

        if not resolved.exists():
            raise PluginSecurityError(f"Plugin path does not exist: {resolved}")

        return resolved

    def scan_for_malicious_code(self, plugin_path: Union[str, Path]) -> None:
        """
        Scan plugin source files for disallowed patterns.

        Compiled modules outside ``__pycache__`` are rejected, since they
        would be imported without their source ever being scanned.

        Args:
            plugin_path: Plugin directory or single source file

        Raises:
            PluginSecurityError: On the first disallowed pattern or compiled
                module found, or if the path does not exist
        """
        root = Path(plugin_path)
        if not root.exists():
            raise PluginSecurityError(f"Plugin path does not exist: {root}")

        scanned = 0
        for file_path in self._find_source_files(root):
            if COMPILED_FILE_PATTERN.search(file_path.name):
                logger.warning(f"Compiled module shipped without source: {file_path}")
                raise PluginSecurityError(
                    f"Compiled module without reviewable source detected: {file_path}")

            content = file_path.read_text(encoding='utf-8', errors='replace')
            scanned += 1

            for pattern, description in DISALLOWED_PATTERNS:
                if pattern.search(content):
                    logger.warning(f"Disallowed code in {file_path}: {description}")
                    raise PluginSecurityError(
                        f"Potentially dangerous code detected in {file_path}: {description}")

        logger.debug(f"Scanned {scanned} source file(s) under {root}")

    @staticmethod
    def _is_scanned_file(path: Path) -> bool:
        return bool(SOURCE_FILE_PATTERN.search(path.name) or COMPILED_FILE_PATTERN.search(path.name))

    def _find_source_files(self, root: Path) -> Iterator[Path]:
        if root.is_file():
            if self._is_scanned_file(root):
                yield root
            return

        try:
            entries = sorted(root.iterdir())
        except OSError as e:
            logger.debug(f"Skipping unreadable directory {root}: {e}")
            return

        for entry in entries:
            if entry.is_dir():
                if entry.name not in SKIPPED_DIRECTORIES:
                    yield from self._find_source_files(entry)
            elif entry.is_file() and self._is_scanned_file(entry):
                yield entry

    def validate_plugin_config(self, config: Any) -> None:
        """
        Validate a plugin manifest's structure and requested permissions.

        Args:
            config: Manifest mapping

        Raises:
            PluginSecurityError: If a required field is missing or a
                disallowed permission is requested
        """
        if not isinstance(config, Mapping):
            raise PluginSecurityError("Plugin configuration must be a mapping")

        for field_name in ('name', 'version', 'description'):
            value = config.get(field_name)
            if not value or not isinstance(value, str):
                raise PluginSecurityError(
                    f"Plugin configuration must have a string '{field_name}' field")

        permissions = config.get('permissions') or []
        if isinstance(permissions, str) or not isinstance(permissions, (list, tuple, set, frozenset)):
            raise PluginSecurityError("Plugin permissions must be a list")

        requested = DISALLOWED_PERMISSIONS.intersection(permissions)
        if requested:
            raise PluginSecurityError(
                f"Plugin requests disallowed permission(s): {', '.join(sorted(requested))}")

    def is_valid_plugin_config(self, config: Any) -> bool:
        """Boolean form of ``validate_plugin_config``."""
        try:
            self.validate_plugin_config(config)
        except PluginSecurityError:
            return False
        return True

    def create_sandboxed_import(self) -> Callable[[str], types.ModuleType]:
        """
        Create an importer restricted to low-risk standard modules.

        Returns:
            Function importing a module by name

        Raises:
            PluginSecurityError: From the returned function, for modules
                outside the allow-list
        """
        allowed_modules = SANDBOX_ALLOWED_MODULES

        def sandboxed_import(module_name: str) -> types.ModuleType:
            if module_name not in allowed_modules:
                raise PluginSecurityError(
                    f"Module '{module_name}' is not allowed in plugins")
            return importlib.import_module(module_name)

        return sandboxed_import
