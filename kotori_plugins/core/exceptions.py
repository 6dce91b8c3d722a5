"""
Exception hierarchy for the plugin subsystem.

Security violations, load/build failures and lifecycle failures each have
their own type so callers can decide which ones to surface and which ones
to recover from.
"""

from enum import Enum
from typing import Optional


class ErrorLevel(Enum):
    """Error level definitions"""
    CRITICAL = "CRITICAL"
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"


class BaseCustomException(Exception):
    """Base class for custom exceptions"""

    def __init__(self, message: str, error_code: Optional[str] = "", level: ErrorLevel = ErrorLevel.ERROR):
        self.message = message
        self.error_code = error_code
        self.level = level
        super().__init__(self.message)


class KotoriPluginError(BaseCustomException):
    """Base exception for every plugin subsystem failure."""

    def __init__(self, message: str, error_code: Optional[str] = "PLUGIN_ERROR",
                 level: ErrorLevel = ErrorLevel.ERROR):
        super().__init__(message, error_code, level)


class PluginSecurityError(KotoriPluginError):
    """A disallowed path, source pattern, permission or capability use."""

    def __init__(self, message: str, error_code: Optional[str] = "PLUGIN_SECURITY_VIOLATION"):
        super().__init__(message, error_code, ErrorLevel.CRITICAL)


class StorageViolation(PluginSecurityError):
    """Restricted storage rejected a key or value."""

    def __init__(self, message: str):
        super().__init__(message, "STORAGE_VIOLATION")


class NetworkViolation(PluginSecurityError):
    """Restricted network rejected a URL."""

    def __init__(self, message: str):
        super().__init__(message, "NETWORK_VIOLATION")


class PluginLoadError(KotoriPluginError):
    """Plugin code could not be resolved, imported or validated."""

    def __init__(self, message: str, error_code: Optional[str] = "PLUGIN_LOAD_ERROR"):
        super().__init__(message, error_code)


class PluginBuildError(PluginLoadError):
    """An install, clone or build step failed."""

    def __init__(self, message: str, output: str = ""):
        super().__init__(message, "PLUGIN_BUILD_ERROR")
        self.output = output


class PluginNotFoundError(KotoriPluginError):
    """No persisted configuration exists for the plugin name."""

    def __init__(self, plugin_name: str):
        super().__init__(f"Plugin configuration not found: {plugin_name}", "PLUGIN_NOT_FOUND",
                         ErrorLevel.WARNING)
        self.plugin_name = plugin_name


class PluginInstallError(KotoriPluginError):
    """Wraps any failure raised while installing a plugin."""

    def __init__(self, message: str):
        super().__init__(message, "PLUGIN_INSTALL_ERROR")


class PluginEnableError(KotoriPluginError):
    """Wraps any failure raised while enabling a plugin."""

    def __init__(self, plugin_name: str, message: str):
        super().__init__(f"Failed to enable plugin {plugin_name}: {message}", "PLUGIN_ENABLE_ERROR")
        self.plugin_name = plugin_name

