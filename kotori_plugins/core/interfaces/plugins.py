"""
Plugin system interfaces.

These interfaces define the contracts between the host and plugin code:
what a plugin must provide, and the restricted capabilities the host
hands to it in return.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, List, Optional, Sequence, Union


class IPlugin(ABC):
    """
    Interface for plugin implementations.

    Loaded plugins are validated structurally, so subclassing is optional;
    the attributes below are what validation checks for.
    """

    name: str = ""
    version: str = ""
    description: str = ""
    author: str = ""
    commands: Sequence[Any] = ()
    hooks: Optional[Any] = None
    ui_components: Sequence[Any] = ()

    @abstractmethod
    def initialize(self, context: 'IPluginContext') -> Union[None, Awaitable[None]]:
        """
        Initialize the plugin with the given context.

        Args:
            context: Restricted capability bundle for this plugin

        Raises:
            Exception: Any failure leaves the plugin installed but disabled
        """
        pass

    def dispose(self) -> Union[None, Awaitable[None]]:
        """Release resources before the plugin is disabled."""
        return None


class IRestrictedStorage(ABC):
    """Interface for plugin-private key/value storage."""

    @abstractmethod
    async def read(self, key: str) -> Optional[str]:
        """
        Read a stored value.

        Args:
            key: Storage key

        Returns:
            Stored value or None if absent
        """
        pass

    @abstractmethod
    async def write(self, key: str, value: str) -> None:
        """
        Store a value under a key.

        Raises:
            StorageViolation: If the key or value is not allowed
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        pass

    @abstractmethod
    async def list(self) -> List[str]:
        pass


class IRestrictedNetwork(ABC):
    """Interface for plugin network access."""

    @abstractmethod
    async def fetch(self, url: str, method: str = "GET", **options: Any) -> Any:
        """
        Perform an HTTP request.

        Args:
            url: Absolute http(s) URL
            method: HTTP method
            **options: Request options (headers, params, json, data)

        Returns:
            Response object

        Raises:
            NetworkViolation: If the URL is not allowed
        """
        pass


class IPluginLogger(ABC):
    """Interface for the namespaced logger given to plugins."""

    @abstractmethod
    def info(self, message: str, *args: Any) -> None:
        pass

    @abstractmethod
    def warn(self, message: str, *args: Any) -> None:
        pass

    @abstractmethod
    def error(self, message: str, *args: Any) -> None:
        pass

    @abstractmethod
    def debug(self, message: str, *args: Any) -> None:
        pass


class IPluginContext(ABC):
    """Interface for the capability bundle passed to ``initialize``."""

    config: Any
    data_path: str
    storage: IRestrictedStorage
    network: IRestrictedNetwork
    logger: IPluginLogger
