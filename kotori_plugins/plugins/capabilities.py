"""
Restricted capability objects handed to plugins.

Each object is bound to one plugin when the plugin is enabled and dropped
when it is disabled. Every check runs before any file or network I/O.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import SplitResult, urlsplit

import aiohttp

from ..core.exceptions import NetworkViolation, StorageViolation
from ..core.interfaces.plugins import IRestrictedNetwork, IRestrictedStorage

logger = logging.getLogger(__name__)

STORAGE_KEY_PATTERN = re.compile(r'[a-zA-Z0-9_-]+')
DEFAULT_MAX_VALUE_BYTES = 1024 * 1024
DEFAULT_MAX_KEY_LENGTH = 128
ALLOWED_SCHEMES = frozenset({'http', 'https'})
ALLOWED_REQUEST_OPTIONS = frozenset({'params', 'json', 'data'})


class RestrictedStorage(IRestrictedStorage):
    """
    Per-plugin key/value store, one ``<key>.json`` file per key.

    Keys are limited to ``[a-zA-Z0-9_-]`` so they can never name a path
    outside the plugin's data directory.
    """

    def __init__(self, plugin_name: str, data_dir: Path,
                 max_value_bytes: int = DEFAULT_MAX_VALUE_BYTES,
                 max_key_length: int = DEFAULT_MAX_KEY_LENGTH) -> None:
        self._plugin_name = plugin_name
        self._data_dir = Path(data_dir)
        self._max_value_bytes = max_value_bytes
        self._max_key_length = max_key_length

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def _validate_key(self, key: str) -> None:
        if not isinstance(key, str) or not STORAGE_KEY_PATTERN.fullmatch(key):
            raise StorageViolation(
                "Invalid storage key. Only alphanumeric characters, underscore, and hyphen are allowed.")
        if len(key) > self._max_key_length:
            raise StorageViolation(
                f"Storage key too long. Maximum length is {self._max_key_length} characters.")

    def _path_for(self, key: str) -> Path:
        self._validate_key(key)
        return self._data_dir / f"{key}.json"

    async def read(self, key: str) -> Optional[str]:
        path = self._path_for(key)
        if not path.exists():
            return None
        return path.read_text(encoding='utf-8')

    async def write(self, key: str, value: str) -> None:
        path = self._path_for(key)

        if not isinstance(value, str):
            raise StorageViolation("Storage values must be strings.")
        if len(value.encode('utf-8')) > self._max_value_bytes:
            raise StorageViolation(
                f"Storage value too large. Maximum size is {self._max_value_bytes} bytes.")

        self._data_dir.mkdir(parents=True, exist_ok=True)
        path.write_text(value, encoding='utf-8')
        logger.debug(f"Plugin {self._plugin_name} wrote storage key {key}")

    async def delete(self, key: str) -> None:
        path = self._path_for(key)
        if path.exists():
            path.unlink()

    async def list(self) -> List[str]:
        if not self._data_dir.is_dir():
            return []
        return sorted(
            p.stem for p in self._data_dir.glob('*.json')
            if p.is_file() and STORAGE_KEY_PATTERN.fullmatch(p.stem)
        )


@dataclass
class NetworkResponse:
    """Fully read HTTP response returned to plugin code."""

    status: int
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def text(self, encoding: str = 'utf-8') -> str:
        return self.body.decode(encoding, errors='replace')

    def json(self) -> Any:
        return json.loads(self.body)


class RestrictedNetwork(IRestrictedNetwork):
    """HTTP client that only speaks http and https."""

    def __init__(self, timeout: float = 30.0) -> None:
        self._timeout = timeout

    def _validate_url(self, url: str) -> SplitResult:
        try:
            parsed = urlsplit(url)
        except ValueError as e:
            raise NetworkViolation(f"Invalid URL: {e}")

        if parsed.scheme.lower() not in ALLOWED_SCHEMES:
            raise NetworkViolation("Only HTTP and HTTPS protocols are allowed")
        if not parsed.hostname:
            raise NetworkViolation(f"URL has no host: {url}")

        return parsed

    def _prepare_headers(self, headers: Optional[Dict[str, str]]) -> Dict[str, str]:
        return dict(headers or {})

    def _request_options(self, options: Dict[str, Any]) -> Dict[str, Any]:
        unsupported = set(options) - ALLOWED_REQUEST_OPTIONS
        if unsupported:
            raise NetworkViolation(
                f"Unsupported request option(s): {', '.join(sorted(unsupported))}")
        return dict(options)

    async def fetch(self, url: str, method: str = "GET",
                    headers: Optional[Dict[str, str]] = None, **options: Any) -> NetworkResponse:
        """
        Perform an HTTP request and read the full response.

        Args:
            url: Absolute http(s) URL
            method: HTTP method
            headers: Request headers
            **options: ``params``, ``json`` or ``data``

        Returns:
            Response with status, headers and body

        Raises:
            NetworkViolation: If the URL or options are not allowed
        """
        self._validate_url(url)
        request_headers = self._prepare_headers(headers)
        request_options = self._request_options(options)

        timeout = aiohttp.ClientTimeout(total=self._timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.request(method, url, headers=request_headers,
                                       allow_redirects=self._allow_redirects,
                                       **request_options) as response:
                body = await response.read()
                return NetworkResponse(
                    status=response.status,
                    url=str(response.url),
                    headers=dict(response.headers),
                    body=body,
                )

    @property
    def _allow_redirects(self) -> bool:
        return True


class AllowListedNetwork(RestrictedNetwork):
    """
    HTTP client limited to an allow-list of domains.

    A host is allowed if it equals an allowed domain or is a subdomain of
    one. Redirects are not followed, since a redirect target is not
    checked against the list.
    """

    def __init__(self, allowed_domains: Iterable[str],
                 user_agent: str = "kotori-journal-plugin/1.0.0",
                 timeout: float = 30.0) -> None:
        super().__init__(timeout)
        self._allowed_domains = tuple(d.lower().strip('.') for d in allowed_domains if d)
        self._user_agent = user_agent

    @property
    def allowed_domains(self) -> List[str]:
        return list(self._allowed_domains)

    def is_host_allowed(self, hostname: str) -> bool:
        host = hostname.lower().rstrip('.')
        return any(host == domain or host.endswith('.' + domain)
                   for domain in self._allowed_domains)

    def _validate_url(self, url: str) -> SplitResult:
        parsed = super()._validate_url(url)
        if not self.is_host_allowed(parsed.hostname or ''):
            raise NetworkViolation(
                f"Access to domain '{parsed.hostname}' is not allowed")
        return parsed

    def _prepare_headers(self, headers: Optional[Dict[str, str]]) -> Dict[str, str]:
        prepared = super()._prepare_headers(headers)
        for name in list(prepared):
            if name.lower() == 'user-agent':
                del prepared[name]
        prepared['User-Agent'] = self._user_agent
        return prepared

    @property
    def _allow_redirects(self) -> bool:
        return False
