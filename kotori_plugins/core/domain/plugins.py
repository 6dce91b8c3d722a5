"""
Plugin domain models.

``PluginSource`` describes where plugin code comes from and is built per
call. ``PluginRecord`` is the durable, persisted configuration of one
installed plugin; ``PluginsDocument`` is the whole persisted file.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SourceType(str, Enum):
    """Where plugin code is fetched from."""
    PYPI = "pypi"
    LOCAL = "local"
    GIT = "git"


@dataclass
class PluginSource:
    """Descriptor of where to fetch plugin code."""

    type: SourceType
    identifier: str
    version: Optional[str] = None
    path: Optional[str] = None
    repository: Optional[str] = None
    branch: Optional[str] = None

    def __post_init__(self) -> None:
        self.type = SourceType(self.type)

    @classmethod
    def from_record(cls, plugin_name: str, record: 'PluginRecord') -> 'PluginSource':
        """Rebuild the source a persisted record was installed from."""
        return cls(
            type=record.type,
            identifier=record.package or plugin_name,
            version=record.version,
            path=record.source_path,
            repository=record.repository,
            branch=record.branch,
        )


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PluginRecord(_CamelModel):
    """Durable record of a plugin's origin and enabled state."""

    type: SourceType
    package: Optional[str] = None
    version: Optional[str] = None
    enabled: bool = False
    install_path: str
    installed_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat())
    source_path: Optional[str] = None
    repository: Optional[str] = None
    branch: Optional[str] = None


class PluginSettings(_CamelModel):
    """Global settings stored next to the plugin records."""

    auto_update: bool = True
    allow_unsigned_plugins: bool = False
    max_plugins: int = Field(default=20, ge=1)


class PluginsDocument(_CamelModel):
    """The persisted ``{plugins, settings}`` document."""

    plugins: Dict[str, PluginRecord] = Field(default_factory=dict)
    settings: PluginSettings = Field(default_factory=PluginSettings)

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode='json', exclude_none=True)


class PluginManifest(BaseModel):
    """Optional ``plugin.json`` shipped in a local or git plugin directory."""

    model_config = ConfigDict(extra='allow')

    name: Optional[str] = None
    version: Optional[str] = None
    description: Optional[str] = None
    main: Optional[str] = None
    permissions: List[str] = Field(default_factory=list)
    scripts: Dict[str, str] = Field(default_factory=dict)

    @property
    def build_script(self) -> Optional[str]:
        return self.scripts.get('build')
