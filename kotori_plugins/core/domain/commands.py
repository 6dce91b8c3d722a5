"""
Command domain models for slash-command dispatch.

This module defines triggers, command results and the execution context
handed to every command, whether it comes from the host or from a plugin.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Pattern, Union


class ResultType(Enum):
    """Kind of output a command produces."""
    DISPLAY = "display"  # Show content to the user
    ACTION = "action"    # A side effect happened, content is a status line
    ERROR = "error"      # Command refused or failed


@dataclass(frozen=True)
class LiteralTrigger:
    """Matches when the command text starts with ``text``."""

    text: str

    def matches(self, command_text: str) -> bool:
        return command_text.startswith(self.text)

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True)
class PatternTrigger:
    """Matches when ``pattern`` is found anywhere in the command text."""

    pattern: Pattern[str]

    def matches(self, command_text: str) -> bool:
        return self.pattern.search(command_text) is not None

    def __str__(self) -> str:
        return f"/{self.pattern.pattern}/"


Trigger = Union[LiteralTrigger, PatternTrigger]


def as_trigger(value: Any) -> Trigger:
    """
    Normalize a declared trigger into a tagged trigger.

    Plugin code declares triggers as plain strings or compiled patterns;
    already-normalized triggers pass through unchanged.

    Raises:
        TypeError: If the value is neither a string nor a pattern
    """
    if isinstance(value, (LiteralTrigger, PatternTrigger)):
        return value
    if isinstance(value, str):
        return LiteralTrigger(value)
    if isinstance(value, re.Pattern):
        return PatternTrigger(value)
    raise TypeError(f"Unsupported trigger type: {type(value).__name__}")


@dataclass
class CommandResult:
    """Typed outcome of a command execution."""

    type: ResultType
    content: str
    data: Any = None

    @property
    def is_error(self) -> bool:
        return self.type is ResultType.ERROR

    @classmethod
    def display(cls, content: str, data: Any = None) -> 'CommandResult':
        return cls(ResultType.DISPLAY, content, data)

    @classmethod
    def action(cls, content: str, data: Any = None) -> 'CommandResult':
        return cls(ResultType.ACTION, content, data)

    @classmethod
    def error(cls, content: str, data: Any = None) -> 'CommandResult':
        return cls(ResultType.ERROR, content, data)

    @classmethod
    def coerce(cls, value: Any) -> 'CommandResult':
        """
        Convert a handler's return value into a CommandResult.

        Accepts a CommandResult or a mapping with ``type``/``content`` keys,
        the shape plugin authors tend to return.

        Raises:
            TypeError: If the value cannot be interpreted as a result
        """
        if isinstance(value, CommandResult):
            return value
        if isinstance(value, Mapping):
            return cls(
                type=ResultType(value.get('type', 'display')),
                content=str(value.get('content', '')),
                data=value.get('data'),
            )
        raise TypeError(
            f"Command returned {type(value).__name__}, expected CommandResult")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type.value,
            'content': self.content,
            'data': self.data,
        }


def _noop(*args: Any) -> None:
    return None


@dataclass
class UIContext:
    """Callbacks a command may use to update the host UI."""

    set_message: Callable[[str], None] = _noop
    set_entries: Callable[[List[Any]], None] = _noop
    add_entry: Callable[[Any], None] = _noop


@dataclass
class CommandServices:
    """Bridge into host collaborators (entry storage, search, categories)."""

    journal: Any = None
    storage: Any = None
    search: Any = None
    categories: Any = None


@dataclass
class CommandContext:
    """Everything a command receives when executed."""

    input: str
    entries: List[Any] = field(default_factory=list)
    services: CommandServices = field(default_factory=CommandServices)
    ui: UIContext = field(default_factory=UIContext)
    metadata: Optional[Dict[str, Any]] = None
