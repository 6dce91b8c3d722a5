"""
Host-provided commands.
"""

from .builtin import HelpCommand, register_builtin_commands

__all__ = [
    "HelpCommand",
    "register_builtin_commands",
]
