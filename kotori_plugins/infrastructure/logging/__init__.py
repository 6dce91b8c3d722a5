"""
Logging infrastructure.

Provides loguru-based logging setup with standard logging interception.
"""

from .setup import InterceptHandler, setup_logging

__all__ = [
    "InterceptHandler",
    "setup_logging",
]
