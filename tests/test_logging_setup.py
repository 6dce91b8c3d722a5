"""
Tests for logging setup and configuration utilities.

测试日志设置和配置工具功能。
"""

import logging
import sys
from pathlib import Path
from typing import Iterator, List
from unittest.mock import Mock, patch

import pytest

from kotori_plugins.infrastructure.config.models import LoggingConfig
from kotori_plugins.infrastructure.logging.setup import InterceptHandler, setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger() -> Iterator[None]:
    """恢复根日志记录器的处理器和级别"""
    root = logging.getLogger()
    handlers: List[logging.Handler] = list(root.handlers)
    level = root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


class TestSetupLogging:
    """测试loguru日志设置"""

    @patch('kotori_plugins.infrastructure.logging.setup.loguru_logger')
    def test_console_only(self, mock_logger: Mock) -> None:
        """测试仅控制台输出"""
        config = LoggingConfig(level="DEBUG")

        setup_logging(config)

        mock_logger.remove.assert_called_once()
        assert mock_logger.add.call_count == 1
        args, kwargs = mock_logger.add.call_args
        assert args[0] is sys.stderr
        assert kwargs["level"] == "DEBUG"

    @patch('kotori_plugins.infrastructure.logging.setup.loguru_logger')
    def test_file_sink_created(self, mock_logger: Mock, tmp_path: Path) -> None:
        """测试文件日志输出"""
        log_dir = tmp_path / "logs"
        config = LoggingConfig(log_directory=str(log_dir), file_enabled=True)

        setup_logging(config)

        assert mock_logger.add.call_count == 2
        args, kwargs = mock_logger.add.call_args_list[1]
        assert args[0] == log_dir / "kotori-plugins.log"
        assert kwargs["rotation"] == config.max_file_size
        assert kwargs["retention"] == config.backup_count
        assert log_dir.is_dir()

    @patch('kotori_plugins.infrastructure.logging.setup.loguru_logger')
    def test_all_sinks_disabled(self, mock_logger: Mock) -> None:
        """测试禁用所有输出"""
        setup_logging(LoggingConfig(console_enabled=False))

        mock_logger.remove.assert_called_once()
        mock_logger.add.assert_not_called()

    @patch('kotori_plugins.infrastructure.logging.setup.loguru_logger')
    def test_standard_logging_intercepted(self, mock_logger: Mock) -> None:
        """测试标准日志被拦截"""
        setup_logging(LoggingConfig(level="WARNING"))

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0], InterceptHandler)
        assert root.level == logging.WARNING


class TestInterceptHandler:
    """测试日志拦截处理器"""

    @patch('kotori_plugins.infrastructure.logging.setup.loguru_logger')
    def test_record_forwarded(self, mock_logger: Mock) -> None:
        """测试日志记录转发到loguru"""
        mock_logger.level.return_value = Mock(name="level")
        mock_logger.level.return_value.name = "INFO"
        record = logging.LogRecord(
            "kotori_plugins.test", logging.INFO, __file__, 10,
            "plugin %s enabled", ("weather-plugin",), None)

        InterceptHandler().emit(record)

        mock_logger.level.assert_called_once_with("INFO")
        mock_logger.opt.return_value.log.assert_called_once_with(
            "INFO", "plugin weather-plugin enabled")

    @patch('kotori_plugins.infrastructure.logging.setup.loguru_logger')
    def test_unknown_level_uses_number(self, mock_logger: Mock) -> None:
        """测试未知级别使用数值"""
        mock_logger.level.side_effect = ValueError("unknown level")
        record = logging.LogRecord(
            "kotori_plugins.test", 15, __file__, 10, "custom", (), None)
        record.levelname = "VERBOSE"

        InterceptHandler().emit(record)

        mock_logger.opt.return_value.log.assert_called_once_with(15, "custom")
