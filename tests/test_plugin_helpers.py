"""
Tests for plugin authoring helpers, the base plugin and built-in commands.

测试插件开发辅助函数、插件基类和内置命令。
"""

import logging
from pathlib import Path
from typing import Any, List
from unittest.mock import Mock

import pytest

from kotori_plugins.commands.builtin import HelpCommand, register_builtin_commands
from kotori_plugins.core.domain.commands import CommandContext, CommandResult, ResultType
from kotori_plugins.core.services.command_registry import CommandRegistry
from kotori_plugins.plugins.base import BasePlugin, PluginContext, PluginLogger
from kotori_plugins.plugins.capabilities import RestrictedNetwork, RestrictedStorage
from kotori_plugins.plugins.helpers import (
    create_command, create_plugin, create_simple_plugin, create_text_command,
)


def make_context(tmp_path: Path, name: str = "helper-plugin") -> PluginContext:
    return PluginContext(
        config={},
        data_path=str(tmp_path),
        storage=RestrictedStorage(name, tmp_path / "storage"),
        network=RestrictedNetwork(),
        logger=PluginLogger(name),
        import_module=lambda module_name: Mock(),
    )


class TestCommandHelpers:
    """测试命令辅助函数"""

    @pytest.mark.asyncio
    async def test_text_command_returns_display(self) -> None:
        """测试文本命令返回显示结果"""
        command = create_text_command(
            "shout", ["shout"], "Upper-case the input",
            lambda context: context.input.upper())

        result = await command.execute(CommandContext(input="/shout hi"))

        assert result == CommandResult.display("/SHOUT HI")
        assert command.triggers == ["shout"]

    @pytest.mark.asyncio
    async def test_text_command_async_handler(self) -> None:
        """测试异步处理函数"""
        async def handler(context: CommandContext) -> str:
            return f"{len(context.entries)} entries"

        command = create_text_command("count", ["count"], "Count entries", handler)
        result = await command.execute(CommandContext(input="/count", entries=["a", "b"]))

        assert result.content == "2 entries"

    @pytest.mark.asyncio
    async def test_text_command_error_becomes_error_result(self) -> None:
        """测试处理函数异常转换为错误结果"""
        def handler(context: CommandContext) -> str:
            raise ValueError("no entries today")

        command = create_text_command("today", ["today"], "Today's entries", handler)
        result = await command.execute(CommandContext(input="/today"))

        assert result.type is ResultType.ERROR
        assert result.content == "no entries today"

    @pytest.mark.asyncio
    async def test_create_command_with_guard(self) -> None:
        """测试带执行条件的命令"""
        command = create_command(
            "clear", ["clear"], "Clear the screen",
            execute=lambda context: {"type": "action", "content": "cleared"},
            can_execute=lambda context: bool(context.entries))

        registry = CommandRegistry()
        refused = await registry.execute_command(command, CommandContext(input="/clear"))
        accepted = await registry.execute_command(command, CommandContext(input="/clear", entries=["x"]))

        assert refused.is_error
        assert accepted == CommandResult.action("cleared")


class TestPluginHelpers:
    """测试插件辅助函数"""

    @pytest.mark.asyncio
    async def test_simple_plugin(self, tmp_path: Path) -> None:
        """测试简单插件"""
        command = create_text_command("ping", ["ping"], "Reply pong", lambda context: "pong")
        plugin = create_simple_plugin("ping-plugin", "1.0.0", "Ping", "Tests", [command])
        context = make_context(tmp_path, "ping-plugin")

        await plugin.initialize(context)

        assert plugin.commands == [command]
        assert plugin.context is context
        assert plugin.metadata["commands"] == ["ping"]

    @pytest.mark.asyncio
    async def test_create_plugin_lifecycle_hooks(self, tmp_path: Path) -> None:
        """测试生命周期回调"""
        events: List[Any] = []

        async def initialize(context: PluginContext) -> None:
            await context.storage.write("started", "yes")
            events.append("initialize")

        plugin = create_plugin("hooks", "1.0.0", "Hooks", "Tests",
                               initialize=initialize, dispose=lambda: events.append("dispose"))
        context = make_context(tmp_path, "hooks")

        await plugin.initialize(context)
        await plugin.dispose()

        assert events == ["initialize", "dispose"]
        assert await context.storage.read("started") == "yes"
        assert plugin.context is None


class TestBasePlugin:
    """测试插件基类"""

    def test_commands_copied_per_instance(self) -> None:
        """测试每个实例拥有独立的命令列表"""
        class Demo(BasePlugin):
            name = "demo"
            commands = [Mock(name="cmd")]

        first, second = Demo(), Demo()
        first.commands.append(Mock())

        assert len(second.commands) == 1
        assert len(Demo.commands) == 1

    def test_logger_falls_back_without_context(self) -> None:
        """测试没有上下文时使用模块日志"""
        class Demo(BasePlugin):
            name = "demo"

        assert isinstance(Demo().logger, logging.Logger)


class TestPluginLogger:
    """测试插件日志"""

    def test_messages_are_prefixed(self, caplog: pytest.LogCaptureFixture) -> None:
        """测试日志消息带有插件名前缀"""
        plugin_logger = PluginLogger("weather-plugin")

        with caplog.at_level(logging.DEBUG, logger="plugin.weather-plugin"):
            plugin_logger.info("fetched forecast")
            plugin_logger.warn("rate limited")
            plugin_logger.error("request failed")
            plugin_logger.debug("raw payload")

        assert plugin_logger.name == "plugin.weather-plugin"
        assert [r.getMessage() for r in caplog.records] == [
            "[weather-plugin] fetched forecast",
            "[weather-plugin] rate limited",
            "[weather-plugin] request failed",
            "[weather-plugin] raw payload",
        ]
        assert [r.levelname for r in caplog.records] == ["INFO", "WARNING", "ERROR", "DEBUG"]


class TestHelpCommand:
    """测试内置帮助命令"""

    @pytest.mark.asyncio
    async def test_help_lists_commands(self) -> None:
        """测试帮助命令列出所有命令"""
        registry = CommandRegistry()
        register_builtin_commands(registry)
        registry.register(create_text_command("ping", ["ping"], "Reply pong", lambda context: "pong"))

        command = registry.find_command("/help")
        result = await registry.execute_command(command, CommandContext(input="/help"))

        assert isinstance(command, HelpCommand)
        assert result.type is ResultType.DISPLAY
        assert "/help (help, ?) - Show available commands" in result.content
        assert "/ping (ping) - Reply pong" in result.content

    def test_question_mark_trigger(self) -> None:
        """测试问号触发帮助"""
        registry = CommandRegistry()
        register_builtin_commands(registry)

        assert isinstance(registry.find_command("/?"), HelpCommand)
