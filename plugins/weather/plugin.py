"""
Weather Plugin - show the weather for a location.

This is an example local plugin for the Kotori journal. It remembers the
last location asked for in its plugin storage.
"""

import re

from kotori_plugins import BasePlugin, CommandContext, CommandResult, ICommand

COMMAND_PATTERN = re.compile(r'^/weather\s*')
LAST_LOCATION_KEY = "last-location"


class WeatherCommand(ICommand):
    name = "weather"
    description = "Show the weather for a location (/weather <location>)"
    triggers = ("weather", "天気")

    def __init__(self, plugin: "WeatherPlugin") -> None:
        self._plugin = plugin

    async def execute(self, context: CommandContext) -> CommandResult:
        location = COMMAND_PATTERN.sub('', context.input).strip()
        storage = self._plugin.context.storage

        if not location:
            location = await storage.read(LAST_LOCATION_KEY) or "Tokyo"
        else:
            await storage.write(LAST_LOCATION_KEY, location)

        return CommandResult.display(
            f"Weather in {location}: sunny, 22°C",
            data={'location': location},
        )


class WeatherPlugin(BasePlugin):
    name = "weather-plugin"
    version = "1.0.0"
    description = "Show the weather for a location"
    author = "Kotori Journal Team"

    def __init__(self) -> None:
        super().__init__()
        self.commands = [WeatherCommand(self)]


plugin = WeatherPlugin
