"""Function-calling support: tool interface, invoker and weather tools."""

from realtime_webrtc.config import RealtimeConfig
from realtime_webrtc.tools.base import Tool, ToolResult
from realtime_webrtc.tools.invoker import ToolInvoker
from realtime_webrtc.tools.weather import LocalWeatherTool, WeatherClient, WeatherDataTool


def build_weather_tools(config: RealtimeConfig, client: WeatherClient) -> list[Tool]:
    """Create the weather tools declared when function calling is enabled."""
    default_location = None
    if config.tools.default_latitude is not None and config.tools.default_longitude is not None:
        default_location = (config.tools.default_latitude, config.tools.default_longitude)

    return [
        WeatherDataTool(client, instructions=config.instructions.weather),
        LocalWeatherTool(client, default_location, instructions=config.instructions.weather),
    ]


__all__ = [
    "LocalWeatherTool",
    "Tool",
    "ToolInvoker",
    "ToolResult",
    "WeatherClient",
    "WeatherDataTool",
    "build_weather_tools",
]
