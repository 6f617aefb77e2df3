"""Weather tools backed by the Open-Meteo API.

- Geocoding: https://open-meteo.com/en/docs/geocoding-api
- Forecast: https://open-meteo.com/en/docs

Both endpoints are unauthenticated HTTP GET returning JSON.
"""

import json
import logging
from typing import Any

import aiohttp

from realtime_webrtc.errors import ToolError
from realtime_webrtc.tools.base import Tool, ToolResult

logger = logging.getLogger(__name__)

NO_LOCATION_MESSAGE = (
    "Could not determine the local position. Please configure a default location "
    "or provide a location name."
)


class WeatherClient:
    """Minimal Open-Meteo client."""

    def __init__(
        self,
        geocoding_url: str,
        forecast_url: str,
        session: aiohttp.ClientSession | None = None,
        timeout_s: float = 10.0,
    ) -> None:
        self.geocoding_url = geocoding_url
        self.forecast_url = forecast_url
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout_s)

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _get_json(self, tool_name: str, url: str, params: dict[str, str]) -> Any:
        session = self._ensure_session()
        try:
            async with session.get(url, params=params, timeout=self._timeout) as response:
                if response.status >= 300:
                    raise ToolError(
                        tool_name, f"{url} returned {response.status} {response.reason}"
                    )
                return await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise ToolError(tool_name, f"Request to {url} failed: {e}") from e
        except TimeoutError as e:
            raise ToolError(tool_name, f"Request to {url} timed out") from e
        except ValueError as e:
            raise ToolError(tool_name, f"Invalid JSON from {url}: {e}") from e

    async def geocode(self, name: str, tool_name: str = "geocode") -> tuple[float, float]:
        """Resolve a place name to the first match's coordinates.

        Raises:
            ToolError: If the lookup fails or nothing matches
        """
        data = await self._get_json(
            tool_name, self.geocoding_url, {"name": name, "count": "1"}
        )
        results = data.get("results") if isinstance(data, dict) else None
        if not results:
            raise ToolError(tool_name, "Location not found")

        first = results[0]
        try:
            return float(first["latitude"]), float(first["longitude"])
        except (KeyError, TypeError, ValueError) as e:
            raise ToolError(tool_name, f"Malformed geocoding result: {e}") from e

    async def current_weather(
        self, latitude: float, longitude: float, tool_name: str = "forecast"
    ) -> dict[str, Any]:
        """Fetch current conditions for a coordinate pair."""
        data = await self._get_json(
            tool_name,
            self.forecast_url,
            {
                "latitude": str(latitude),
                "longitude": str(longitude),
                "current_weather": "true",
            },
        )
        if not isinstance(data, dict):
            raise ToolError(tool_name, "Malformed forecast response")
        return data


def _coordinate(value: Any, name: str, tool_name: str) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ToolError(tool_name, f"Invalid {name}: {value!r}") from e


class WeatherDataTool(Tool):
    """Weather for given coordinates or a place name."""

    name = "getWeatherData"
    description = (
        "Requests weather data from the Open Meteo API based on either coordinates "
        "or a specified location name provided by the user."
    )
    parameters = {
        "type": "object",
        "properties": {
            "lat": {"type": "number", "description": "The latitude of the location"},
            "lon": {"type": "number", "description": "The longitude of the location"},
            "locationName": {
                "type": "string",
                "description": "The name of the location to search for",
            },
        },
    }

    def __init__(self, client: WeatherClient, instructions: str | None = None) -> None:
        self._client = client
        self._instructions = instructions

    async def run(self, args: dict[str, Any]) -> ToolResult:
        lat = _coordinate(args.get("lat"), "latitude", self.name)
        lon = _coordinate(args.get("lon"), "longitude", self.name)
        location_name = args.get("locationName")

        # A location name overrides any coordinates given alongside it
        if location_name:
            lat, lon = await self._client.geocode(str(location_name), tool_name=self.name)

        if lat is None or lon is None:
            raise ToolError(self.name, "No location given")

        data = await self._client.current_weather(lat, lon, tool_name=self.name)
        logger.info(
            "Weather data fetched",
            extra={"latitude": lat, "longitude": lon, "location": location_name},
        )
        return ToolResult(
            kind="weather",
            payload=json.dumps(data, indent=2),
            instructions=self._instructions,
        )


class LocalWeatherTool(Tool):
    """Weather at the host's configured default location."""

    name = "getLocalWeatherData"
    description = "Obtains local weather data for the user's own location."

    def __init__(
        self,
        client: WeatherClient,
        default_location: tuple[float, float] | None,
        instructions: str | None = None,
    ) -> None:
        self._client = client
        self._default_location = default_location
        self._instructions = instructions

    async def run(self, args: dict[str, Any]) -> ToolResult:
        if self._default_location is None:
            logger.warning("Local weather requested but no default location is configured")
            return ToolResult(kind="location", payload=NO_LOCATION_MESSAGE)

        lat, lon = self._default_location
        data = await self._client.current_weather(lat, lon, tool_name=self.name)
        return ToolResult(
            kind="weather",
            payload=json.dumps(data, indent=2),
            instructions=self._instructions,
        )
