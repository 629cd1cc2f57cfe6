"""Current temperature clients."""

from agent_oracle.exceptions import SourceError
from agent_oracle.models.params import WeatherParams
from agent_oracle.models.request import DataType
from agent_oracle.models.source import DataSource
from agent_oracle.sources.base import BaseSourceClient, dig, to_finite_float

OPEN_METEO = DataSource(name="Open-Meteo", endpoint_template="https://api.open-meteo.com/v1")
OPEN_METEO_GEOCODING = "https://geocoding-api.open-meteo.com/v1"
OPENWEATHERMAP = DataSource(
    name="OpenWeatherMap",
    endpoint_template="https://api.openweathermap.org/data/2.5",
)
WEATHERAPI = DataSource(name="WeatherAPI", endpoint_template="https://api.weatherapi.com/v1")


class OpenMeteoClient(BaseSourceClient):
    """Temperature (deg C) from Open-Meteo.

    Open-Meteo needs coordinates, so the location is resolved through its
    geocoding API first. Both calls count toward the same source attempt.
    """

    data_type = DataType.WEATHER

    def __init__(
        self,
        source: DataSource = OPEN_METEO,
        geocoding_url: str = OPEN_METEO_GEOCODING,
        **kwargs,
    ) -> None:
        super().__init__(source, **kwargs)
        self.geocoding_url = geocoding_url

    async def geocode(self, location: str) -> tuple[float, float]:
        """Resolve a place name to (latitude, longitude)."""
        data = await self._get_json(
            "search",
            {"name": location, "count": 1},
            base_url=self.geocoding_url,
        )
        results = data.get("results") if isinstance(data, dict) else None
        if not results:
            raise SourceError(self.name, f"unknown location {location!r}")
        lat = to_finite_float(dig(results, 0, "latitude", source=self.name), self.name)
        lon = to_finite_float(dig(results, 0, "longitude", source=self.name), self.name)
        return lat, lon

    async def call(self, params: WeatherParams) -> float:
        lat, lon = await self.geocode(params.location)
        data = await self._get_json(
            "forecast",
            {"latitude": lat, "longitude": lon, "current": "temperature_2m"},
        )
        return to_finite_float(
            dig(data, "current", "temperature_2m", source=self.name), self.name
        )


class OpenWeatherMapClient(BaseSourceClient):
    """Temperature (deg C) from OpenWeatherMap current weather."""

    data_type = DataType.WEATHER

    def __init__(self, source: DataSource = OPENWEATHERMAP, **kwargs) -> None:
        super().__init__(source, **kwargs)

    async def call(self, params: WeatherParams) -> float:
        data = await self._get_json(
            "weather",
            {"q": params.location, "units": "metric", "appid": self._require_api_key()},
        )
        return to_finite_float(dig(data, "main", "temp", source=self.name), self.name)


class WeatherApiClient(BaseSourceClient):
    """Temperature (deg C) from WeatherAPI.com."""

    data_type = DataType.WEATHER

    def __init__(self, source: DataSource = WEATHERAPI, **kwargs) -> None:
        super().__init__(source, **kwargs)

    async def call(self, params: WeatherParams) -> float:
        data = await self._get_json(
            "current.json",
            {"key": self._require_api_key(), "q": params.location},
        )
        return to_finite_float(dig(data, "current", "temp_c", source=self.name), self.name)
