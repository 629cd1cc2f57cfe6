"""Registry of source clients by name and data type."""

from __future__ import annotations

import logging
from dataclasses import replace

from agent_oracle.config import Settings, get_settings
from agent_oracle.models.request import DataType
from agent_oracle.sources.base import BaseSourceClient
from agent_oracle.sources.crypto import (
    BinanceClient,
    CoinbaseClient,
    CoinGeckoClient,
    KrakenClient,
)
from agent_oracle.sources.weather import (
    OPENWEATHERMAP,
    WEATHERAPI,
    OpenMeteoClient,
    OpenWeatherMapClient,
    WeatherApiClient,
)

logger = logging.getLogger(__name__)


class SourceRegistry:
    """Holds one client instance per source name.

    Registration order within a data type is the default fallback order.
    """

    def __init__(self) -> None:
        self._clients: dict[str, BaseSourceClient] = {}

    def register(self, client: BaseSourceClient) -> None:
        if client.name in self._clients:
            raise ValueError(f"Source '{client.name}' is already registered")
        self._clients[client.name] = client
        logger.debug(f"Registered source {client.name} for {client.data_type.value}")

    def get(self, name: str) -> BaseSourceClient:
        try:
            return self._clients[name]
        except KeyError:
            raise KeyError(f"Unknown source '{name}'") from None

    def for_data_type(self, data_type: DataType) -> list[BaseSourceClient]:
        """All clients serving ``data_type``, in registration order."""
        return [c for c in self._clients.values() if c.data_type == data_type]

    def chain(self, names: list[str]) -> list[BaseSourceClient]:
        """Resolve an ordered list of source names to clients."""
        return [self.get(name) for name in names]

    def data_types(self) -> set[DataType]:
        return {c.data_type for c in self._clients.values()}

    def __contains__(self, name: str) -> bool:
        return name in self._clients

    def __len__(self) -> int:
        return len(self._clients)


def build_source_registry(settings: Settings | None = None) -> SourceRegistry:
    """Create the registry of every supported provider."""
    settings = settings or get_settings()
    timeout = settings.source_timeout_seconds

    registry = SourceRegistry()
    registry.register(CoinGeckoClient(timeout=timeout))
    registry.register(BinanceClient(timeout=timeout))
    registry.register(CoinbaseClient(timeout=timeout))
    registry.register(KrakenClient(timeout=timeout))
    registry.register(OpenMeteoClient(timeout=timeout))
    registry.register(OpenWeatherMapClient(
        replace(OPENWEATHERMAP, api_key=settings.openweathermap_api_key),
        timeout=timeout,
    ))
    registry.register(WeatherApiClient(
        replace(WEATHERAPI, api_key=settings.weatherapi_api_key),
        timeout=timeout,
    ))
    return registry
