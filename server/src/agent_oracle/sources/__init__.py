"""External data source clients."""

from agent_oracle.sources.base import BaseSourceClient
from agent_oracle.sources.crypto import (
    BinanceClient,
    CoinbaseClient,
    CoinGeckoClient,
    KrakenClient,
)
from agent_oracle.sources.registry import SourceRegistry, build_source_registry
from agent_oracle.sources.weather import (
    OpenMeteoClient,
    OpenWeatherMapClient,
    WeatherApiClient,
)

__all__ = [
    "BaseSourceClient",
    "BinanceClient",
    "build_source_registry",
    "CoinbaseClient",
    "CoinGeckoClient",
    "KrakenClient",
    "OpenMeteoClient",
    "OpenWeatherMapClient",
    "SourceRegistry",
    "WeatherApiClient",
]
