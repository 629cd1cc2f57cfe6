"""Agent identities and the default agent roster."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from agent_oracle.config import Settings, get_settings
from agent_oracle.manager.answer_cache import AnswerCache
from agent_oracle.manager.fetcher import FallbackFetcher
from agent_oracle.models.params import OracleParams
from agent_oracle.models.request import DataType
from agent_oracle.models.source import FetchResult
from agent_oracle.sources.registry import SourceRegistry, build_source_registry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgentConfig:
    """Static description of one agent identity.

    ``source_order`` maps each data type to the source names the agent tries,
    first to last.
    """

    agent_id: str
    name: str
    source_order: dict[DataType, list[str]] = field(default_factory=dict)


# Each agent walks the provider list from a different starting point so that
# one provider outage does not make every agent report the same fallback.
DEFAULT_AGENTS: list[AgentConfig] = [
    AgentConfig(
        agent_id="agent-001",
        name="DataPulse",
        source_order={
            DataType.CRYPTO_PRICE: ["CoinGecko", "Binance", "Coinbase", "Kraken"],
            DataType.WEATHER: ["Open-Meteo", "OpenWeatherMap", "WeatherAPI"],
        },
    ),
    AgentConfig(
        agent_id="agent-002",
        name="CryptoSentinel",
        source_order={
            DataType.CRYPTO_PRICE: ["Binance", "Coinbase", "Kraken", "CoinGecko"],
            DataType.WEATHER: ["OpenWeatherMap", "WeatherAPI", "Open-Meteo"],
        },
    ),
    AgentConfig(
        agent_id="agent-003",
        name="ChainReader",
        source_order={
            DataType.CRYPTO_PRICE: ["Kraken", "CoinGecko", "Binance", "Coinbase"],
            DataType.WEATHER: ["WeatherAPI", "Open-Meteo", "OpenWeatherMap"],
        },
    ),
    AgentConfig(
        agent_id="agent-004",
        name="OracleSeeker",
        source_order={
            DataType.CRYPTO_PRICE: ["Coinbase", "Kraken", "CoinGecko", "Binance"],
            DataType.WEATHER: ["Open-Meteo", "WeatherAPI", "OpenWeatherMap"],
        },
    ),
    AgentConfig(
        agent_id="agent-005",
        name="MarketWatcher",
        source_order={
            DataType.CRYPTO_PRICE: ["CoinGecko", "Coinbase", "Binance", "Kraken"],
            DataType.WEATHER: ["OpenWeatherMap", "Open-Meteo", "WeatherAPI"],
        },
    ),
]


class OracleAgent:
    """One fetch identity with its own private FallbackFetcher and cache."""

    def __init__(self, agent_id: str, name: str, fetcher: FallbackFetcher) -> None:
        self.agent_id = agent_id
        self.name = name
        self.fetcher = fetcher

    @classmethod
    def from_config(
        cls,
        config: AgentConfig,
        registry: SourceRegistry,
        settings: Settings | None = None,
    ) -> OracleAgent:
        settings = settings or get_settings()
        fetcher = FallbackFetcher(
            {dt: registry.chain(names) for dt, names in config.source_order.items()},
            cache=AnswerCache(
                ttl_seconds=settings.cache_ttl_seconds,
                max_entries=settings.cache_max_entries,
            ),
            source_timeout=settings.source_timeout_seconds,
        )
        return cls(config.agent_id, config.name, fetcher)

    async def fetch(
        self,
        data_type: DataType | str,
        params: OracleParams | dict[str, Any] | None,
    ) -> tuple[FetchResult, int]:
        """Run the agent's fetch and time it.

        Returns:
            (result, response time in milliseconds)
        """
        start_time = time.time()
        result = await self.fetcher.fetch(data_type, params)
        response_time_ms = int((time.time() - start_time) * 1000)
        logger.debug(
            f"Agent {self.agent_id} fetched {data_type}: success={result.success} "
            f"source={result.source} ({response_time_ms}ms)"
        )
        return result, response_time_ms

    def describe(self) -> dict[str, Any]:
        """Summary for API responses."""
        return {
            "agent_id": self.agent_id,
            "name": self.name,
            "source_order": {
                dt.value: self.fetcher.source_order(dt) for dt in self.fetcher.chains
            },
        }


def build_default_agents(
    registry: SourceRegistry | None = None,
    settings: Settings | None = None,
) -> list[OracleAgent]:
    """Create the default five-agent roster sharing one source registry."""
    settings = settings or get_settings()
    registry = registry or build_source_registry(settings)
    return [OracleAgent.from_config(config, registry, settings) for config in DEFAULT_AGENTS]
