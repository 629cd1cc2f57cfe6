"""Data source configuration and fetch result models."""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Transport(str, Enum):
    """Wire transport a data source is reached over."""

    REST = "rest"
    WEBSOCKET = "ws"


@dataclass(frozen=True)
class DataSource:
    """Immutable description of one external data provider endpoint.

    Attributes:
        name: Stable display name (e.g. "CoinGecko").
        endpoint_template: Base URL the client builds request paths on.
        api_key: Credential for providers that require one.
        transport: How the provider is reached.
    """

    name: str
    endpoint_template: str
    api_key: str | None = None
    transport: Transport = Transport.REST


class FetchResult(BaseModel):
    """Outcome of one FallbackFetcher.fetch() call."""

    model_config = ConfigDict(frozen=True)

    success: bool
    value: float | None = None
    source: str = "none"
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    error: str | None = None
    cached: bool = False
