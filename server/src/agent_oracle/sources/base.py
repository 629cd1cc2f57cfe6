"""Source client base class and shared parsing helpers."""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from typing import Any

import httpx

from agent_oracle.exceptions import SourceError
from agent_oracle.models.params import OracleParams
from agent_oracle.models.request import DataType
from agent_oracle.models.source import DataSource

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0

# CoinGecko asset ids -> exchange ticker symbols
TICKER_SYMBOLS: dict[str, str] = {
    "bitcoin": "BTC",
    "ethereum": "ETH",
    "solana": "SOL",
    "ripple": "XRP",
    "cardano": "ADA",
    "dogecoin": "DOGE",
    "litecoin": "LTC",
    "polkadot": "DOT",
}


def ticker_symbol(pair: str) -> str:
    """Map an asset id like "bitcoin" to its ticker ("BTC")."""
    return TICKER_SYMBOLS.get(pair, pair.upper())


def to_finite_float(raw: Any, source: str) -> float:
    """Coerce a provider value to a finite float or raise SourceError."""
    if raw is None or isinstance(raw, bool):
        raise SourceError(source, f"missing numeric value (got {raw!r})")
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise SourceError(source, f"non-numeric value {raw!r}") from None
    if not math.isfinite(value):
        raise SourceError(source, f"non-finite value {raw!r}")
    return value


def dig(data: Any, *path: str | int, source: str) -> Any:
    """Walk nested dicts/lists, raising SourceError on a missing step."""
    current = data
    for step in path:
        try:
            current = current[step]
        except (KeyError, IndexError, TypeError):
            raise SourceError(source, f"response missing field {step!r}") from None
    return current


class BaseSourceClient(ABC):
    """Base class for all source clients.

    A source client makes the HTTP call(s) to one provider and parses the
    response into a single float. Any failure is raised as SourceError so the
    owning fetcher can move on to the next source.
    """

    data_type: DataType

    def __init__(self, source: DataSource, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.source = source
        self.timeout = timeout

    @property
    def name(self) -> str:
        return self.source.name

    @abstractmethod
    async def call(self, params: OracleParams) -> float:
        """Fetch and parse one value.

        Args:
            params: Validated query parameters for this data type

        Returns:
            The parsed value

        Raises:
            SourceError: On transport, HTTP status or parse failure
        """
        ...

    def _require_api_key(self) -> str:
        if not self.source.api_key:
            raise SourceError(self.name, "no API key configured")
        return self.source.api_key

    async def _get_json(
        self,
        path: str,
        query: dict[str, Any] | None = None,
        *,
        base_url: str | None = None,
    ) -> Any:
        """GET ``base_url + path`` (default: the source endpoint) and decode JSON."""
        base = base_url or self.source.endpoint_template
        url = f"{base.rstrip('/')}/{path.lstrip('/')}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(url, params=query)
        except httpx.TimeoutException:
            raise SourceError(self.name, f"timeout after {self.timeout}s") from None
        except httpx.HTTPError as e:
            raise SourceError(self.name, f"transport error: {e}") from e

        if resp.status_code != 200:
            raise SourceError(self.name, f"HTTP {resp.status_code}: {resp.text[:200]}")

        try:
            return resp.json()
        except ValueError:
            raise SourceError(self.name, "response is not valid JSON") from None
