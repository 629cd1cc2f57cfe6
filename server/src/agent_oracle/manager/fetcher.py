"""Ordered-fallback data fetcher with response caching."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from agent_oracle.exceptions import SourceError
from agent_oracle.manager.answer_cache import AnswerCache, CacheKey
from agent_oracle.models.params import OracleParams, params_model, parse_params
from agent_oracle.models.request import DataType
from agent_oracle.models.source import FetchResult
from agent_oracle.sources.base import DEFAULT_TIMEOUT, BaseSourceClient

logger = logging.getLogger(__name__)


class FallbackFetcher:
    """Fetches a value by trying each source of a data type in order.

    The first source that yields a finite number wins and the remaining
    sources are not attempted. A failing source (timeout, transport or
    parse error) is logged and skipped; it never fails the fetch itself.
    Successful results are cached for ``cache.ttl_seconds``.
    """

    def __init__(
        self,
        chains: dict[DataType, list[BaseSourceClient]],
        *,
        cache: AnswerCache | None = None,
        source_timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        for data_type, chain in chains.items():
            if not chain:
                raise ValueError(f"Source chain for {data_type.value} is empty")
        self.chains = {DataType(k): list(v) for k, v in chains.items()}
        self.cache = cache if cache is not None else AnswerCache()
        self.source_timeout = source_timeout

    def source_order(self, data_type: DataType) -> list[str]:
        """Names of the sources tried for ``data_type``, in order."""
        return [client.name for client in self.chains.get(data_type, [])]

    async def fetch(
        self,
        data_type: DataType | str,
        params: OracleParams | dict[str, Any] | None = None,
    ) -> FetchResult:
        """Fetch one value for ``data_type``.

        Args:
            data_type: The kind of data requested
            params: Typed params, or a raw mapping to validate

        Returns:
            FetchResult; ``success`` is False if the type is unknown or
            every source failed
        """
        try:
            data_type = DataType(data_type)
        except ValueError:
            return _failure(f"Unknown data type: {data_type}")
        chain = self.chains.get(data_type)
        if chain is None:
            return _failure(f"Unknown data type: {data_type.value}")

        if params is None or isinstance(params, dict):
            try:
                typed = parse_params(data_type, params)
            except ValueError as e:
                return _failure(f"Invalid params: {e}")
        elif isinstance(params, params_model(data_type)):
            typed = params
        else:
            return _failure(
                f"Invalid params: {type(params).__name__} does not fit {data_type.value}"
            )

        key: CacheKey = (data_type.value, typed.cache_key())
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"Cache hit for {key}")
            return cached.model_copy(update={"cached": True})

        for client in chain:
            try:
                value = await asyncio.wait_for(
                    client.call(typed), timeout=self.source_timeout
                )
            except asyncio.TimeoutError:
                logger.warning(
                    f"{client.name} timed out after {self.source_timeout}s, "
                    "trying next source"
                )
                continue
            except SourceError as e:
                logger.warning(f"{client.name} failed ({e.reason}), trying next source")
                continue
            except Exception as e:
                logger.error(f"Unexpected error from {client.name}: {e}")
                continue

            result = FetchResult(success=True, value=value, source=client.name)
            self.cache.put(key, result)
            return result

        logger.info(f"All {len(chain)} sources failed for {key}")
        return _failure("All sources failed")


def _failure(error: str) -> FetchResult:
    return FetchResult(success=False, source="none", error=error)
