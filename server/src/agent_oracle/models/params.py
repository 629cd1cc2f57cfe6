"""Typed query parameters, one variant per data type."""

from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from agent_oracle.models.request import DataType


class CryptoParams(BaseModel):
    """Parameters for a crypto_price query.

    ``pair`` is a CoinGecko-style asset id such as "bitcoin" or "ethereum".
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    pair: str = "bitcoin"

    @field_validator("pair")
    @classmethod
    def _normalize_pair(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            raise ValueError("pair must not be empty")
        return v

    def cache_key(self) -> str:
        return f"pair={self.pair}"


class WeatherParams(BaseModel):
    """Parameters for a weather query."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    location: str = "Melbourne"

    @field_validator("location")
    @classmethod
    def _normalize_location(cls, v: str) -> str:
        v = " ".join(v.split())
        if not v:
            raise ValueError("location must not be empty")
        return v

    def cache_key(self) -> str:
        return f"location={self.location.casefold()}"


OracleParams = CryptoParams | WeatherParams

_PARAMS_BY_TYPE: dict[DataType, type[CryptoParams] | type[WeatherParams]] = {
    DataType.CRYPTO_PRICE: CryptoParams,
    DataType.WEATHER: WeatherParams,
}


def params_model(data_type: DataType | str) -> type[CryptoParams] | type[WeatherParams]:
    """The params variant for ``data_type``.

    Raises:
        ValueError: If the data type is unknown
    """
    try:
        return _PARAMS_BY_TYPE[DataType(data_type)]
    except ValueError:
        raise ValueError(f"Unknown data type: {data_type}") from None


def parse_params(data_type: DataType | str, raw: dict[str, Any] | None) -> OracleParams:
    """Validate a raw params mapping against the variant for ``data_type``.

    Raises:
        ValueError: If the data type is unknown
        pydantic.ValidationError: If the params do not fit the variant
    """
    return params_model(data_type).model_validate(raw or {})
