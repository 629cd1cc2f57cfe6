"""Pydantic models for Agent Oracle - the contracts."""

from agent_oracle.models.params import (
    CryptoParams,
    OracleParams,
    WeatherParams,
    params_model,
    parse_params,
)
from agent_oracle.models.request import (
    CreateRequestBody,
    CreateRequestResponse,
    DataType,
    OracleRequest,
    OracleStats,
    RequestResult,
    RequestStatus,
    Submission,
)
from agent_oracle.models.source import DataSource, FetchResult, Transport

__all__ = [
    "CreateRequestBody",
    "CreateRequestResponse",
    "CryptoParams",
    "DataSource",
    "DataType",
    "FetchResult",
    "OracleParams",
    "OracleRequest",
    "OracleStats",
    "RequestResult",
    "RequestStatus",
    "Submission",
    "Transport",
    "WeatherParams",
    "params_model",
    "parse_params",
]
