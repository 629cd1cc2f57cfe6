"""Oracle request and submission models."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import AliasChoices, BaseModel, Field, model_validator


class DataType(str, Enum):
    """Kinds of data the oracle can answer."""

    CRYPTO_PRICE = "crypto_price"
    WEATHER = "weather"


class RequestStatus(str, Enum):
    """Request lifecycle status.

    pending -> processing -> completed | failed. Terminal states are final.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RequestStatus.COMPLETED, RequestStatus.FAILED)


class OracleRequest(BaseModel):
    """A client query and its consensus outcome."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    query: str = ""
    data_type: DataType
    params: dict[str, Any] = Field(default_factory=dict)
    status: RequestStatus = RequestStatus.PENDING
    consensus_value: float | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None


class Submission(BaseModel):
    """One agent's successful answer to a request."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    request_id: str
    agent_id: str
    agent_name: str
    value: float
    source: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    response_time_ms: int = 0
    is_consensus: bool | None = None


class CreateRequestBody(BaseModel):
    """Body of a request-creation call.

    ``params`` is validated against the variant for ``data_type`` so that
    malformed queries are rejected before anything is stored.
    """

    query: str = ""
    data_type: DataType = Field(
        default=DataType.CRYPTO_PRICE,
        validation_alias=AliasChoices("data_type", "dataType"),
    )
    params: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_params(self) -> "CreateRequestBody":
        from agent_oracle.models.params import parse_params

        typed = parse_params(self.data_type, self.params)
        self.params = typed.model_dump()
        return self


class CreateRequestResponse(BaseModel):
    """Immediate response after creating a request."""

    request_id: str
    status: RequestStatus = RequestStatus.PENDING


class RequestResult(BaseModel):
    """A request together with its submissions."""

    request: OracleRequest
    submissions: list[Submission]


class OracleStats(BaseModel):
    """Aggregate counters across all stored requests."""

    total_requests: int = 0
    completed_requests: int = 0
    total_submissions: int = 0
    total_value: float = 0.0
    consensus_rate: int = 0  # Percent of submissions marked consensus
    active_agents: int = 0
