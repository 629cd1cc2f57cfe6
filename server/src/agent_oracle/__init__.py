"""Agent Oracle - multi-agent data fetching with median consensus."""

__version__ = "0.1.0"

from agent_oracle.exceptions import (
    OracleError,
    RecordNotFoundError,
    RequestNotFoundError,
    SourceError,
    StoreUnavailableError,
)

__all__ = [
    "__version__",
    "OracleError",
    "RecordNotFoundError",
    "RequestNotFoundError",
    "SourceError",
    "StoreUnavailableError",
]
