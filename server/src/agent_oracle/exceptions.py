"""Custom exceptions for Agent Oracle."""


class OracleError(Exception):
    """Base class for all Agent Oracle errors."""


class SourceError(OracleError):
    """Raised when a single data source call fails or returns unusable data."""

    def __init__(self, source: str, reason: str) -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"{source}: {reason}")


class RequestNotFoundError(OracleError):
    """Raised when a request id is unknown to the store."""

    def __init__(self, request_id: str) -> None:
        self.request_id = request_id
        super().__init__(f"Request {request_id} not found")


class StoreUnavailableError(OracleError):
    """Raised when the request store cannot complete an operation."""


class RecordNotFoundError(OracleError):
    """Raised when patching a record that does not exist."""

    def __init__(self, table: str, record_id: str) -> None:
        self.table = table
        self.record_id = record_id
        super().__init__(f"No record {record_id} in {table}")
