"""Request store contract."""

from typing import Any, Protocol, runtime_checkable

REQUESTS = "requests"
SUBMISSIONS = "submissions"

Record = dict[str, Any]


@runtime_checkable
class RequestStore(Protocol):
    """Keyed storage for requests and submissions.

    Records are JSON-compatible dicts with an ``id`` key. Each single-record
    operation is atomic; nothing spans multiple records.
    """

    async def insert(self, table: str, record: Record) -> str:
        """Store a new record and return its id."""
        ...

    async def patch(self, table: str, record_id: str, fields: Record) -> None:
        """Partially update a record (last write wins per field).

        Raises:
            RecordNotFoundError: If the id is unknown
        """
        ...

    async def get(self, table: str, record_id: str) -> Record | None: ...

    async def query_by_index(self, table: str, field: str, value: Any) -> list[Record]:
        """All records whose ``field`` equals ``value``, oldest first."""
        ...

    async def query_all(self, table: str) -> list[Record]: ...

    async def health_check(self) -> dict[str, Any]: ...
