"""In-process request store."""

import asyncio
import copy
import logging
from typing import Any
from uuid import uuid4

from agent_oracle.exceptions import RecordNotFoundError
from agent_oracle.store.base import Record

logger = logging.getLogger(__name__)


class InMemoryRequestStore:
    """Dict-backed store; contents are lost when the process exits.

    Records are copied on the way in and out so callers never share state
    with the store.
    """

    def __init__(self) -> None:
        self._tables: dict[str, dict[str, Record]] = {}
        self._lock = asyncio.Lock()

    def _table(self, table: str) -> dict[str, Record]:
        return self._tables.setdefault(table, {})

    async def insert(self, table: str, record: Record) -> str:
        async with self._lock:
            data = copy.deepcopy(record)
            record_id = str(data.get("id") or uuid4())
            data["id"] = record_id
            rows = self._table(table)
            if record_id in rows:
                raise ValueError(f"Duplicate id {record_id} in {table}")
            rows[record_id] = data
            logger.debug(f"Inserted {table}/{record_id}")
            return record_id

    async def patch(self, table: str, record_id: str, fields: Record) -> None:
        async with self._lock:
            rows = self._table(table)
            if record_id not in rows:
                raise RecordNotFoundError(table, record_id)
            rows[record_id].update(copy.deepcopy(fields))
            logger.debug(f"Patched {table}/{record_id}: {sorted(fields)}")

    async def get(self, table: str, record_id: str) -> Record | None:
        row = self._table(table).get(record_id)
        return copy.deepcopy(row) if row is not None else None

    async def query_by_index(self, table: str, field: str, value: Any) -> list[Record]:
        return [
            copy.deepcopy(row)
            for row in self._table(table).values()
            if row.get(field) == value
        ]

    async def query_all(self, table: str) -> list[Record]:
        return [copy.deepcopy(row) for row in self._table(table).values()]

    async def health_check(self) -> dict[str, Any]:
        return {"healthy": True, "latency_ms": 0.0, "error": None}
