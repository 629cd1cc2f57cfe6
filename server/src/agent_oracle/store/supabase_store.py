"""Supabase-backed request store."""

import logging
import time
from typing import Any

from supabase import create_client, Client

from agent_oracle.config import Settings, get_settings
from agent_oracle.exceptions import RecordNotFoundError, StoreUnavailableError
from agent_oracle.store.base import REQUESTS, SUBMISSIONS, Record

logger = logging.getLogger(__name__)

# Column that gives each table its natural (oldest first) order
_ORDER_COLUMNS = {
    REQUESTS: "created_at",
    SUBMISSIONS: "timestamp",
}


class SupabaseRequestStore:
    """Request store on Supabase tables ``requests`` and ``submissions``.

    Every client error is re-raised as StoreUnavailableError; there is no
    retry.
    """

    def __init__(self, client: Client | None = None, settings: Settings | None = None) -> None:
        if client is None:
            settings = settings or get_settings()
            if not settings.supabase_url or not settings.supabase_key:
                raise ValueError("SUPABASE_URL and SUPABASE_KEY are required for the supabase store")
            client = create_client(settings.supabase_url, settings.supabase_key)
        self.client: Client = client

    async def insert(self, table: str, record: Record) -> str:
        try:
            result = self.client.table(table).insert(record).execute()
        except Exception as e:
            raise StoreUnavailableError(f"Insert into {table} failed: {e}") from e

        record_id = record.get("id")
        if record_id is None and result.data:
            record_id = result.data[0]["id"]
        logger.debug(f"Inserted {table}/{record_id}")
        return str(record_id)

    async def patch(self, table: str, record_id: str, fields: Record) -> None:
        try:
            result = (
                self.client.table(table)
                .update(fields)
                .eq("id", record_id)
                .execute()
            )
        except Exception as e:
            raise StoreUnavailableError(f"Update of {table}/{record_id} failed: {e}") from e

        if not result.data:
            raise RecordNotFoundError(table, record_id)
        logger.debug(f"Patched {table}/{record_id}: {sorted(fields)}")

    async def get(self, table: str, record_id: str) -> Record | None:
        try:
            result = (
                self.client.table(table)
                .select("*")
                .eq("id", record_id)
                .execute()
            )
        except Exception as e:
            raise StoreUnavailableError(f"Read of {table}/{record_id} failed: {e}") from e

        if result.data:
            return result.data[0]
        return None

    async def query_by_index(self, table: str, field: str, value: Any) -> list[Record]:
        try:
            result = (
                self.client.table(table)
                .select("*")
                .eq(field, value)
                .order(_ORDER_COLUMNS.get(table, "id"))
                .execute()
            )
        except Exception as e:
            raise StoreUnavailableError(f"Query of {table} by {field} failed: {e}") from e
        return result.data

    async def query_all(self, table: str) -> list[Record]:
        try:
            result = (
                self.client.table(table)
                .select("*")
                .order(_ORDER_COLUMNS.get(table, "id"))
                .execute()
            )
        except Exception as e:
            raise StoreUnavailableError(f"Scan of {table} failed: {e}") from e
        return result.data

    async def health_check(self) -> dict[str, Any]:
        """Check database connectivity and return health status.

        Returns:
            Dict with:
                - healthy: bool - whether the database is reachable
                - latency_ms: float - query latency in milliseconds
                - error: str | None - error message if unhealthy
        """
        start = time.perf_counter()
        try:
            self.client.table(REQUESTS).select("id").limit(1).execute()
            latency_ms = (time.perf_counter() - start) * 1000
            return {
                "healthy": True,
                "latency_ms": round(latency_ms, 2),
                "error": None,
            }
        except Exception as e:
            latency_ms = (time.perf_counter() - start) * 1000
            logger.error(f"Database health check failed: {e}")
            return {
                "healthy": False,
                "latency_ms": round(latency_ms, 2),
                "error": str(e),
            }
