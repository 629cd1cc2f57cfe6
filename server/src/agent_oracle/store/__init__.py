"""Request and submission storage."""

from agent_oracle.config import Settings, get_settings
from agent_oracle.store.base import REQUESTS, SUBMISSIONS, Record, RequestStore
from agent_oracle.store.memory import InMemoryRequestStore


def build_store(settings: Settings | None = None) -> RequestStore:
    """Create the store selected by ``settings.store_backend``."""
    settings = settings or get_settings()
    if settings.store_backend == "supabase":
        from agent_oracle.store.supabase_store import SupabaseRequestStore

        return SupabaseRequestStore(settings=settings)
    return InMemoryRequestStore()


__all__ = [
    "build_store",
    "InMemoryRequestStore",
    "Record",
    "REQUESTS",
    "RequestStore",
    "SUBMISSIONS",
]
