"""TTL cache of successful fetch results."""

import time
from typing import Callable

from cachetools import TTLCache

from agent_oracle.models.source import FetchResult

CacheKey = tuple[str, str]

DEFAULT_MAX_ENTRIES = 1024


class AnswerCache:
    """Per-fetcher cache keyed by (data_type, normalized params).

    An entry is live while ``clock() - stored_at < ttl_seconds``. Expired
    entries are purged on the next read or write; there is no background
    sweep. When ``max_entries`` is reached the least recently used entry is
    evicted.
    """

    def __init__(
        self,
        ttl_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._entries: TTLCache = TTLCache(
            maxsize=max_entries,
            ttl=ttl_seconds,
            timer=clock,
        )

    def get(self, key: CacheKey) -> FetchResult | None:
        """Return the live cached result for ``key`` or None."""
        self._entries.expire()
        return self._entries.get(key)

    def put(self, key: CacheKey, result: FetchResult) -> None:
        """Store a successful result. Failed results are never cached."""
        if not result.success:
            raise ValueError("Only successful fetch results can be cached")
        self._entries[key] = result

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: CacheKey) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        self._entries.expire()
        return len(self._entries)
