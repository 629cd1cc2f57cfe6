"""Request lifecycle events and their per-request fan-out to SSE clients."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Lifecycle events a request goes through."""

    PROCESSING = "processing"  # Fan-out started
    SUBMISSION = "submission"  # One agent answered
    COMPLETED = "completed"  # Consensus reached
    FAILED = "failed"  # Request closed without consensus
    ERROR = "error"  # Coordination itself raised

    @property
    def is_terminal(self) -> bool:
        return self in (EventType.COMPLETED, EventType.FAILED, EventType.ERROR)


class OracleEvent(BaseModel):
    """One lifecycle event. Only the fields relevant to ``event`` are set."""

    event: EventType
    request_id: str
    timestamp: float = Field(default_factory=time.time)

    # processing
    agents: list[str] | None = None

    # submission
    agent_id: str | None = None
    value: float | None = None
    source: str | None = None
    cached: bool | None = None

    # completed
    consensus_value: float | None = None
    threshold: float | None = None
    submissions: int | None = None
    outliers: list[str] | None = None

    # failed / error
    error: str | None = None

    @classmethod
    def processing(cls, request_id: str, agents: list[str]) -> OracleEvent:
        return cls(event=EventType.PROCESSING, request_id=request_id, agents=agents)

    @classmethod
    def submission(
        cls,
        request_id: str,
        agent_id: str,
        value: float,
        source: str,
        cached: bool = False,
    ) -> OracleEvent:
        return cls(
            event=EventType.SUBMISSION,
            request_id=request_id,
            agent_id=agent_id,
            value=value,
            source=source,
            cached=cached,
        )

    @classmethod
    def completed(
        cls,
        request_id: str,
        consensus_value: float,
        threshold: float,
        submissions: int,
        outliers: list[str],
    ) -> OracleEvent:
        return cls(
            event=EventType.COMPLETED,
            request_id=request_id,
            consensus_value=consensus_value,
            threshold=threshold,
            submissions=submissions,
            outliers=outliers,
        )

    @classmethod
    def failed(cls, request_id: str, error: str) -> OracleEvent:
        return cls(event=EventType.FAILED, request_id=request_id, error=error)

    @classmethod
    def errored(cls, request_id: str, error: str) -> OracleEvent:
        return cls(event=EventType.ERROR, request_id=request_id, error=error)

    def to_sse(self) -> str:
        """Encode as one Server-Sent Events frame."""
        return f"data: {self.model_dump_json(exclude_none=True)}\n\n"


@dataclass
class _Channel:
    """Event history and live subscribers for one request."""

    events: list[OracleEvent] = field(default_factory=list)
    subscribers: list[asyncio.Queue[OracleEvent]] = field(default_factory=list)
    last_event_at: float = 0.0
    closed_at: float | None = None  # When the terminal event arrived


class EventBus:
    """Broadcasts request lifecycle events to SSE subscribers.

    Each request has its own history so late joiners replay everything
    before receiving live events. A request's stream ends at its first
    terminal event; anything emitted after that is dropped.

    Histories are pruned by ``cleanup_stale``: closed requests after
    ``history_ttl`` seconds, and requests that never closed once they have
    been idle for ``idle_ttl`` seconds with nobody listening.
    """

    def __init__(
        self,
        history_ttl: float = 300,
        idle_ttl: float = 3600,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._channels: dict[str, _Channel] = {}
        self._history_ttl = history_ttl
        self._idle_ttl = idle_ttl
        self._clock = clock

    def emit(self, event: OracleEvent) -> bool:
        """Record ``event`` and push it to the request's subscribers.

        Returns:
            False if the request's stream had already ended
        """
        channel = self._channels.setdefault(event.request_id, _Channel())
        if channel.closed_at is not None:
            logger.debug(
                f"Dropping {event.event.value} for {event.request_id}: stream already ended"
            )
            return False

        now = self._clock()
        channel.events.append(event)
        channel.last_event_at = now
        if event.event.is_terminal:
            channel.closed_at = now

        for queue in channel.subscribers:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(f"Subscriber queue full for {event.request_id}, event dropped")
        return True

    def subscribe(self, request_id: str) -> asyncio.Queue[OracleEvent]:
        """Subscribe to a request; the queue starts with the history so far."""
        queue: asyncio.Queue[OracleEvent] = asyncio.Queue(maxsize=100)
        channel = self._channels.setdefault(request_id, _Channel(last_event_at=self._clock()))
        for event in channel.events:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                break
        channel.subscribers.append(queue)
        return queue

    def unsubscribe(self, request_id: str, queue: asyncio.Queue[OracleEvent]) -> None:
        """Remove a subscriber queue. Idempotent."""
        channel = self._channels.get(request_id)
        if channel is not None and queue in channel.subscribers:
            channel.subscribers.remove(queue)

    def history(self, request_id: str) -> list[OracleEvent]:
        channel = self._channels.get(request_id)
        return list(channel.events) if channel else []

    def has_terminal_event(self, request_id: str) -> bool:
        channel = self._channels.get(request_id)
        return channel is not None and channel.closed_at is not None

    def submission_count(self, request_id: str) -> int:
        """Number of agent answers streamed so far for a request."""
        return sum(1 for e in self.history(request_id) if e.event == EventType.SUBMISSION)

    def cleanup_stale(self) -> int:
        """Prune closed and abandoned request histories.

        Returns:
            Number of requests pruned
        """
        now = self._clock()
        stale = [
            request_id
            for request_id, channel in self._channels.items()
            if (
                channel.closed_at is not None
                and now - channel.closed_at > self._history_ttl
            )
            or (
                channel.closed_at is None
                and not channel.subscribers
                and now - channel.last_event_at > self._idle_ttl
            )
        ]
        for request_id in stale:
            del self._channels[request_id]
        if stale:
            logger.debug(f"Pruned event history for {len(stale)} requests")
        return len(stale)

    def __len__(self) -> int:
        return len(self._channels)
