"""FastAPI routes for oracle request submission and retrieval."""

import asyncio
import logging
from typing import Annotated, AsyncIterator

from fastapi import APIRouter, Depends, HTTPException, Query, status
from starlette.responses import StreamingResponse

from agent_oracle import __version__
from agent_oracle.api.events import EventBus, EventType, OracleEvent
from agent_oracle.config import get_settings
from agent_oracle.exceptions import RequestNotFoundError
from agent_oracle.manager.agents import build_default_agents
from agent_oracle.manager.consensus import ConsensusEngine
from agent_oracle.manager.coordinator import RequestCoordinator
from agent_oracle.models.request import (
    CreateRequestBody,
    CreateRequestResponse,
    OracleRequest,
    OracleStats,
    RequestResult,
)
from agent_oracle.store import RequestStore, build_store

logger = logging.getLogger(__name__)

router = APIRouter()

# Dependency injection
_store: RequestStore | None = None
_event_bus: EventBus | None = None
_coordinator: RequestCoordinator | None = None


def get_store() -> RequestStore:
    """Get or create the request store."""
    global _store
    if _store is None:
        _store = build_store()
    return _store


def get_event_bus() -> EventBus:
    """Get or create event bus instance."""
    global _event_bus
    if _event_bus is None:
        settings = get_settings()
        _event_bus = EventBus(
            history_ttl=settings.event_history_ttl,
            idle_ttl=settings.event_idle_ttl,
        )
    return _event_bus


def get_coordinator() -> RequestCoordinator:
    """Get or create the coordinator with the default agent roster."""
    global _coordinator
    if _coordinator is None:
        settings = get_settings()
        _coordinator = RequestCoordinator(
            store=get_store(),
            agents=build_default_agents(settings=settings),
            engine=ConsensusEngine(tolerance=settings.consensus_tolerance),
            event_bus=get_event_bus(),
        )
    return _coordinator


@router.get("/health")
async def health(
    store: Annotated[RequestStore, Depends(get_store)],
) -> dict:
    """Health check endpoint."""
    store_health = await store.health_check()
    return {
        "status": "ok" if store_health["healthy"] else "degraded",
        "version": __version__,
        "store": store_health,
    }


@router.get("/agents")
async def list_agents(
    coordinator: Annotated[RequestCoordinator, Depends(get_coordinator)],
) -> list[dict]:
    """List the configured agents and their source orderings."""
    return [agent.describe() for agent in coordinator.agents]


@router.post("/api/oracle/create", response_model=CreateRequestResponse)
async def create_request(
    body: CreateRequestBody,
    coordinator: Annotated[RequestCoordinator, Depends(get_coordinator)],
) -> CreateRequestResponse:
    """Create an oracle request and start processing it.

    Returns immediately with the request id; poll ``/api/oracle/result``
    or subscribe to ``/api/oracle/stream`` for the outcome.

    Args:
        body: Query, data type and params (validated per data type)
        coordinator: The request coordinator

    Returns:
        CreateRequestResponse with the request id in ``pending``
    """
    request = await coordinator.submit(body)
    return CreateRequestResponse(request_id=request.id, status=request.status)


@router.get("/api/oracle/result/{request_id}", response_model=RequestResult)
async def get_result(
    request_id: str,
    coordinator: Annotated[RequestCoordinator, Depends(get_coordinator)],
) -> RequestResult:
    """Get a request with its submissions.

    Raises:
        HTTPException: If the request is not found
    """
    try:
        return await coordinator.get_result(request_id)
    except RequestNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Request {request_id} not found",
        )


@router.get("/api/oracle/requests", response_model=list[OracleRequest])
async def list_requests(
    coordinator: Annotated[RequestCoordinator, Depends(get_coordinator)],
    limit: Annotated[int, Query(ge=1, le=50)] = 10,
) -> list[OracleRequest]:
    """List the most recent requests, newest first."""
    return await coordinator.list_recent(limit)


@router.get("/api/oracle/stats", response_model=OracleStats)
async def get_stats(
    coordinator: Annotated[RequestCoordinator, Depends(get_coordinator)],
) -> OracleStats:
    """Aggregate request and submission counters."""
    return await coordinator.get_stats()


@router.get("/api/oracle/stream/{request_id}")
async def stream_request(
    request_id: str,
    coordinator: Annotated[RequestCoordinator, Depends(get_coordinator)],
    event_bus: Annotated[EventBus, Depends(get_event_bus)],
) -> StreamingResponse:
    """Stream request lifecycle events via Server-Sent Events.

    Late joiners receive the full event history before live events.
    The stream terminates after a completed, failed or error event.

    Raises:
        HTTPException: If the request is not found
    """
    try:
        result = await coordinator.get_result(request_id)
    except RequestNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Request {request_id} not found",
        )

    request = result.request
    queue = event_bus.subscribe(request_id)

    async def event_generator() -> AsyncIterator[str]:
        # History already pruned: report the stored outcome and stop
        if request.status.is_terminal and not event_bus.has_terminal_event(request_id):
            event_bus.unsubscribe(request_id, queue)
            final = OracleEvent(
                event=EventType(request.status.value),
                request_id=request_id,
                consensus_value=request.consensus_value,
            )
            yield final.to_sse()
            return

        try:
            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=30.0)
                    yield event.to_sse()
                    if event.event.is_terminal:
                        break
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    if event_bus.has_terminal_event(request_id):
                        break
        finally:
            event_bus.unsubscribe(request_id, queue)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
