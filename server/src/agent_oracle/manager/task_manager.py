"""Tracks in-flight request coordination tasks.

Provides:
- At most one running coordination per request id
- An explicit join point for dispatched work
- Visibility into what is currently being processed
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class TaskState(str, Enum):
    """State of a managed coordination task."""

    QUEUED = "queued"  # Registered, not yet started
    RUNNING = "running"  # Fan-out in progress
    COMPLETED = "completed"  # Coordination finished (request completed or failed)
    FAILED = "failed"  # Coordination itself raised (e.g. store unavailable)


_ACTIVE_STATES = frozenset({TaskState.QUEUED, TaskState.RUNNING})
_TERMINAL_STATES = frozenset({TaskState.COMPLETED, TaskState.FAILED})


@dataclass
class ManagedTask:
    """A coordination run being tracked by the TaskManager."""

    request_id: str
    data_type: str | None = None
    asyncio_task: asyncio.Task | None = None
    state: TaskState = TaskState.QUEUED
    started_at: datetime | None = None
    finished_at: datetime | None = None
    error: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "request_id": self.request_id,
            "data_type": self.data_type,
            "state": self.state.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "running_seconds": (
                ((self.finished_at or datetime.now(UTC)) - self.started_at).total_seconds()
                if self.started_at
                else None
            ),
        }


class TaskManager:
    """Manages the lifecycle of background coordination tasks."""

    def __init__(self) -> None:
        self._tasks: dict[str, ManagedTask] = {}
        self._lock = asyncio.Lock()

    async def register_task(
        self,
        request_id: str,
        data_type: str | None = None,
    ) -> ManagedTask | None:
        """Register a coordination run before it starts.

        Args:
            request_id: The request being processed
            data_type: Data type of the request, for visibility

        Returns:
            The ManagedTask, or None if a run for this request is already
            active
        """
        async with self._lock:
            existing = self._tasks.get(request_id)
            if existing is not None and existing.state in _ACTIVE_STATES:
                logger.warning(f"Request {request_id} is already being processed")
                return None

            managed = ManagedTask(request_id=request_id, data_type=data_type)
            self._tasks[request_id] = managed
            logger.debug(f"Registered task for request {request_id}")
            return managed

    async def start_task(self, request_id: str, asyncio_task: asyncio.Task) -> None:
        """Attach the running asyncio.Task to a registered run."""
        async with self._lock:
            managed = self._tasks.get(request_id)
            if managed is None:
                return
            managed.asyncio_task = asyncio_task
            # The run may already have finished if it never yielded
            if managed.state == TaskState.QUEUED:
                managed.state = TaskState.RUNNING
                managed.started_at = datetime.now(UTC)
                logger.debug(f"Started task for request {request_id}")

    async def complete_task(self, request_id: str) -> None:
        """Mark a run as completed."""
        async with self._lock:
            if request_id in self._tasks:
                managed = self._tasks[request_id]
                managed.state = TaskState.COMPLETED
                managed.finished_at = datetime.now(UTC)
                logger.debug(f"Completed task for request {request_id}")

    async def fail_task(self, request_id: str, error: str) -> None:
        """Mark a run as failed."""
        async with self._lock:
            if request_id in self._tasks:
                managed = self._tasks[request_id]
                managed.state = TaskState.FAILED
                managed.error = error
                managed.finished_at = datetime.now(UTC)
                logger.debug(f"Failed task for request {request_id}: {error}")

    async def wait(self, request_id: str, timeout: float | None = None) -> ManagedTask | None:
        """Wait until the run for ``request_id`` has settled.

        Exceptions raised by the run are not re-raised here; they are
        recorded on the ManagedTask.

        Returns:
            The ManagedTask, or None if nothing was registered
        """
        managed = self._tasks.get(request_id)
        if managed is None:
            return None
        if managed.asyncio_task is not None:
            await asyncio.wait({managed.asyncio_task}, timeout=timeout)
        return managed

    def get_task(self, request_id: str) -> ManagedTask | None:
        """Get info about a specific run."""
        return self._tasks.get(request_id)

    def get_active_tasks(self) -> list[ManagedTask]:
        """Get all queued or running tasks."""
        return [t for t in self._tasks.values() if t.state in _ACTIVE_STATES]

    async def cleanup_old_tasks(self, max_age_seconds: int = 3600) -> int:
        """Remove finished tasks older than max_age.

        Returns:
            Number of tasks cleaned up
        """
        async with self._lock:
            now = datetime.now(UTC)
            to_remove = [
                request_id
                for request_id, managed in self._tasks.items()
                if managed.state in _TERMINAL_STATES
                and (now - managed.created_at).total_seconds() > max_age_seconds
            ]

            for request_id in to_remove:
                del self._tasks[request_id]

            if to_remove:
                logger.debug(f"Cleaned up {len(to_remove)} old tasks")

            return len(to_remove)

    @property
    def active_count(self) -> int:
        """Number of currently active tasks."""
        return sum(1 for t in self._tasks.values() if t.state in _ACTIVE_STATES)

    @property
    def total_count(self) -> int:
        """Total number of tracked tasks."""
        return len(self._tasks)
