"""Request coordinator - lifecycle, agent fan-out and consensus."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import AsyncIterator, Sequence

from agent_oracle.api.events import EventBus, OracleEvent
from agent_oracle.exceptions import RequestNotFoundError
from agent_oracle.manager.agents import OracleAgent
from agent_oracle.manager.consensus import AgentAnswer, ConsensusEngine
from agent_oracle.manager.task_manager import TaskManager
from agent_oracle.models.request import (
    CreateRequestBody,
    OracleRequest,
    OracleStats,
    RequestResult,
    RequestStatus,
    Submission,
)
from agent_oracle.store.base import REQUESTS, SUBMISSIONS, RequestStore

logger = logging.getLogger(__name__)


class RequestCoordinator:
    """Owns the request lifecycle.

    pending -> processing -> completed | failed

    On dispatch every configured agent fetches concurrently. Each success is
    stored as a Submission as soon as it arrives. Once all agents have
    settled, consensus is computed over the stored submissions and the
    request is completed (at least one submission) or failed (none).
    Requests that are no longer pending are never processed again, and
    terminal requests are never written again.
    """

    def __init__(
        self,
        store: RequestStore,
        agents: Sequence[OracleAgent],
        *,
        engine: ConsensusEngine | None = None,
        task_manager: TaskManager | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        if not agents:
            raise ValueError("RequestCoordinator requires at least one agent")
        self.store = store
        self.agents = list(agents)
        self.engine = engine or ConsensusEngine()
        self.task_manager = task_manager or TaskManager()
        self.event_bus = event_bus
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @property
    def active_agents(self) -> int:
        return len(self.agents)

    # -------------------------------------------------------------------------
    # Creation and dispatch
    # -------------------------------------------------------------------------

    async def create_request(self, body: CreateRequestBody) -> OracleRequest:
        """Store a new request in ``pending``.

        Args:
            body: Validated creation body

        Returns:
            The stored request
        """
        request = OracleRequest(
            query=body.query,
            data_type=body.data_type,
            params=body.params,
        )
        await self.store.insert(REQUESTS, request.model_dump(mode="json"))
        logger.info(
            f"Created request {request.id}: {request.data_type.value} "
            f"{request.params} - {request.query[:50]}"
        )
        return request

    async def submit(self, body: CreateRequestBody) -> OracleRequest:
        """Create a request and dispatch it in the background."""
        request = await self.create_request(body)
        await self.dispatch(request.id, request.data_type.value)
        return request

    async def dispatch(
        self,
        request_id: str,
        data_type: str | None = None,
    ) -> asyncio.Task | None:
        """Start processing ``request_id`` as a managed background task.

        Returns:
            The asyncio.Task, or None if the request is already in flight
        """
        managed = await self.task_manager.register_task(request_id, data_type)
        if managed is None:
            return None

        task = asyncio.create_task(self._run_managed(request_id))
        await self.task_manager.start_task(request_id, task)
        return task

    async def wait_for(self, request_id: str, timeout: float | None = None) -> None:
        """Join point: wait until a dispatched request has settled."""
        await self.task_manager.wait(request_id, timeout=timeout)

    async def _run_managed(self, request_id: str) -> None:
        try:
            await self.process_request(request_id)
        except Exception as e:
            logger.error(f"Request {request_id} coordination failed: {e}")
            await self.task_manager.fail_task(request_id, str(e))
            self._emit(OracleEvent.errored(request_id, str(e)))
        else:
            await self.task_manager.complete_task(request_id)

    # -------------------------------------------------------------------------
    # Processing
    # -------------------------------------------------------------------------

    @asynccontextmanager
    async def _request_lock(self, request_id: str) -> AsyncIterator[None]:
        """Serialize lifecycle steps for one request id."""
        lock = self._locks.setdefault(request_id, asyncio.Lock())
        self._lock_users[request_id] = self._lock_users.get(request_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[request_id] -= 1
            if not self._lock_users[request_id]:
                del self._lock_users[request_id]
                self._locks.pop(request_id, None)

    async def process_request(self, request_id: str) -> OracleRequest:
        """Run the full lifecycle for a pending request.

        A request that is not pending is returned unchanged. If anything
        fails after the request entered ``processing``, it is marked
        ``failed`` (when the store allows) and the error is re-raised.

        Raises:
            RequestNotFoundError: If the id is unknown
            StoreUnavailableError: If the store fails
        """
        async with self._request_lock(request_id):
            request = await self._load(request_id)
            if request.status != RequestStatus.PENDING:
                logger.info(
                    f"Request {request_id} is {request.status.value}, not processing"
                )
                return request

            # Must be durable before any submission is recorded
            await self.store.patch(
                REQUESTS, request_id, {"status": RequestStatus.PROCESSING.value}
            )
            request = request.model_copy(update={"status": RequestStatus.PROCESSING})
            self._emit(OracleEvent.processing(
                request_id, [agent.agent_id for agent in self.agents]
            ))
            logger.info(
                f"Processing request {request_id} with {len(self.agents)} agents"
            )

            try:
                outcomes = await asyncio.gather(
                    *(self._run_agent(agent, request) for agent in self.agents),
                    return_exceptions=True,
                )
                errors = [o for o in outcomes if isinstance(o, BaseException)]
                if errors:
                    raise errors[0]

                succeeded = sum(1 for o in outcomes if o is not None)
                logger.info(
                    f"Request {request_id}: {succeeded}/{len(self.agents)} agents answered"
                )
                return await self._finalize(request_id)
            except Exception as e:
                await self._fail_after_error(request_id, e)
                raise

    async def _run_agent(self, agent: OracleAgent, request: OracleRequest) -> Submission | None:
        """Fetch for one agent and store its submission on success."""
        try:
            result, response_time_ms = await agent.fetch(request.data_type, request.params)
        except Exception as e:
            logger.error(f"Agent {agent.agent_id} raised during fetch: {e}")
            return None

        if not result.success or result.value is None:
            logger.debug(
                f"Agent {agent.agent_id} produced no answer for {request.id}: {result.error}"
            )
            return None

        submission = Submission(
            request_id=request.id,
            agent_id=agent.agent_id,
            agent_name=agent.name,
            value=result.value,
            source=result.source,
            response_time_ms=response_time_ms,
        )
        await self.store.insert(SUBMISSIONS, submission.model_dump(mode="json"))
        self._emit(OracleEvent.submission(
            request.id,
            agent_id=agent.agent_id,
            value=submission.value,
            source=submission.source,
            cached=result.cached,
        ))
        return submission

    async def finalize_request(self, request_id: str) -> OracleRequest:
        """Compute consensus over stored submissions and close the request.

        Waits for any in-flight run of the same request, so it never closes
        a request while agents are still answering. Terminal requests are
        returned unchanged without any write.

        Returns:
            The request as stored after this call
        """
        async with self._request_lock(request_id):
            return await self._finalize(request_id)

    async def _finalize(self, request_id: str) -> OracleRequest:
        # Caller holds the request lock
        request = await self._load(request_id)
        if request.status.is_terminal:
            logger.info(f"Request {request_id} already {request.status.value}, skipping")
            return request
        if request.status == RequestStatus.PENDING:
            logger.warning(f"Request {request_id} was never dispatched, not finalizing")
            return request

        submissions = await self._load_submissions(request_id)
        completed_at = datetime.now(UTC)

        if not submissions:
            await self.store.patch(REQUESTS, request_id, {
                "status": RequestStatus.FAILED.value,
                "completed_at": completed_at.isoformat(),
            })
            self._emit(OracleEvent.failed(request_id, "No agent answered"))
            logger.info(f"Request {request_id} failed: no agent answered")
            return request.model_copy(update={
                "status": RequestStatus.FAILED,
                "completed_at": completed_at,
            })

        consensus = self.engine.compute(
            AgentAnswer(agent_id=s.agent_id, value=s.value) for s in submissions
        )
        for submission in submissions:
            await self.store.patch(SUBMISSIONS, submission.id, {
                "is_consensus": consensus.classification[submission.agent_id],
            })
        await self.store.patch(REQUESTS, request_id, {
            "status": RequestStatus.COMPLETED.value,
            "consensus_value": consensus.median,
            "completed_at": completed_at.isoformat(),
        })

        if consensus.outliers:
            logger.info(f"Request {request_id} outliers: {consensus.outliers}")
        logger.info(
            f"Request {request_id} completed: consensus={consensus.median} "
            f"(threshold={consensus.threshold:.4f}, {len(submissions)} submissions)"
        )
        self._emit(OracleEvent.completed(
            request_id,
            consensus_value=consensus.median,
            threshold=consensus.threshold,
            submissions=len(submissions),
            outliers=consensus.outliers,
        ))
        return request.model_copy(update={
            "status": RequestStatus.COMPLETED,
            "consensus_value": consensus.median,
            "completed_at": completed_at,
        })

    async def _fail_after_error(self, request_id: str, error: Exception) -> None:
        """Best-effort close of a request whose run raised mid-way."""
        try:
            await self.store.patch(REQUESTS, request_id, {
                "status": RequestStatus.FAILED.value,
                "completed_at": datetime.now(UTC).isoformat(),
            })
        except Exception as patch_error:
            logger.error(
                f"Request {request_id} left in processing: could not mark failed "
                f"({patch_error})"
            )
            return
        logger.warning(f"Request {request_id} marked failed after error: {error}")
        self._emit(OracleEvent.failed(request_id, str(error)))

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def get_result(self, request_id: str) -> RequestResult:
        """Get a request and its submissions.

        Raises:
            RequestNotFoundError: If the id is unknown
        """
        request = await self._load(request_id)
        submissions = await self._load_submissions(request_id)
        return RequestResult(request=request, submissions=submissions)

    async def list_recent(self, limit: int = 10) -> list[OracleRequest]:
        """Most recently created requests, newest first."""
        records = await self.store.query_all(REQUESTS)
        requests = [OracleRequest.model_validate(r) for r in records]
        requests.sort(key=lambda r: r.created_at, reverse=True)
        return requests[:limit]

    async def get_stats(self) -> OracleStats:
        """Aggregate counters over all requests and submissions."""
        requests = [
            OracleRequest.model_validate(r) for r in await self.store.query_all(REQUESTS)
        ]
        submissions = [
            Submission.model_validate(s) for s in await self.store.query_all(SUBMISSIONS)
        ]

        completed = [r for r in requests if r.status == RequestStatus.COMPLETED]
        total_value = sum(r.consensus_value or 0 for r in completed)
        consensus_count = sum(1 for s in submissions if s.is_consensus)
        consensus_rate = (
            round(consensus_count / len(submissions) * 100) if submissions else 0
        )

        return OracleStats(
            total_requests=len(requests),
            completed_requests=len(completed),
            total_submissions=len(submissions),
            total_value=round(total_value, 2),
            consensus_rate=consensus_rate,
            active_agents=self.active_agents,
        )

    async def _load(self, request_id: str) -> OracleRequest:
        record = await self.store.get(REQUESTS, request_id)
        if record is None:
            raise RequestNotFoundError(request_id)
        return OracleRequest.model_validate(record)

    async def _load_submissions(self, request_id: str) -> list[Submission]:
        records = await self.store.query_by_index(SUBMISSIONS, "request_id", request_id)
        return [Submission.model_validate(r) for r in records]

    def _emit(self, event: OracleEvent) -> None:
        if self.event_bus is not None:
            self.event_bus.emit(event)
