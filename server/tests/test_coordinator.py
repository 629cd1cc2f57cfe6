"""Tests for the request lifecycle coordinator."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from agent_oracle.api.events import EventBus, EventType
from agent_oracle.exceptions import RequestNotFoundError, SourceError, StoreUnavailableError
from agent_oracle.manager.agents import OracleAgent
from agent_oracle.manager.coordinator import RequestCoordinator
from agent_oracle.manager.fetcher import FallbackFetcher
from agent_oracle.manager.task_manager import TaskState
from agent_oracle.models.request import CreateRequestBody, DataType, RequestStatus
from agent_oracle.models.source import DataSource
from agent_oracle.sources.base import BaseSourceClient
from agent_oracle.store.base import REQUESTS, SUBMISSIONS
from agent_oracle.store.memory import InMemoryRequestStore


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class FixedSource(BaseSourceClient):
    """Answers every call with the same value, or always fails."""

    data_type = DataType.CRYPTO_PRICE

    def __init__(self, name: str, value: float | None) -> None:
        super().__init__(DataSource(name=name, endpoint_template=f"https://{name}.test"))
        self.value = value
        self.calls = 0

    async def call(self, params) -> float:
        self.calls += 1
        await asyncio.sleep(0)
        if self.value is None:
            raise SourceError(self.name, "down")
        return self.value


def _agent(index: int, value: float | None) -> OracleAgent:
    source = FixedSource(f"Source-{index}", value)
    fetcher = FallbackFetcher({DataType.CRYPTO_PRICE: [source]})
    return OracleAgent(f"agent-00{index}", f"Agent{index}", fetcher)


def _agents(*values: float | None) -> list[OracleAgent]:
    return [_agent(i + 1, v) for i, v in enumerate(values)]


def _coordinator(*values: float | None, store=None, event_bus=None) -> RequestCoordinator:
    return RequestCoordinator(
        store or InMemoryRequestStore(),
        _agents(*values),
        event_bus=event_bus,
    )


BODY = CreateRequestBody(query="BTC price?", data_type="crypto_price", params={"pair": "bitcoin"})


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

class TestCreate:

    def test_requires_agents(self):
        with pytest.raises(ValueError):
            RequestCoordinator(InMemoryRequestStore(), [])

    @pytest.mark.asyncio
    async def test_create_stores_pending(self):
        coordinator = _coordinator(100.0)
        request = await coordinator.create_request(BODY)

        stored = await coordinator.store.get(REQUESTS, request.id)
        assert stored["status"] == "pending"
        assert stored["data_type"] == "crypto_price"
        assert stored["params"] == {"pair": "bitcoin"}
        assert stored.get("consensus_value") is None

    @pytest.mark.asyncio
    async def test_submit_dispatches(self):
        coordinator = _coordinator(100.0, 101.0)
        request = await coordinator.submit(BODY)

        assert request.status == RequestStatus.PENDING
        await coordinator.wait_for(request.id, timeout=1.0)

        result = await coordinator.get_result(request.id)
        assert result.request.status == RequestStatus.COMPLETED
        assert len(result.submissions) == 2


# ---------------------------------------------------------------------------
# Processing
# ---------------------------------------------------------------------------

class TestProcessRequest:

    @pytest.mark.asyncio
    async def test_reference_consensus(self):
        coordinator = _coordinator(100.0, 100.0, 105.0, 95.0, 200.0)
        request = await coordinator.create_request(BODY)

        final = await coordinator.process_request(request.id)

        assert final.status == RequestStatus.COMPLETED
        assert final.consensus_value == 100.0
        assert final.completed_at is not None

        result = await coordinator.get_result(request.id)
        flags = {s.agent_id: s.is_consensus for s in result.submissions}
        assert flags == {
            "agent-001": True,
            "agent-002": True,
            "agent-003": True,
            "agent-004": True,
            "agent-005": False,
        }

    @pytest.mark.asyncio
    async def test_partial_failure_still_completes(self):
        coordinator = _coordinator(100.0, None, 102.0)
        request = await coordinator.create_request(BODY)

        final = await coordinator.process_request(request.id)

        assert final.status == RequestStatus.COMPLETED
        result = await coordinator.get_result(request.id)
        assert {s.agent_id for s in result.submissions} == {"agent-001", "agent-003"}
        assert all(s.is_consensus is not None for s in result.submissions)
        assert final.consensus_value == 102.0

    @pytest.mark.asyncio
    async def test_all_agents_fail(self):
        coordinator = _coordinator(None, None)
        request = await coordinator.create_request(BODY)

        final = await coordinator.process_request(request.id)

        assert final.status == RequestStatus.FAILED
        assert final.consensus_value is None
        assert final.completed_at is not None
        stored = await coordinator.store.get(REQUESTS, request.id)
        assert stored["status"] == "failed"
        assert stored.get("consensus_value") is None
        assert await coordinator.store.query_all(SUBMISSIONS) == []

    @pytest.mark.asyncio
    async def test_submission_fields(self):
        coordinator = _coordinator(42.5)
        request = await coordinator.create_request(BODY)
        await coordinator.process_request(request.id)

        submission = (await coordinator.get_result(request.id)).submissions[0]
        assert submission.request_id == request.id
        assert submission.agent_name == "Agent1"
        assert submission.value == 42.5
        assert submission.source == "Source-1"
        assert submission.response_time_ms >= 0
        assert submission.is_consensus is True

    @pytest.mark.asyncio
    async def test_processing_persisted_before_fetch(self):
        store = InMemoryRequestStore()
        seen = []

        class Recording(FixedSource):
            async def call(self, params):
                seen.append((await store.query_all(REQUESTS))[0]["status"])
                return 1.0

        fetcher = FallbackFetcher({DataType.CRYPTO_PRICE: [Recording("R", 1.0)]})
        coordinator = RequestCoordinator(store, [OracleAgent("agent-001", "A", fetcher)])
        request = await coordinator.create_request(BODY)

        await coordinator.process_request(request.id)

        assert seen == ["processing"]

    @pytest.mark.asyncio
    async def test_agent_exception_is_dropped(self):
        broken = OracleAgent("agent-009", "Broken", AsyncMock())
        broken.fetcher.fetch.side_effect = RuntimeError("bug")
        agents = _agents(100.0) + [broken]
        coordinator = RequestCoordinator(InMemoryRequestStore(), agents)
        request = await coordinator.create_request(BODY)

        final = await coordinator.process_request(request.id)

        assert final.status == RequestStatus.COMPLETED
        assert len((await coordinator.get_result(request.id)).submissions) == 1

    @pytest.mark.asyncio
    async def test_unknown_request(self):
        coordinator = _coordinator(1.0)
        with pytest.raises(RequestNotFoundError):
            await coordinator.process_request("nope")


# ---------------------------------------------------------------------------
# Idempotence
# ---------------------------------------------------------------------------

class TestIdempotence:

    @pytest.mark.asyncio
    async def test_terminal_request_not_reprocessed(self):
        coordinator = _coordinator(100.0)
        request = await coordinator.create_request(BODY)
        await coordinator.process_request(request.id)
        source = coordinator.agents[0].fetcher.chains[DataType.CRYPTO_PRICE][0]

        again = await coordinator.process_request(request.id)

        assert again.status == RequestStatus.COMPLETED
        assert source.calls == 1
        assert len(await coordinator.store.query_all(SUBMISSIONS)) == 1

    @pytest.mark.asyncio
    async def test_finalize_twice_is_noop(self):
        coordinator = _coordinator(100.0, 200.0)
        request = await coordinator.create_request(BODY)
        await coordinator.process_request(request.id)
        before = await coordinator.get_result(request.id)

        again = await coordinator.finalize_request(request.id)

        after = await coordinator.get_result(request.id)
        assert again == before.request
        assert after == before

    @pytest.mark.asyncio
    async def test_finalize_pending_is_noop(self):
        coordinator = _coordinator(100.0)
        request = await coordinator.create_request(BODY)

        result = await coordinator.finalize_request(request.id)

        assert result.status == RequestStatus.PENDING

    @pytest.mark.asyncio
    async def test_concurrent_processing_runs_once(self):
        coordinator = _coordinator(100.0, 101.0)
        request = await coordinator.create_request(BODY)

        await asyncio.gather(
            coordinator.process_request(request.id),
            coordinator.process_request(request.id),
        )

        assert len(await coordinator.store.query_all(SUBMISSIONS)) == 2

    @pytest.mark.asyncio
    async def test_duplicate_dispatch_refused(self):
        coordinator = _coordinator(100.0)
        request = await coordinator.create_request(BODY)

        first = await coordinator.dispatch(request.id, "crypto_price")
        second = await coordinator.dispatch(request.id, "crypto_price")
        await coordinator.wait_for(request.id, timeout=1.0)

        assert first is not None
        assert second is None
        assert coordinator.task_manager.get_task(request.id).state == TaskState.COMPLETED


# ---------------------------------------------------------------------------
# Events and failures
# ---------------------------------------------------------------------------

class TestEventsAndFailures:

    @pytest.mark.asyncio
    async def test_event_sequence(self):
        bus = EventBus()
        coordinator = _coordinator(100.0, 300.0, event_bus=bus)
        request = await coordinator.create_request(BODY)

        await coordinator.process_request(request.id)

        events = [e.event for e in bus.history(request.id)]
        assert events[0] == EventType.PROCESSING
        assert events.count(EventType.SUBMISSION) == 2
        assert events[-1] == EventType.COMPLETED
        completed = bus.history(request.id)[-1]
        assert completed.consensus_value == 300.0
        assert completed.threshold == 15.0
        assert completed.submissions == 2
        assert completed.outliers == ["agent-001"]

    @pytest.mark.asyncio
    async def test_failed_event(self):
        bus = EventBus()
        coordinator = _coordinator(None, event_bus=bus)
        request = await coordinator.create_request(BODY)

        await coordinator.process_request(request.id)

        assert bus.history(request.id)[-1].event == EventType.FAILED

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self):
        store = InMemoryRequestStore()
        coordinator = _coordinator(100.0, store=store)
        request = await coordinator.create_request(BODY)
        store.patch = AsyncMock(side_effect=StoreUnavailableError("down"))

        with pytest.raises(StoreUnavailableError):
            await coordinator.process_request(request.id)

    @pytest.mark.asyncio
    async def test_background_store_failure_recorded(self):
        bus = EventBus()
        store = InMemoryRequestStore()
        coordinator = _coordinator(100.0, store=store, event_bus=bus)
        request = await coordinator.create_request(BODY)
        store.patch = AsyncMock(side_effect=StoreUnavailableError("down"))

        await coordinator.dispatch(request.id)
        await coordinator.wait_for(request.id, timeout=1.0)

        managed = coordinator.task_manager.get_task(request.id)
        assert managed.state == TaskState.FAILED
        assert "down" in managed.error
        assert bus.history(request.id)[-1].event == EventType.ERROR


# ---------------------------------------------------------------------------
# Concurrent finalize and partial store failures
# ---------------------------------------------------------------------------

class SlowSource(FixedSource):
    """Answers after ``delay`` seconds."""

    def __init__(self, name: str, value: float, delay: float) -> None:
        super().__init__(name, value)
        self.delay = delay

    async def call(self, params) -> float:
        await asyncio.sleep(self.delay)
        return await super().call(params)


class FlakyInsertStore(InMemoryRequestStore):
    """Fails submission inserts after the first ``ok_inserts`` while broken."""

    def __init__(self, ok_inserts: int) -> None:
        super().__init__()
        self.ok_inserts = ok_inserts
        self.broken = True
        self.patch_broken = False
        self._submission_inserts = 0

    async def insert(self, table, record):
        if table == SUBMISSIONS and self.broken:
            self._submission_inserts += 1
            if self._submission_inserts > self.ok_inserts:
                raise StoreUnavailableError("insert timed out")
        return await super().insert(table, record)

    async def patch(self, table, record_id, fields):
        if self.patch_broken and fields.get("status") == "failed":
            raise StoreUnavailableError("still down")
        return await super().patch(table, record_id, fields)


class TestConcurrentFinalize:

    @pytest.mark.asyncio
    async def test_finalize_waits_for_in_flight_run(self):
        slow = OracleAgent(
            "agent-001",
            "Slow",
            FallbackFetcher({DataType.CRYPTO_PRICE: [SlowSource("Slow", 300.0, 0.2)]}),
        )
        fast = _agent(2, 100.0)
        coordinator = RequestCoordinator(InMemoryRequestStore(), [slow, fast])
        request = await coordinator.create_request(BODY)

        run = asyncio.create_task(coordinator.process_request(request.id))
        await asyncio.sleep(0.05)
        finalized = await coordinator.finalize_request(request.id)
        await run

        result = await coordinator.get_result(request.id)
        assert finalized.status == RequestStatus.COMPLETED
        assert finalized.consensus_value == 300.0
        assert len(result.submissions) == 2
        assert all(s.is_consensus is not None for s in result.submissions)

    @pytest.mark.asyncio
    async def test_locks_released_after_run(self):
        coordinator = _coordinator(100.0)
        request = await coordinator.create_request(BODY)

        await asyncio.gather(
            coordinator.process_request(request.id),
            coordinator.finalize_request(request.id),
        )

        assert coordinator._locks == {}
        assert coordinator._lock_users == {}


class TestPartialStoreFailure:

    @pytest.mark.asyncio
    async def test_failed_insert_marks_request_failed(self):
        bus = EventBus()
        store = FlakyInsertStore(ok_inserts=1)
        coordinator = _coordinator(100.0, 101.0, 102.0, store=store, event_bus=bus)
        request = await coordinator.create_request(BODY)

        with pytest.raises(StoreUnavailableError):
            await coordinator.process_request(request.id)

        stored = await store.get(REQUESTS, request.id)
        assert stored["status"] == "failed"
        assert stored["completed_at"] is not None
        assert stored.get("consensus_value") is None
        assert bus.history(request.id)[-1].event == EventType.FAILED

    @pytest.mark.asyncio
    async def test_failed_request_not_reprocessed_after_recovery(self):
        store = FlakyInsertStore(ok_inserts=1)
        coordinator = _coordinator(100.0, 101.0, store=store)
        request = await coordinator.create_request(BODY)
        with pytest.raises(StoreUnavailableError):
            await coordinator.process_request(request.id)

        store.broken = False
        again = await coordinator.process_request(request.id)

        assert again.status == RequestStatus.FAILED

    @pytest.mark.asyncio
    async def test_original_error_raised_when_fail_patch_also_fails(self):
        store = FlakyInsertStore(ok_inserts=0)
        store.patch_broken = True
        coordinator = _coordinator(100.0, store=store)
        request = await coordinator.create_request(BODY)

        with pytest.raises(StoreUnavailableError, match="insert timed out"):
            await coordinator.process_request(request.id)

        assert (await store.get(REQUESTS, request.id))["status"] == "processing"

    @pytest.mark.asyncio
    async def test_background_run_emits_single_terminal_event(self):
        bus = EventBus()
        store = FlakyInsertStore(ok_inserts=0)
        coordinator = _coordinator(100.0, store=store, event_bus=bus)
        request = await coordinator.create_request(BODY)

        await coordinator.dispatch(request.id)
        await coordinator.wait_for(request.id, timeout=1.0)

        terminal = [e for e in bus.history(request.id) if e.event.is_terminal]
        assert [e.event for e in terminal] == [EventType.FAILED]
        assert coordinator.task_manager.get_task(request.id).state == TaskState.FAILED


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

class TestQueries:

    @pytest.mark.asyncio
    async def test_get_result_unknown(self):
        coordinator = _coordinator(1.0)
        with pytest.raises(RequestNotFoundError):
            await coordinator.get_result("nope")

    @pytest.mark.asyncio
    async def test_list_recent_newest_first(self):
        coordinator = _coordinator(1.0)
        ids = []
        for i in range(3):
            request = await coordinator.create_request(
                CreateRequestBody(query=f"q{i}", data_type="crypto_price")
            )
            ids.append(request.id)

        recent = await coordinator.list_recent(limit=2)

        assert [r.id for r in recent] == [ids[2], ids[1]]

    @pytest.mark.asyncio
    async def test_stats(self):
        coordinator = _coordinator(100.0, 100.0, 105.0, 95.0, 200.0)
        first = await coordinator.create_request(BODY)
        await coordinator.process_request(first.id)
        await coordinator.create_request(BODY)

        stats = await coordinator.get_stats()

        assert stats.total_requests == 2
        assert stats.completed_requests == 1
        assert stats.total_submissions == 5
        assert stats.total_value == 100.0
        assert stats.consensus_rate == 80
        assert stats.active_agents == 5

    @pytest.mark.asyncio
    async def test_stats_empty(self):
        stats = await _coordinator(1.0).get_stats()
        assert stats.total_requests == 0
        assert stats.consensus_rate == 0
        assert stats.total_value == 0.0
        assert stats.active_agents == 1

    @pytest.mark.asyncio
    async def test_stats_total_value_rounded(self):
        coordinator = _coordinator(10.004, 10.004)
        for _ in range(2):
            request = await coordinator.create_request(BODY)
            await coordinator.process_request(request.id)

        stats = await coordinator.get_stats()
        assert stats.total_value == 20.01
